from __future__ import annotations

import re
from typing import Iterable

from mise.services.types import TranscriptSegment

TIMESTAMP_PATTERN = re.compile(r"^(?:(\d+):)?(\d{1,3}):([0-5]\d)$")


def format_timestamp(total_seconds: int) -> str:
    minutes, seconds = divmod(max(0, int(total_seconds)), 60)
    return f"{minutes}:{seconds:02d}"


def parse_timestamp(value: str) -> int:
    """Convert ``M:SS``, ``MM:SS`` or ``H:MM:SS`` back to whole seconds."""
    match = TIMESTAMP_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Not a transcript timestamp: {value!r}")
    hours, minutes, seconds = match.groups()
    return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)


def format_transcript_with_timestamps(segments: Iterable[TranscriptSegment]) -> str:
    return "\n".join(
        f"[{format_timestamp(segment.offset_ms // 1000)}] {segment.text}"
        for segment in segments
    )


def transcript_end_seconds(segments: Iterable[TranscriptSegment]) -> int | None:
    last = None
    for segment in segments:
        last = segment
    if last is None:
        return None
    return (last.offset_ms + last.duration_ms + 999) // 1000
