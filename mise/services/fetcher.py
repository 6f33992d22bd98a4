from __future__ import annotations

import asyncio
import html
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from mise.services.errors import FetchFailedError, MetadataFetchError, TranscriptFetchError
from mise.services.http import DEFAULT_TIMEOUT_SECONDS, get_ok, open_client
from mise.services.ids import watch_url
from mise.services.types import TranscriptSegment, VideoContent, VideoMetadata

logger = logging.getLogger(__name__)

OEMBED_ENDPOINT = "https://www.youtube.com/oembed"
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}
PREFERRED_LANGUAGE = "en"

PLAYER_RESPONSE_PATTERN = re.compile(r"ytInitialPlayerResponse\s*=\s*\{")
CAPTION_TEXT_PATTERN = re.compile(r"<text\b([^>]*)>(.*?)</text>", re.DOTALL)
ATTRIBUTE_PATTERN = re.compile(r'([\w:-]+)\s*=\s*"([^"]*)"')
INLINE_TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class CaptionTrack:
    url: str
    language: str


def _clean_string(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


async def fetch_video_metadata(video_id: str, client: httpx.AsyncClient) -> VideoMetadata:
    params = {"url": watch_url(video_id), "format": "json"}
    try:
        response = await get_ok(client, OEMBED_ENDPOINT, params=params)
        data = response.json()
    except FetchFailedError as error:
        raise MetadataFetchError(f"Failed to fetch video metadata for {video_id}: {error}") from error
    except ValueError as error:
        raise MetadataFetchError(f"Malformed metadata response for {video_id}") from error

    if not isinstance(data, dict):
        raise MetadataFetchError(f"Malformed metadata response for {video_id}")

    return VideoMetadata(
        title=_clean_string(data.get("title")) or "Untitled video",
        author=_clean_string(data.get("author_name")),
        thumbnail_url=_clean_string(data.get("thumbnail_url")),
    )


def _extract_json_object(text: str, start: int) -> str | None:
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def extract_player_response(page_html: str) -> dict[str, Any] | None:
    """Pull the embedded player-response object out of a watch page."""
    for match in PLAYER_RESPONSE_PATTERN.finditer(page_html):
        blob = _extract_json_object(page_html, match.end() - 1)
        if not blob:
            continue
        try:
            data = json.loads(blob)
        except ValueError:
            logger.debug("Player response blob is not valid JSON, trying next marker")
            continue
        if isinstance(data, dict):
            return data
    return None


def _caption_tracks(player_response: dict[str, Any]) -> list[dict[str, Any]]:
    captions = player_response.get("captions")
    if not isinstance(captions, dict):
        return []
    renderer = captions.get("playerCaptionsTracklistRenderer")
    if not isinstance(renderer, dict):
        return []
    tracks = renderer.get("captionTracks")
    if not isinstance(tracks, list):
        return []
    return [track for track in tracks if isinstance(track, dict) and _clean_string(track.get("baseUrl"))]


def _is_preferred_language(language: str) -> bool:
    lowered = language.lower()
    return lowered == PREFERRED_LANGUAGE or lowered.startswith(f"{PREFERRED_LANGUAGE}-")


def pick_caption_track(player_response: dict[str, Any]) -> CaptionTrack | None:
    tracks = _caption_tracks(player_response)
    if not tracks:
        return None

    chosen = next(
        (track for track in tracks if _is_preferred_language(str(track.get("languageCode") or ""))),
        tracks[0],
    )
    return CaptionTrack(url=chosen["baseUrl"].strip(), language=str(chosen.get("languageCode") or ""))


def _seconds_to_ms(value: str | None) -> int:
    if not value:
        return 0
    try:
        return max(0, round(float(value) * 1000))
    except ValueError:
        return 0


def _decode_caption_text(raw: str) -> str:
    # Caption payloads are usually escaped twice (&amp;#39;).
    text = raw
    for _ in range(2):
        decoded = html.unescape(text)
        if decoded == text:
            break
        text = decoded
    text = INLINE_TAG_PATTERN.sub("", text)
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def parse_caption_xml(xml_text: str) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for match in CAPTION_TEXT_PATTERN.finditer(xml_text):
        attributes = dict(ATTRIBUTE_PATTERN.findall(match.group(1)))
        text = _decode_caption_text(match.group(2))
        if not text:
            continue
        segments.append(
            TranscriptSegment(
                text=text,
                offset_ms=_seconds_to_ms(attributes.get("start")),
                duration_ms=_seconds_to_ms(attributes.get("dur")),
            )
        )
    return segments


async def fetch_transcript(video_id: str, client: httpx.AsyncClient) -> list[TranscriptSegment]:
    """Best-effort captions: an empty list means the video has none we can read."""
    try:
        page = await get_ok(client, watch_url(video_id), headers=BROWSER_HEADERS)
    except FetchFailedError as error:
        raise TranscriptFetchError(f"Failed to load video page for {video_id}: {error}") from error

    player_response = extract_player_response(page.text)
    if player_response is None:
        logger.info("No player response found for video %s", video_id)
        return []

    track = pick_caption_track(player_response)
    if track is None:
        logger.info("No caption tracks for video %s", video_id)
        return []

    try:
        captions = await get_ok(client, track.url, headers=BROWSER_HEADERS)
    except FetchFailedError as error:
        raise TranscriptFetchError(f"Failed to load captions for {video_id}: {error}") from error

    segments = parse_caption_xml(captions.text)
    logger.info(
        "Transcript fetched: video=%s language=%s segments=%d",
        video_id,
        track.language,
        len(segments),
    )
    return segments


async def fetch_youtube(
    video_id: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> VideoContent:
    started = time.perf_counter()

    async with open_client(client, timeout) as http_client:
        tasks = (
            asyncio.ensure_future(fetch_video_metadata(video_id, http_client)),
            asyncio.ensure_future(fetch_transcript(video_id, http_client)),
        )
        try:
            metadata, segments = await asyncio.gather(*tasks)
        except BaseException:
            # The sibling fetch must not outlive the call or the client it uses.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    logger.info(
        "YouTube content fetched: video=%s segments=%d duration_ms=%d",
        video_id,
        len(segments),
        (time.perf_counter() - started) * 1000,
    )
    return VideoContent(video_id=video_id, metadata=metadata, transcript_segments=tuple(segments))
