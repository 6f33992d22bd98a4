# mise/services/ids.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from mise.services.errors import InvalidURLError

YOUTUBE_HOST = "youtube.com"
YOUTUBE_SHORT_HOST = "youtu.be"
_HOST_PREFIX_RE = re.compile(r"^(?:www\.|m\.)", re.IGNORECASE)
_PATH_ID_PREFIXES = ("/embed/", "/v/", "/shorts/", "/live/")

_TRACKING_PARAMS = frozenset({"fbclid", "gclid", "mc_cid", "mc_eid", "ref", "si", "feature", "igshid"})
_DEFAULT_PORTS = frozenset({80, 443})


@dataclass(frozen=True)
class VideoUrl:
    video_id: str
    kind: str = "video"


@dataclass(frozen=True)
class BlogUrl:
    kind: str = "blog"


UrlKind = Union[VideoUrl, BlogUrl]


def _split(url: str):
    if not isinstance(url, str) or not url.strip():
        raise InvalidURLError(f"Empty or invalid URL: {url!r}")
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        port = parts.port
    except ValueError as error:
        raise InvalidURLError(f"URL could not be parsed: {url}") from error

    if parts.scheme.lower() not in ("http", "https") or not hostname:
        raise InvalidURLError(f"URL is not http(s): {url}")
    return parts, hostname, port


def _bare_host(hostname: str) -> str:
    return _HOST_PREFIX_RE.sub("", hostname.lower())


def _first_segment(path: str, prefix: str) -> str:
    return path[len(prefix):].split("/")[0]


def _youtube_video_id(host: str, path: str, query: str) -> str | None:
    if host == YOUTUBE_SHORT_HOST:
        return path.lstrip("/").split("/")[0] or None

    if path == "/watch":
        for key, value in parse_qsl(query):
            if key == "v" and value:
                return value
        return None

    for prefix in _PATH_ID_PREFIXES:
        if path.startswith(prefix):
            return _first_segment(path, prefix) or None
    return None


def classify(url: str) -> UrlKind:
    """Return VideoUrl(video_id) for YouTube links and BlogUrl for everything else."""
    parts, hostname, _ = _split(url)
    host = _bare_host(hostname)

    if host not in (YOUTUBE_HOST, YOUTUBE_SHORT_HOST):
        return BlogUrl()

    video_id = _youtube_video_id(host, parts.path, parts.query)
    if not video_id:
        raise InvalidURLError(f"YouTube URL without a recognizable video: {url}")
    return VideoUrl(video_id=video_id)


def is_youtube_url(url: str) -> bool:
    try:
        return isinstance(classify(url), VideoUrl)
    except InvalidURLError:
        return False


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def _is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    return lowered.startswith("utm_") or lowered in _TRACKING_PARAMS


def normalize_url(url: str) -> str:
    """Canonical form of a URL, used as the per-user dedup key.

    Idempotent: normalize_url(normalize_url(u)) == normalize_url(u).
    """
    kind = classify(url)
    if isinstance(kind, VideoUrl):
        return f"https://{YOUTUBE_HOST}/watch?{urlencode({'v': kind.video_id})}"

    parts, hostname, port = _split(url)
    host = _bare_host(hostname)
    if ":" in host:
        # IPv6 literal; urlsplit strips the brackets.
        host = f"[{host}]"
    if port and port not in _DEFAULT_PORTS:
        host = f"{host}:{port}"

    path = parts.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    query_pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    ]
    query = urlencode(sorted(query_pairs))

    return urlunsplit(("https", host, path, query, ""))
