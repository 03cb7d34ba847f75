from __future__ import annotations

import html
import re
from typing import Iterable
from urllib.parse import SplitResult, quote, urlsplit

IMAGE_EXTENSIONS: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".avif")
VIDEO_EXTENSIONS: tuple[str, ...] = (".mp4", ".m4v", ".mov", ".webm", ".m3u8")

# Relative permalinks Reddit hands out for subreddits and users.
_RELATIVE_PREFIXES = ("/r/", "/u/")
_RELATIVE_BASE = "https://reddit.com"

_YOUTUBE_EMBED_RE = re.compile(r"youtube\.com/embed/([^?]*)")

# Reserved characters plus "%" so existing escapes survive.
_URL_SAFE_CHARS = ":/?#[]@!$&'()*+,;=%~"


def _has_unsafe_chars(value: str) -> bool:
    return any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value)


def decompose_url(url: str) -> tuple[SplitResult | None, list[str]]:
    """
    Split a post URL into its components and non-empty path segments.

    `/r/...` and `/u/...` URLs are resolved against reddit.com first.
    Returns (None, []) when the string does not parse as a URL.
    """
    value = (url or "").strip()
    if not value or _has_unsafe_chars(value):
        return None, []

    if value.startswith(_RELATIVE_PREFIXES):
        value = f"{_RELATIVE_BASE}{value}"

    try:
        parts = urlsplit(value)
        # Accessing .port validates it; urlsplit alone does not.
        _ = parts.port
    except ValueError:
        return None, []

    segments = [seg for seg in (parts.path or "").split("/") if seg]
    return parts, segments


def root_url(url: str) -> str | None:
    """Return the URL as an absolute string, or None unless it has a scheme and host."""
    parts, _ = decompose_url(url)
    if parts is None or not parts.scheme or not parts.netloc:
        return None
    return parts.geturl()


def host_of(parts: SplitResult | None) -> str:
    if parts is None:
        return ""
    return (parts.hostname or "").casefold()


def host_matches_suffix(host: str, suffixes: Iterable[str]) -> bool:
    h = (host or "").casefold()
    return bool(h) and any(h.endswith(s) for s in suffixes)


def has_suffix_in(url: str, suffixes: Iterable[str]) -> bool:
    return any(url.endswith(s) for s in suffixes)


def preview_to_direct_url(url: str) -> str:
    """preview.redd.it serves re-encoded copies; i.redd.it serves the original."""
    return url.replace("/preview.", "/i.")


def escape_url(url: str) -> str:
    """
    Undo the HTML entity escaping Reddit applies to preview URLs, then
    percent-encode anything that is not legal in a URL.
    """
    return quote(html.unescape(url), safe=_URL_SAFE_CHARS)


def extract_youtube_id(oembed_html: str) -> str | None:
    match = _YOUTUBE_EMBED_RE.search(oembed_html or "")
    if match is None:
        return None
    video_id = match.group(1)
    return video_id or None


def streamable_short_code(url: str) -> str:
    return url[url.rfind("/") + 1 :]


def gallery_image_url(media_id: str, mime: str) -> str | None:
    """
    Build the i.redd.it URL for a gallery item from its id and mime hint.

    The extension is the last "/"-separated piece of the mime ("image/jpg" -> "jpg").
    """
    ext = mime.split("/")[-1].strip()
    mid = (media_id or "").strip()
    if not ext or not mid:
        return None
    return root_url(f"https://i.redd.it/{mid}.{ext}")
