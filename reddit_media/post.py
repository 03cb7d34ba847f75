from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence


@dataclass(frozen=True)
class GalleryItemMetadata:
    """One `media_metadata` entry: a mime hint such as "image/jpg" and source size."""

    mime: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class Gallery:
    item_ids: Sequence[str] = ()
    metadata: Mapping[str, GalleryItemMetadata | None] = field(default_factory=dict)


@dataclass(frozen=True)
class RedditVideo:
    hls_url: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class OEmbed:
    html: str | None = None
    width: int | None = None
    height: int | None = None
    author_name: str | None = None
    author_url: str | None = None
    thumbnail_url: str | None = None


@dataclass(frozen=True)
class EmbeddedMedia:
    type: str | None = None
    reddit_video: RedditVideo | None = None
    oembed: OEmbed | None = None


@dataclass(frozen=True)
class PreviewImage:
    url: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class Preview:
    images: Sequence[PreviewImage] = ()
    reddit_video_preview: RedditVideo | None = None


@dataclass(frozen=True)
class PostDescription:
    """
    The read-only slice of a Reddit post that media extraction looks at.

    Every sub-record is optional; payloads are best-effort and often partial.
    """

    url: str
    domain: str = ""
    is_self: bool = False
    post_hint: str | None = None

    gallery: Gallery | None = None
    media: EmbeddedMedia | None = None
    preview: Preview | None = None
    crosspost_parent: PostDescription | None = None

    post_id: str | None = None
    subreddit: str | None = None
    title: str | None = None
