from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence, Union

from .entities import RemoteEntity
from .post import PostDescription
from .sizing import ImageRequest


class MediaKind(str, Enum):
    LINK = "link"
    VIDEO = "video"
    IMAGES = "images"
    YOUTUBE = "youtube"
    STREAMABLE = "streamable"
    REDGIFS = "redgifs"
    REPOST = "repost"
    POST = "post"
    COMMENT = "comment"
    SUBREDDIT = "subreddit"
    USER = "user"


@dataclass(frozen=True)
class Image:
    url: str
    width: int
    height: int
    request: ImageRequest = field(compare=False)


@dataclass(frozen=True)
class LinkMedia:
    url: str
    compact: bool
    kind: MediaKind = field(default=MediaKind.LINK, init=False)


@dataclass(frozen=True)
class VideoMedia:
    url: str
    width: int = 0
    height: int = 0
    kind: MediaKind = field(default=MediaKind.VIDEO, init=False)


@dataclass(frozen=True)
class ImageSetMedia:
    images: Sequence[Image]
    kind: MediaKind = field(default=MediaKind.IMAGES, init=False)


@dataclass(frozen=True)
class YouTubeMedia:
    video_id: str
    width: int = field(compare=False)
    height: int = field(compare=False)
    thumbnail_url: str = field(compare=False)
    thumbnail_request: ImageRequest = field(compare=False)
    author_name: str = field(compare=False)
    author_url: str = field(compare=False)
    kind: MediaKind = field(default=MediaKind.YOUTUBE, init=False)


@dataclass(frozen=True)
class StreamableMedia:
    short_code: str
    kind: MediaKind = field(default=MediaKind.STREAMABLE, init=False)


@dataclass(frozen=True)
class RedgifsMedia:
    gif_id: str
    kind: MediaKind = field(default=MediaKind.REDGIFS, init=False)


@dataclass(frozen=True)
class RepostMedia:
    """A crosspost; `media` is the parent's own dispatch result."""

    post: PostDescription
    media: ExtractedMedia | None
    kind: MediaKind = field(default=MediaKind.REPOST, init=False)


@dataclass(frozen=True)
class SubredditEntityMedia:
    subreddit: str
    entity: RemoteEntity = field(compare=False, repr=False)
    kind: MediaKind = field(default=MediaKind.SUBREDDIT, init=False)


@dataclass(frozen=True)
class PostEntityMedia:
    subreddit: str
    post_id: str
    entity: RemoteEntity = field(compare=False, repr=False)
    kind: MediaKind = field(default=MediaKind.POST, init=False)


@dataclass(frozen=True)
class CommentEntityMedia:
    subreddit: str
    post_id: str
    comment_id: str
    entity: RemoteEntity = field(compare=False, repr=False)
    kind: MediaKind = field(default=MediaKind.COMMENT, init=False)


@dataclass(frozen=True)
class UserEntityMedia:
    username: str
    entity: RemoteEntity = field(compare=False, repr=False)
    kind: MediaKind = field(default=MediaKind.USER, init=False)


ExtractedMedia = Union[
    LinkMedia,
    VideoMedia,
    ImageSetMedia,
    YouTubeMedia,
    StreamableMedia,
    RedgifsMedia,
    RepostMedia,
    PostEntityMedia,
    CommentEntityMedia,
    SubredditEntityMedia,
    UserEntityMedia,
]


def _entity_dict(entity: RemoteEntity) -> dict[str, Any]:
    return {"state": entity.state.value, "version": entity.version}


def _image_dict(image: Image) -> dict[str, Any]:
    return {
        "url": image.url,
        "width": image.width,
        "height": image.height,
        "request": image.request.to_dict(),
    }


def media_to_dict(media: ExtractedMedia | None) -> dict[str, Any] | None:
    """Render any media variant as a JSON-safe dict."""
    if media is None:
        return None

    out: dict[str, Any] = {"kind": media.kind.value}

    if isinstance(media, LinkMedia):
        out.update(url=media.url, compact=media.compact)
    elif isinstance(media, VideoMedia):
        out.update(url=media.url, width=media.width, height=media.height)
    elif isinstance(media, ImageSetMedia):
        out["images"] = [_image_dict(img) for img in media.images]
    elif isinstance(media, YouTubeMedia):
        out.update(
            video_id=media.video_id,
            width=media.width,
            height=media.height,
            thumbnail_url=media.thumbnail_url,
            thumbnail_request=media.thumbnail_request.to_dict(),
            author_name=media.author_name,
            author_url=media.author_url,
        )
    elif isinstance(media, StreamableMedia):
        out["short_code"] = media.short_code
    elif isinstance(media, RedgifsMedia):
        out["gif_id"] = media.gif_id
    elif isinstance(media, RepostMedia):
        out.update(
            post_id=media.post.post_id,
            subreddit=media.post.subreddit,
            url=media.post.url,
            media=media_to_dict(media.media),
        )
    elif isinstance(media, SubredditEntityMedia):
        out.update(subreddit=media.subreddit, entity=_entity_dict(media.entity))
    elif isinstance(media, PostEntityMedia):
        out.update(
            subreddit=media.subreddit,
            post_id=media.post_id,
            entity=_entity_dict(media.entity),
        )
    elif isinstance(media, CommentEntityMedia):
        out.update(
            subreddit=media.subreddit,
            post_id=media.post_id,
            comment_id=media.comment_id,
            entity=_entity_dict(media.entity),
        )
    elif isinstance(media, UserEntityMedia):
        out.update(username=media.username, entity=_entity_dict(media.entity))
    else:
        raise TypeError(f"Unknown media variant: {type(media).__name__}")

    return out
