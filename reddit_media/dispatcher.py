from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property, wraps
from typing import Any, Callable, Sequence, TypeVar
from urllib.parse import SplitResult

import requests

from .config_schema import AppConfig, HostsConfig, LayoutConfig
from .entities import EntityKind, EntitySelfFetcher, RedditEntityFetcher, RemoteEntity
from .event_log import EventLogger
from .media import (
    CommentEntityMedia,
    ExtractedMedia,
    Image,
    ImageSetMedia,
    LinkMedia,
    PostEntityMedia,
    RedgifsMedia,
    RepostMedia,
    StreamableMedia,
    SubredditEntityMedia,
    UserEntityMedia,
    VideoMedia,
    YouTubeMedia,
)
from .post import PostDescription, RedditVideo
from .sizing import (
    LayoutInsets,
    build_image_request,
    build_thumbnail_request,
    content_width,
    gallery_item_widths,
    scaled_compact_thumb_size,
)
from .urls import (
    IMAGE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    decompose_url,
    escape_url,
    extract_youtube_id,
    gallery_image_url,
    has_suffix_in,
    host_matches_suffix,
    host_of,
    preview_to_direct_url,
    root_url,
    streamable_short_code,
)

_REDGIFS_PATH_KINDS = ("watch", "ifr")
_USER_PATH_KINDS = ("user", "u")

T = TypeVar("T")


@dataclass
class DispatchContext:
    """Per-call state shared by the rules; derived values are computed at most once."""

    post: PostDescription
    compact: bool
    content_width: float
    insets: LayoutInsets | None
    dispatcher: MediaDispatcher
    results: dict[str, Any] = field(default_factory=dict, repr=False)

    @cached_property
    def url_parts(self) -> tuple[SplitResult | None, list[str]]:
        return decompose_url(self.post.url)

    @cached_property
    def domain(self) -> str:
        return self.post.domain.casefold()

    @property
    def thumb_size(self) -> float:
        return self.dispatcher.thumb_size

    @property
    def hosts(self) -> HostsConfig:
        return self.dispatcher.hosts


def _once_per_call(fn: Callable[[DispatchContext], T]) -> Callable[[DispatchContext], T]:
    """Cache a rule's outcome on the context so its predicate and builder share it."""

    @wraps(fn)
    def wrapper(ctx: DispatchContext) -> T:
        key = fn.__name__
        if key not in ctx.results:
            ctx.results[key] = fn(ctx)
        return ctx.results[key]

    return wrapper


@dataclass(frozen=True)
class Rule:
    name: str
    when: Callable[[DispatchContext], bool]
    build: Callable[[DispatchContext], ExtractedMedia | None]


def _when_built(name: str, build: Callable[[DispatchContext], ExtractedMedia | None]) -> Rule:
    """A rule that matches whenever its (cached) builder produces media."""
    return Rule(name, lambda ctx: build(ctx) is not None, build)


def _is_self_post(ctx: DispatchContext) -> bool:
    return ctx.post.is_self


def _no_media(ctx: DispatchContext) -> ExtractedMedia | None:
    return None


def _has_gallery(ctx: DispatchContext) -> bool:
    gallery = ctx.post.gallery
    return gallery is not None and len(gallery.item_ids) > 0


def _build_gallery(ctx: DispatchContext) -> ExtractedMedia | None:
    gallery = ctx.post.gallery
    if gallery is None:
        return None

    widths = gallery_item_widths(
        len(gallery.item_ids), ctx.content_width, ctx.dispatcher.layout.gallery_spacing
    )

    images: list[Image] = []
    for media_id, target_width in zip(gallery.item_ids, widths):
        meta = gallery.metadata.get(media_id)
        if meta is None or meta.mime is None or meta.width is None or meta.height is None:
            continue
        url = gallery_image_url(media_id, meta.mime)
        if url is None:
            continue
        request = build_image_request(
            url,
            target_width=target_width,
            compact=ctx.compact,
            thumb_size=ctx.thumb_size,
            content_width=ctx.content_width,
        )
        images.append(Image(url=url, width=meta.width, height=meta.height, request=request))

    return ImageSetMedia(images=tuple(images))


def _is_streamable(ctx: DispatchContext) -> bool:
    return ctx.hosts.streamable_marker in ctx.domain


def _build_streamable(ctx: DispatchContext) -> ExtractedMedia | None:
    return StreamableMedia(short_code=streamable_short_code(ctx.post.url))


@_once_per_call
def _redgifs(ctx: DispatchContext) -> RedgifsMedia | None:
    if ctx.hosts.redgifs_marker not in ctx.domain:
        return None
    parts, segments = ctx.url_parts
    if parts is None or host_of(parts) not in ctx.hosts.redgifs_hosts:
        return None
    if len(segments) < 2 or segments[0] not in _REDGIFS_PATH_KINDS:
        return None
    return RedgifsMedia(gif_id=segments[1])


def _video_from(video: RedditVideo | None) -> VideoMedia | None:
    if video is None or video.hls_url is None:
        return None
    if video.width is None or video.height is None:
        return None
    url = root_url(video.hls_url)
    if url is None:
        return None
    return VideoMedia(url=url, width=video.width, height=video.height)


@_once_per_call
def _preview_video(ctx: DispatchContext) -> VideoMedia | None:
    preview = ctx.post.preview
    return _video_from(preview.reddit_video_preview if preview is not None else None)


@_once_per_call
def _native_video(ctx: DispatchContext) -> VideoMedia | None:
    media = ctx.post.media
    return _video_from(media.reddit_video if media is not None else None)


@_once_per_call
def _youtube(ctx: DispatchContext) -> YouTubeMedia | None:
    media = ctx.post.media
    if media is None or media.type != "youtube.com" or media.oembed is None:
        return None

    oembed = media.oembed
    if oembed.html is None:
        return None
    video_id = extract_youtube_id(oembed.html)
    if video_id is None:
        return None
    if oembed.width is None or oembed.height is None or oembed.author_name is None:
        return None
    author_url = root_url(oembed.author_url or "")
    thumb_url = root_url(oembed.thumbnail_url or "")
    if author_url is None or thumb_url is None:
        return None

    return YouTubeMedia(
        video_id=video_id,
        width=oembed.width,
        height=oembed.height,
        thumbnail_url=thumb_url,
        thumbnail_request=build_thumbnail_request(thumb_url, width=ctx.content_width),
        author_name=oembed.author_name,
        author_url=author_url,
    )


def _has_crosspost(ctx: DispatchContext) -> bool:
    return ctx.post.crosspost_parent is not None


def _build_repost(ctx: DispatchContext) -> ExtractedMedia | None:
    parent = ctx.post.crosspost_parent
    if parent is None:
        return None
    nested = ctx.dispatcher.extract(
        parent,
        compact=ctx.compact,
        available_width=ctx.content_width,
        insets=ctx.insets,
    )
    return RepostMedia(post=parent, media=nested)


def _single_image(ctx: DispatchContext, url: str, width: int, height: int) -> ImageSetMedia:
    request = build_image_request(
        url,
        target_width=ctx.content_width,
        compact=ctx.compact,
        thumb_size=ctx.thumb_size,
        content_width=ctx.content_width,
    )
    return ImageSetMedia(images=(Image(url=url, width=width, height=height, request=request),))


@_once_per_call
def _direct_image(ctx: DispatchContext) -> ImageSetMedia | None:
    if not has_suffix_in(ctx.post.url, IMAGE_EXTENSIONS):
        return None
    url = root_url(ctx.post.url)
    if url is None:
        return None

    width = height = 0
    preview = ctx.post.preview
    if preview is not None and preview.images:
        source = preview.images[0]
        if source.width is not None and source.height is not None:
            width, height = source.width, source.height

    return _single_image(ctx, url, width, height)


@_once_per_call
def _preview_image(ctx: DispatchContext) -> ImageSetMedia | None:
    preview = ctx.post.preview
    if preview is None or not preview.images:
        return None

    source = preview.images[0]
    if source.url is None:
        return None
    src = preview_to_direct_url(source.url)
    if "external-preview" in src:
        return None
    url = root_url(escape_url(src))
    if url is None or source.width is None or source.height is None:
        return None

    return _single_image(ctx, url, source.width, source.height)


@_once_per_call
def _direct_video(ctx: DispatchContext) -> VideoMedia | None:
    if not has_suffix_in(ctx.post.url, VIDEO_EXTENSIONS):
        return None
    url = root_url(ctx.post.url)
    if url is None:
        return None
    return VideoMedia(url=url, width=0, height=0)


def _is_reddit_entity_link(ctx: DispatchContext) -> bool:
    parts, segments = ctx.url_parts
    if parts is None or len(segments) < 2:
        return False
    host = host_of(parts)
    hosts = [*ctx.hosts.platform_hosts, *ctx.hosts.mirror_hosts]
    if not host_matches_suffix(host, hosts):
        return False
    return segments[0] == "r" or segments[0] in _USER_PATH_KINDS


def _build_reddit_entity(ctx: DispatchContext) -> ExtractedMedia | None:
    # Builds spawn background fetches, so this rule keeps a separate predicate.
    _, segments = ctx.url_parts
    spawn = ctx.dispatcher.spawn_self_fetch

    if segments[0] in _USER_PATH_KINDS:
        username = segments[1]
        user = RemoteEntity(EntityKind.USER, username)
        spawn(user)
        return UserEntityMedia(username=username, entity=user)

    subreddit = segments[1]
    if len(segments) > 3 and segments[2] == "comments":
        post_id = segments[3]
        if len(segments) >= 6:
            comment_id = segments[5]
            comment = RemoteEntity(EntityKind.COMMENT, comment_id)
            spawn(comment)
            return CommentEntityMedia(
                subreddit=subreddit, post_id=post_id, comment_id=comment_id, entity=comment
            )
        post = RemoteEntity(EntityKind.POST, post_id)
        spawn(post)
        return PostEntityMedia(subreddit=subreddit, post_id=post_id, entity=post)

    sub = RemoteEntity(EntityKind.SUBREDDIT, subreddit)
    spawn(sub)
    return SubredditEntityMedia(subreddit=subreddit, entity=sub)


@_once_per_call
def _link(ctx: DispatchContext) -> LinkMedia | None:
    if ctx.post.post_hint != "link" and not ctx.post.domain:
        return None
    parts, _ = ctx.url_parts
    if parts is None or not parts.scheme or not parts.netloc:
        return None
    return LinkMedia(url=parts.geturl(), compact=ctx.compact)


# First match wins; reordering changes what users see.
RULES: tuple[Rule, ...] = (
    Rule("self_post", _is_self_post, _no_media),
    Rule("gallery", _has_gallery, _build_gallery),
    Rule("streamable", _is_streamable, _build_streamable),
    _when_built("redgifs", _redgifs),
    _when_built("reddit_video_preview", _preview_video),
    _when_built("reddit_video", _native_video),
    _when_built("youtube", _youtube),
    Rule("repost", _has_crosspost, _build_repost),
    _when_built("direct_image", _direct_image),
    _when_built("preview_image", _preview_image),
    _when_built("direct_video", _direct_video),
    Rule("reddit_entity", _is_reddit_entity_link, _build_reddit_entity),
    _when_built("link", _link),
)


class MediaDispatcher:
    """
    Decides how a post's media should be shown.

    Rules in RULES are tried in order and the first one whose predicate holds builds
    the result. Input problems never raise; they make a rule not match.
    """

    def __init__(
        self,
        *,
        layout: LayoutConfig | None = None,
        hosts: HostsConfig | None = None,
        self_fetcher: EntitySelfFetcher | None = None,
        logger: EventLogger | None = None,
        rules: Sequence[Rule] = RULES,
    ) -> None:
        self.layout = layout or LayoutConfig()
        self.hosts = hosts or HostsConfig()
        self._self_fetcher = self_fetcher
        self._logger = logger
        self._rules = tuple(rules)

    @property
    def thumb_size(self) -> float:
        return scaled_compact_thumb_size(
            self.layout.compact_thumb_size, self.layout.compact_thumb_scale
        )

    def spawn_self_fetch(self, entity: RemoteEntity) -> None:
        if self._self_fetcher is None:
            return
        self._self_fetcher.spawn(entity)

    def close(self, *, wait: bool = True) -> None:
        if self._self_fetcher is not None:
            self._self_fetcher.shutdown(wait=wait)

    def __enter__(self) -> "MediaDispatcher":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def extract(
        self,
        post: PostDescription,
        *,
        compact: bool = False,
        available_width: float,
        insets: LayoutInsets | None = None,
    ) -> ExtractedMedia | None:
        _, media = self.extract_with_rule(
            post, compact=compact, available_width=available_width, insets=insets
        )
        return media

    def extract_with_rule(
        self,
        post: PostDescription,
        *,
        compact: bool = False,
        available_width: float,
        insets: LayoutInsets | None = None,
    ) -> tuple[str | None, ExtractedMedia | None]:
        """Like extract(), also returning the name of the rule that matched (or None)."""
        ctx = DispatchContext(
            post=post,
            compact=bool(compact),
            content_width=content_width(available_width, insets),
            insets=insets,
            dispatcher=self,
        )

        for rule in self._rules:
            if not rule.when(ctx):
                continue
            media = rule.build(ctx)
            if self._logger is not None:
                self._logger.debug(
                    "media_rule_matched",
                    url=post.url,
                    rule=rule.name,
                    kind=media.kind.value if media is not None else None,
                )
            return rule.name, media

        if self._logger is not None:
            self._logger.debug("media_rule_none", url=post.url)
        return None, None


def build_dispatcher(
    config: AppConfig,
    *,
    logger: EventLogger | None = None,
    session: requests.Session | None = None,
    self_fetch: bool | None = None,
) -> MediaDispatcher:
    """
    Wire a dispatcher from config, including the background entity fetcher
    unless self-fetch is disabled.
    """
    enabled = config.reddit.self_fetch if self_fetch is None else bool(self_fetch)

    fetcher: EntitySelfFetcher | None = None
    if enabled:
        fetcher = EntitySelfFetcher(
            RedditEntityFetcher(config.reddit, session=session),
            max_workers=config.reddit.max_workers,
            logger=logger,
        )

    return MediaDispatcher(
        layout=config.layout,
        hosts=config.hosts,
        self_fetcher=fetcher,
        logger=logger,
    )
