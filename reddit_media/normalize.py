from __future__ import annotations

from typing import Any, Mapping

from .post import (
    EmbeddedMedia,
    Gallery,
    GalleryItemMetadata,
    OEmbed,
    PostDescription,
    Preview,
    PreviewImage,
    RedditVideo,
)


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_id(value: Any) -> str | None:
    if isinstance(value, str):
        v = value.strip()
        return v if v else None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def _mapping(value: Any) -> Mapping[str, Any] | None:
    return value if isinstance(value, Mapping) else None


def _unwrap_thing(item: Mapping[str, Any]) -> Mapping[str, Any]:
    # Listing children look like {"kind": "t3", "data": {...}}.
    data = _mapping(item.get("data"))
    if data is not None and isinstance(item.get("kind"), str):
        return data
    return item


def _reddit_video(value: Any) -> RedditVideo | None:
    obj = _mapping(value)
    if obj is None:
        return None
    return RedditVideo(
        hls_url=_coerce_str(obj.get("hls_url")),
        width=_coerce_int(obj.get("width")),
        height=_coerce_int(obj.get("height")),
    )


def _oembed(value: Any) -> OEmbed | None:
    obj = _mapping(value)
    if obj is None:
        return None
    return OEmbed(
        html=_coerce_str(obj.get("html")),
        width=_coerce_int(obj.get("width")),
        height=_coerce_int(obj.get("height")),
        author_name=_coerce_str(obj.get("author_name")),
        author_url=_coerce_str(obj.get("author_url")),
        thumbnail_url=_coerce_str(obj.get("thumbnail_url")),
    )


def _embedded_media(data: Mapping[str, Any]) -> EmbeddedMedia | None:
    obj = _mapping(data.get("media")) or _mapping(data.get("secure_media"))
    if obj is None:
        return None
    return EmbeddedMedia(
        type=_coerce_str(obj.get("type")),
        reddit_video=_reddit_video(obj.get("reddit_video")),
        oembed=_oembed(obj.get("oembed")),
    )


def _preview(data: Mapping[str, Any]) -> Preview | None:
    obj = _mapping(data.get("preview"))
    if obj is None:
        return None

    images: list[PreviewImage] = []
    raw_images = obj.get("images")
    if isinstance(raw_images, list):
        for raw in raw_images:
            entry = _mapping(raw)
            if entry is None:
                continue
            source = _mapping(entry.get("source")) or {}
            images.append(
                PreviewImage(
                    url=_coerce_str(source.get("url")),
                    width=_coerce_int(source.get("width")),
                    height=_coerce_int(source.get("height")),
                )
            )

    return Preview(
        images=tuple(images),
        reddit_video_preview=_reddit_video(obj.get("reddit_video_preview")),
    )


def _gallery_metadata(value: Any) -> GalleryItemMetadata | None:
    obj = _mapping(value)
    if obj is None:
        return None
    size = _mapping(obj.get("s")) or {}
    return GalleryItemMetadata(
        mime=_coerce_str(obj.get("m")),
        width=_coerce_int(size.get("x")),
        height=_coerce_int(size.get("y")),
    )


def _gallery(data: Mapping[str, Any]) -> Gallery | None:
    if _coerce_bool(data.get("is_gallery")) is not True:
        return None

    gallery_data = _mapping(data.get("gallery_data"))
    raw_metadata = _mapping(data.get("media_metadata"))
    if gallery_data is None or raw_metadata is None:
        return None

    raw_items = gallery_data.get("items")
    if not isinstance(raw_items, list):
        return None

    item_ids: list[str] = []
    for raw in raw_items:
        entry = _mapping(raw)
        if entry is None:
            continue
        media_id = _coerce_id(entry.get("media_id"))
        if media_id:
            item_ids.append(media_id)

    metadata = {str(key): _gallery_metadata(value) for key, value in raw_metadata.items()}
    return Gallery(item_ids=tuple(item_ids), metadata=metadata)


def _crosspost_parent(data: Mapping[str, Any], depth: int) -> PostDescription | None:
    parents = data.get("crosspost_parent_list")
    if not isinstance(parents, list) or not parents:
        return None
    first = _mapping(parents[0])
    if first is None:
        return None
    return _post_description(first, depth=depth + 1)


_MAX_CROSSPOST_DEPTH = 4


def _post_description(data: Mapping[str, Any], *, depth: int) -> PostDescription | None:
    url = _coerce_str(data.get("url")) or _coerce_str(data.get("url_overridden_by_dest"))
    if not url:
        return None

    parent = _crosspost_parent(data, depth) if depth < _MAX_CROSSPOST_DEPTH else None

    return PostDescription(
        url=url,
        domain=_coerce_str(data.get("domain")) or "",
        is_self=_coerce_bool(data.get("is_self")) is True,
        post_hint=_coerce_str(data.get("post_hint")),
        gallery=_gallery(data),
        media=_embedded_media(data),
        preview=_preview(data),
        crosspost_parent=parent,
        post_id=_coerce_id(data.get("id")),
        subreddit=_coerce_str(data.get("subreddit")),
        title=_coerce_str(data.get("title")),
    )


def post_description_from_listing_item(item: Mapping[str, Any]) -> PostDescription | None:
    """
    Best-effort extraction of a PostDescription from a Reddit listing child.

    Accepts either the `{"kind": "t3", "data": {...}}` wrapper or the bare data mapping.
    Mistyped fields are dropped rather than rejected; returns None without a URL.
    """
    return _post_description(_unwrap_thing(item), depth=0)


def post_descriptions_from_listing(payload: Any) -> list[PostDescription]:
    """
    Collect every post in a listing payload.

    Handles a Listing object, a list of Listings (the shape of a post page), a bare
    list of children, or a single post mapping.
    """
    out: list[PostDescription] = []

    if isinstance(payload, list):
        for entry in payload:
            out.extend(post_descriptions_from_listing(entry))
        return out

    obj = _mapping(payload)
    if obj is None:
        return out

    if obj.get("kind") == "Listing":
        data = _mapping(obj.get("data")) or {}
        children = data.get("children")
        if isinstance(children, list):
            for child in children:
                child_obj = _mapping(child)
                if child_obj is None or child_obj.get("kind") not in (None, "t3"):
                    continue
                post = post_description_from_listing_item(child_obj)
                if post is not None:
                    out.append(post)
        return out

    if obj.get("kind") not in (None, "t3"):
        return out

    post = post_description_from_listing_item(obj)
    if post is not None:
        out.append(post)
    return out
