from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ContentMode(str, Enum):
    ASPECT_FILL = "aspect_fill"
    ASPECT_FIT = "aspect_fit"


@dataclass(frozen=True)
class LayoutInsets:
    """Horizontal paddings of the post card; each is applied on both sides."""

    inner_horizontal: float = 0.0
    outer_horizontal: float = 0.0


@dataclass(frozen=True)
class ResizeSpec:
    width: float
    height: float | None
    content_mode: ContentMode
    crop: bool = False
    upscale: bool = False
    unit: str = "points"


@dataclass(frozen=True)
class ThumbnailSpec:
    width: float
    height: float
    content_mode: ContentMode = ContentMode.ASPECT_FILL
    unit: str = "points"


@dataclass(frozen=True)
class ImageRequest:
    """
    What the image fetcher should do with a URL.

    `resize` is None when the image must pass through untouched; `thumbnail` asks
    for an extra low-res square decode; `fix_scale` corrects the decoded scale factor.
    """

    url: str
    resize: ResizeSpec | None = None
    thumbnail: ThumbnailSpec | None = None
    fix_scale: bool = True

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"url": self.url, "fix_scale": self.fix_scale}
        if self.resize is not None:
            out["resize"] = {
                "width": self.resize.width,
                "height": self.resize.height,
                "content_mode": self.resize.content_mode.value,
                "crop": self.resize.crop,
                "upscale": self.resize.upscale,
                "unit": self.resize.unit,
            }
        if self.thumbnail is not None:
            out["thumbnail"] = {
                "width": self.thumbnail.width,
                "height": self.thumbnail.height,
                "content_mode": self.thumbnail.content_mode.value,
                "unit": self.thumbnail.unit,
            }
        return out


def content_width(available_width: float, insets: LayoutInsets | None) -> float:
    if insets is None:
        return float(available_width)
    return (
        float(available_width)
        - insets.inner_horizontal * 2
        - insets.outer_horizontal * 2
    )


def gallery_item_widths(count: int, width: float, spacing: float) -> list[float]:
    """
    Target width of each gallery tile.

    1 item fills the row, 2 items split it, 3 items put two halves over a full-width
    third. Larger galleries fall back to half width for every tile.
    """
    half = (width - spacing) / 2
    table: dict[int, tuple[float, ...]] = {
        1: (width,),
        2: (half, half),
        3: (half, half, width),
    }
    layout = table.get(count, ())
    return [layout[i] if i < len(layout) else half for i in range(count)]


def scaled_compact_thumb_size(base_size: float, scale: float = 1.0) -> float:
    return float(base_size) * float(scale)


def build_image_request(
    url: str,
    *,
    target_width: float,
    compact: bool,
    thumb_size: float,
    content_width: float,
) -> ImageRequest:
    """
    Request for a post image: a square aspect-fill box, never cropped, upscaling allowed.

    A non-positive content width skips resizing entirely. Compact mode always uses the
    thumbnail box and asks for a secondary thumbnail, except for .gif so it stays animated.
    """
    side = thumb_size if compact else target_width

    resize: ResizeSpec | None = None
    if content_width > 0:
        resize = ResizeSpec(
            width=side,
            height=side,
            content_mode=ContentMode.ASPECT_FILL,
            crop=False,
            upscale=True,
        )

    thumbnail: ThumbnailSpec | None = None
    if compact and not url.endswith(".gif"):
        thumbnail = ThumbnailSpec(width=thumb_size, height=thumb_size)

    return ImageRequest(url=url, resize=resize, thumbnail=thumbnail, fix_scale=True)


def build_thumbnail_request(url: str, *, width: float) -> ImageRequest:
    resize: ResizeSpec | None = None
    if width > 0:
        resize = ResizeSpec(width=width, height=None, content_mode=ContentMode.ASPECT_FIT)
    return ImageRequest(url=url, resize=resize, thumbnail=None, fix_scale=False)
