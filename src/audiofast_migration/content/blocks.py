"""
Content block types produced by the HTML converter.

A closed set of dataclasses, one per kind of rich-content unit. Each block,
span and mark carries a ``key`` that is unique within its containing array;
``to_sanity()`` renders the portable-text shape stored in the target dataset.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# Minimum number of uploaded images for a slider to be emitted at all
MIN_SLIDER_IMAGES = 4


class BlockStyle(str, Enum):
    NORMAL = "normal"
    H2 = "h2"
    H3 = "h3"
    BLOCKQUOTE = "blockquote"


class ListItem(str, Enum):
    NONE = "none"
    BULLET = "bullet"
    NUMBER = "number"


class VideoProvider(str, Enum):
    YOUTUBE = "youtube"
    VIMEO = "vimeo"


class KeyGenerator:
    """Deterministic ``_key`` source.

    Keys depend only on the seed and call order, so converting the same input
    twice yields identical documents (re-runs do not churn keys).
    """

    def __init__(self, seed: str = "") -> None:
        self._seed = seed
        self._counter = 0

    def __call__(self) -> str:
        self._counter += 1
        return hashlib.sha1(f"{self._seed}:{self._counter}".encode()).hexdigest()[:12]


def image_ref(asset_id: str) -> dict[str, Any]:
    """Sanity image field pointing at an uploaded asset."""
    return {"_type": "image", "asset": {"_type": "reference", "_ref": asset_id}}


# =============================================================================
# Text
# =============================================================================


@dataclass
class LinkMark:
    key: str
    url: str

    def to_sanity(self) -> dict[str, Any]:
        return {
            "_type": "customLink",
            "_key": self.key,
            "customLink": {"type": "external", "openInNewTab": True, "external": self.url},
        }


@dataclass
class Span:
    key: str
    text: str
    marks: list[str] = field(default_factory=list)

    def to_sanity(self) -> dict[str, Any]:
        return {"_type": "span", "_key": self.key, "text": self.text, "marks": list(self.marks)}


@dataclass
class TextBlock:
    """Paragraph, heading, blockquote or list item."""

    key: str
    spans: list[Span] = field(default_factory=list)
    style: BlockStyle = BlockStyle.NORMAL
    list_item: ListItem = ListItem.NONE
    mark_defs: list[LinkMark] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(s.text for s in self.spans)

    def to_sanity(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "_type": "block",
            "_key": self.key,
            "style": self.style.value,
            "markDefs": [m.to_sanity() for m in self.mark_defs],
            "children": [s.to_sanity() for s in self.spans],
        }
        if self.list_item is not ListItem.NONE:
            data["listItem"] = self.list_item.value
            data["level"] = 1
        return data


# =============================================================================
# Media
# =============================================================================


@dataclass
class ImageBlock:
    key: str
    asset_ref: str
    layout: str = "single"
    auto_width: bool = False

    def to_sanity(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "_type": "ptImage",
            "_key": self.key,
            "layout": self.layout,
            "image": image_ref(self.asset_ref),
        }
        if self.auto_width:
            data["autoWidth"] = True
        return data


@dataclass
class ImageSliderBlock:
    key: str
    asset_refs: list[str] = field(default_factory=list)
    image_keys: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.asset_refs) < MIN_SLIDER_IMAGES:
            raise ValueError(f"slider needs at least {MIN_SLIDER_IMAGES} images, got {len(self.asset_refs)}")
        if len(self.image_keys) != len(self.asset_refs):
            self.image_keys = [f"{self.key}-{i}" for i in range(len(self.asset_refs))]

    def to_sanity(self) -> dict[str, Any]:
        return {
            "_type": "ptImageSlider",
            "_key": self.key,
            "images": [
                {"_key": k, **image_ref(ref)} for k, ref in zip(self.image_keys, self.asset_refs)
            ],
        }


@dataclass
class VideoBlock:
    key: str
    provider: VideoProvider
    video_id: str

    def to_sanity(self) -> dict[str, Any]:
        if self.provider is VideoProvider.VIMEO:
            return {"_type": "ptVimeoVideo", "_key": self.key, "vimeoId": self.video_id}
        return {"_type": "ptYoutubeVideo", "_key": self.key, "youtubeId": self.video_id}


@dataclass
class ImagePlaceholder:
    """Image found in HTML whose asset is not uploaded yet.

    The transformer replaces it with an :class:`ImageBlock` once the upload
    succeeds, or drops it when it does not.
    """

    key: str
    src: str
    alt: str = ""
    auto_width: bool = False

    def resolve(self, asset_ref: str) -> ImageBlock:
        return ImageBlock(key=self.key, asset_ref=asset_ref, auto_width=self.auto_width)

    def to_sanity(self) -> dict[str, Any]:
        raise TypeError(f"unresolved image placeholder: {self.src}")


ContentBlock = Union[TextBlock, ImageBlock, ImageSliderBlock, VideoBlock, ImagePlaceholder]


def blocks_to_sanity(blocks: list[ContentBlock]) -> list[dict[str, Any]]:
    """Serialise resolved blocks; placeholders must have been resolved or dropped."""
    return [b.to_sanity() for b in blocks]

