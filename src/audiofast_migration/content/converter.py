"""
HTML Converter
==============
Turns legacy SilverStripe HTML fragments into an ordered list of content
blocks (see ``content.blocks``).

The legacy markup is regular enough that a handful of regular expressions
cover it; the regexes stay private to this module and callers only see
:meth:`HtmlConverter.convert`.

Conversion order:
  1. strip comments (the ``<!-- pagebreak -->`` marker included)
  2. pull out ``[image ...]`` shortcodes and YouTube/Vimeo iframes with
     their offsets, blanking them in the text stream
  3. pull out headings, paragraphs, lists and blockquotes with offsets
  4. merge everything by source offset
  5. promote the first matching heading, shift the rest so the shallowest
     becomes h2, cap deeper ones at h3
  6. parse inline content into spans and link marks
  7. drop empty paragraphs; fall back to one plain-text block if nothing
     else survived
"""

from __future__ import annotations

import hashlib
import html as html_lib
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from audiofast_migration.content.blocks import (
    BlockStyle,
    ContentBlock,
    ImagePlaceholder,
    KeyGenerator,
    LinkMark,
    ListItem,
    Span,
    TextBlock,
    VideoBlock,
    VideoProvider,
)
from audiofast_migration.content.links import LinkResolver, absolutize_asset_url
from audiofast_migration.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from audiofast_migration.config import HeadingConfig

logger = get_logger(__name__)

DEFAULT_ASSET_BASE_URL = "https://www.audiofast.pl/assets/"

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")
_SHORTCODE_IMAGE_RE = re.compile(r"\[image\s+([^\]]+)\]", re.IGNORECASE)
_YOUTUBE_IFRAME_RE = re.compile(
    r"<iframe[^>]*src=[\"'](?:https?:)?//(?:www\.)?youtube(?:-nocookie)?\.com/embed/([a-zA-Z0-9_-]{11})"
    r"[^\"']*[\"'][^>]*>[\s\S]*?</iframe>",
    re.IGNORECASE,
)
_VIMEO_IFRAME_RE = re.compile(
    r"<iframe[^>]*src=[\"'](?:https?:)?//(?:player\.)?vimeo\.com/video/(\d+)[^\"']*[\"'][^>]*>[\s\S]*?</iframe>",
    re.IGNORECASE,
)
_BLOCK_RE = re.compile(r"<(h[1-6]|p|ul|ol|blockquote)\b([^>]*)>([\s\S]*?)</\1\s*>", re.IGNORECASE)
_LIST_ITEM_RE = re.compile(r"<li\b[^>]*>([\s\S]*?)</li\s*>", re.IGNORECASE)
_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_ANCHOR_RE = re.compile(r"<a\b[^>]*?href=[\"']([^\"']*)[\"'][^>]*>([\s\S]*?)</a\s*>", re.IGNORECASE)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_LINK_TOKEN_RE = re.compile(r"(\|\|\|LINK\d+\|\|\|)")
_ATTR_RE_CACHE: dict[str, re.Pattern[str]] = {}

_YOUTUBE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")
_YOUTUBE_URL_RE = re.compile(r"(?:youtube(?:-nocookie)?\.com/(?:embed/|watch\?(?:.*&)?v=|v/)|youtu\.be/)([a-zA-Z0-9_-]{11})")
_VIMEO_URL_RE = re.compile(r"vimeo\.com/(?:video/)?(\d+)")


def _attr(attrs: str, name: str) -> str | None:
    pattern = _ATTR_RE_CACHE.get(name)
    if pattern is None:
        pattern = re.compile(rf"\b{name}\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
        _ATTR_RE_CACHE[name] = pattern
    m = pattern.search(attrs)
    return m.group(1) if m else None


def _normalize_text(text: str) -> str:
    return _WS_RE.sub(" ", html_lib.unescape(text).replace("\xa0", " "))


def strip_html(html: str | None) -> str:
    """Plain text of an HTML fragment: tags removed, entities decoded, whitespace collapsed."""
    if not html:
        return ""
    text = _COMMENT_RE.sub("", html)
    text = _SHORTCODE_IMAGE_RE.sub(" ", text)
    text = _BR_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    return _normalize_text(text).strip()


def extract_youtube_id(value: str | None) -> str | None:
    """YouTube video ID from a bare ID or a watch / embed / youtu.be URL."""
    if not value:
        return None
    cleaned = value.strip()
    if not cleaned or cleaned.lower() == "null":
        return None
    if _YOUTUBE_ID_RE.match(cleaned):
        return cleaned
    m = _YOUTUBE_URL_RE.search(cleaned)
    return m.group(1) if m else None


def extract_vimeo_id(value: str | None) -> str | None:
    if not value:
        return None
    m = _VIMEO_URL_RE.search(value)
    return m.group(1) if m else None


def text_to_blocks(text: str | None, keys: KeyGenerator | None = None) -> list[TextBlock]:
    """Plain text → one normal block per paragraph (paragraphs split on blank lines)."""
    if not text:
        return []
    keys = keys or KeyGenerator(text)
    blocks = []
    for para in re.split(r"\n\s*\n", text):
        para = _WS_RE.sub(" ", para).strip()
        if para:
            blocks.append(TextBlock(key=keys(), spans=[Span(key=keys(), text=para)]))
    return blocks


# ---------------------------------------------------------------------------
# Heading promotion
# ---------------------------------------------------------------------------


class HeadingPromoter:
    """Decides which heading is lifted out of the body into a heading field.

    Only the first heading that matches is promoted; later matches stay in
    the body as ordinary headings.
    """

    def __init__(self, promote_first_h1: bool = True, classes: Iterable[str] = ("left-border",)) -> None:
        self.promote_first_h1 = promote_first_h1
        self.classes = tuple(classes)

    @classmethod
    def from_config(cls, cfg: HeadingConfig) -> HeadingPromoter:
        return cls(promote_first_h1=cfg.promote_first_h1, classes=cfg.promote_classes)

    @classmethod
    def disabled(cls) -> HeadingPromoter:
        return cls(promote_first_h1=False, classes=())

    def matches(self, level: int, attrs: str) -> bool:
        if self.promote_first_h1 and level == 1:
            return True
        css = _attr(attrs, "class") or ""
        return any(c in css for c in self.classes)


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------


@dataclass
class ConversionResult:
    blocks: list[ContentBlock] = field(default_factory=list)
    promoted_heading: str | None = None


@dataclass
class _Item:
    """One element found in the source, tagged with its offset."""

    offset: int
    kind: str  # "image", "youtube", "vimeo", "h1".."h6", "p", "ul", "ol", "blockquote"
    attrs: str = ""
    body: str = ""


class HtmlConverter:
    """
    Converts legacy HTML into content blocks.

    Args:
        link_resolver: resolves anchor hrefs (legacy shortcodes included)
        heading_promoter: picks the heading that is promoted out of the body
        asset_base_url: base for relative image ``src`` values
    """

    def __init__(
        self,
        link_resolver: LinkResolver | None = None,
        heading_promoter: HeadingPromoter | None = None,
        asset_base_url: str = DEFAULT_ASSET_BASE_URL,
    ) -> None:
        self.link_resolver = link_resolver or LinkResolver()
        self.heading_promoter = heading_promoter or HeadingPromoter.disabled()
        self.asset_base_url = asset_base_url

    def with_promoter(self, heading_promoter: HeadingPromoter) -> HtmlConverter:
        """Same link resolution and asset base, different heading promotion."""
        return HtmlConverter(self.link_resolver, heading_promoter, self.asset_base_url)

    def convert(self, html: str | None, keys: KeyGenerator | None = None) -> ConversionResult:
        """Convert one HTML field. Never raises."""
        if not html or not html.strip():
            return ConversionResult()
        keys = keys or KeyGenerator(hashlib.sha1(html.encode("utf-8")).hexdigest()[:10])
        try:
            result = self._convert(html, keys)
        except Exception as e:
            logger.warning("html_conversion_failed", error=str(e), length=len(html))
            result = ConversionResult()

        if not result.blocks and result.promoted_heading is None:
            text = strip_html(html)
            if text:
                result.blocks = [TextBlock(key=keys(), spans=[Span(key=keys(), text=text)])]
        return result

    # ------------------------------------------------------------------
    # Extraction passes
    # ------------------------------------------------------------------

    def _convert(self, html: str, keys: KeyGenerator) -> ConversionResult:
        content = html.replace("\r\n", "\n").replace("\r", "\n")
        content = _COMMENT_RE.sub("", content)

        items: list[_Item] = []
        blanked: list[tuple[int, int]] = []

        for m in _SHORTCODE_IMAGE_RE.finditer(content):
            items.append(_Item(m.start(), "image", attrs=m.group(1)))
            blanked.append(m.span())
        for m in _YOUTUBE_IFRAME_RE.finditer(content):
            items.append(_Item(m.start(), "youtube", body=m.group(1)))
            blanked.append(m.span())
        for m in _VIMEO_IFRAME_RE.finditer(content):
            items.append(_Item(m.start(), "vimeo", body=m.group(1)))
            blanked.append(m.span())

        content = _blank_out(content, blanked)

        for m in _BLOCK_RE.finditer(content):
            items.append(_Item(m.start(), m.group(1).lower(), attrs=m.group(2), body=m.group(3)))

        items.sort(key=lambda it: it.offset)

        promoted, items = self._promote(items)
        shift = _heading_shift(items)

        blocks: list[ContentBlock] = []
        for item in items:
            blocks.extend(self._emit(item, shift, keys))
        return ConversionResult(blocks=blocks, promoted_heading=promoted)

    def _promote(self, items: list[_Item]) -> tuple[str | None, list[_Item]]:
        for i, item in enumerate(items):
            if not _is_heading(item.kind):
                continue
            if self.heading_promoter.matches(int(item.kind[1]), item.attrs):
                text = strip_html(item.body)
                if text:
                    return text, items[:i] + items[i + 1 :]
        return None, items

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _emit(self, item: _Item, shift: int, keys: KeyGenerator) -> list[ContentBlock]:
        kind = item.kind
        if kind == "image":
            placeholder = self._shortcode_image(item.attrs, keys)
            return [placeholder] if placeholder else []
        if kind == "youtube":
            return [VideoBlock(key=keys(), provider=VideoProvider.YOUTUBE, video_id=item.body)]
        if kind == "vimeo":
            return [VideoBlock(key=keys(), provider=VideoProvider.VIMEO, video_id=item.body)]
        if _is_heading(kind):
            return self._heading(item, shift, keys)
        if kind == "p":
            return self._paragraph(item.body, keys)
        if kind in ("ul", "ol"):
            list_item = ListItem.BULLET if kind == "ul" else ListItem.NUMBER
            out: list[ContentBlock] = []
            for li in _LIST_ITEM_RE.findall(item.body):
                block = self._text_block(li, keys, list_item=list_item)
                if block:
                    out.append(block)
            return out
        if kind == "blockquote":
            block = self._text_block(item.body, keys, style=BlockStyle.BLOCKQUOTE)
            return [block] if block else []
        return []

    def _heading(self, item: _Item, shift: int, keys: KeyGenerator) -> list[ContentBlock]:
        level = int(item.kind[1]) - shift
        style = BlockStyle.H2 if level <= 2 else BlockStyle.H3
        out: list[ContentBlock] = []
        text = strip_html(_IMG_TAG_RE.sub(" ", item.body))
        if text:
            out.append(TextBlock(key=keys(), spans=[Span(key=keys(), text=text)], style=style))
        out.extend(self._img_placeholders(item.body, keys))
        return out

    def _paragraph(self, body: str, keys: KeyGenerator) -> list[ContentBlock]:
        out: list[ContentBlock] = list(self._img_placeholders(body, keys))
        block = self._text_block(body, keys)
        if block:
            out.append(block)
        return out

    def _text_block(
        self,
        body: str,
        keys: KeyGenerator,
        *,
        style: BlockStyle = BlockStyle.NORMAL,
        list_item: ListItem = ListItem.NONE,
    ) -> TextBlock | None:
        spans, mark_defs = self._parse_inline(body, keys)
        if not any(s.text.strip() for s in spans):
            return None
        return TextBlock(key=keys(), spans=spans, style=style, list_item=list_item, mark_defs=mark_defs)

    def _shortcode_image(self, attrs: str, keys: KeyGenerator) -> ImagePlaceholder | None:
        src = _attr(attrs, "src")
        if not src:
            return None
        classes = (_attr(attrs, "class") or "").split()
        return ImagePlaceholder(
            key=keys(),
            src=absolutize_asset_url(src, self.asset_base_url),
            alt=_attr(attrs, "title") or _attr(attrs, "alt") or "",
            auto_width="left" in classes or "right" in classes,
        )

    def _img_placeholders(self, body: str, keys: KeyGenerator) -> list[ImagePlaceholder]:
        out = []
        for tag in _IMG_TAG_RE.findall(body):
            src = _attr(tag, "src")
            if src:
                out.append(
                    ImagePlaceholder(
                        key=keys(),
                        src=absolutize_asset_url(src, self.asset_base_url),
                        alt=_attr(tag, "alt") or "",
                    )
                )
        return out

    # ------------------------------------------------------------------
    # Inline content
    # ------------------------------------------------------------------

    def _parse_inline(self, body: str, keys: KeyGenerator) -> tuple[list[Span], list[LinkMark]]:
        """Spans and link marks for a paragraph / list item body.

        Bold, italic and span wrappers are stripped; emphasis is not kept.
        """
        content = _IMG_TAG_RE.sub("", body)
        content = _SHORTCODE_IMAGE_RE.sub("", content)
        content = _BR_RE.sub(" ", content)

        links: list[tuple[str, str]] = []

        def _placeholder(m: re.Match[str]) -> str:
            links.append((m.group(1), m.group(2)))
            return f"|||LINK{len(links) - 1}|||"

        content = _ANCHOR_RE.sub(_placeholder, content)
        content = _TAG_RE.sub("", content)

        spans: list[Span] = []
        mark_defs: list[LinkMark] = []
        for part in _LINK_TOKEN_RE.split(content):
            if not part:
                continue
            token = re.fullmatch(r"\|\|\|LINK(\d+)\|\|\|", part)
            if token is None:
                text = _normalize_text(part)
                if text:
                    spans.append(Span(key=keys(), text=text))
                continue
            href, link_html = links[int(token.group(1))]
            link_text = _normalize_text(_TAG_RE.sub("", link_html))
            if not link_text.strip():
                continue
            mark = LinkMark(key=keys(), url=self.link_resolver.resolve(html_lib.unescape(href)))
            mark_defs.append(mark)
            spans.append(Span(key=keys(), text=link_text, marks=[mark.key]))

        if spans:
            spans[0].text = spans[0].text.lstrip()
            spans[-1].text = spans[-1].text.rstrip()
            spans = [s for s in spans if s.text]
        return spans, mark_defs


def _is_heading(kind: str) -> bool:
    return len(kind) == 2 and kind[0] == "h" and kind[1].isdigit()


def _heading_shift(items: list[_Item]) -> int:
    """Shift that makes the shallowest body heading an h2 (never negative)."""
    levels = [int(it.kind[1]) for it in items if _is_heading(it.kind) and strip_html(it.body)]
    if not levels:
        return 0
    return max(min(levels) - 2, 0)


def _blank_out(text: str, spans: list[tuple[int, int]]) -> str:
    """Replace each (start, end) range with spaces so later offsets stay valid."""
    if not spans:
        return text
    parts = []
    pos = 0
    for start, end in sorted(spans):
        if start < pos:
            start = pos
        if end <= start:
            continue
        parts.append(text[pos:start])
        parts.append(" " * (end - start))
        pos = end
    parts.append(text[pos:])
    return "".join(parts)
