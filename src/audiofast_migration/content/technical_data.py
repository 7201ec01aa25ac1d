"""
Technical Data Parser
=====================
Turns a product's HTML specification tabs into the structured
``technicalData`` field: the variant names (value columns) plus groups of
parameter rows, each row holding one portable-text value per variant.

A heading or paragraph right before a table becomes that table's group
title. Top-level elements holding an iframe or a video are skipped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from lxml import etree
from lxml import html as lxml_html

from audiofast_migration.content.blocks import KeyGenerator, ListItem, Span, TextBlock
from audiofast_migration.logging_config import get_logger

if TYPE_CHECKING:
    from audiofast_migration.source.models import ProductTechnicalDataRow

logger = get_logger(__name__)

EMPTY_VALUE = "-"

_TITLE_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6", "p"})
_CONTAINER_TAGS = frozenset({"div", "section", "article"})
_MEANINGLESS_RE = re.compile(r"^[\s\-\u2013\u2014]*$")


def _clean(text: str, keep_lines: bool = False) -> str:
    text = text.replace("\u00a0", " ")
    if not keep_lines:
        return re.sub(r"\s+", " ", text).strip()
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    return re.sub(r"\n{2,}", "\n", text).strip()


def _meaningful(text: str) -> bool:
    return not _MEANINGLESS_RE.match(text)


def _span_attr(element: Any, name: str) -> int:
    try:
        return max(1, int(element.get(name, "1")))
    except ValueError:
        return 1


def _fragment(html: str) -> Any:
    root = lxml_html.fragment_fromstring(html, create_parent="div")
    for element in root.xpath(".//script|.//style"):
        element.drop_tree()
    # line breaks and paragraphs separate value lines
    for element in root.iter("br", "p"):
        element.tail = "\n" + (element.tail or "")
    return root


# =============================================================================
# Tables
# =============================================================================


@dataclass
class _Cell:
    element: Any
    text: str
    colspan: int = 1
    rowspan: int = 1
    is_header: bool = False


@dataclass
class _Table:
    rows: list[list[_Cell]]
    variants: list[str] = field(default_factory=list)
    header_rows: int = 0
    title: str | None = None


def _read_table(table: Any) -> _Table:
    rows: list[list[_Cell]] = []
    for tr in table.iter("tr"):
        cells = [
            _Cell(
                element=td,
                text=_clean(td.text_content()),
                colspan=_span_attr(td, "colspan"),
                rowspan=_span_attr(td, "rowspan"),
                is_header=td.tag == "th" or bool(td.xpath(".//strong|.//b")),
            )
            for td in tr
            if td.tag in ("td", "th")
        ]
        if cells:
            rows.append(cells)

    parsed = _Table(rows=rows)
    if rows:
        _detect_variants(parsed)
    return parsed


def _detect_variants(table: _Table) -> None:
    """Work out the value column names from the header row(s)."""
    rows = table.rows
    first = rows[0]
    has_rowspan = any(c.rowspan > 1 and c.text for c in first)
    has_colspan = any(c.colspan > 1 and c.text for c in first)

    if has_colspan and has_rowspan and len(rows) > 1:
        # [label rowspan=2] [A rowspan=2] [Group colspan=N] / [sub 1] ... [sub N]
        second, index = rows[1], 0
        for cell in first:
            if cell.colspan > 1 and cell.rowspan == 1:
                for _ in range(cell.colspan):
                    if index >= len(second):
                        break
                    sub = second[index].text
                    index += 1
                    if sub:
                        table.variants.append(f"{cell.text} {sub}".strip())
            elif len(cell.text) >= 2:
                table.variants.append(cell.text)
        table.header_rows = 2
    elif has_colspan and len(rows) > 1:
        # grouped headers: each second-row name gets its group as a prefix
        prefixes = [c.text for c in first for _ in range(c.colspan)]
        expanded: list[str] = []
        for cell in rows[1]:
            for _ in range(cell.colspan):
                prefix = prefixes[len(expanded)] if len(expanded) < len(prefixes) else ""
                expanded.append(f"{prefix} {cell.text}".strip() if prefix and prefix != cell.text else cell.text)
        if expanded and len(expanded[0]) < 2:
            expanded = expanded[1:]
        table.variants = [v for v in expanded if v]
        table.header_rows = 2
    elif any(c.colspan >= 3 for c in first) and len(rows) > 1:
        # a title row spanning the table, variant names below it
        second = rows[1]
        if sum(1 for c in second if c.is_header or c.text) >= 2:
            names = second[1:] if len(second[0].text) < 3 else second
            table.variants = [c.text for c in names if c.text]
            table.header_rows = 2
    else:
        rest = first[1:]
        if len(first) > 2 and any(c.is_header for c in rest):
            table.variants = [c.text for c in rest if c.text]
            table.header_rows = 1
            if not first[0].is_header and len(first[0].text) >= 2:
                table.title = first[0].text


def _text_value(text: str, keys: KeyGenerator, list_item: ListItem = ListItem.NONE) -> TextBlock:
    return TextBlock(key=keys(), spans=[Span(key=keys(), text=text)], list_item=list_item)


def _cell_blocks(element: Any, keys: KeyGenerator) -> list[TextBlock]:
    items = element.findall(".//li")
    if items:
        texts = [_clean(li.text_content()) for li in items]
        return [_text_value(t, keys, ListItem.BULLET) for t in texts if t]
    lines = _clean(element.text_content(), keep_lines=True).split("\n")
    return [_text_value(line, keys) for line in lines if line.strip()]


def _value(blocks: list[TextBlock], keys: KeyGenerator) -> dict[str, Any]:
    if not blocks:
        blocks = [_text_value(EMPTY_VALUE, keys)]
    return {"_key": keys(), "content": [b.to_sanity() for b in blocks]}


def _group(table: _Table, title: str | None, keys: KeyGenerator) -> dict[str, Any] | None:
    columns = len(table.variants) or 1
    rows = []
    for cells in table.rows[table.header_rows :]:
        name = cells[0].text
        if len(cells) == 1 or not name or not _meaningful(name):
            continue
        values: list[dict[str, Any]] = []
        for cell in cells[1:]:
            # a spanning cell repeats its value in every column it covers
            for _ in range(cell.colspan):
                if len(values) >= columns:
                    break
                values.append(_value(_cell_blocks(cell.element, keys), keys))
        while len(values) < columns:
            values.append(_value([], keys))
        rows.append({"_type": "technicalDataRow", "_key": keys(), "title": name, "values": values})

    if not rows:
        return None
    group: dict[str, Any] = {"_type": "technicalDataGroup", "_key": keys()}
    if title or table.title:
        group["title"] = title or table.title
    group["rows"] = rows
    return group


# =============================================================================
# Public API
# =============================================================================


def parse_tab(html: str | None, keys: KeyGenerator) -> tuple[list[str], list[dict[str, Any]]]:
    """Variants and groups found in one specification tab."""
    if not html or not html.strip():
        return [], []
    try:
        root = _fragment(html)
    except etree.ParserError as e:
        logger.warning("technical_data_unparseable", error=str(e))
        return [], []

    variants: list[str] = []
    groups: list[dict[str, Any]] = []
    pending_title: str | None = None

    for child in root:
        if not isinstance(child.tag, str):
            continue
        if child.tag in ("iframe", "video") or child.xpath(".//iframe|.//video"):
            continue
        tag = child.tag.lower()
        if tag in _TITLE_TAGS:
            nested = child.find(".//table")
            if nested is None:
                text = _clean(child.text_content())
                if text and _meaningful(text):
                    pending_title = text.rstrip(":").strip()
                continue
            tables = [nested]
        elif tag == "table":
            tables = [child]
        elif tag in _CONTAINER_TAGS:
            tables = child.findall(".//table")
        else:
            continue

        for element in tables:
            table = _read_table(element)
            if len(table.variants) > len(variants):
                variants = table.variants
            group = _group(table, pending_title, keys)
            if group:
                groups.append(group)
            pending_title = None

    return variants, groups


def parse_technical_data(rows: list[ProductTechnicalDataRow], keys: KeyGenerator) -> dict[str, Any] | None:
    """
    Combine a product's tabs (already in tab order) into one ``technicalData`` value.

    The widest table's columns become the variants; every row is padded
    with ``-`` or trimmed to that many values. ``None`` when no tab yields
    a single row.
    """
    variants: list[str] = []
    groups: list[dict[str, Any]] = []
    for row in rows:
        tab_variants, tab_groups = parse_tab(row.TabContent, keys)
        if len(tab_variants) > len(variants):
            variants = tab_variants
        if row.TabTitle and tab_groups and "title" not in tab_groups[0]:
            tab_groups[0] = {**tab_groups[0], "title": row.TabTitle}
        groups.extend(tab_groups)

    if not groups:
        return None
    if variants:
        for group in groups:
            for data_row in group["rows"]:
                values = data_row["values"][: len(variants)]
                while len(values) < len(variants):
                    values.append(_value([], keys))
                data_row["values"] = values
        return {"variants": variants, "groups": groups}
    return {"groups": groups}
