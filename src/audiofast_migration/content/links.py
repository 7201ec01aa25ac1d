"""
Link resolution for legacy hrefs.

SilverStripe stored internal links as shortcodes (``[product_link,id=42]``,
``[sitetree_link,id=7]``). They are resolved through slug maps exported from
the legacy database to absolute URLs on the public site. Anything that cannot
be resolved becomes ``"#"`` so the text survives without a dead target.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from audiofast_migration.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from audiofast_migration.source.models import ProductSlugRow, SiteTreeRow

logger = get_logger(__name__)

UNRESOLVED_LINK = "#"
DEFAULT_SITE_URL = "https://www.audiofast.pl"

_PRODUCT_LINK_RE = re.compile(r"\[product_link,?\s*id=(\d+)\]", re.IGNORECASE)
_SITETREE_LINK_RE = re.compile(r"\[sitetree_link,?\s*id=(\d+)\]", re.IGNORECASE)
_SCHEMELESS_SITE_RE = re.compile(r"^(?:www\.)?audiofast\.pl", re.IGNORECASE)


@dataclass(frozen=True)
class SiteTreeEntry:
    url_segment: str
    class_name: str = ""
    linked_product_id: str | None = None


class LinkResolver:
    """Maps legacy hrefs to absolute URLs on the public site."""

    def __init__(
        self,
        product_paths: dict[str, str] | None = None,
        site_tree: dict[str, SiteTreeEntry] | None = None,
        site_url: str = DEFAULT_SITE_URL,
    ) -> None:
        self.product_paths = product_paths or {}
        self.site_tree = site_tree or {}
        self.site_url = site_url.rstrip("/")
        self.unresolved: list[tuple[str, str]] = []

    @classmethod
    def from_rows(
        cls,
        product_rows: Iterable[ProductSlugRow] = (),
        site_rows: Iterable[SiteTreeRow] = (),
        site_url: str = DEFAULT_SITE_URL,
    ) -> LinkResolver:
        product_paths = {r.ProductID: r.FullPath.strip("/") for r in product_rows if r.ProductID and r.FullPath}
        site_tree = {
            r.SiteTreeID: SiteTreeEntry(
                url_segment=r.URLSegment or "",
                class_name=r.ClassName or "",
                linked_product_id=r.LinkedProductID,
            )
            for r in site_rows
            if r.SiteTreeID
        }
        logger.debug("link_maps_loaded", products=len(product_paths), pages=len(site_tree))
        return cls(product_paths, site_tree, site_url)

    # ------------------------------------------------------------------
    # Shortcodes
    # ------------------------------------------------------------------

    def _product_url(self, product_id: str) -> str | None:
        path = self.product_paths.get(product_id)
        return f"{self.site_url}/{path}" if path else None

    def _site_tree_url(self, page_id: str) -> str | None:
        entry = self.site_tree.get(page_id)
        if entry is None:
            return None
        if entry.class_name == "ProductLink" and entry.linked_product_id:
            product_url = self._product_url(entry.linked_product_id)
            if product_url:
                return product_url
        if entry.url_segment:
            return f"{self.site_url}/{entry.url_segment.strip('/')}"
        return None

    def _unresolved(self, kind: str, legacy_id: str) -> str:
        logger.warning("link_unresolved", kind=kind, legacy_id=legacy_id)
        self.unresolved.append((kind, legacy_id))
        return UNRESOLVED_LINK

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def resolve(self, href: str | None) -> str:
        """Resolve one href to an absolute URL (or ``"#"``)."""
        url = (href or "").strip()
        if not url:
            return UNRESOLVED_LINK

        m = _PRODUCT_LINK_RE.search(url)
        if m:
            return self._product_url(m.group(1)) or self._unresolved("product", m.group(1))

        m = _SITETREE_LINK_RE.search(url)
        if m:
            return self._site_tree_url(m.group(1)) or self._unresolved("sitetree", m.group(1))

        if _SCHEMELESS_SITE_RE.match(url):
            return f"https://{url}"
        if re.match(r"^[a-z][a-z0-9+.-]*:", url, re.IGNORECASE) or url.startswith("#"):
            # http(s), mailto:, tel: and in-page anchors pass through
            return url
        if url.startswith("//"):
            return f"https:{url}"
        if url.startswith("/"):
            return f"{self.site_url}{url}"
        return f"{self.site_url}/{url}"


def absolutize_asset_url(src: str, base_url: str) -> str:
    """Turn an ``<img>``/shortcode ``src`` into an absolute URL on the legacy host.

    ``assets/...`` paths are resolved against the host root (``base_url`` minus
    its ``assets/`` suffix), other relative paths against ``base_url``.
    """
    src = src.strip()
    if src.startswith(("http://", "https://")):
        return src
    if src.startswith("//"):
        return f"https:{src}"
    root = base_url.rstrip("/")
    if root.endswith("/assets"):
        root = root[: -len("/assets")]
    if src.startswith(("assets/", "/assets/")) or src.startswith("/"):
        return f"{root}/{src.lstrip('/')}"
    return f"{base_url.rstrip('/')}/{src}"
