"""
Document Transformers
=====================
One transformer per entity type. Each knows how to load its source records
(CSV exports or the SQL dump), how to describe them for pre-run statistics,
and how to turn one record into a complete Sanity document.

Target IDs are always ``"<prefix><legacy id>"`` so every run writes the same
documents and rollback can find them by prefix.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar

from audiofast_migration.content.blocks import (
    MIN_SLIDER_IMAGES,
    BlockStyle,
    ContentBlock,
    ImagePlaceholder,
    ImageSliderBlock,
    KeyGenerator,
    Span,
    TextBlock,
    VideoBlock,
    VideoProvider,
    blocks_to_sanity,
    image_ref,
)
from audiofast_migration.content.converter import (
    HeadingPromoter,
    HtmlConverter,
    extract_vimeo_id,
    extract_youtube_id,
    strip_html,
    text_to_blocks,
)
from audiofast_migration.content.technical_data import parse_technical_data
from audiofast_migration.errors import RecordSkipped, TransformError
from audiofast_migration.logging_config import get_logger
from audiofast_migration.source.csv_reader import read_csv, read_optional_csv
from audiofast_migration.source.models import (
    DEALER_COLUMNS,
    ArticleBoxRow,
    ArticleImageRow,
    AwardProductRow,
    AwardRow,
    BrandDealerRow,
    BrandGalleryRow,
    BrandRow,
    DealerRow,
    DeviceTypeItemRow,
    ProductBoxRow,
    ProductCategoryRow,
    ProductGalleryRow,
    ProductPdfRow,
    ProductRow,
    ProductTechnicalDataRow,
    ProductTypePageRow,
    ReviewAuthorRow,
    ReviewRow,
)
from audiofast_migration.source.reference_index import ReferenceIndex
from audiofast_migration.source.sql_dump import read_sql_dump

if TYPE_CHECKING:
    from audiofast_migration.config import ImageProfile, ImagesConfig, SourcesConfig
    from audiofast_migration.engine.asset_pipeline import AssetPipeline

logger = get_logger(__name__)


# =============================================================================
# Helpers
# =============================================================================

_POLISH_LETTERS = str.maketrans({"ł": "l", "Ł": "L"})


def slugify(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value.translate(_POLISH_LETTERS))
    ascii_value = ascii_value.encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-zA-Z0-9]+", "-", ascii_value).strip("-").lower()


def normalize_slug(slug: str) -> str:
    """Last path segment of a slug (``/marki/acme/`` → ``acme``)."""
    return slug.strip().strip("/").split("/")[-1].lower()


def as_int(value: str | None, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def is_truthy_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


def slug_field(current: str) -> dict[str, str]:
    return {"_type": "slug", "current": current}


def seo_description(name: str, html: str | None) -> str:
    """Meta description from the first sentence of *html*, or a generic line."""
    plain = strip_html(html)
    if plain:
        first_sentence = re.split(r"[.!?]", plain)[0].strip()
        if 80 <= len(first_sentence) <= 140:
            return f"{first_sentence}."
        if len(plain) >= 110:
            return f"{plain[:137].strip()}..."
    return f"Poznaj produkty marki {name} w ofercie Audiofast."


# =============================================================================
# Records and references
# =============================================================================


@dataclass
class SourceRecord:
    """One unit of migration: a primary row plus its grouped child rows."""

    legacy_id: str
    label: str
    row: Any
    children: dict[str, Any] = field(default_factory=dict)


@dataclass
class MissingReference:
    source_id: str
    field: str
    target: str


class ReferenceResolver:
    """
    Resolves cross-entity references against documents already in the dataset.

    A reference to a document that does not exist is dropped (never nulled),
    logged and remembered in ``missing`` so the engine can report it. In
    dry-run mode every reference is treated as present.
    """

    def __init__(
        self,
        existing_ids: set[str] | None = None,
        slug_maps: dict[str, dict[str, str]] | None = None,
        *,
        dry_run: bool = False,
    ) -> None:
        self.slug_maps = slug_maps or {}
        self.existing_ids = set(existing_ids or ())
        # documents found through a slug map exist by construction
        for slug_map in self.slug_maps.values():
            self.existing_ids.update(slug_map.values())
        self.dry_run = dry_run
        self.missing: list[MissingReference] = []

    def exists(self, doc_id: str) -> bool:
        return self.dry_run or doc_id in self.existing_ids

    def id_for_slug(self, doc_type: str, slug: str | None) -> str | None:
        if not slug:
            return None
        key = normalize_slug(slug)
        found = self.slug_maps.get(doc_type, {}).get(key)
        if found is None and self.dry_run:
            return f"{doc_type}-dryrun-{key}"
        return found

    def ref(self, target_id: str | None, *, source: str, field: str, key: str | None = None) -> dict[str, str] | None:
        if target_id and self.exists(target_id):
            reference = {"_type": "reference", "_ref": target_id}
            if key:
                reference["_key"] = key
            return reference
        self.report_missing(source, field, target_id or "?")
        return None

    def report_missing(self, source: str, field: str, target: str) -> None:
        logger.warning("reference_missing", source=source, field=field, target=target)
        self.missing.append(MissingReference(source, field, target))

    def drain_missing(self) -> list[MissingReference]:
        missing, self.missing = self.missing, []
        return missing


@dataclass
class MigrationContext:
    """Everything a transformer needs besides the record itself."""

    references: ReferenceResolver
    converter: HtmlConverter
    assets: AssetPipeline
    files: AssetPipeline | None = None
    images: ImagesConfig | None = None
    heading_promoter: HeadingPromoter = field(default_factory=HeadingPromoter)
    dry_run: bool = False

    def image_profile(self, name: str) -> ImageProfile | None:
        if self.images is None or not self.images.optimize:
            return None
        return self.images.profile(name)

    def upload_image(self, url_or_path: str | None, profile: str = "content") -> str | None:
        if not url_or_path:
            return None
        return self.assets.fetch_and_upload(url_or_path, kind="image", profile=self.image_profile(profile))

    def upload_file(self, url_or_path: str | None) -> str | None:
        if not url_or_path or self.files is None:
            return None
        return self.files.fetch_and_upload(url_or_path, kind="file")

    def resolve_images(self, blocks: list[ContentBlock], profile: str = "content") -> list[ContentBlock]:
        """Upload placeholder images; keep those that succeed, drop the rest."""
        out: list[ContentBlock] = []
        for block in blocks:
            if isinstance(block, ImagePlaceholder):
                asset_id = self.upload_image(block.src, profile)
                if asset_id:
                    out.append(block.resolve(asset_id))
                else:
                    logger.warning("inline_image_dropped", src=block.src)
                continue
            out.append(block)
        return out

    def build_slider(self, sources: list[str], key: str, label: str, profile: str = "gallery") -> ImageSliderBlock | None:
        """A slider only when at least four images exist and upload; otherwise nothing."""
        if len(sources) < MIN_SLIDER_IMAGES:
            logger.warning("slider_dropped", source=label, reason="too_few_source_images", count=len(sources))
            return None
        asset_ids = [a for a in (self.upload_image(s, profile) for s in sources) if a]
        if len(asset_ids) < MIN_SLIDER_IMAGES:
            logger.warning("slider_dropped", source=label, reason="too_few_uploaded_images", count=len(asset_ids))
            return None
        return ImageSliderBlock(key=key, asset_refs=asset_ids)


# =============================================================================
# Base
# =============================================================================


class DocumentTransformer:
    """Base class: subclasses set the class attributes and implement the hooks."""

    entity: ClassVar[str] = ""
    doc_type: ClassVar[str] = ""
    id_prefix: ClassVar[str] = ""
    # (doc_type, id prefix) pairs whose existing IDs references are checked against
    reference_types: ClassVar[tuple[tuple[str, str], ...]] = ()
    # doc types whose slug → _id map is needed
    slug_types: ClassVar[tuple[str, ...]] = ()
    # non-empty for entities that set fields on documents owned by another entity
    patch_fields: ClassVar[tuple[str, ...]] = ()

    def document_id(self, legacy_id: str) -> str:
        return f"{self.id_prefix}{legacy_id}"

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        raise NotImplementedError

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {"records": len(records)}

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        raise NotImplementedError


# =============================================================================
# Awards
# =============================================================================


class AwardTransformer(DocumentTransformer):
    entity = "awards"
    doc_type = "award"
    id_prefix = "award-"
    reference_types = (("product", "product-"),)

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        awards = read_csv(sources.path("awards"), AwardRow)
        relations = read_csv(sources.path("award_products"), AwardProductRow)
        products = ReferenceIndex.build(
            relations, "AwardID", child="ProductID", dedupe=lambda r: r.ProductID, name="award_products"
        )
        records = []
        for row in awards:
            if not row.AwardID:
                logger.warning("award_row_without_id", name=row.AwardName)
                continue
            records.append(
                SourceRecord(
                    legacy_id=row.AwardID,
                    label=row.AwardName or row.AwardID,
                    row=row,
                    children={"products": products.get(row.AwardID)},
                )
            )
        return records

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        product_ids = {pid for r in records for pid in r.children["products"]}
        return {
            "awards": len(records),
            "with_logo": sum(1 for r in records if r.row.LogoFilename),
            "with_products": sum(1 for r in records if r.children["products"]),
            "unique_products": len(product_ids),
            "relations": sum(len(r.children["products"]) for r in records),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        row: AwardRow = record.row
        if not row.AwardName:
            raise TransformError(f"award {record.legacy_id} has no name")
        doc_id = self.document_id(record.legacy_id)
        doc: dict[str, Any] = {"_id": doc_id, "_type": self.doc_type, "name": row.AwardName}

        logo = context.upload_image(row.LogoFilename, "logo")
        if logo:
            doc["logo"] = image_ref(logo)

        refs = []
        for product_id in record.children["products"]:
            ref = context.references.ref(
                f"product-{product_id}", source=doc_id, field="products", key=f"ref-{product_id}"
            )
            if ref:
                refs.append(ref)
        doc["products"] = refs
        return doc


# =============================================================================
# Brands
# =============================================================================

# Text boxes that only hold a separator
_EMPTY_TEXT_BOXES = frozenset({"<hr><p>&nbsp;</p>", "<p>&nbsp;</p>"})


class BrandTransformer(DocumentTransformer):
    entity = "brands"
    doc_type = "brand"
    id_prefix = "brand-"

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        rows = read_csv(sources.path("brands"), BrandRow)
        by_brand = ReferenceIndex.build(rows, "ID", name="brand_rows")
        records = []
        for brand_id in by_brand:
            brand_rows = by_brand.get(brand_id)
            first = brand_rows[0]
            text_boxes: list[str] = []
            for r in brand_rows:
                box = (r.TextBoxContent or "").strip()
                if box and box not in _EMPTY_TEXT_BOXES and box not in text_boxes:
                    text_boxes.append(box)
            records.append(
                SourceRecord(
                    legacy_id=brand_id,
                    label=first.Name or brand_id,
                    row=first,
                    children={
                        "text_boxes": text_boxes,
                        "banner": next((r.BannerImageFilename for r in brand_rows if r.BannerImageFilename), None),
                    },
                )
            )
        return records

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {
            "brands": len(records),
            "with_logo": sum(1 for r in records if r.row.LogoFilename),
            "with_banner": sum(1 for r in records if r.children["banner"]),
            "with_description": sum(1 for r in records if r.children["text_boxes"]),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        row: BrandRow = record.row
        name = (row.Name or "").strip()
        if not name:
            raise TransformError(f"brand {record.legacy_id} has no name")
        slug = normalize_slug(row.Slug) if row.Slug else slugify(name)
        if not slug:
            raise TransformError(f"brand {record.legacy_id} has no usable slug")
        doc_id = self.document_id(record.legacy_id)

        hero = context.converter.convert(row.HeroDescription, KeyGenerator(f"{doc_id}:description"))
        description = context.resolve_images(hero.blocks)
        if not description:
            description = text_to_blocks(f"Odkryj produkty marki {name} w ofercie Audiofast.", KeyGenerator(doc_id))

        heading_text = f"O {name}"
        text_boxes: list[str] = record.children["text_boxes"]
        if text_boxes:
            converter = context.converter.with_promoter(context.heading_promoter)
            result = converter.convert("\n".join(text_boxes), KeyGenerator(f"{doc_id}:brandDescription"))
            body = context.resolve_images(result.blocks)
            if result.promoted_heading:
                heading_text = result.promoted_heading
        else:
            body = []
        if not body:
            body = text_to_blocks(
                f"{name} to renomowana marka oferująca sprzęt audio najwyższej klasy.",
                KeyGenerator(f"{doc_id}:brandDescription"),
            )

        doc: dict[str, Any] = {
            "_id": doc_id,
            "_type": self.doc_type,
            "name": name,
            "slug": slug_field(f"/marki/{slug}/"),
            "description": blocks_to_sanity(description),
            "brandDescriptionHeading": blocks_to_sanity(
                text_to_blocks(heading_text, KeyGenerator(f"{doc_id}:heading"))
            ),
            "brandDescription": blocks_to_sanity(body),
            "seo": {"title": name, "description": seo_description(name, row.HeroDescription)},
            "doNotIndex": False,
            "hideFromList": False,
        }

        logo = context.upload_image(row.LogoFilename, "logo")
        if logo:
            doc["logo"] = image_ref(logo)
        banner = context.upload_image(record.children["banner"], "preview")
        if banner:
            doc["bannerImage"] = image_ref(banner)
        return doc


# =============================================================================
# Products
# =============================================================================


class ProductTransformer(DocumentTransformer):
    entity = "products"
    doc_type = "product"
    id_prefix = "product-"
    reference_types = (("brand", "brand-"),)
    slug_types = ("brand", "productCategorySub")

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        products = read_csv(sources.path("products"), ProductRow)
        categories = ReferenceIndex.build(
            read_csv(sources.path("product_categories"), ProductCategoryRow),
            "ProductID",
            dedupe=lambda r: r.CategoryID or r.CategorySlug,
            name="product_categories",
        )
        gallery = ReferenceIndex.build(
            read_csv(sources.path("product_gallery"), ProductGalleryRow), "ProductID", name="product_gallery"
        )
        boxes = ReferenceIndex.build(
            read_csv(sources.path("product_boxes"), ProductBoxRow), "ProductID", name="product_boxes"
        )
        pdfs = ReferenceIndex.build(
            read_csv(sources.path("product_pdfs"), ProductPdfRow),
            "old_product_id",
            dedupe=lambda r: (r.file_id, r.pdf_title),
            name="product_pdfs",
        )
        technical = ReferenceIndex.build(
            read_optional_csv(sources.path("product_technical_data"), ProductTechnicalDataRow),
            "ProductID",
            name="product_technical_data",
        )

        records = []
        for row in products:
            if not row.ProductID:
                logger.warning("product_row_without_id", name=row.ProductName)
                continue
            records.append(
                SourceRecord(
                    legacy_id=row.ProductID,
                    label=row.ProductName or row.ProductID,
                    row=row,
                    children={
                        "categories": categories.get(row.ProductID),
                        "gallery": gallery.get(row.ProductID),
                        "boxes": boxes.get(row.ProductID),
                        "pdfs": pdfs.get(row.ProductID),
                        "technical": sorted(technical.get(row.ProductID), key=lambda t: as_int(t.TabSort)),
                    },
                )
            )
        return records

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {
            "products": len(records),
            "archived": sum(1 for r in records if is_truthy_flag(r.row.IsArchived)),
            "with_preview_image": sum(1 for r in records if r.row.MainImageFilename),
            "with_gallery": sum(1 for r in records if r.children["gallery"]),
            "with_content": sum(1 for r in records if r.children["boxes"]),
            "with_pdfs": sum(1 for r in records if r.children["pdfs"]),
            "with_technical_data": sum(1 for r in records if r.children["technical"]),
            "unique_brands": len({r.row.BrandID for r in records if r.row.BrandID}),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        row: ProductRow = record.row
        name = (row.ProductName or "").strip()
        if not name:
            raise TransformError(f"product {record.legacy_id} has no name")
        slug = normalize_slug(row.ProductSlug) if row.ProductSlug else slugify(name)
        doc_id = self.document_id(record.legacy_id)
        keys = KeyGenerator(doc_id)

        doc: dict[str, Any] = {
            "_id": doc_id,
            "_type": self.doc_type,
            "name": name,
            "slug": slug_field(f"/produkty/{slug}/"),
            "isArchived": is_truthy_flag(row.IsArchived),
            "isCPO": False,
            "doNotIndex": False,
            "hideFromList": is_truthy_flag(row.IsHidden),
        }
        if row.Subtitle:
            doc["subtitle"] = row.Subtitle

        preview = context.upload_image(row.MainImageFilename, "preview")
        if preview:
            doc["previewImage"] = image_ref(preview)

        gallery = self._gallery(record.children["gallery"], context, keys)
        if gallery:
            doc["imageGallery"] = gallery

        brand = self._brand_ref(row, doc_id, context)
        if brand:
            doc["brand"] = brand

        doc["categories"] = self._category_refs(record.children["categories"], doc_id, context)

        content = self._details(record.children["boxes"], doc_id, context, keys)
        if content:
            doc["details"] = {"content": content}

        pdfs = self._pdfs(record.children["pdfs"], context, keys)
        if pdfs:
            doc["downloadablePdfs"] = pdfs

        technical = parse_technical_data(record.children["technical"], KeyGenerator(f"{doc_id}:technicalData"))
        if technical:
            doc["technicalData"] = technical

        doc["seo"] = {"title": name, "description": row.MetaDescription or seo_description(name, None)}
        return doc

    def _gallery(self, rows: list[ProductGalleryRow], context: MigrationContext, keys: KeyGenerator) -> list[dict]:
        items = []
        for r in sorted(rows, key=lambda g: as_int(g.SortOrder)):
            asset_id = context.upload_image(r.ImageFilename, "gallery")
            if asset_id:
                items.append({"_key": keys(), **image_ref(asset_id)})
        return items

    def _brand_ref(self, row: ProductRow, doc_id: str, context: MigrationContext) -> dict | None:
        refs = context.references
        target = f"brand-{row.BrandID}" if row.BrandID else None
        if (target is None or not refs.exists(target)) and row.BrandSlug:
            target = refs.id_for_slug("brand", row.BrandSlug) or target
        if target is None:
            return None
        return refs.ref(target, source=doc_id, field="brand")

    def _category_refs(self, rows: list[ProductCategoryRow], doc_id: str, context: MigrationContext) -> list[dict]:
        refs = []
        for r in rows:
            target = context.references.id_for_slug("productCategorySub", r.CategorySlug)
            if target is None:
                context.references.report_missing(doc_id, "categories", f"productCategorySub:{r.CategorySlug}")
                continue
            ref = context.references.ref(
                target, source=doc_id, field="categories", key=f"cat-{r.CategoryID or normalize_slug(r.CategorySlug)}"
            )
            if ref:
                refs.append(ref)
        return refs

    def _details(
        self, boxes: list[ProductBoxRow], doc_id: str, context: MigrationContext, keys: KeyGenerator
    ) -> list[dict]:
        blocks: list[ContentBlock] = []
        for box in sorted(boxes, key=lambda b: as_int(b.SortOrder)):
            box_type = (box.BoxType or "").strip().lower()
            if box_type == "text":
                result = context.converter.convert(box.TextContent, keys)
                blocks.extend(context.resolve_images(result.blocks))
            elif box_type == "video":
                video = _video_block(box.VideoUrl, keys)
                if video:
                    blocks.append(video)
                else:
                    logger.warning("video_url_unrecognised", source=doc_id, box_id=box.BoxID, url=box.VideoUrl)
            elif box_type == "hr":
                continue
            else:
                logger.warning("box_type_unknown", source=doc_id, box_id=box.BoxID, box_type=box_type)
        return blocks_to_sanity(blocks)

    def _pdfs(self, rows: list[ProductPdfRow], context: MigrationContext, keys: KeyGenerator) -> list[dict]:
        items = []
        for r in rows:
            if not r.file_path:
                continue
            asset_id = context.upload_file(r.file_path)
            if not asset_id:
                continue
            item: dict[str, Any] = {
                "_key": keys(),
                "title": r.pdf_title or r.file_path.rsplit("/", 1)[-1],
                "file": {"_type": "file", "asset": {"_type": "reference", "_ref": asset_id}},
            }
            if r.pdf_description:
                item["description"] = r.pdf_description
            items.append(item)
        return items


def _video_block(url: str | None, keys: KeyGenerator) -> VideoBlock | None:
    youtube_id = extract_youtube_id(url)
    if youtube_id:
        return VideoBlock(key=keys(), provider=VideoProvider.YOUTUBE, video_id=youtube_id)
    vimeo_id = extract_vimeo_id(url)
    if vimeo_id:
        return VideoBlock(key=keys(), provider=VideoProvider.VIMEO, video_id=vimeo_id)
    return None


# =============================================================================
# Stores
# =============================================================================

POSTAL_CODE_RE = re.compile(r"^\d{2}-\d{3}$")
PHONE_RE = re.compile(r"^\+48\d{7,11}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PLACEHOLDER_POSTAL_CODE = "00-000"

_OBFUSCATED_AT_RE = re.compile(r"\s*(?:\(at\)|\[at\]|\{at\}|<at>)\s*", re.IGNORECASE)


def split_city(value: str | None) -> tuple[str, str]:
    """``"00-621 Warszawa"`` → ``("00-621", "Warszawa")``."""
    text = (value or "").strip()
    m = re.match(r"^(\d{2}-\d{3})\s+(.+)$", text)
    if m:
        return m.group(1), m.group(2).strip()
    m = re.search(r"\d{2}-\d{3}", text)
    if m:
        city = text.replace(m.group(0), "").strip(" ,")
        return m.group(0), city or "Unknown"
    logger.warning("city_unparsed", value=value)
    return PLACEHOLDER_POSTAL_CODE, text or "Unknown"


def normalize_phone(value: str | None) -> str:
    """First listed number as ``+48...``."""
    if not value:
        return "+48000000000"
    digits = re.sub(r"\D", "", value.split(",")[0])
    if len(digits) == 9:
        return f"+48{digits}"
    if len(digits) == 11 and digits.startswith("48"):
        return f"+{digits}"
    if len(digits) == 12 and digits.startswith("048"):
        return f"+{digits[1:]}"
    if 7 <= len(digits) <= 11:
        return f"+48{digits}"
    logger.warning("phone_unusual", value=value, digits=digits)
    return f"+48{digits.ljust(9, '0')[:9]}"


def normalize_email(value: str | None) -> str | None:
    if not value:
        return None
    email = _OBFUSCATED_AT_RE.sub("@", value).strip()
    if EMAIL_RE.match(email):
        return email
    logger.warning("email_invalid", value=value)
    return None


def normalize_website(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    url = value.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


class StoreTransformer(DocumentTransformer):
    entity = "stores"
    doc_type = "store"
    id_prefix = "store-"

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        dealers = read_sql_dump(sources.path("stores_sql"), "Dealer", DealerRow, DEALER_COLUMNS)
        return [SourceRecord(legacy_id=d.ID, label=d.Name or d.ID, row=d) for d in dealers if d.ID]

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {
            "dealers": len(records),
            "published": sum(1 for r in records if r.row.Publish == "1"),
            "with_email": sum(1 for r in records if r.row.Email),
            "with_website": sum(1 for r in records if r.row.WWW),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        dealer: DealerRow = record.row
        if dealer.Publish != "1":
            raise RecordSkipped("dealer is not published")

        postal_code, city = split_city(dealer.City)
        if postal_code == PLACEHOLDER_POSTAL_CODE:
            logger.warning("postal_code_placeholder", dealer_id=dealer.ID, city=dealer.City)
        if dealer.Phone and "," in dealer.Phone:
            logger.info("phone_multiple_numbers", dealer_id=dealer.ID, phone=dealer.Phone)

        doc: dict[str, Any] = {
            "_id": self.document_id(record.legacy_id),
            "_type": self.doc_type,
            "name": (dealer.Name or "").strip(),
            "address": {
                "postalCode": postal_code,
                "city": city,
                "street": (dealer.Street or dealer.Address or "").strip(),
            },
            "phone": normalize_phone(dealer.Phone),
        }
        email = normalize_email(dealer.Email)
        if email:
            doc["email"] = email
        website = normalize_website(dealer.WWW)
        if website:
            doc["website"] = website

        errors = validate_store(doc)
        if errors:
            raise TransformError("; ".join(errors))
        return doc


def validate_store(doc: dict[str, Any]) -> list[str]:
    errors = []
    address = doc.get("address", {})
    if not doc.get("name"):
        errors.append("name is required")
    if not POSTAL_CODE_RE.match(address.get("postalCode", "")):
        errors.append(f"postal code must be XX-XXX, got {address.get('postalCode')!r}")
    if not address.get("city"):
        errors.append("city is required")
    if not address.get("street"):
        errors.append("street is required")
    if not PHONE_RE.match(doc.get("phone", "")):
        errors.append(f"phone must be +48 followed by 7-11 digits, got {doc.get('phone')!r}")
    return errors


# =============================================================================
# Articles
# =============================================================================

ARTICLE_BOX_TYPES = frozenset({"text", "tabs", "video", "gallery", "slider", "hr"})


def blog_slug(slug: str | None, title: str) -> str:
    value = (slug or "").strip() or slugify(title)
    value = value.strip("/")
    if value.startswith("blog/"):
        value = value[len("blog/") :]
    return f"/blog/{value}/".lower()


class ArticleTransformer(DocumentTransformer):
    entity = "articles"
    doc_type = "blog-article"
    id_prefix = "article-"

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        boxes = read_csv(sources.path("article_boxes"), ArticleBoxRow)
        images = ReferenceIndex.build(
            read_csv(sources.path("article_images"), ArticleImageRow), "BoxID", name="article_images"
        )
        by_article = ReferenceIndex.build(boxes, "BlogPageID", name="article_boxes")

        records = []
        for article_id in by_article:
            article_boxes = sorted(by_article.get(article_id), key=lambda b: as_int(b.Sort))
            first = article_boxes[0]
            box_images = {
                b.BoxID: sorted(images.get(b.BoxID), key=lambda i: as_int(i.ImageSort)) for b in article_boxes if b.BoxID
            }
            records.append(
                SourceRecord(
                    legacy_id=article_id,
                    label=first.ArticleTitle or article_id,
                    row=first,
                    children={"boxes": article_boxes, "images": box_images},
                )
            )
        return records

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        boxes = [b for r in records for b in r.children["boxes"]]
        return {
            "articles": len(records),
            "boxes": len(boxes),
            "text_boxes": sum(1 for b in boxes if (b.BoxType or "").lower() in ("text", "tabs")),
            "gallery_boxes": sum(1 for b in boxes if (b.BoxType or "").lower() in ("gallery", "slider")),
            "video_boxes": sum(1 for b in boxes if (b.BoxType or "").lower() == "video"),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        first: ArticleBoxRow = record.row
        title = (first.ArticleTitle or "").strip()
        if not title:
            raise TransformError(f"article {record.legacy_id} has no title")
        doc_id = self.document_id(record.legacy_id)
        keys = KeyGenerator(doc_id)

        blocks: list[ContentBlock] = []
        for box in record.children["boxes"]:
            blocks.extend(self._box(box, record.children["images"], doc_id, context, keys))
        if not blocks:
            raise RecordSkipped("no convertible content")

        return {
            "_id": doc_id,
            "_type": self.doc_type,
            "name": title,
            "title": blocks_to_sanity(text_to_blocks(title, KeyGenerator(f"{doc_id}:title"))),
            "slug": slug_field(blog_slug(first.ArticleSlug, title)),
            "content": blocks_to_sanity(blocks),
        }

    def _box(
        self,
        box: ArticleBoxRow,
        images: dict[str, list[ArticleImageRow]],
        doc_id: str,
        context: MigrationContext,
        keys: KeyGenerator,
    ) -> list[ContentBlock]:
        box_type = (box.BoxType or "").strip().lower()
        if box_type not in ARTICLE_BOX_TYPES:
            logger.warning("box_type_unknown", source=doc_id, box_id=box.BoxID, box_type=box_type)
            return []
        if box_type == "hr":
            return []

        out: list[ContentBlock] = []
        if box_type in ("text", "tabs"):
            result = context.converter.convert(box.HtmlContent, keys)
            out.extend(context.resolve_images(result.blocks))
        elif box_type == "video":
            video = _video_block(box.YoutubeId, keys) or _video_block(box.HtmlContent, keys)
            if video:
                out.append(video)
            else:
                logger.warning("video_id_missing", source=doc_id, box_id=box.BoxID)
        else:
            sources = [i.ImageFilename for i in images.get(box.BoxID or "", []) if i.ImageFilename]
            slider = context.build_slider(sources, keys(), f"{doc_id}/box-{box.BoxID}")
            if slider:
                out.append(slider)
        box_title = strip_html(box.BoxTitle)
        if out and box_title:
            out.insert(0, TextBlock(key=keys(), spans=[Span(key=keys(), text=box_title)], style=BlockStyle.H2))
        return out


# =============================================================================
# Product categories
# =============================================================================

# Legacy DeviceType ID → (parent category document ID, name); the parents are
# maintained by hand in the dataset
PARENT_CATEGORIES: dict[str, tuple[str, str]] = {
    "1": ("37982ce0-8bca-4a06-8662-62aa7edb4cc1", "Źródła cyfrowe i analogowe"),
    "2": ("712c96e8-bcd5-4082-92a9-f19c357d86c2", "Zasilanie i uziemianie"),
    "3": ("parent-cat-speakers", "Głośniki i subwoofery"),
    "4": ("parent-cat-amplifiers", "Wzmacniacze i przedwzmacniacze"),
    "5": ("parent-cat-cables", "Przewody audio"),
    "6": ("7366aa2c-a829-4567-b4ff-7eaec7cbc658", "Akcesoria"),
}


def category_seo_description(name: str, parent_name: str) -> str:
    return (
        f"{name} z kategorii {parent_name} klasy high-end w ofercie Audiofast. "
        "Sprawdź najlepsze produkty dla wymagających audiofilów."
    )


class CategoryTransformer(DocumentTransformer):
    """ProductType pages from the SQL dump → product subcategories."""

    entity = "categories"
    doc_type = "productCategorySub"
    id_prefix = "category-"
    reference_types = (("productCategoryParent", ""),)

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        path = sources.path("categories_sql")
        pages = read_sql_dump(path, "SiteTree", ProductTypePageRow)
        parents: dict[str, str] = {}
        for link in read_sql_dump(path, "DeviceTypeItem", DeviceTypeItemRow):
            if link.ClassName == "DeviceTypeItem" and link.PageID and link.DeviceTypeID in PARENT_CATEGORIES:
                parents[link.PageID] = link.DeviceTypeID

        records: list[SourceRecord] = []
        seen: set[str] = set()
        for page in pages:
            if page.ClassName != "ProductType" or not page.ID or page.ID in seen:
                continue
            seen.add(page.ID)
            records.append(
                SourceRecord(
                    legacy_id=page.ID,
                    label=page.Title or page.ID,
                    row=page,
                    children={"parent": parents.get(page.ID)},
                )
            )
        return records

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {
            "categories": len(records),
            "with_parent": sum(1 for r in records if r.children["parent"]),
            "with_meta_description": sum(1 for r in records if r.row.MetaDescription),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        page: ProductTypePageRow = record.row
        name = (page.Title or "").strip()
        if not name:
            raise TransformError(f"category {record.legacy_id} has no title")
        parent = PARENT_CATEGORIES.get(record.children["parent"] or "")
        if parent is None:
            logger.warning("category_parent_unmapped", legacy_id=record.legacy_id, name=name)
            raise RecordSkipped("no parent category mapping")
        parent_id, parent_name = parent
        doc_id = self.document_id(record.legacy_id)
        parent_ref = context.references.ref(parent_id, source=doc_id, field="parentCategory")
        if parent_ref is None:
            raise TransformError(f"parent category {parent_id} does not exist")

        slug = normalize_slug(page.URLSegment) if page.URLSegment else slugify(name)
        return {
            "_id": doc_id,
            "_type": self.doc_type,
            "name": name,
            "slug": slug_field(f"/kategoria/{slug}/"),
            "parentCategory": parent_ref,
            "seo": {"title": name, "description": category_seo_description(name, parent_name)},
            "doNotIndex": False,
            "hideFromList": False,
        }


# =============================================================================
# Brand patches (galleries, stores)
# =============================================================================


def _require_target(doc_id: str, context: MigrationContext) -> None:
    if not context.references.exists(doc_id):
        raise TransformError(f"{doc_id} does not exist; migrate brands first")


class BrandGalleryTransformer(DocumentTransformer):
    """Sets ``imageGallery`` on brands that are already migrated."""

    entity = "brand-galleries"
    doc_type = "brand"
    id_prefix = "brand-"
    reference_types = (("brand", "brand-"),)
    patch_fields = ("imageGallery",)

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        rows = read_csv(sources.path("brand_gallery"), BrandGalleryRow)
        by_brand = ReferenceIndex.build(
            rows, "BrandID", dedupe=lambda r: r.FileID or r.ImagePath, name="brand_gallery"
        )
        records = []
        for brand_id in by_brand:
            images = sorted(by_brand.get(brand_id), key=lambda r: as_int(r.SortOrder))
            records.append(
                SourceRecord(
                    legacy_id=brand_id,
                    label=images[0].BrandName or brand_id,
                    row=images[0],
                    children={"images": [r.ImagePath for r in images if r.ImagePath]},
                )
            )
        return records

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {
            "brands": len(records),
            "images": sum(len(r.children["images"]) for r in records),
            "below_minimum": sum(1 for r in records if len(r.children["images"]) < MIN_SLIDER_IMAGES),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        doc_id = self.document_id(record.legacy_id)
        _require_target(doc_id, context)
        paths: list[str] = record.children["images"]
        if len(paths) < MIN_SLIDER_IMAGES:
            raise RecordSkipped(f"only {len(paths)} gallery images, need {MIN_SLIDER_IMAGES}")
        asset_ids = [a for a in (context.upload_image(p, "gallery") for p in paths) if a]
        if len(asset_ids) < MIN_SLIDER_IMAGES:
            raise RecordSkipped(f"only {len(asset_ids)} gallery images uploaded, need {MIN_SLIDER_IMAGES}")
        keys = KeyGenerator(f"{doc_id}:imageGallery")
        return {"_id": doc_id, "imageGallery": [{"_key": keys(), **image_ref(a)} for a in asset_ids]}


class BrandStoreTransformer(DocumentTransformer):
    """Sets ``stores`` on brands from the dealer-brand relations."""

    entity = "brand-stores"
    doc_type = "brand"
    id_prefix = "brand-"
    reference_types = (("brand", "brand-"), ("store", "store-"))
    patch_fields = ("stores",)

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        rows = read_csv(sources.path("brand_stores"), BrandDealerRow)
        by_brand = ReferenceIndex.build(rows, "BrandID", dedupe=lambda r: r.DealerID, name="brand_stores")
        records = []
        for brand_id in by_brand:
            relations = by_brand.get(brand_id)
            records.append(
                SourceRecord(
                    legacy_id=brand_id,
                    label=relations[0].BrandName or brand_id,
                    row=relations[0],
                    children={"dealers": [r.DealerID for r in relations if r.DealerID]},
                )
            )
        return records

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {
            "brands": len(records),
            "relations": sum(len(r.children["dealers"]) for r in records),
            "unique_dealers": len({d for r in records for d in r.children["dealers"]}),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        doc_id = self.document_id(record.legacy_id)
        _require_target(doc_id, context)
        refs = []
        for dealer_id in record.children["dealers"]:
            ref = context.references.ref(
                f"store-{dealer_id}", source=doc_id, field="stores", key=f"store-{dealer_id}"
            )
            if ref:
                refs.append(ref)
        if not refs:
            raise RecordSkipped("no migrated stores for this brand")
        return {"_id": doc_id, "stores": refs}


# =============================================================================
# Reviews
# =============================================================================

REVIEW_DESTINATIONS = frozenset({"page", "pdf", "external"})
_REVIEW_SLUG_PREFIXES = ("/recenzje/pdf/", "/recenzje/", "/pl/", "/")
_DOMAIN_RE = re.compile(r"^(?:[a-z0-9-]+\.)+[a-z]{2,10}(?:/.*)?$", re.IGNORECASE)


def clean_text(value: str | None) -> str:
    """Collapse whitespace (non-breaking spaces included); ``"NULL"`` counts as empty."""
    text = re.sub(r"\s+", " ", (value or "").replace("\u00a0", " ")).strip()
    return "" if text.lower() == "null" else text


def infer_website(name: str) -> str | None:
    """Authors named after their site (``hifi.pl``) get it as their website."""
    bare = re.sub(r"^(?:https?://)?(?:www\.)?", "", name.strip(), flags=re.IGNORECASE)
    if not bare or re.search(r"\s", bare) or not _DOMAIN_RE.match(bare):
        return None
    return name if re.match(r"^https?://", name, re.IGNORECASE) else f"https://{name}"


def review_slug(slug: str | None, title: str, prefix: str) -> str | None:
    value = clean_text(slug) or slugify(title)
    if not value:
        return None
    for legacy_prefix in _REVIEW_SLUG_PREFIXES:
        if value.startswith(legacy_prefix):
            value = value[len(legacy_prefix) :]
    return f"{prefix}{value.rstrip('/')}/".lower()


def review_author_id(name: str) -> str:
    return f"review-author-{slugify(name)}"


def iso_timestamp(value: str | None) -> str | None:
    text = clean_text(value)
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("date_unparsed", value=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


class ReviewAuthorTransformer(DocumentTransformer):
    entity = "review-authors"
    doc_type = "reviewAuthor"
    id_prefix = "review-author-"

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        best: dict[str, tuple[int, str]] = {}
        for row in read_csv(sources.path("review_authors"), ReviewAuthorRow):
            name = clean_text(row.AuthorName)
            slug = slugify(name)
            if not slug:
                continue
            count = as_int(row.ReviewCount)
            current = best.get(slug)
            # more reviews wins; on a tie the longer spelling wins
            if current is None or (count, len(name)) > (current[0], len(current[1])):
                best[slug] = (count, name)

        ordered = sorted(best.items(), key=lambda item: item[1][0], reverse=True)
        return [
            SourceRecord(legacy_id=slug, label=name, row=name, children={"reviews": count})
            for slug, (count, name) in ordered
        ]

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        return {
            "authors": len(records),
            "reviews": sum(r.children["reviews"] for r in records),
            "with_website": sum(1 for r in records if infer_website(r.row)),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        name: str = record.row
        doc: dict[str, Any] = {"_id": self.document_id(record.legacy_id), "_type": self.doc_type, "name": name}
        website = infer_website(name)
        if website:
            doc["websiteUrl"] = website
        return doc


class ReviewTransformer(DocumentTransformer):
    """
    Reviews come in three destinations: a page with its own content, a PDF
    with its own slug, or a link to an external publication. Every review
    needs a cover image.
    """

    entity = "reviews"
    doc_type = "review"
    id_prefix = "review-"
    reference_types = (("reviewAuthor", "review-author-"),)

    def load_records(self, sources: SourcesConfig) -> list[SourceRecord]:
        records = []
        for row in read_csv(sources.path("reviews"), ReviewRow):
            if as_int(row.ID) <= 0:
                logger.warning("review_row_without_id", title=row.PageTitle)
                continue
            records.append(SourceRecord(legacy_id=row.ID, label=row.PageTitle or row.MenuTitle or row.ID, row=row))
        return records

    @staticmethod
    def destination(row: ReviewRow) -> str:
        value = clean_text(row.ReviewType).lower()
        return value if value in REVIEW_DESTINATIONS else "page"

    def statistics(self, records: list[SourceRecord]) -> dict[str, int]:
        destinations = [self.destination(r.row) for r in records]
        return {
            "reviews": len(records),
            "pages": destinations.count("page"),
            "pdfs": destinations.count("pdf"),
            "external": destinations.count("external"),
            "with_cover": sum(1 for r in records if r.row.CoverFilename),
            "unique_authors": len({slugify(clean_text(r.row.AuthorName)) for r in records if r.row.AuthorName}),
        }

    def transform(self, record: SourceRecord, context: MigrationContext) -> dict[str, Any]:
        row: ReviewRow = record.row
        doc_id = self.document_id(record.legacy_id)
        destination = self.destination(row)
        title = clean_text(row.PageTitle) or clean_text(row.MenuTitle) or f"Review {record.legacy_id}"

        cover = context.upload_image(row.CoverFilename, "preview")
        if not cover:
            raise RecordSkipped("cover image missing")

        doc: dict[str, Any] = {"_id": doc_id, "_type": self.doc_type, "destinationType": destination}
        author = clean_text(row.AuthorName)
        if author and author.lower() != "unknown":
            ref = context.references.ref(review_author_id(author), source=doc_id, field="author")
            if ref:
                doc["author"] = ref
        published = iso_timestamp(row.ArticleDate)
        if published:
            doc["publishedDate"] = published
        doc["title"] = blocks_to_sanity(text_to_blocks(title, KeyGenerator(f"{doc_id}:title")))
        doc["image"] = image_ref(cover)

        if destination == "page":
            content = context.converter.convert(row.BoxContent, KeyGenerator(f"{doc_id}:content"))
            blocks = context.resolve_images(content.blocks)
            if not blocks:
                raise RecordSkipped("review page has no content")
            doc["slug"] = slug_field(self._slug(row, title, "/recenzje/"))
            doc["content"] = blocks_to_sanity(blocks)
            doc["overrideGallery"] = False
            doc["pageBuilder"] = []
            doc["seo"] = {"title": title, "noIndex": False, "hideFromList": False}
        elif destination == "pdf":
            pdf = context.upload_file(row.PDFFilename)
            if not pdf:
                raise RecordSkipped("review PDF missing")
            doc["pdfSlug"] = slug_field(self._slug(row, title, "/recenzje/pdf/"))
            doc["pdfFile"] = {"_type": "file", "asset": {"_type": "reference", "_ref": pdf}}
        else:
            url = clean_text(row.ExternalLink)
            if not url:
                raise RecordSkipped("external review has no link")
            doc["externalUrl"] = url

        if clean_text(row.Description):
            description = context.converter.convert(row.Description, KeyGenerator(f"{doc_id}:description"))
            blocks = context.resolve_images(description.blocks)
            if blocks:
                doc["description"] = blocks_to_sanity(blocks)
        return doc

    @staticmethod
    def _slug(row: ReviewRow, title: str, prefix: str) -> str:
        slug = review_slug(row.Slug, title, prefix)
        if not slug:
            raise TransformError(f"review {row.ID} has no usable slug")
        return slug


TRANSFORMERS: dict[str, type[DocumentTransformer]] = {
    t.entity: t
    for t in (
        AwardTransformer,
        BrandTransformer,
        ProductTransformer,
        StoreTransformer,
        ArticleTransformer,
        CategoryTransformer,
        BrandGalleryTransformer,
        BrandStoreTransformer,
        ReviewAuthorTransformer,
        ReviewTransformer,
    )
}


def get_transformer(entity: str) -> DocumentTransformer:
    try:
        return TRANSFORMERS[entity]()
    except KeyError:
        raise ValueError(f"unknown entity: {entity} (expected one of {', '.join(TRANSFORMERS)})") from None
