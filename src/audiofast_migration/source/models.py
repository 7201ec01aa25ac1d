"""
Row models for the legacy SilverStripe exports.
Each model mirrors the header row of one CSV export (or the column order of
one SQL table) so that parsed records stay as close to the source as possible.
Models are immutable once parsed.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class SourceRow(BaseModel):
    """Base for every parsed source record: string / optional-string fields only."""

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)


# =============================================================================
# Awards
# =============================================================================


class AwardRow(SourceRow):
    AwardID: str | None = None
    AwardName: str | None = None
    LogoID: str | None = None
    LogoFilename: str | None = None


class AwardProductRow(SourceRow):
    AwardID: str | None = None
    ProductID: str | None = None


# =============================================================================
# Brands
# =============================================================================


class BrandRow(SourceRow):
    """One brand spans several rows, one per text box attached to its page."""

    ID: str | None = None
    Name: str | None = None
    Slug: str | None = None
    LogoID: str | None = None
    LogoFilename: str | None = None
    HeroDescription: str | None = None
    BannerBoxID: str | None = None
    BigPictureID: str | None = None
    BannerImageFilename: str | None = None
    TextBoxID: str | None = None
    TextBoxContent: str | None = None


class BrandGalleryRow(SourceRow):
    BrandID: str | None = None
    BrandName: str | None = None
    BrandSlug: str | None = None
    FileID: str | None = None
    ImagePath: str | None = None
    ImageTitle: str | None = None
    SortOrder: str | None = None
    RecordID: str | None = None


class BrandDealerRow(SourceRow):
    RelationID: str | None = None
    DealerID: str | None = None
    BrandID: str | None = None
    BrandSlug: str | None = None
    BrandName: str | None = None
    DealerName: str | None = None
    DealerCity: str | None = None


# =============================================================================
# Products
# =============================================================================


class ProductRow(SourceRow):
    ProductID: str | None = None
    ProductName: str | None = None
    Subtitle: str | None = None
    ProductSlug: str | None = None
    IsArchived: str | None = None
    IsPublished: str | None = None
    IsHidden: str | None = None
    MetaTitle: str | None = None
    MetaDescription: str | None = None
    MainImageID: str | None = None
    MainImageFilename: str | None = None
    PrimaryCategoryID: str | None = None
    PrimaryCategorySlug: str | None = None
    BrandID: str | None = None
    BrandSlug: str | None = None
    BrandName: str | None = None


class ProductCategoryRow(SourceRow):
    ProductID: str | None = None
    CategoryID: str | None = None
    CategorySlug: str | None = None
    CategoryName: str | None = None


class ProductGalleryRow(SourceRow):
    ProductID: str | None = None
    BoxID: str | None = None
    SortOrder: str | None = None
    FileID: str | None = None
    ImageFilename: str | None = None
    ImageTitle: str | None = None


class ProductBoxRow(SourceRow):
    ProductID: str | None = None
    BoxID: str | None = None
    SortOrder: str | None = None
    BoxType: str | None = None  # 'text', 'hr', 'video'
    TextContent: str | None = None
    VideoUrl: str | None = None


class ProductPdfRow(SourceRow):
    old_product_id: str | None = None
    product_slug: str | None = None
    attachment_id: str | None = None
    pdf_title: str | None = None
    pdf_description: str | None = None
    file_id: str | None = None
    file_path: str | None = None


class ProductTechnicalDataRow(SourceRow):
    """One specification tab; TabContent holds the HTML tables."""

    TabID: str | None = None
    BoxID: str | None = None
    ProductID: str | None = None
    ProductName: str | None = None
    ProductSlug: str | None = None
    TabSort: str | None = None
    TabTitle: str | None = None
    TabContent: str | None = None


# =============================================================================
# Stores (SQL `Dealer` table, positional)
# =============================================================================


class DealerRow(SourceRow):
    ID: str | None = None
    ClassName: str | None = None
    LastEdited: str | None = None
    Created: str | None = None
    Sort: str | None = None
    Name: str | None = None
    City: str | None = None
    Address: str | None = None
    Phone: str | None = None
    DealerPageID: str | None = None
    Street: str | None = None
    Publish: str | None = None
    Email: str | None = None
    WWW: str | None = None
    LastEditMemberID: str | None = None


DEALER_COLUMNS: tuple[str, ...] = tuple(DealerRow.model_fields)


# =============================================================================
# Articles
# =============================================================================


class ArticleBoxRow(SourceRow):
    BoxID: str | None = None
    BlogPageID: str | None = None
    ArticleSlug: str | None = None
    ArticleTitle: str | None = None
    Sort: str | None = None
    BoxType: str | None = None
    BoxTitle: str | None = None
    YoutubeId: str | None = None
    HtmlContent: str | None = None


class ArticleImageRow(SourceRow):
    BoxID: str | None = None
    ImageID: str | None = None
    ImageSort: str | None = None
    ImageFilename: str | None = None


# =============================================================================
# Product categories (SQL `SiteTree` / `DeviceTypeItem` tables, positional)
# =============================================================================


class ProductTypePageRow(SourceRow):
    """Leading columns of a ``SiteTree`` row; ProductType pages are the subcategories."""

    ID: str | None = None
    ClassName: str | None = None
    LastEdited: str | None = None
    Created: str | None = None
    URLSegment: str | None = None
    Title: str | None = None
    MenuTitle: str | None = None
    Content: str | None = None
    MetaDescription: str | None = None


class DeviceTypeItemRow(SourceRow):
    """ProductType page → parent DeviceType link."""

    ID: str | None = None
    ClassName: str | None = None
    LastEdited: str | None = None
    Created: str | None = None
    Sort: str | None = None
    DeviceTypeID: str | None = None
    PageID: str | None = None


# =============================================================================
# Reviews
# =============================================================================


class ReviewRow(SourceRow):
    ID: str | None = None
    Slug: str | None = None
    PageTitle: str | None = None
    MenuTitle: str | None = None
    BoxContent: str | None = None
    Description: str | None = None
    AuthorName: str | None = None
    CoverID: str | None = None
    CoverFilename: str | None = None
    ArticleDate: str | None = None
    ExternalLink: str | None = None
    PDFFileID: str | None = None
    PDFFilename: str | None = None
    ReviewType: str | None = None  # 'page', 'pdf', 'external'


class ReviewAuthorRow(SourceRow):
    AuthorName: str | None = None
    ReviewCount: str | None = None


# =============================================================================
# Link resolution maps
# =============================================================================


class ProductSlugRow(SourceRow):
    """ProductID → ``brand/product`` path on the legacy site."""

    ProductID: str | None = None
    FullPath: str | None = None


class SiteTreeRow(SourceRow):
    SiteTreeID: str | None = None
    URLSegment: str | None = None
    ClassName: str | None = None
    LinkedProductID: str | None = None
