"""
Configuration management for the migration tool.
Loads settings from a YAML file, environment variables and CLI overrides.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from audiofast_migration.errors import SetupError


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class SanityConfig(BaseModel):
    """Target store (Sanity) connection settings."""

    project_id: str = Field(default="fsw3likv")
    dataset: str = Field(default="production")
    api_version: str = Field(default="2024-01-01")
    token: str = Field(default="", description="Write-capable API token, required for live runs")
    timeout: int = Field(default=120)


class LegacyConfig(BaseModel):
    """Legacy SilverStripe host settings.

    ``verify_tls`` is only ever applied to downloads from the legacy host; the
    Sanity connection always verifies certificates.
    """

    site_url: str = Field(default="https://www.audiofast.pl")
    assets_base_url: str = Field(default="https://audiofast.pl/assets/")
    pdf_base_url: str = Field(default="https://wwwold.audiofast.pl/assets/")
    verify_tls: bool = Field(default=False)
    timeout: int = Field(default=60)
    max_redirects: int = Field(default=3)

    @field_validator("assets_base_url", "pdf_base_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else f"{v}/"

    @field_validator("site_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class SourcesConfig(BaseModel):
    """Locations of the legacy exports, relative to ``csv_dir``."""

    csv_dir: Path = Field(default=Path("csv"))
    awards: str = Field(default="awards/awards-all.csv")
    award_products: str = Field(default="awards/awards-products-relations.csv")
    brands: str = Field(default="brands/brandsall.csv")
    brand_gallery: str = Field(default="brands/brand-gallery-images.csv")
    brand_stores: str = Field(default="dealers/dealer-brand-relations.csv")
    products: str = Field(default="products/products-main.csv")
    product_categories: str = Field(default="products/products-categories.csv")
    product_gallery: str = Field(default="products/products-gallery.csv")
    product_boxes: str = Field(default="products/products-boxes.csv")
    product_pdfs: str = Field(default="products/products-pdfs.csv")
    product_technical_data: str = Field(default="products/products-technical-data.csv")
    stores_sql: str = Field(default="stores/audiofast.sql")
    categories_sql: str = Field(default="stores/audiofast.sql")
    reviews: str = Field(default="reviews/reviews-all.csv")
    review_authors: str = Field(default="reviews/review-authors.csv")
    article_boxes: str = Field(default="articles/articles-text.csv")
    article_images: str = Field(default="articles/articles-gallery.csv")
    product_slugs: str = Field(default="links/product-brand-slug-mapping.csv")
    site_tree: str = Field(default="links/site-tree.csv")

    def path(self, name: str) -> Path:
        """Resolve the configured file *name* (a field of this model) against ``csv_dir``."""
        return self.csv_dir / getattr(self, name)


class CacheConfig(BaseModel):
    """On-disk upload caches (the resumability contract)."""

    directory: Path = Field(default=Path(".migration-cache"))
    image_cache_file: str = Field(default="image-cache.json")
    pdf_cache_file: str = Field(default="pdf-cache.json")

    @property
    def image_cache_path(self) -> Path:
        return self.directory / self.image_cache_file

    @property
    def pdf_cache_path(self) -> Path:
        return self.directory / self.pdf_cache_file


class ImageProfile(BaseModel):
    """Resize-within-bounds and re-encode settings for one kind of image."""

    quality: int = Field(default=80, ge=1, le=100)
    max_width: int = Field(default=1600, gt=0)
    max_height: int = Field(default=1200, gt=0)
    format: str = Field(default="WEBP")


def _default_profiles() -> dict[str, ImageProfile]:
    return {
        "logo": ImageProfile(quality=85, max_width=800, max_height=800),
        "preview": ImageProfile(quality=82, max_width=2400, max_height=1600),
        "gallery": ImageProfile(quality=80, max_width=1920, max_height=1280),
        "content": ImageProfile(quality=80, max_width=1600, max_height=1200),
    }


class ImagesConfig(BaseModel):
    """Image transcoding configuration."""

    optimize: bool = Field(default=True, description="Transcode images before upload")
    profiles: dict[str, ImageProfile] = Field(default_factory=_default_profiles)

    def profile(self, name: str) -> ImageProfile:
        return self.profiles.get(name) or self.profiles.get("content") or ImageProfile()


class HeadingConfig(BaseModel):
    """Which legacy headings are promoted to a document-level heading field.

    Example YAML::

        headings:
          promote_first_h1: true
          promote_classes: ["left-border"]
    """

    promote_first_h1: bool = Field(default=True)
    promote_classes: list[str] = Field(default_factory=lambda: ["left-border"])


class MigrationConfig(BaseModel):
    """Root configuration for a migration run."""

    batch_size: int = Field(default=10, gt=0)
    rollback_batch_size: int = Field(default=50, gt=0)
    log_level: LogLevel = Field(default=LogLevel.INFO)

    sanity: SanityConfig = Field(default_factory=SanityConfig)
    legacy: LegacyConfig = Field(default_factory=LegacyConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    headings: HeadingConfig = Field(default_factory=HeadingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> MigrationConfig:
        """Load configuration from a YAML file, with env var overrides."""
        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            data = {}

        data = cls._apply_env_overrides(data)
        return cls(**data)

    @classmethod
    def _apply_env_overrides(cls, data: dict) -> dict:
        """Apply environment variable overrides to config data."""
        env_map = {
            "sanity": {
                "project_id": "SANITY_PROJECT_ID",
                "dataset": "SANITY_DATASET",
                "token": "SANITY_API_TOKEN",
                "api_version": "SANITY_API_VERSION",
            },
            "legacy": {
                "site_url": "LEGACY_SITE_URL",
                "assets_base_url": "LEGACY_ASSETS_BASE_URL",
                "pdf_base_url": "LEGACY_PDF_BASE_URL",
            },
            "sources": {
                "csv_dir": "CSV_DIR",
            },
            "cache": {
                "directory": "MIGRATION_CACHE_DIR",
            },
        }

        for section, mappings in env_map.items():
            if section not in data or data[section] is None:
                data[section] = {}
            for key, env_var in mappings.items():
                val = os.environ.get(env_var)
                if val:
                    data[section][key] = val

        if os.environ.get("LOG_LEVEL"):
            data["log_level"] = os.environ["LOG_LEVEL"].upper()

        return data

    def require_token(self) -> str:
        """Return the Sanity write token or fail the run before any work starts."""
        if not self.sanity.token:
            raise SetupError("SANITY_API_TOKEN environment variable is required for a live migration")
        return self.sanity.token


def load_config(config_path: Path | None = None) -> MigrationConfig:
    """Load migration config from YAML file with env overrides."""
    path = config_path or Path("migration_config.yaml")
    return MigrationConfig.from_yaml(path)
