"""Test configuration and shared fixtures."""

import csv
from collections.abc import Callable
from itertools import count
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from audiofast_migration.config import CacheConfig, MigrationConfig, SanityConfig, SourcesConfig
from audiofast_migration.content.converter import HtmlConverter
from audiofast_migration.engine.asset_pipeline import AssetCache, AssetPipeline, Download, LegacyDownloader
from audiofast_migration.engine.sanity_client import SanityClient
from audiofast_migration.engine.transformers import MigrationContext, ReferenceResolver


@pytest.fixture
def csv_dir(tmp_path: Path) -> Path:
    path = tmp_path / "csv"
    path.mkdir()
    return path


@pytest.fixture
def default_config(tmp_path: Path, csv_dir: Path) -> MigrationConfig:
    """Config pointing at temp source and cache directories, with a token set."""
    return MigrationConfig(
        sanity=SanityConfig(project_id="testproj", dataset="test", token="test-token"),
        sources=SourcesConfig(csv_dir=csv_dir),
        cache=CacheConfig(directory=tmp_path / "cache"),
    )


@pytest.fixture
def write_csv(csv_dir: Path) -> Callable[[str, list[str], list[list[str]]], Path]:
    """Write a CSV export (header + rows) under the temp ``csv_dir``."""

    def _write(relative: str, header: list[str], rows: list[list[str]]) -> Path:
        path = csv_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        return path

    return _write


@pytest.fixture
def store() -> MagicMock:
    """Sanity client double: empty dataset, uploads return sequential asset IDs."""
    client = MagicMock(spec=SanityClient)
    client.ids_matching.return_value = set()
    client.query.return_value = []
    client.create_or_replace.return_value = {"results": []}
    client.delete.return_value = {"results": []}
    ids = count(1)
    client.upload_asset.side_effect = lambda kind, data, filename, content_type: f"{kind}-asset-{next(ids)}"
    return client


@pytest.fixture
def downloader() -> MagicMock:
    """Legacy downloader double that serves a few non-image bytes for any URL."""
    dl = MagicMock(spec=LegacyDownloader)
    dl.download.side_effect = lambda url: Download(url=url, data=b"legacy-bytes", content_type="image/png")
    return dl


@pytest.fixture
def make_context(store: MagicMock, downloader: MagicMock) -> Callable[..., MigrationContext]:
    """Build a transformer context around the store/downloader doubles."""

    def _make(
        existing_ids: set[str] | None = None,
        slug_maps: dict[str, dict[str, str]] | None = None,
        dry_run: bool = False,
    ) -> MigrationContext:
        return MigrationContext(
            references=ReferenceResolver(existing_ids or set(), slug_maps or {}, dry_run=dry_run),
            converter=HtmlConverter(),
            assets=AssetPipeline(store, AssetCache(), downloader, dry_run=dry_run),
            files=AssetPipeline(store, AssetCache(), downloader, dry_run=dry_run),
            dry_run=dry_run,
        )

    return _make
