"""
Unit tests for configuration management.
"""

from pathlib import Path

import pytest

from audiofast_migration.config import (
    LegacyConfig,
    LogLevel,
    MigrationConfig,
    SourcesConfig,
    load_config,
)
from audiofast_migration.errors import SetupError


class TestMigrationConfig:
    """Tests for configuration loading and validation."""

    @pytest.mark.unit
    def test_default_config(self) -> None:
        config = MigrationConfig()
        assert config.sanity.project_id == "fsw3likv"
        assert config.sanity.dataset == "production"
        assert config.batch_size == 10
        assert config.rollback_batch_size == 50
        assert config.log_level == LogLevel.INFO

    @pytest.mark.unit
    def test_config_from_yaml(self, tmp_path: Path) -> None:
        yaml_content = """
batch_size: 25
sanity:
  dataset: staging
sources:
  csv_dir: exports
images:
  optimize: false
"""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml_content)

        config = MigrationConfig.from_yaml(config_path)
        assert config.batch_size == 25
        assert config.sanity.dataset == "staging"
        assert config.sources.csv_dir == Path("exports")
        assert config.images.optimize is False

    @pytest.mark.unit
    def test_config_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SANITY_PROJECT_ID", "envproj")
        monkeypatch.setenv("SANITY_API_TOKEN", "sk-env")
        monkeypatch.setenv("CSV_DIR", "/data/csv")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = MigrationConfig.from_yaml(tmp_path / "nonexistent.yaml")
        assert config.sanity.project_id == "envproj"
        assert config.sanity.token == "sk-env"
        assert config.sources.csv_dir == Path("/data/csv")
        assert config.log_level == LogLevel.DEBUG

    @pytest.mark.unit
    def test_config_missing_file_uses_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SANITY_PROJECT_ID", raising=False)
        config = load_config(Path("nonexistent.yaml"))
        assert config.sanity.project_id == "fsw3likv"

    @pytest.mark.unit
    def test_require_token(self) -> None:
        config = MigrationConfig()
        config.sanity.token = ""
        with pytest.raises(SetupError):
            config.require_token()
        config.sanity.token = "sk-abc"
        assert config.require_token() == "sk-abc"


class TestSectionConfig:
    @pytest.mark.unit
    def test_legacy_url_normalisation(self) -> None:
        legacy = LegacyConfig(site_url="https://example.pl/", assets_base_url="https://example.pl/assets")
        assert legacy.site_url == "https://example.pl"
        assert legacy.assets_base_url == "https://example.pl/assets/"
        assert legacy.verify_tls is False

    @pytest.mark.unit
    def test_sources_path_resolution(self) -> None:
        sources = SourcesConfig(csv_dir=Path("/exports"))
        assert sources.path("awards") == Path("/exports/awards/awards-all.csv")
        assert sources.path("stores_sql") == Path("/exports/stores/audiofast.sql")

    @pytest.mark.unit
    def test_unknown_image_profile_falls_back_to_content(self) -> None:
        images = MigrationConfig().images
        assert images.profile("logo").max_width == 800
        assert images.profile("does-not-exist") == images.profile("content")
