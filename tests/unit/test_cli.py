"""
Unit tests for the command-line interface.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from audiofast_migration import cli
from audiofast_migration.engine.migration_engine import MigrationOptions, MigrationReport, RecordResult
from audiofast_migration.errors import SanityError, SetupError, SourceFileError, TransformError


@pytest.fixture
def engine_cls(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace the engine used by the CLI with a mock returning an empty report."""
    mock_cls = MagicMock()
    mock_cls.return_value.run.return_value = MigrationReport(entity="awards")
    monkeypatch.setattr(cli, "MigrationEngine", mock_cls)
    return mock_cls


@pytest.fixture
def config_args(tmp_path: Path) -> list[str]:
    return ["--config", str(tmp_path / "missing.yaml")]


class TestCli:
    @pytest.mark.unit
    def test_short_help_lists_entities(self) -> None:
        result = CliRunner().invoke(cli.main, ["-h"])
        assert result.exit_code == 0
        entities = ("awards", "brands", "products", "stores", "articles", "categories", "brand-galleries", "reviews")
        for entity in entities:
            assert entity in result.output

    @pytest.mark.unit
    def test_options_forwarded_to_engine(self, engine_cls: MagicMock, config_args: list[str]) -> None:
        result = CliRunner().invoke(
            cli.main, [*config_args, "products", "-d", "--limit", "5", "--id", "42", "--batch-size", "3", "-v"]
        )

        assert result.exit_code == 0, result.output
        entity, options = engine_cls.return_value.run.call_args.args
        assert entity == "products"
        assert options == MigrationOptions(dry_run=True, limit=5, legacy_id="42", batch_size=3, verbose=True)
        assert "DRY RUN" in result.output

    @pytest.mark.unit
    def test_rollback_flag(self, engine_cls: MagicMock, config_args: list[str]) -> None:
        engine_cls.return_value.run.return_value = MigrationReport(entity="stores", rollback=True, deleted=7)

        result = CliRunner().invoke(cli.main, [*config_args, "stores", "--rollback"])

        assert result.exit_code == 0
        assert engine_cls.return_value.run.call_args.args[1].rollback is True
        assert "Deleted" in result.output

    @pytest.mark.unit
    def test_summary_lists_failures(self, engine_cls: MagicMock, config_args: list[str]) -> None:
        report = MigrationReport(entity="awards")
        report.results = [
            RecordResult("1", "Best Buy", "created"),
            RecordResult("2", "Broken", "failed", reason="award 2 has no name"),
        ]
        engine_cls.return_value.run.return_value = report

        result = CliRunner().invoke(cli.main, [*config_args, "awards"])

        assert result.exit_code == 0
        assert "Migration Summary" in result.output
        assert "Failed Records" in result.output
        assert "award 2 has no name" in result.output

    @pytest.mark.unit
    @pytest.mark.parametrize("error", [SetupError("no token"), SourceFileError("csv/awards.csv", "file not found")])
    def test_setup_errors_exit_nonzero(self, engine_cls: MagicMock, config_args: list[str], error: Exception) -> None:
        engine_cls.return_value.run.side_effect = error

        result = CliRunner().invoke(cli.main, [*config_args, "awards"])

        assert result.exit_code == 1
        assert "error" in result.output.lower()

    @pytest.mark.unit
    @pytest.mark.parametrize("error", [SanityError("HTTP 500: internal", status_code=500), TransformError("bad state")])
    def test_store_errors_exit_cleanly(self, engine_cls: MagicMock, config_args: list[str], error: Exception) -> None:
        engine_cls.return_value.run.side_effect = error

        result = CliRunner().invoke(cli.main, [*config_args, "awards"])

        assert result.exit_code == 1
        assert "Migration aborted" in result.output
        assert not isinstance(result.exception, (SanityError, TransformError))

    @pytest.mark.unit
    def test_unknown_rollback_remainder(self, engine_cls: MagicMock, config_args: list[str]) -> None:
        engine_cls.return_value.run.return_value = MigrationReport(
            entity="awards", rollback=True, deleted=3, remaining_after_rollback=None
        )

        result = CliRunner().invoke(cli.main, [*config_args, "awards", "--rollback"])

        assert result.exit_code == 0
        assert "unknown" in result.output

    @pytest.mark.unit
    def test_invalid_limit_rejected(self, engine_cls: MagicMock, config_args: list[str]) -> None:
        result = CliRunner().invoke(cli.main, [*config_args, "awards", "--limit", "0"])
        assert result.exit_code == 2
        engine_cls.return_value.run.assert_not_called()
