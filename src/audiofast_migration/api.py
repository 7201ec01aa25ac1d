"""
Public Python API
==================
High-level facade for running migrations from Python code.

Usage::

    from audiofast_migration import LegacyMigrator

    migrator = LegacyMigrator(config_path="migration_config.yaml")
    preview  = migrator.migrate("brands", dry_run=True, limit=5)
    report   = migrator.migrate("products", skip_existing=True)
    removed  = migrator.rollback("awards")
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from audiofast_migration.config import MigrationConfig, load_config
from audiofast_migration.engine.migration_engine import MigrationEngine, MigrationOptions, MigrationReport
from audiofast_migration.engine.transformers import TRANSFORMERS
from audiofast_migration.logging_config import setup_logging

if TYPE_CHECKING:
    from audiofast_migration.engine.asset_pipeline import LegacyDownloader
    from audiofast_migration.engine.sanity_client import SanityClient


class LegacyMigrator:
    """
    One-stop facade over the migration engine.

    Parameters
    ----------
    config_path : str or Path or None, optional
        Path to a ``migration_config.yaml`` file. When *None* the defaults
        are used (with environment-variable overrides).
    config : MigrationConfig or None, optional
        Pre-built config object. Takes precedence over *config_path*.
    log_level : str or None, optional
        Overrides the configured log level.
    store, downloader : optional
        Injected target client and legacy downloader (used by tests).
    """

    def __init__(
        self,
        *,
        config_path: str | Path | None = None,
        config: MigrationConfig | None = None,
        log_level: str | None = None,
        store: SanityClient | None = None,
        downloader: LegacyDownloader | None = None,
    ) -> None:
        if config is not None:
            self._config = config
        else:
            self._config = load_config(Path(config_path) if config_path is not None else None)

        setup_logging(level=log_level or self._config.log_level.value, log_format="console")
        self._engine = MigrationEngine(self._config, store=store, downloader=downloader)

    @property
    def config(self) -> MigrationConfig:
        """Return the active migration configuration."""
        return self._config

    @staticmethod
    def entities() -> list[str]:
        """Entity names accepted by :meth:`migrate` and :meth:`rollback`."""
        return list(TRANSFORMERS)

    def migrate(
        self,
        entity: str,
        *,
        dry_run: bool = False,
        limit: int | None = None,
        legacy_id: str | None = None,
        skip_existing: bool = False,
        batch_size: int | None = None,
        verbose: bool = False,
    ) -> MigrationReport:
        """
        Migrate one entity type.

        Parameters
        ----------
        entity : str
            One of :meth:`entities`.
        dry_run : bool
            Transform and report without writing anything.
        limit : int or None
            Process only the first *limit* records (ignored with *legacy_id*).
        legacy_id : str or None
            Process only the record with this legacy ID.
        """
        options = MigrationOptions(
            dry_run=dry_run,
            limit=limit,
            legacy_id=legacy_id,
            skip_existing=skip_existing,
            batch_size=batch_size,
            verbose=verbose,
        )
        return self._engine.run(entity, options)

    def rollback(self, entity: str, *, dry_run: bool = False) -> MigrationReport:
        """Delete every migrated document of *entity* (or just count them with *dry_run*)."""
        return self._engine.run(entity, MigrationOptions(dry_run=dry_run, rollback=True))
