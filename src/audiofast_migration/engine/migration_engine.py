"""
Migration Engine - Orchestrator
================================
Runs one entity migration end to end:

    load source → load existing target state → (rollback | transform → batch write) → report

Records are processed strictly in source order, one at a time. Each batch
of documents is committed as a single transaction; a failed batch marks
only its own records as failed and the run carries on.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from audiofast_migration.content.converter import HeadingPromoter, HtmlConverter
from audiofast_migration.content.links import LinkResolver
from audiofast_migration.engine.asset_pipeline import AssetCache, AssetPipeline, LegacyDownloader
from audiofast_migration.engine.sanity_client import SanityClient
from audiofast_migration.engine.transformers import (
    DocumentTransformer,
    MigrationContext,
    MissingReference,
    ReferenceResolver,
    SourceRecord,
    get_transformer,
    normalize_slug,
)
from audiofast_migration.errors import RecordSkipped, SanityError, TransformError
from audiofast_migration.logging_config import get_logger
from audiofast_migration.source.csv_reader import read_optional_csv
from audiofast_migration.source.models import ProductSlugRow, SiteTreeRow

if TYPE_CHECKING:
    from audiofast_migration.config import MigrationConfig

logger = get_logger(__name__)


@dataclass
class MigrationOptions:
    """Per-run switches (mirrors the CLI flags)."""

    dry_run: bool = False
    limit: int | None = None
    legacy_id: str | None = None
    skip_existing: bool = False
    batch_size: int | None = None
    rollback: bool = False
    verbose: bool = False


@dataclass
class RecordResult:
    """Outcome for a single source record."""

    legacy_id: str
    label: str
    status: str  # "created", "skipped", "failed"
    document_id: str | None = None
    reason: str | None = None


@dataclass
class MigrationReport:
    """Aggregated result of one run."""

    entity: str
    dry_run: bool = False
    rollback: bool = False
    source_records: int = 0
    results: list[RecordResult] = field(default_factory=list)
    missing_references: list[MissingReference] = field(default_factory=list)
    statistics: dict[str, int] = field(default_factory=dict)
    deleted: int = 0
    # None when the post-rollback re-query failed
    remaining_after_rollback: int | None = 0
    assets_uploaded: int = 0
    assets_failed: int = 0
    assets_cached: int = 0
    unresolved_links: int = 0
    duration: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def created(self) -> int:
        return sum(1 for r in self.results if r.status == "created")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    @property
    def failures(self) -> list[RecordResult]:
        return [r for r in self.results if r.status == "failed"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "dry_run": self.dry_run,
            "rollback": self.rollback,
            "source_records": self.source_records,
            "summary": {
                "processed": self.total,
                "created": self.created,
                "skipped": self.skipped,
                "failed": self.failed,
                "deleted": self.deleted,
                "remaining_after_rollback": self.remaining_after_rollback,
                "missing_references": len(self.missing_references),
                "assets_uploaded": self.assets_uploaded,
                "assets_failed": self.assets_failed,
                "assets_cached": self.assets_cached,
                "unresolved_links": self.unresolved_links,
            },
            "statistics": dict(self.statistics),
            "failures": [
                {"legacy_id": r.legacy_id, "label": r.label, "reason": r.reason} for r in self.failures
            ],
            "missing_references": [
                {"source": m.source_id, "field": m.field, "target": m.target} for m in self.missing_references
            ],
            "duration_seconds": round(self.duration, 2),
        }


class MigrationEngine:
    """
    Orchestrates a single-entity migration run.

    Args:
        config: loaded migration configuration
        store: target client; built from ``config.sanity`` when omitted
        downloader: legacy host downloader; built from ``config.legacy`` when omitted
    """

    def __init__(
        self,
        config: MigrationConfig,
        store: SanityClient | None = None,
        downloader: LegacyDownloader | None = None,
    ) -> None:
        self.config = config
        self.store = store or SanityClient.from_config(config.sanity)
        self.downloader = downloader or LegacyDownloader.from_config(config.legacy)

    # =========================================================================
    # Public entry point
    # =========================================================================

    def run(self, entity: str, options: MigrationOptions | None = None) -> MigrationReport:
        """
        Migrate (or roll back) one entity type.

        Raises:
            SetupError: missing token for a live run.
            SourceFileError: a required source file is missing or unreadable.
        """
        options = options or MigrationOptions()
        transformer = get_transformer(entity)
        if not options.dry_run:
            self.config.require_token()

        started = time.monotonic()
        report = MigrationReport(entity=entity, dry_run=options.dry_run, rollback=options.rollback)
        logger.info("migration_started", entity=entity, dry_run=options.dry_run, rollback=options.rollback)

        if options.rollback:
            self._rollback(transformer, options, report)
        else:
            records = transformer.load_records(self.config.sources)
            report.source_records = len(records)
            report.statistics = transformer.statistics(records)
            logger.info("source_statistics", entity=entity, **report.statistics)
            self._migrate(transformer, records, options, report)

        report.duration = time.monotonic() - started
        logger.info(
            "migration_completed",
            entity=entity,
            created=report.created,
            skipped=report.skipped,
            failed=report.failed,
            deleted=report.deleted,
            missing_references=len(report.missing_references),
            duration=round(report.duration, 2),
        )
        return report

    # =========================================================================
    # Existing target state
    # =========================================================================

    def _existing_ids(self, doc_type: str, prefix: str, dry_run: bool) -> set[str]:
        try:
            return self.store.ids_matching(doc_type, prefix)
        except SanityError as e:
            if not dry_run:
                raise
            logger.warning("existing_state_unavailable", type=doc_type, error=str(e))
            return set()

    def _slug_map(self, doc_type: str, dry_run: bool) -> dict[str, str]:
        try:
            rows = self.store.query(
                '*[_type == $type && defined(slug.current)]{_id, "slug": slug.current}', {"type": doc_type}
            )
        except SanityError as e:
            if not dry_run:
                raise
            logger.warning("existing_state_unavailable", type=doc_type, error=str(e))
            return {}
        slug_map: dict[str, str] = {}
        for row in rows or []:
            if row.get("slug") and row.get("_id"):
                slug_map.setdefault(normalize_slug(row["slug"]), row["_id"])
        logger.debug("slug_map_loaded", type=doc_type, count=len(slug_map))
        return slug_map

    # =========================================================================
    # Rollback
    # =========================================================================

    def _owned_ids(self, transformer: DocumentTransformer, dry_run: bool) -> set[str]:
        """IDs this entity has written: whole documents, or documents carrying its patched fields."""
        if not transformer.patch_fields:
            return self._existing_ids(transformer.doc_type, transformer.id_prefix, dry_run)
        ids: set[str] = set()
        for name in transformer.patch_fields:
            try:
                ids |= self.store.ids_with_field(transformer.doc_type, transformer.id_prefix, name)
            except SanityError as e:
                if not dry_run:
                    raise
                logger.warning("existing_state_unavailable", type=transformer.doc_type, error=str(e))
        return ids

    def _rollback(self, transformer: DocumentTransformer, options: MigrationOptions, report: MigrationReport) -> None:
        """
        Undo this entity's migration.

        Whole-document entities are deleted by ID prefix; patch entities get
        their fields unset on the documents that carry them.
        """
        ids = sorted(self._owned_ids(transformer, options.dry_run))
        logger.info("rollback_candidates", type=transformer.doc_type, count=len(ids))
        if options.dry_run:
            report.remaining_after_rollback = len(ids)
            logger.info("rollback_dry_run", type=transformer.doc_type, would_delete=len(ids))
            return

        size = self.config.rollback_batch_size
        for start in range(0, len(ids), size):
            chunk = ids[start : start + size]
            try:
                if transformer.patch_fields:
                    self.store.unset(chunk, list(transformer.patch_fields))
                else:
                    self.store.delete(chunk)
            except SanityError as e:
                logger.error("rollback_batch_failed", start=start, size=len(chunk), error=str(e))
                continue
            report.deleted += len(chunk)
            logger.info("rollback_batch_committed", deleted=len(chunk), total=report.deleted)

        try:
            remaining = self._owned_ids(transformer, dry_run=False)
        except SanityError as e:
            report.remaining_after_rollback = None
            logger.error("rollback_verification_failed", type=transformer.doc_type, error=str(e))
            return
        report.remaining_after_rollback = len(remaining)
        if remaining:
            logger.warning("rollback_incomplete", type=transformer.doc_type, remaining=len(remaining))

    # =========================================================================
    # Migration
    # =========================================================================

    def _select(self, records: list[SourceRecord], options: MigrationOptions) -> list[SourceRecord]:
        """Apply ``--id`` first; ``--limit`` only when no single ID was requested."""
        if options.legacy_id:
            selected = [r for r in records if r.legacy_id == str(options.legacy_id)]
            if not selected:
                logger.warning("record_not_found", legacy_id=options.legacy_id)
            return selected
        if options.limit is not None and options.limit > 0:
            return records[: options.limit]
        return records

    def _build_context(self, transformer: DocumentTransformer, dry_run: bool) -> MigrationContext:
        existing: set[str] = set()
        for doc_type, prefix in transformer.reference_types:
            existing |= self._existing_ids(doc_type, prefix, dry_run)
        slug_maps = {doc_type: self._slug_map(doc_type, dry_run) for doc_type in transformer.slug_types}

        sources = self.config.sources
        links = LinkResolver.from_rows(
            read_optional_csv(sources.path("product_slugs"), ProductSlugRow),
            read_optional_csv(sources.path("site_tree"), SiteTreeRow),
            site_url=self.config.legacy.site_url,
        )
        converter = HtmlConverter(link_resolver=links, asset_base_url=self.config.legacy.assets_base_url)

        cache_cfg = self.config.cache
        images = AssetPipeline(
            self.store,
            AssetCache.load(cache_cfg.image_cache_path),
            self.downloader,
            base_url=self.config.legacy.assets_base_url,
            dry_run=dry_run,
        )
        files = AssetPipeline(
            self.store,
            AssetCache.load(cache_cfg.pdf_cache_path),
            self.downloader,
            base_url=self.config.legacy.pdf_base_url,
            dry_run=dry_run,
        )
        return MigrationContext(
            references=ReferenceResolver(existing, slug_maps, dry_run=dry_run),
            converter=converter,
            assets=images,
            files=files,
            images=self.config.images,
            heading_promoter=HeadingPromoter.from_config(self.config.headings),
            dry_run=dry_run,
        )

    def _migrate(
        self,
        transformer: DocumentTransformer,
        records: list[SourceRecord],
        options: MigrationOptions,
        report: MigrationReport,
    ) -> None:
        selected = self._select(records, options)
        context = self._build_context(transformer, options.dry_run)
        existing_own: set[str] = set()
        if options.skip_existing:
            existing_own = self._owned_ids(transformer, options.dry_run)

        batch_size = options.batch_size or self.config.batch_size
        batch: list[tuple[RecordResult, dict[str, Any]]] = []

        for index, record in enumerate(selected, start=1):
            doc_id = transformer.document_id(record.legacy_id)
            result = RecordResult(legacy_id=record.legacy_id, label=record.label, status="pending", document_id=doc_id)
            report.results.append(result)

            if options.skip_existing and doc_id in existing_own:
                result.status, result.reason = "skipped", "already exists"
                logger.debug("record_skipped_existing", document_id=doc_id)
                continue

            try:
                document = transformer.transform(record, context)
            except RecordSkipped as e:
                result.status, result.reason = "skipped", str(e)
                logger.info("record_skipped", legacy_id=record.legacy_id, reason=str(e))
                continue
            except TransformError as e:
                result.status, result.reason = "failed", str(e)
                logger.error("record_transform_failed", legacy_id=record.legacy_id, label=record.label, error=str(e))
                continue
            except Exception as e:
                result.status, result.reason = "failed", f"{type(e).__name__}: {e}"
                logger.error(
                    "record_transform_crashed",
                    legacy_id=record.legacy_id,
                    label=record.label,
                    error=result.reason,
                    exc_info=True,
                )
                continue
            finally:
                report.missing_references.extend(context.references.drain_missing())

            if options.verbose:
                logger.info("record_transformed", progress=f"{index}/{len(selected)}", document_id=doc_id)
            batch.append((result, document))
            if len(batch) >= batch_size:
                self._write_batch(transformer, batch, context, options.dry_run)
                batch = []

        if batch:
            self._write_batch(transformer, batch, context, options.dry_run)

        pipelines = [p for p in (context.assets, context.files) if p is not None]
        report.assets_uploaded = sum(p.uploaded for p in pipelines)
        report.assets_failed = sum(p.failed for p in pipelines)
        report.assets_cached = sum(p.cache.hits for p in pipelines)
        report.unresolved_links = len(context.converter.link_resolver.unresolved)

    def _write_batch(
        self,
        transformer: DocumentTransformer,
        batch: list[tuple[RecordResult, dict[str, Any]]],
        context: MigrationContext,
        dry_run: bool,
    ) -> None:
        """Commit one batch as a single transaction (replace, or field patches for patch entities)."""
        ids = [doc["_id"] for _, doc in batch]
        if dry_run:
            for result, _ in batch:
                result.status = "created"
            logger.info("batch_dry_run", would_write=len(batch), ids=ids)
            return

        try:
            documents = [doc for _, doc in batch]
            if transformer.patch_fields:
                self.store.patch_set(documents)
            else:
                self.store.create_or_replace(documents)
        except SanityError as e:
            for result, _ in batch:
                result.status, result.reason = "failed", f"batch write failed: {e}"
            logger.error("batch_failed", ids=ids, error=str(e))
        else:
            for result, _ in batch:
                result.status = "created"
            logger.info("batch_committed", count=len(batch), ids=ids)
        finally:
            context.assets.save()
            if context.files is not None:
                context.files.save()
