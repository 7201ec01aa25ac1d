"""
CLI Entry Point
================
Command-line interface for the legacy content migration.

    audiofast-migrate [--config PATH] [--log-level LEVEL] <entity> [options]
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from audiofast_migration.config import LogLevel, MigrationConfig, load_config
from audiofast_migration.engine.migration_engine import MigrationEngine, MigrationOptions, MigrationReport
from audiofast_migration.errors import MigrationError, SetupError, SourceFileError
from audiofast_migration.logging_config import setup_logging

console = Console()

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--config", "-c", type=click.Path(exists=False), default="migration_config.yaml", help="Config file path")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]), default=None)
@click.pass_context
def main(ctx: click.Context, config: str, log_level: str | None) -> None:
    """Audiofast legacy content migration (SilverStripe → Sanity)."""
    cfg = load_config(Path(config))
    if log_level:
        cfg.log_level = LogLevel(log_level)
    setup_logging(level=cfg.log_level.value, log_format="console")
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg


def migration_options(func):
    """Options shared by every entity command."""
    options = [
        click.option("--dry-run", "-d", is_flag=True, help="Transform and report, write nothing"),
        click.option("--verbose", "-v", is_flag=True, help="Log progress for every record"),
        click.option("--limit", type=click.IntRange(min=1), default=None, help="Process only the first N records"),
        click.option("--id", "legacy_id", default=None, help="Process only the record with this legacy ID"),
        click.option("--skip-existing", is_flag=True, help="Skip records whose document already exists"),
        click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Documents per transaction [10]"),
        click.option("--rollback", is_flag=True, help="Delete every migrated document of this type"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _run(ctx: click.Context, entity: str, **kwargs) -> None:
    config: MigrationConfig = ctx.obj["config"]
    options = MigrationOptions(**kwargs)

    if options.dry_run:
        console.print("[yellow]DRY RUN mode: nothing will be written.[/yellow]\n")
    if options.rollback and not options.dry_run:
        console.print(f"[bold red]Rolling back all migrated {entity}...[/bold red]")

    try:
        report = MigrationEngine(config).run(entity, options)
    except SourceFileError as exc:
        console.print(f"[red]Source file error:[/red] {exc}")
        sys.exit(1)
    except SetupError as exc:
        console.print(f"[red]Setup error:[/red] {exc}")
        sys.exit(1)
    except MigrationError as exc:
        console.print(f"[red]Migration aborted:[/red] {exc}")
        sys.exit(1)

    _print_report(report)


def _print_report(report: MigrationReport) -> None:
    title = f"Migration Summary: {report.entity}"
    if report.dry_run:
        title += " (dry run)"
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    if report.rollback:
        table.add_row("Deleted", str(report.deleted))
        label = "Would delete" if report.dry_run else "Remaining"
        remaining = report.remaining_after_rollback
        table.add_row(label, "unknown" if remaining is None else str(remaining))
    else:
        table.add_row("Source records", str(report.source_records))
        table.add_row("Processed", str(report.total))
        table.add_row("Written" if not report.dry_run else "Would write", f"[green]{report.created}[/green]")
        table.add_row("Skipped", f"[yellow]{report.skipped}[/yellow]")
        table.add_row("Failed", f"[red]{report.failed}[/red]")
        table.add_row("Missing references", str(len(report.missing_references)))
        table.add_row("Assets uploaded", str(report.assets_uploaded))
        table.add_row("Assets failed", str(report.assets_failed))
        table.add_row("Assets from cache", str(report.assets_cached))
        table.add_row("Unresolved links", str(report.unresolved_links))
    table.add_row("Duration", f"{report.duration:.1f}s")
    console.print(table)

    if report.failures:
        failures = Table(title="Failed Records")
        failures.add_column("Legacy ID", style="cyan")
        failures.add_column("Name")
        failures.add_column("Reason", style="red")
        for r in report.failures:
            failures.add_row(r.legacy_id, r.label, r.reason or "")
        console.print(failures)


@main.command(context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def awards(ctx: click.Context, **kwargs) -> None:
    """Migrate awards (with product references)."""
    _run(ctx, "awards", **kwargs)


@main.command(context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def brands(ctx: click.Context, **kwargs) -> None:
    """Migrate brands (logos, banners, descriptions)."""
    _run(ctx, "brands", **kwargs)


@main.command(context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def products(ctx: click.Context, **kwargs) -> None:
    """Migrate products (gallery, details, PDFs, brand and category references)."""
    _run(ctx, "products", **kwargs)


@main.command(context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def stores(ctx: click.Context, **kwargs) -> None:
    """Migrate published dealers from the SQL dump."""
    _run(ctx, "stores", **kwargs)


@main.command(context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def articles(ctx: click.Context, **kwargs) -> None:
    """Migrate blog articles."""
    _run(ctx, "articles", **kwargs)


@main.command(context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def categories(ctx: click.Context, **kwargs) -> None:
    """Migrate product subcategories from the SQL dump."""
    _run(ctx, "categories", **kwargs)


@main.command("brand-galleries", context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def brand_galleries(ctx: click.Context, **kwargs) -> None:
    """Set image galleries on migrated brands."""
    _run(ctx, "brand-galleries", **kwargs)


@main.command("brand-stores", context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def brand_stores(ctx: click.Context, **kwargs) -> None:
    """Link migrated brands to the stores that sell them."""
    _run(ctx, "brand-stores", **kwargs)


@main.command("review-authors", context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def review_authors(ctx: click.Context, **kwargs) -> None:
    """Migrate review authors (publications and reviewers)."""
    _run(ctx, "review-authors", **kwargs)


@main.command(context_settings=CONTEXT_SETTINGS)
@migration_options
@click.pass_context
def reviews(ctx: click.Context, **kwargs) -> None:
    """Migrate reviews (pages, PDFs and external links)."""
    _run(ctx, "reviews", **kwargs)


if __name__ == "__main__":
    main()
