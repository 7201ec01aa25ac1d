"""
Audiofast legacy content migration.

Batch tools that move SilverStripe/MySQL exports (CSV files and raw SQL dumps)
into Sanity documents: parsing, HTML to portable text conversion, asset
upload with an on-disk cache, reference resolution and idempotent
batch writes with rollback.
"""

__version__ = "0.1.0"

from audiofast_migration.api import LegacyMigrator

__all__ = ["LegacyMigrator", "__version__"]
