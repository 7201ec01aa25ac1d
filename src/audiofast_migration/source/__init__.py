"""Readers for legacy CSV exports and SQL dumps."""
