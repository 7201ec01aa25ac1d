"""Transformation, asset upload and write orchestration."""
