"""Reporting package — run report output."""

from .json_export import export_run_json

__all__ = ["export_run_json"]
