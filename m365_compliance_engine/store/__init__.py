from .sqlite_store import SqliteComplianceStore

__all__ = ["SqliteComplianceStore"]
