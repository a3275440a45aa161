from .base import AlertSink, LicenseGate, LogSink, ReportStore, Severity

__all__ = [
    "AlertSink",
    "LicenseGate",
    "LogSink",
    "ReportStore",
    "Severity",
]
