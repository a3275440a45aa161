"""
Collaborator interfaces consumed by the reconciliation pass: license gate,
log sink, alert sink, and report store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class Severity(str, Enum):
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"
    ALERT = "Alert"


class LicenseGate(ABC):
    @abstractmethod
    async def check_license(
        self,
        tenant: str,
        standard_name: str,
        required_capabilities: tuple[str, ...],
    ) -> bool:
        """True if the tenant holds at least one of the required capabilities."""
        raise NotImplementedError


class LogSink(ABC):
    @abstractmethod
    def log(self, api: str, tenant: str, message: str, severity: Severity) -> None:
        raise NotImplementedError


class AlertSink(ABC):
    @abstractmethod
    def alert(
        self,
        message: str,
        object: Any,
        tenant: str,
        standard_name: str,
        standard_id: str,
    ) -> None:
        raise NotImplementedError


class ReportStore(ABC):
    @abstractmethod
    def set_compare_field(self, field_name: str, value: Any, tenant: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_bpa_field(self, field_name: str, value: Any, store_as: str, tenant: str) -> None:
        raise NotImplementedError
