"""
Error types for the reconciliation pass, and normalisation of the loosely
shaped errors the remote admin APIs return into one readable message.
"""

from __future__ import annotations

import re
from typing import Any

from .api.base import APIError, extract_error_message


class ReconciliationError(Exception):
    """Base class for errors raised inside a reconciliation pass."""
    pass


class StateReadError(ReconciliationError):
    """The tenant state could not be read; the pass must abort."""
    def __init__(self, tenant: str, standard: str, message: str):
        self.tenant = tenant
        self.standard = standard
        self.message = message
        super().__init__(f"Could not get the {standard} state for {tenant}. Error: {message}")


class InventoryReadError(ReconciliationError):
    """An object inventory query failed; only that remediation is skipped."""
    def __init__(self, tenant: str, description: str, message: str):
        self.tenant = tenant
        self.description = description
        self.message = message
        super().__init__(f"Could not list {description} for {tenant}. Error: {message}")


class LicenseCheckError(ReconciliationError):
    """The license gate could not determine entitlement."""
    pass


# Known remote messages mapped to something an operator can act on
_KNOWN_ERRORS = [
    (re.compile(r"AADSTS65001|has not consented", re.IGNORECASE),
     "The application has not been granted consent in this tenant."),
    (re.compile(r"AADSTS700016|was not found in the directory", re.IGNORECASE),
     "The application is not registered in this tenant."),
    (re.compile(r"AADSTS7000215|Invalid client secret", re.IGNORECASE),
     "The application credential is invalid or expired."),
    (re.compile(r"Access denied|Forbidden|Authorization_RequestDenied", re.IGNORECASE),
     "Access denied. Check the application's Exchange and Graph permissions."),
    (re.compile(r"couldn't be found|could not be found|ManagementObjectNotFound", re.IGNORECASE),
     "The target object could not be found."),
    (re.compile(r"Maximum retries exceeded|TooManyRequests", re.IGNORECASE),
     "The tenant is throttling requests. Try again later."),
]

_WHITESPACE = re.compile(r"\s+")


def normalize_error(error: Any) -> str:
    """
    Reduce any remote error shape (exception, OData body, plain string) to
    one line of text, rewriting well-known failures into friendlier wording.
    """
    if error is None:
        return ""
    if isinstance(error, APIError):
        message = error.message
    elif isinstance(error, ReconciliationError) and hasattr(error, "message"):
        message = error.message
    elif isinstance(error, BaseException):
        message = str(error) or type(error).__name__
    else:
        message = extract_error_message(error, fallback=str(error))

    message = _WHITESPACE.sub(" ", message).strip()
    for pattern, friendly in _KNOWN_ERRORS:
        if pattern.search(message):
            return friendly
    return message
