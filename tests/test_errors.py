# ruff: noqa: S101
"""Tests for remote error normalisation."""

from __future__ import annotations

import pytest

from m365_compliance_engine.api.base import APIError
from m365_compliance_engine.errors import InventoryReadError, normalize_error

URL = "https://outlook.office365.com/adminapi/beta/contoso.onmicrosoft.com/InvokeCommand"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (None, ""),
        ("  Mailbox\n is   locked ", "Mailbox is locked"),
        (APIError(400, "Parameter is invalid", URL), "Parameter is invalid"),
        ({"error": {"message": "Outer", "details": [{"message": "Inner detail"}]}}, "Inner detail"),
        ({"error": {"code": "X", "message": "Just the message"}}, "Just the message"),
        ({"error": "flat error text"}, "flat error text"),
        (ValueError("value was bad"), "value was bad"),
        (InventoryReadError("t", "mailboxes", "Backend unavailable"), "Backend unavailable"),
    ],
)
def test_normalize_error_shapes(error, expected: str) -> None:
    assert normalize_error(error) == expected


@pytest.mark.parametrize(
    ("message", "friendly"),
    [
        (
            "AADSTS65001: The user or administrator has not consented",
            "The application has not been granted consent in this tenant.",
        ),
        (
            "Access denied",
            "Access denied. Check the application's Exchange and Graph permissions.",
        ),
        (
            "The operation couldn't be performed because object 'x' couldn't be found",
            "The target object could not be found.",
        ),
        (
            "Maximum retries exceeded while throttled",
            "The tenant is throttling requests. Try again later.",
        ),
    ],
)
def test_known_errors_get_friendly_wording(message: str, friendly: str) -> None:
    assert normalize_error(APIError(400, message, URL)) == friendly
