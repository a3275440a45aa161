"""Remote admin API clients — Exchange Online and Microsoft Graph."""

from .base import APIError, BaseAPIClient, extract_error_message
from .exchange import ExchangeClient, cmdlet_input
from .graph import GraphClient

__all__ = [
    "APIError",
    "BaseAPIClient",
    "extract_error_message",
    "ExchangeClient",
    "cmdlet_input",
    "GraphClient",
]
