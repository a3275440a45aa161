from .reader import RemoteStateReader

__all__ = ["RemoteStateReader"]
