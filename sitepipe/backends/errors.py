"""Exceptions raised by collaborator backends."""

from __future__ import annotations


class StorageAccessDenied(PermissionError):
    """The storage policy denied the request."""


class StorageQuotaExceeded(RuntimeError):
    """The storage backend refused a write because it is full."""


class UnknownDistributionError(KeyError):
    """No distribution exists with the given id."""


class TlsNegotiationError(ConnectionError):
    """The viewer offered a TLS version below the distribution's floor."""
