"""Typed application errors shared by the provider clients, the store and the services."""

from __future__ import annotations


class CatalogSyncError(Exception):
    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(CatalogSyncError):
    """A requested record does not exist (upstream metadata or local catalog row)."""

    status_code = 404


class UpstreamUnavailableError(CatalogSyncError):
    """A provider request failed at the transport or parsing level after retries."""

    status_code = 502


class DuplicateGameError(CatalogSyncError):
    status_code = 409
