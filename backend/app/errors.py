from __future__ import annotations

from typing import List, Tuple


class CatalogError(Exception):
    """Base class for every error raised by the ingestion pipeline."""


class ValidationError(CatalogError, ValueError):
    """Bad or missing request/message field. Never retried."""


class UpstreamUnavailable(CatalogError):
    """The FIPE API could not be reached or answered with an error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DuplicateKey(CatalogError):
    """A row with the same natural key already exists."""


class NotFound(CatalogError):
    pass


class InternalError(CatalogError):
    pass


class PublishError(CatalogError):
    """A message could not be handed to the queue."""


class BatchPublishError(PublishError):
    def __init__(self, vehicle_type: str, failures: List[Tuple[str, Exception]], total: int) -> None:
        self.vehicle_type = vehicle_type
        self.failures = failures
        self.total = total
        codes = ", ".join(str(code) for code, _ in failures[:10])
        super().__init__(
            f"{len(failures)} of {total} messages for {vehicle_type} failed to publish: {codes}"
        )


__all__ = [
    "CatalogError",
    "ValidationError",
    "UpstreamUnavailable",
    "DuplicateKey",
    "NotFound",
    "InternalError",
    "PublishError",
    "BatchPublishError",
]
