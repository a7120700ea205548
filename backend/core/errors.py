"""
Error taxonomy for markup payload ingestion.

Every failure aborts the ingestion transaction and reaches the caller as one of
these types. Location fields say which thread/comment of the payload failed so
the page can be re-extracted.
"""

from typing import Any, Dict, List, Optional


class IngestionError(Exception):
    """Base class for ingestion failures."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        scraped_data_id: Optional[str] = None,
        thread_index: Optional[int] = None,
        comment_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.scraped_data_id = scraped_data_id
        self.thread_index = thread_index
        self.comment_index = comment_index

    def location(self) -> str:
        parts = []
        if self.thread_index is not None:
            parts.append(f"threads[{self.thread_index}]")
        if self.comment_index is not None:
            parts.append(f"comments[{self.comment_index}]")
        return ".".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "scraped_data_id": self.scraped_data_id,
            "thread_index": self.thread_index,
            "comment_index": self.comment_index,
            "retryable": self.retryable,
        }

    def __str__(self) -> str:
        location = self.location()
        return f"{self.message} (at {location})" if location else self.message


class PayloadValidationError(IngestionError):
    """A required field is missing or malformed in the scraped payload. Not retried."""

    def __init__(self, message: str, *, field: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        data["errors"] = self.errors
        return data


class ConstraintError(IngestionError):
    """Uniqueness or foreign key violation reported by the store."""


class TransientStoreError(IngestionError):
    """Connection, lock or timeout problem; safe to retry with backoff."""

    retryable = True


class MigrationError(RuntimeError):
    """A schema migration step failed its post-condition check."""

    def __init__(self, version: int, message: str):
        super().__init__(f"Migration {version:04d} failed: {message}")
        self.version = version
