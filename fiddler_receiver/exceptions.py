"""
Fiddler Receiver Exceptions - Error hierarchy for the collection pipeline.

============================================================
EXCEPTION HIERARCHY
============================================================
ReceiverError (base)
├── ConfigValidationError   fatal at startup
├── FetchError              transport failure (HTTP / connection / payload)
├── CatalogFetchError       per-model, or cycle-fatal for the model list
├── QueryExecutionError     per-model, aggregated per cycle
├── DecodeError             per-point, never aborts a result
└── CycleTimeoutError       abandons the current cycle only

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Optional


class ReceiverError(Exception):
    """Base exception for all receiver errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ConfigValidationError(ReceiverError):
    """Configuration is invalid; the receiver must not start."""

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.errors = errors or [message]

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class FetchError(ReceiverError):
    """Error during a call to the Fiddler API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data

    def is_server_error(self) -> bool:
        """Check if error is server-side."""
        return self.status_code is not None and 500 <= self.status_code < 600

    def is_client_error(self) -> bool:
        """Check if error is client-side."""
        return self.status_code is not None and 400 <= self.status_code < 500


class CatalogFetchError(ReceiverError):
    """Models, metric definitions or baselines could not be fetched."""

    def __init__(
        self,
        message: str,
        model_id: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.model_id = model_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["model_id"] = self.model_id
        return data


class QueryExecutionError(ReceiverError):
    """A model's batched query request failed."""

    def __init__(
        self,
        message: str,
        model_id: Optional[str] = None,
        query_keys: Optional[list[str]] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.model_id = model_id
        self.query_keys = query_keys or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "model_id": self.model_id,
            "query_keys": self.query_keys,
        })
        return data


class DecodeError(ReceiverError):
    """A value or row of a query result could not be decoded."""

    def __init__(
        self,
        message: str,
        query_key: Optional[str] = None,
        column: Optional[str] = None,
        row_index: Optional[int] = None,
        raw_value: Optional[Any] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, original_error)
        self.query_key = query_key
        self.column = column
        self.row_index = row_index
        self.raw_value = raw_value

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "query_key": self.query_key,
            "column": self.column,
            "row_index": self.row_index,
            "raw_value": str(self.raw_value)[:200] if self.raw_value is not None else None,
        })
        return data


class CycleTimeoutError(ReceiverError):
    """A poll cycle exceeded its deadline and was abandoned."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["timeout_seconds"] = self.timeout_seconds
        return data
