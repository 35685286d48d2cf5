# src/object_aggregator/exceptions.py

"""
Shared custom exceptions for the Object Aggregator service.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Every exception carries the HTTP status the Lambda adapter answers with.

Exception Hierarchy:
- AggregatorError (base)
  - RequestError (4xx, message is shown to the caller)
    - InvalidInputError
    - NoCandidatesListedError
    - NoCandidatesAfterFilterError
    - TooManyCandidatesError
    - NoDataFoundError
    - DuplicateEntryNameError
  - ServiceError (5xx, message is logged, never shown)
    - TransportError
      - S3ObjectNotFoundError
      - S3AccessDeniedError
      - S3ThrottlingError
      - S3TimeoutError
    - CodecError
    - AggregationError
    - AggregationTimeoutError
    - ConfigurationError
"""

from typing import Any, Dict, Optional


class AggregatorError(Exception):
    """Base exception for all Object Aggregator service errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}  # Copy context to prevent mutation
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "error_message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "status_code": self.status_code,
        }


class RequestError(AggregatorError):
    """Base class for errors caused by the request or the data it selects."""

    status_code = 400


class ServiceError(AggregatorError):
    """Base class for errors whose details must not reach the caller."""

    status_code = 500


# === Request & Selection Errors ===


class InvalidInputError(RequestError):
    """Raised when the query parameters are missing or malformed."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "INVALID_INPUT"
        super().__init__(message, **kwargs)


class NoCandidatesListedError(RequestError):
    """Raised when the source location holds no objects at all."""

    status_code = 404

    def __init__(self, bucket: str, prefix: str = "", **kwargs):
        message = "No files found in the source bucket."
        context = {"bucket": bucket, "prefix": prefix}
        super().__init__(message, error_code="NO_CANDIDATES_LISTED", context=context, **kwargs)


class NoCandidatesAfterFilterError(RequestError):
    """Raised when objects were listed but none matched the date range and extension."""

    status_code = 404

    def __init__(self, extension: str, start_date: str, end_date: str, listed_count: int, **kwargs):
        message = f"No {extension} files found for the date range {start_date} to {end_date}."
        context = {
            "extension": extension,
            "start_date": start_date,
            "end_date": end_date,
            "listed_count": listed_count,
        }
        super().__init__(message, error_code="NO_CANDIDATES_AFTER_FILTER", context=context, **kwargs)


class TooManyCandidatesError(RequestError):
    """Raised when more objects matched than the configured limit allows."""

    def __init__(self, count: int, limit: int, **kwargs):
        message = f"Error: Found {count} files, which exceeds the limit of {limit}."
        context = {"count": count, "limit": limit}
        super().__init__(message, error_code="TOO_MANY_CANDIDATES", context=context, **kwargs)
        self.count = count
        self.limit = limit


class NoDataFoundError(RequestError):
    """Raised when every matched workbook decoded to zero rows."""

    status_code = 404

    def __init__(self, file_count: int, **kwargs):
        message = "No data found in any of the filtered Excel files."
        context = {"file_count": file_count}
        super().__init__(message, error_code="NO_DATA_FOUND", context=context, **kwargs)


class DuplicateEntryNameError(RequestError):
    """Raised when two source keys share a basename inside one archive."""

    def __init__(self, name: str, key: str, **kwargs):
        message = f"Multiple files share the name '{name}'; rename them or narrow the date range."
        context = {"name": name, "key": key}
        super().__init__(message, error_code="DUPLICATE_ENTRY_NAME", context=context, **kwargs)


# === Transport Errors ===


class TransportError(ServiceError):
    """Base class for blob-store failures."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "S3_CLIENT_ERROR"
        super().__init__(message, **kwargs)


class S3ObjectNotFoundError(TransportError):
    """Raised when a requested S3 object does not exist."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"S3 object not found: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="S3_OBJECT_NOT_FOUND", context=context, **kwargs)


class S3AccessDeniedError(TransportError):
    """Raised when access is denied to an S3 object."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Access denied to S3 object: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="S3_ACCESS_DENIED", context=context, **kwargs)


class S3ThrottlingError(TransportError):
    """Raised when S3 operations are being throttled."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation throttled: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context["operation"] = operation
        super().__init__(message, error_code="S3_THROTTLING", context=context, **kwargs)


class S3TimeoutError(TransportError):
    """Raised when S3 operations time out or the endpoint is unreachable."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation timed out: {operation}"
        # Start with provided context, then add our default context
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context["operation"] = operation
        kwargs.setdefault("error_code", "S3_TIMEOUT")
        super().__init__(message, context=context, **kwargs)


# === Processing Errors ===


class CodecError(ServiceError):
    """Raised when a workbook or archive cannot be decoded or encoded."""

    def __init__(self, reason: str, **kwargs):
        message = f"Codec failure: {reason}"
        context = {"reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="CODEC_ERROR", context=context, **kwargs)


class AggregationError(ServiceError):
    """Raised for unexpected failures inside the aggregation pipeline."""

    def __init__(self, reason: str, **kwargs):
        message = f"Aggregation failed: {reason}"
        context = {"reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(message, error_code="AGGREGATION_FAILED", context=context, **kwargs)


class AggregationTimeoutError(ServiceError):
    """Raised when not enough Lambda time is left to reach the next stage safely."""

    def __init__(self, stage: str, remaining_time_ms: int, **kwargs):
        message = f"Insufficient time remaining before stage {stage}: {remaining_time_ms}ms"
        context = {"stage": stage, "remaining_time_ms": remaining_time_ms}
        super().__init__(message, error_code="AGGREGATION_TIMEOUT", context=context, **kwargs)


class ConfigurationError(ServiceError):
    """Raised when there's an error in the application configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


# === Utility Functions ===


def is_request_error(error: Exception) -> bool:
    """Check if an error may be reported verbatim to the caller."""
    return isinstance(error, RequestError)


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, AggregatorError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "error_message": str(error),
            "status_code": 500,
        }
