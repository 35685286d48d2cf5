# In src/object_aggregator/schemas.py

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping, TypedDict

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

from .exceptions import InvalidInputError
from .security import normalize_file_type

DATE_FORMAT_MESSAGE = "Please provide both startDate and endDate in YYYY-MM-DD format."
DATE_ORDER_MESSAGE = "startDate must not be after endDate."

# ASCII digits only; `\d` would also accept other Unicode digits.
_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


# --- Static Type Hinting (for mypy and IDEs) ---


class ListedObjectDict(TypedDict, total=False):
    """One entry of the `Contents` list of an S3 ListObjectsV2 page."""

    Key: str
    LastModified: datetime
    Size: int


# --- Runtime Validation (using Pydantic) ---


class AggregationMode(str, Enum):
    TABULAR_MERGE = "tabular_merge"
    ARCHIVE_PACK = "archive_pack"


class BlobLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str = Field(..., min_length=1)
    prefix: str = ""


class DateRangeQuery(BaseModel):
    """
    Pydantic model for the query string of an aggregation request.

    Both dates must match YYYY-MM-DD exactly and name real calendar days.
    """

    model_config = ConfigDict(frozen=True)

    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    file_type: str | None = Field(None, alias="fileType")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def validate_date_format(cls, value: Any) -> Any:
        if not isinstance(value, str) or not _DATE_PATTERN.fullmatch(value):
            raise PydanticCustomError("date_format", DATE_FORMAT_MESSAGE)
        return value

    @field_validator("file_type", mode="before")
    @classmethod
    def validate_file_type(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise PydanticCustomError("file_type", "fileType must be a string.")
        try:
            return normalize_file_type(value)
        except InvalidInputError as e:
            raise PydanticCustomError("file_type", e.message)

    @model_validator(mode="after")
    def validate_date_order(self) -> "DateRangeQuery":
        if self.start_date > self.end_date:
            raise PydanticCustomError("date_order", DATE_ORDER_MESSAGE)
        return self

    @classmethod
    def from_query_parameters(
        cls, params: Mapping[str, Any] | None
    ) -> "DateRangeQuery":
        """
        Parses API Gateway `queryStringParameters` (which is None when the
        request carried no query string), raising InvalidInputError with a
        caller-facing message on any failure.
        """
        try:
            return cls.model_validate(dict(params or {}))
        except pydantic.ValidationError as e:
            errors = e.errors()
            message = DATE_FORMAT_MESSAGE
            for error in errors:
                if error["type"] in {"date_order", "file_type"}:
                    message = error["msg"]
                    break
            raise InvalidInputError(
                message,
                context={"validation_errors": [err["msg"] for err in errors]},
            ) from e


class CandidateObject(BaseModel):
    """One listed blob-store object; transient, never persisted."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    last_modified: datetime | None = None

    @property
    def last_modified_date(self) -> date | None:
        """Calendar day of the last modification, in UTC."""
        if self.last_modified is None:
            return None
        if self.last_modified.tzinfo is None:
            return self.last_modified.date()
        return self.last_modified.astimezone(timezone.utc).date()


class AggregationRequest(BaseModel):
    """A fully resolved request: what to select, how to aggregate, where to publish."""

    model_config = ConfigDict(frozen=True)

    start_date: date
    end_date: date
    mode: AggregationMode
    extension: str = Field(..., min_length=2)
    file_type: str = Field(..., min_length=1)
    source: BlobLocation
    destination: BlobLocation
    max_candidates: int = Field(..., gt=0)

    @model_validator(mode="after")
    def validate_date_order(self) -> "AggregationRequest":
        if self.start_date > self.end_date:
            raise ValueError(DATE_ORDER_MESSAGE)
        return self


class Artifact(BaseModel):
    """The single output of one pipeline run; written once, never mutated."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    content_type: str
    key: str
    object_count: int = 0

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class PublishedLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    expires_at: datetime
