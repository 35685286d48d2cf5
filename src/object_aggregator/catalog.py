# src/object_aggregator/catalog.py

"""
Candidate discovery: list a location, keep the objects that fall inside the
requested date window and carry the requested extension, and refuse to
continue when more objects matched than the mode allows.

Nothing here transfers object content.
"""

import logging
from datetime import date

from .clients import S3Client
from .exceptions import (
    NoCandidatesAfterFilterError,
    NoCandidatesListedError,
    TooManyCandidatesError,
)
from .schemas import BlobLocation, CandidateObject

logger = logging.getLogger(__name__)


def list_candidates(s3_client: S3Client, location: BlobLocation) -> list[CandidateObject]:
    """
    Lists every object under *location* as CandidateObjects, in listing order.

    Raises NoCandidatesListedError when the location is empty, which callers
    must keep distinct from "nothing matched the filter".
    """
    listed = s3_client.list_objects(location.bucket, location.prefix)
    if not listed:
        raise NoCandidatesListedError(location.bucket, location.prefix)

    return [
        CandidateObject(key=obj["Key"], last_modified=obj.get("LastModified"))
        for obj in listed
    ]


def matches_extension(key: str, extension: str) -> bool:
    # Case-insensitive in every mode: "Report.PDF" and "q1.XLSX" both count.
    return key.lower().endswith(extension.lower())


def filter_candidates(
    candidates: list[CandidateObject],
    start_date: date,
    end_date: date,
    extension: str,
) -> list[CandidateObject]:
    """
    Keeps a candidate iff its last-modified day is known and lies in
    [start_date, end_date] inclusive, and its key ends with *extension*.

    Pure function of its arguments. Raises NoCandidatesAfterFilterError when
    nothing survives.
    """
    selected = [
        candidate
        for candidate in candidates
        if candidate.last_modified_date is not None
        and start_date <= candidate.last_modified_date <= end_date
        and matches_extension(candidate.key, extension)
    ]

    logger.debug(
        "Filtered candidates",
        extra={
            "listed": len(candidates),
            "selected": len(selected),
            "extension": extension,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        },
    )

    if not selected:
        raise NoCandidatesAfterFilterError(
            extension=extension,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            listed_count=len(candidates),
        )
    return selected


def check_bounds(count: int, max_allowed: int) -> None:
    """Fails with TooManyCandidatesError iff *count* exceeds *max_allowed*."""
    if count > max_allowed:
        raise TooManyCandidatesError(count=count, limit=max_allowed)
