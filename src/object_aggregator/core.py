# src/object_aggregator/core.py

"""
Core business logic for aggregating date-scoped S3 objects into one artifact.

The main entry point, `run_aggregation`, walks a fixed sequence of stages:

    validating -> listing -> filtering -> bounds_checking
    -> (fetching -> transforming) per candidate -> finalizing
    -> publishing -> link_issuing -> done

Candidates are fetched and transformed one at a time, in listing order. Any
failure aborts the run at the stage where it happened; nothing is published
unless the transform finalized successfully, and no step is retried.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from aws_lambda_powertools.utilities.typing import LambdaContext

from .catalog import check_bounds, filter_candidates, list_candidates
from .clients import S3Client
from .exceptions import AggregationError, AggregationTimeoutError, AggregatorError
from .publisher import ArtifactPublisher
from .schemas import AggregationRequest, PublishedLink
from .transforms import build_transform

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    VALIDATING = "validating"
    LISTING = "listing"
    FILTERING = "filtering"
    BOUNDS_CHECKING = "bounds_checking"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    FINALIZING = "finalizing"
    PUBLISHING = "publishing"
    LINK_ISSUING = "link_issuing"
    DONE = "done"


@dataclass(frozen=True)
class AggregationResult:
    request: AggregationRequest
    artifact_key: str
    object_count: int
    size_bytes: int
    link: PublishedLink


class _StageTracker:
    """
    Records the current stage and aborts at a stage boundary when the Lambda
    invocation is about to run out of time.
    """

    def __init__(self, context: LambdaContext | None, timeout_guard_ms: int):
        self._context = context
        self._timeout_guard_ms = timeout_guard_ms
        self.stage = PipelineStage.VALIDATING

    def advance(self, stage: PipelineStage, **extra: Any) -> None:
        if self._context is not None:
            remaining_ms = self._context.get_remaining_time_in_millis()
            if remaining_ms < self._timeout_guard_ms:
                logger.warning(
                    "Timeout threshold reached. Aborting aggregation.",
                    extra={"stage": stage.value, "remaining_time_ms": remaining_ms},
                )
                raise AggregationTimeoutError(stage.value, remaining_ms)

        self.stage = stage
        logger.debug("Entering stage", extra={"stage": stage.value, **extra})


def run_aggregation(
    request: AggregationRequest,
    s3_client: S3Client,
    context: LambdaContext | None = None,
    timeout_guard_ms: int = 0,
    publisher: ArtifactPublisher | None = None,
) -> AggregationResult:
    """
    Lists, filters, bounds-checks, fetches and transforms the objects selected
    by *request*, then publishes the artifact and returns its download link.

    Domain errors propagate unchanged (with the failing stage added to their
    context); anything unexpected is wrapped in AggregationError.
    """
    publisher = publisher or ArtifactPublisher(s3_client)
    tracker = _StageTracker(context, timeout_guard_ms)

    try:
        tracker.advance(PipelineStage.VALIDATING, mode=request.mode.value)
        transform = build_transform(request)

        tracker.advance(PipelineStage.LISTING, bucket=request.source.bucket)
        listed = list_candidates(s3_client, request.source)

        tracker.advance(PipelineStage.FILTERING, listed=len(listed))
        selected = filter_candidates(
            listed, request.start_date, request.end_date, request.extension
        )

        tracker.advance(PipelineStage.BOUNDS_CHECKING, selected=len(selected))
        check_bounds(len(selected), request.max_candidates)

        logger.info(
            f"Found {len(selected)} {request.extension} files to aggregate.",
            extra={"mode": request.mode.value, "output_key": transform.output_key},
        )

        for index, candidate in enumerate(selected):
            tracker.advance(PipelineStage.FETCHING, index=index, key=candidate.key)
            data = s3_client.read_object(request.source.bucket, candidate.key)

            tracker.advance(PipelineStage.TRANSFORMING, index=index, key=candidate.key)
            transform.add(candidate.key, data)

        tracker.advance(PipelineStage.FINALIZING)
        artifact = transform.finalize()

        tracker.advance(PipelineStage.PUBLISHING, size_bytes=artifact.size_bytes)
        artifact_key = publisher.publish(request.destination, artifact)

        tracker.advance(PipelineStage.LINK_ISSUING, key=artifact_key)
        link = publisher.issue_link(request.destination, artifact_key)

        tracker.advance(PipelineStage.DONE)

    except AggregatorError as e:
        e.context.setdefault("stage", tracker.stage.value)
        raise
    except Exception as e:
        # Wrap any other unexpected errors in a generic aggregation error
        raise AggregationError(
            f"Unexpected error during aggregation: {e}",
            context={"stage": tracker.stage.value},
        ) from e

    logger.info(
        "Successfully published artifact",
        extra={
            "key": artifact_key,
            "object_count": artifact.object_count,
            "size_bytes": artifact.size_bytes,
        },
    )
    return AggregationResult(
        request=request,
        artifact_key=artifact_key,
        object_count=artifact.object_count,
        size_bytes=artifact.size_bytes,
        link=link,
    )
