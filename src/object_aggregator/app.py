"""
The Lambda Adapter for the Object Aggregator service.

This module holds the two AWS Lambda entry points behind API Gateway:

- `merge_handler` merges the .xlsx workbooks of a date range into one workbook.
- `compress_handler` packs the files of one type and date range into a zip.

Both are responsible for:
1.  Initializing and configuring AWS Lambda Powertools (Logger, Tracer, Metrics).
2.  Validating the query string before any S3 call is made.
3.  Resolving the mode-specific buckets, prefixes and limits from configuration.
4.  Invoking the core pipeline (`run_aggregation`) with an explicitly built
    S3 client.
5.  Translating every outcome into one JSON response.
"""

import json
from functools import lru_cache
from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.logging import utils as logging_utils
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from .clients import S3Client, build_s3_client
from .config import AppConfig, get_config
from .core import AggregationResult, run_aggregation
from .exceptions import AggregatorError, get_error_context, is_request_error
from .schemas import AggregationMode, AggregationRequest, BlobLocation, DateRangeQuery

# --- Global & Reusable Components ---
logger = Logger()
tracer = Tracer()
metrics = Metrics(namespace="ObjectAggregator")

# Route the library modules' stdlib loggers through the Powertools formatter.
logging_utils.copy_config_to_registered_loggers(source_logger=logger, include={"object_aggregator"})

_GENERIC_ERROR_MESSAGES = {
    AggregationMode.TABULAR_MERGE: "An error occurred during the Excel merging process.",
    AggregationMode.ARCHIVE_PACK: "An error occurred during the zipping process.",
}


@lru_cache(maxsize=1)
def get_s3_client() -> S3Client:
    """Builds the S3 client once per execution environment."""
    return build_s3_client(get_config().s3_operation_timeout_seconds)


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def build_request(
    query: DateRangeQuery, mode: AggregationMode, config: AppConfig
) -> AggregationRequest:
    """Combines the validated query string with the mode's deployment settings."""
    if mode is AggregationMode.TABULAR_MERGE:
        bucket = config.require("excel_bucket")
        return AggregationRequest(
            start_date=query.start_date,
            end_date=query.end_date,
            mode=mode,
            extension=".xlsx",
            file_type="xlsx",
            source=BlobLocation(bucket=bucket, prefix=config.excel_input_prefix),
            destination=BlobLocation(bucket=bucket),
            max_candidates=config.max_files_to_merge,
        )

    file_type = query.file_type or config.default_archive_file_type
    return AggregationRequest(
        start_date=query.start_date,
        end_date=query.end_date,
        mode=mode,
        extension=f".{file_type}",
        file_type=file_type,
        source=BlobLocation(
            bucket=config.require("archive_source_bucket"),
            prefix=config.archive_input_prefix,
        ),
        destination=BlobLocation(bucket=config.require("archive_dest_bucket")),
        max_candidates=config.max_files_to_archive,
    )


def _success_message(result: AggregationResult) -> str:
    if result.request.mode is AggregationMode.TABULAR_MERGE:
        return f"Successfully merged {result.object_count} files."
    return (
        f"Successfully compressed {result.object_count} "
        f"{result.request.extension} files."
    )


def _handle(event: dict, context: LambdaContext, mode: AggregationMode) -> dict[str, Any]:
    """Runs one aggregation request end to end and always returns a response."""
    metrics.add_dimension("mode", mode.value)

    try:
        # Validation happens before configuration or S3 are touched.
        query = DateRangeQuery.from_query_parameters(event.get("queryStringParameters"))
        config = get_config()
        logger.setLevel(config.log_level)
        metrics.add_dimension("environment", config.environment)
        request = build_request(query, mode, config)

        logger.info(
            "Starting aggregation",
            extra={
                "mode": mode.value,
                "start_date": request.start_date.isoformat(),
                "end_date": request.end_date.isoformat(),
                "source_bucket": request.source.bucket,
                "extension": request.extension,
            },
        )

        result = run_aggregation(
            request=request,
            s3_client=get_s3_client(),
            context=context,
            timeout_guard_ms=config.timeout_guard_threshold_ms,
        )

    except AggregatorError as e:
        if is_request_error(e):
            metrics.add_metric(name="ClientErrors", unit=MetricUnit.Count, value=1)
            logger.info(f"Request rejected: {e}", extra=get_error_context(e))
            return _response(e.status_code, {"message": e.message})

        metrics.add_metric(name="ServerErrors", unit=MetricUnit.Count, value=1)
        logger.error(f"Aggregation failed: {e}", extra=get_error_context(e))
        return _response(e.status_code, {"message": _GENERIC_ERROR_MESSAGES[mode]})

    except Exception as e:
        metrics.add_metric(name="ServerErrors", unit=MetricUnit.Count, value=1)
        logger.exception("Unexpected error during aggregation.", extra=get_error_context(e))
        return _response(500, {"message": _GENERIC_ERROR_MESSAGES[mode]})

    metrics.add_metric(
        name="AggregatedObjects", unit=MetricUnit.Count, value=result.object_count
    )
    metrics.add_metric(name="ArtifactBytes", unit=MetricUnit.Bytes, value=result.size_bytes)
    return _response(
        200,
        {"message": _success_message(result), "downloadUrl": result.link.url},
    )


@logger.inject_lambda_context()
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def merge_handler(event: dict, context: LambdaContext) -> dict[str, Any]:
    """Merges the .xlsx workbooks modified within startDate..endDate."""
    return _handle(event, context, AggregationMode.TABULAR_MERGE)


@logger.inject_lambda_context()
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def compress_handler(event: dict, context: LambdaContext) -> dict[str, Any]:
    """Zips the files of `fileType` (default pdf) modified within startDate..endDate."""
    return _handle(event, context, AggregationMode.ARCHIVE_PACK)
