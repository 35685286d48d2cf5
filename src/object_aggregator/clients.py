# src/object_aggregator/clients.py

"""
Client wrapper for interacting with S3.

This class provides a clean, abstracted interface over the raw boto3 client,
making the core application logic easier to read, test, and maintain. Every
botocore failure is translated into the service's own TransportError family
here, so no other module needs to know about botocore.
"""

import io
import logging
from contextlib import closing
from typing import BinaryIO, TYPE_CHECKING, NoReturn, cast

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .exceptions import (
    S3AccessDeniedError,
    S3ObjectNotFoundError,
    S3ThrottlingError,
    S3TimeoutError,
    TransportError,
)
from .schemas import ListedObjectDict

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client as S3ClientType

logger = logging.getLogger(__name__)

_THROTTLING_CODES = {"Throttling", "ThrottlingException", "RequestLimitExceeded", "SlowDown"}
_TIMEOUT_CODES = {"RequestTimeout", "RequestTimeoutException"}
_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404"}
_READ_CHUNK_SIZE = 64 * 1024


def _raise_transport_error(
    e: Exception, operation: str, bucket: str, key: str | None = None
) -> NoReturn:
    """Map a botocore exception onto our TransportError hierarchy."""
    if isinstance(e, ClientError):
        error_code = e.response["Error"]["Code"]
        error_message = e.response["Error"]["Message"]
        context = {
            "bucket": bucket,
            "key": key,
            "aws_error_code": error_code,
            "aws_error_message": error_message,
        }

        if error_code in _NOT_FOUND_CODES:
            raise S3ObjectNotFoundError(bucket=bucket, key=key or "", context=context) from e
        elif error_code == "AccessDenied":
            raise S3AccessDeniedError(bucket=bucket, key=key or "", context=context) from e
        elif error_code in _THROTTLING_CODES:
            raise S3ThrottlingError(operation, context=context) from e
        elif error_code in _TIMEOUT_CODES:
            raise S3TimeoutError(operation, context=context) from e
        else:
            raise TransportError(
                f"S3 client error during {operation}: {error_message}",
                context={"operation": operation, **context},
            ) from e
    elif isinstance(e, ReadTimeoutError):
        raise S3TimeoutError(
            operation,
            context={"bucket": bucket, "key": key, "timeout_error": str(e)},
        ) from e
    elif isinstance(e, EndpointConnectionError):
        raise S3TimeoutError(
            operation,
            error_code="S3_CONNECTION_ERROR",
            context={"bucket": bucket, "key": key, "connection_error": str(e)},
        ) from e
    raise TransportError(
        f"S3 transport failure during {operation}: {e}",
        context={"operation": operation, "bucket": bucket, "key": key},
    ) from e


class S3Client:
    """
    A wrapper for the S3 operations the aggregation pipeline needs: list,
    get, put and presign.
    """

    def __init__(self, s3_client: "S3ClientType"):
        """
        Initializes the S3Client.

        Args:
            s3_client: A typed boto3 S3 client.
        """
        self._client = s3_client

    def list_objects(self, bucket: str, prefix: str = "") -> list[ListedObjectDict]:
        """
        Lists every object under *prefix*, following continuation tokens
        across all pages. Listing order is preserved.
        """
        objects: list[ListedObjectDict] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                objects.extend(cast(list[ListedObjectDict], page.get("Contents", [])))
        except (ClientError, BotoCoreError) as e:
            _raise_transport_error(e, "ListObjectsV2", bucket)

        logger.debug(
            "Listed objects",
            extra={"bucket": bucket, "prefix": prefix, "count": len(objects)},
        )
        return objects

    def get_file_content_stream(self, bucket: str, key: str) -> BinaryIO:
        """
        Retrieves an S3 object's body as a file-like streaming object.
        Raises specific S3 exceptions based on the error type.
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return cast(BinaryIO, response["Body"])
        except (ClientError, BotoCoreError) as e:
            _raise_transport_error(e, "GetObject", bucket, key)

    def read_object(self, bucket: str, key: str) -> bytes:
        """
        Fetches an object and drains its body stream completely, in 64 KiB
        chunks, before returning. The stream is always closed.
        """
        stream = self.get_file_content_stream(bucket, key)
        buffer = io.BytesIO()
        try:
            with closing(stream):
                for chunk in iter(lambda: stream.read(_READ_CHUNK_SIZE), b""):
                    buffer.write(chunk)
        except BotoCoreError as e:
            _raise_transport_error(e, "GetObject", bucket, key)

        logger.debug(
            "Fetched object",
            extra={"bucket": bucket, "key": key, "size_bytes": buffer.tell()},
        )
        return buffer.getvalue()

    def put_object(self, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """Uploads an in-memory artifact in a single PUT."""
        logger.info(
            "Uploading artifact",
            extra={"bucket": bucket, "key": key, "size_bytes": len(body)},
        )
        try:
            self._client.put_object(
                Bucket=bucket, Key=key, Body=body, ContentType=content_type
            )
            logger.debug(
                "Upload (PUT) completed successfully",
                extra={"bucket": bucket, "key": key},
            )
        except (ClientError, BotoCoreError) as e:
            _raise_transport_error(e, "PutObject", bucket, key)

    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str:
        """Issues a credential-free GET link for *key*, valid for *expires_in* seconds."""
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            _raise_transport_error(e, "GeneratePresignedUrl", bucket, key)


def build_s3_client(operation_timeout_seconds: int) -> S3Client:
    """
    Creates an S3Client backed by a fresh boto3 client. Each call is
    attempted exactly once; the timeouts bound every network operation.
    """
    boto_config = BotoConfig(
        connect_timeout=operation_timeout_seconds,
        read_timeout=operation_timeout_seconds,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
    return S3Client(s3_client=boto3.client("s3", config=boto_config))
