# src/object_aggregator/publisher.py

"""Writes finished artifacts to their destination and issues download links."""

import logging
from datetime import datetime, timedelta, timezone

from .clients import S3Client
from .schemas import Artifact, BlobLocation, PublishedLink

logger = logging.getLogger(__name__)

PRESIGNED_URL_TTL_SECONDS = 3600


class ArtifactPublisher:
    """
    Publishes one artifact per pipeline run. The destination key is derived
    from the request, so a repeated request overwrites the earlier artifact
    (last write wins when two identical requests race).
    """

    def __init__(self, s3_client: S3Client, ttl_seconds: int = PRESIGNED_URL_TTL_SECONDS):
        self._s3_client = s3_client
        self._ttl_seconds = ttl_seconds

    def publish(self, destination: BlobLocation, artifact: Artifact) -> str:
        """Uploads *artifact* and returns the full destination key."""
        key = self.destination_key(destination, artifact.key)
        self._s3_client.put_object(
            bucket=destination.bucket,
            key=key,
            body=artifact.data,
            content_type=artifact.content_type,
        )
        logger.info(
            "Published artifact",
            extra={
                "bucket": destination.bucket,
                "key": key,
                "size_bytes": artifact.size_bytes,
                "object_count": artifact.object_count,
            },
        )
        return key

    def issue_link(self, destination: BlobLocation, key: str) -> PublishedLink:
        issued_at = datetime.now(timezone.utc)
        url = self._s3_client.generate_presigned_url(
            bucket=destination.bucket, key=key, expires_in=self._ttl_seconds
        )
        return PublishedLink(
            url=url, expires_at=issued_at + timedelta(seconds=self._ttl_seconds)
        )

    @staticmethod
    def destination_key(destination: BlobLocation, key: str) -> str:
        prefix = destination.prefix.strip("/")
        if not prefix:
            return key
        return f"{prefix}/{key}"
