"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import io
import os
import types
import uuid
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError
from openpyxl import Workbook


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Overwrite *only* the variables needed by the handlers.
    """
    original = os.environ.copy()
    os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "object-aggregator-test")
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
    os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
    yield
    os.environ.clear()
    os.environ.update(original)


# ---------- In-memory stand-ins ---------- #


def make_workbook(rows: list[list], extra_sheets: dict[str, list[list]] | None = None) -> bytes:
    """Builds an .xlsx file in memory whose first sheet holds *rows*."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Sheet1"
    for row in rows:
        sheet.append(row)
    for title, sheet_rows in (extra_sheets or {}).items():
        extra = workbook.create_sheet(title=title)
        for row in sheet_rows:
            extra.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def utc(day: str, hour: int = 12) -> datetime:
    """`utc("2024-03-01")` -> 2024-03-01T12:00:00+00:00"""
    return datetime.fromisoformat(day).replace(hour=hour, tzinfo=timezone.utc)


class _FakePaginator:
    def __init__(self, store: "FakeBotoS3"):
        self._store = store

    def paginate(self, Bucket: str, Prefix: str = ""):
        self._store.calls.append(("list_objects_v2", Bucket, Prefix))
        contents = [
            {"Key": key, "LastModified": modified, "Size": len(body)}
            for (bucket, key), (body, modified) in self._store.objects.items()
            if bucket == Bucket and key.startswith(Prefix)
        ]
        if not contents:
            yield {"KeyCount": 0}
            return
        size = self._store.page_size
        for start in range(0, len(contents), size):
            yield {"Contents": contents[start : start + size]}


class FakeBotoS3:
    """
    A tiny in-memory substitute for a boto3 S3 client, covering the calls the
    S3Client wrapper makes. Listing order is insertion order.
    """

    def __init__(self, page_size: int = 1000):
        self.page_size = page_size
        self.objects: dict[tuple[str, str], tuple[bytes, datetime | None]] = {}
        self.puts: list[dict] = []
        self.calls: list[tuple] = []

    def add(self, bucket: str, key: str, body: bytes, last_modified: datetime | None) -> None:
        self.objects[(bucket, key)] = (body, last_modified)

    def get_paginator(self, operation_name: str) -> _FakePaginator:
        assert operation_name == "list_objects_v2"
        return _FakePaginator(self)

    def get_object(self, Bucket: str, Key: str) -> dict:
        self.calls.append(("get_object", Bucket, Key))
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        body, _ = self.objects[(Bucket, Key)]
        return {"Body": io.BytesIO(body)}

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict:
        self.calls.append(("put_object", Bucket, Key))
        self.puts.append(
            {"Bucket": Bucket, "Key": Key, "Body": Body, "ContentType": ContentType}
        )
        return {}

    def generate_presigned_url(self, ClientMethod: str, Params: dict, ExpiresIn: int) -> str:
        self.calls.append(("generate_presigned_url", Params["Bucket"], Params["Key"]))
        return (
            f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}"
        )

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


@pytest.fixture
def fake_boto() -> FakeBotoS3:
    return FakeBotoS3()


@pytest.fixture
def s3_client(fake_boto: FakeBotoS3):
    from object_aggregator.clients import S3Client

    return S3Client(s3_client=fake_boto)


@pytest.fixture
def lambda_context():
    """A *very* small stand-in for the LambdaContext object."""
    return types.SimpleNamespace(
        function_name="object-aggregator",
        memory_limit_in_mb=512,
        aws_request_id="req-" + uuid.uuid4().hex,
        invoked_function_arn="arn:aws:lambda:eu-west-1:000000000000:function:dummy",
        get_remaining_time_in_millis=lambda: 30000,
    )
