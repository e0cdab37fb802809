"""
Test fixtures for s3_ferry.
"""
import io
import threading
import time
from datetime import datetime, timezone
from typing import Dict, Set

import pytest
import boto3
from moto import mock_aws as moto_mock_aws
from tenacity import wait_none

from s3_ferry.backend import ObjectStream, S3Backend
from s3_ferry.errors import BackendError, NoSuchKeyError
from s3_ferry.models import ListPage, ObjectInfo

TEST_BUCKET = "test-bucket"


class FakeBackend:
    """In-memory storage backend that records how many requests overlap."""

    def __init__(self, page_size: int = 1000, delay: float = 0.0):
        self.buckets: Dict[str, Dict[str, bytes]] = {TEST_BUCKET: {}}
        self.page_size = page_size
        self.delay = delay
        self.region = "us-east-1"
        self.fail_keys: Set[str] = set()
        self.list_calls = []
        self.deleted = []
        self.created_buckets = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def add(self, key: str, data: bytes = b"data", bucket: str = TEST_BUCKET) -> None:
        self.buckets.setdefault(bucket, {})[key] = data

    def _enter(self):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _leave(self):
        with self._lock:
            self.in_flight -= 1

    def put(self, bucket, key, stream, length=None, options=None, progress=None):
        self._enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            if key in self.fail_keys:
                raise BackendError("service", "PutObject", "injected failure", code="InternalError")
            data = stream.read()
            self.buckets[bucket][key] = data
            if progress:
                progress(len(data))
        finally:
            self._leave()

    def get(self, bucket, key):
        self._enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            if key in self.fail_keys:
                raise BackendError("service", "GetObject", "injected failure", code="InternalError")
            objects = self.buckets.get(bucket, {})
            if key not in objects:
                raise NoSuchKeyError(bucket, key)
            data = objects[key]
            return ObjectStream(io.BytesIO(data), len(data), bucket, key)
        finally:
            self._leave()

    def delete(self, bucket, key):
        if key in self.fail_keys:
            raise BackendError("service", "DeleteObject", "injected failure", code="AccessDenied")
        self.buckets[bucket].pop(key, None)
        self.deleted.append(key)

    def list(self, bucket, prefix="", delimiter=None, continuation_token=None) -> ListPage:
        self.list_calls.append((prefix, delimiter, continuation_token))
        entries = []
        prefixes = set()
        for key in sorted(self.buckets.get(bucket, {})):
            if not key.startswith(prefix):
                continue
            if delimiter:
                index = key.find(delimiter, len(prefix))
                if index >= 0:
                    common = key[:index + 1]
                    if common not in prefixes:
                        prefixes.add(common)
                        entries.append((True, common))
                    continue
            entries.append((False, key))

        start = int(continuation_token or 0)
        end = start + self.page_size
        page = ListPage(next_token=str(end) if end < len(entries) else None)
        for is_prefix, value in entries[start:end]:
            if is_prefix:
                page.common_prefixes.append(value)
            else:
                page.objects.append(ObjectInfo(
                    key=value,
                    size=len(self.buckets[bucket][value]),
                    last_modified=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
                    storage_class="STANDARD",
                ))
        return page

    def list_buckets(self):
        return sorted(self.buckets)

    def create_bucket(self, bucket, region=None, request_args=None):
        if bucket in self.buckets:
            raise BackendError("service", "CreateBucket", "bucket exists", code="BucketAlreadyOwnedByYou")
        self.buckets[bucket] = {}
        self.created_buckets.append((bucket, region, request_args))


@pytest.fixture
def fake_backend():
    """Create an in-memory backend with an empty test bucket."""
    return FakeBackend()


@pytest.fixture
def tmp_upload_dir(tmp_path):
    """Create a temporary directory for files to upload."""
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    return upload_dir


@pytest.fixture
def tmp_download_dir(tmp_path):
    """Create a temporary directory to download into."""
    download_dir = tmp_path / "downloads"
    download_dir.mkdir()
    return download_dir


@pytest.fixture
def local_tree(tmp_upload_dir):
    """Create a small directory tree to upload.

    photos/
        a.jpg
        b.jpg
        trip/
            c.jpg
    """
    root = tmp_upload_dir / "photos"
    (root / "trip").mkdir(parents=True)
    (root / "a.jpg").write_bytes(b"aaa")
    (root / "b.jpg").write_bytes(b"bbbb")
    (root / "trip" / "c.jpg").write_bytes(b"ccccc")
    return root


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches for real ones."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mock_aws(aws_credentials):
    """Mock S3 client using moto."""
    with moto_mock_aws():
        s3 = boto3.client('s3', region_name='us-east-1')
        # Create test bucket
        s3.create_bucket(Bucket=TEST_BUCKET)
        yield s3


@pytest.fixture
def s3_backend(mock_aws):
    """Create a backend over the moto client with retries not waiting."""
    return S3Backend(s3_client=mock_aws, retry_wait=wait_none())
