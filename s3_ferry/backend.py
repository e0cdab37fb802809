"""
Module for issuing object store requests through boto3.

Transient service errors are re-issued here with tenacity; everything that
still fails is classified into a ``BackendError`` for the engine to count
and report.
"""
import logging
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    HTTPClientError,
    NoCredentialsError,
    NoRegionError,
    ParamValidationError,
    PartialCredentialsError,
    ReadTimeoutError,
)
from botocore.parsers import ResponseParserError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import BackendError, NoSuchKeyError
from .models import ListPage, ObjectInfo, UploadOptions

logger = logging.getLogger(__name__)

DEFAULT_REGION = "eu-west-1"
DOWNLOAD_CHUNK_SIZE = 256 * 1024

NO_SUCH_KEY_CODES = {'NoSuchKey', '404', 'NotFound'}


def is_retryable_error(exception: Exception) -> bool:
    """Check if an exception should trigger a retry.

    Args:
        exception: The exception to check

    Returns:
        True if the error is retryable, False otherwise
    """
    if isinstance(exception, ClientError):
        error_code = exception.response['Error']['Code']
        return error_code in {
            'RequestTimeout',
            'RequestTimeoutException',
            'PriorRequestNotComplete',
            'ConnectionError',
            'ThrottlingException',
            'ThrottledException',
            'ServiceUnavailable',
            'Throttling',
            'SlowDown',
            '5XX'
        }
    return False


def classify_error(error: Exception, operation: str, bucket: Optional[str] = None,
                   key: Optional[str] = None) -> BackendError:
    """Map a boto3/botocore exception onto the backend error taxonomy.

    Args:
        error: Exception raised by boto3
        operation: Name of the request that failed
        bucket: Bucket the request addressed, if any
        key: Key the request addressed, if any

    Returns:
        The classified BackendError
    """
    if isinstance(error, BackendError):
        return error
    if isinstance(error, ClientError):
        details = error.response.get('Error', {})
        code = str(details.get('Code', 'Unknown'))
        if code in NO_SUCH_KEY_CODES and key is not None:
            return NoSuchKeyError(bucket or "", key, operation)
        message = details.get('Message') or str(error)
        return BackendError("service", operation, message, code=code)
    if isinstance(error, (ParamValidationError, NoCredentialsError,
                          PartialCredentialsError, NoRegionError)):
        return BackendError("construction", operation, str(error))
    if isinstance(error, (ConnectTimeoutError, ReadTimeoutError)):
        return BackendError("timeout", operation, str(error))
    if isinstance(error, HTTPClientError):
        return BackendError("dispatch", operation, str(error))
    if isinstance(error, ResponseParserError):
        return BackendError("response", operation, str(error))
    if isinstance(error, BotoCoreError):
        return BackendError("dispatch", operation, str(error))
    if isinstance(error, Boto3Error):
        return BackendError("service", operation, str(error))
    return BackendError("dispatch", operation, f"{type(error).__name__}: {error}")


class ObjectStream:
    """Body of a fetched object."""

    def __init__(self, body, content_length: Optional[int], bucket: str, key: str):
        self._body = body
        self.content_length = content_length
        self.bucket = bucket
        self.key = key

    def iter_chunks(self, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the object's bytes in chunks.

        Raises:
            BackendError: If the connection fails mid-stream
        """
        try:
            while True:
                chunk = self._body.read(chunk_size)
                if not chunk:
                    return
                yield chunk
        except (BotoCoreError, ResponseParserError, OSError) as e:
            raise classify_error(e, "GetObject", self.bucket, self.key) from e

    def close(self) -> None:
        self._body.close()


class S3Backend:
    """Storage backend over a boto3 S3 client."""

    def __init__(self, s3_client=None, region: Optional[str] = None,
                 endpoint_url: Optional[str] = None, profile: Optional[str] = None,
                 retry_attempts: int = 3, retry_wait=None):
        """Initialize the backend.

        Args:
            s3_client: Pre-built boto3 S3 client; built from the other
                arguments if not given
            region: Region name, falling back to the profile's region and
                then ``eu-west-1``
            endpoint_url: Custom endpoint for other S3 implementations
            profile: AWS config profile name
            retry_attempts: Attempts per request for transient errors
            retry_wait: tenacity wait strategy between attempts
        """
        if s3_client is None:
            session = boto3.session.Session(profile_name=profile)
            region = region or session.region_name or DEFAULT_REGION
            s3_client = session.client('s3', region_name=region, endpoint_url=endpoint_url)
        self.s3_client = s3_client
        self.region = region or getattr(getattr(s3_client, 'meta', None), 'region_name', None) or DEFAULT_REGION
        self._retrying = Retrying(
            retry=retry_if_exception(is_retryable_error),
            stop=stop_after_attempt(retry_attempts),
            wait=retry_wait if retry_wait is not None else wait_exponential(multiplier=1, min=1, max=10),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

    def _call(self, operation: str, fn: Callable[..., Any], *args,
              bucket: Optional[str] = None, key: Optional[str] = None, **kwargs) -> Any:
        try:
            return self._retrying.copy()(fn, *args, **kwargs)
        except (BotoCoreError, ClientError, Boto3Error, ResponseParserError) as e:
            raise classify_error(e, operation, bucket, key) from e

    def put(self, bucket: str, key: str, stream: BinaryIO, length: Optional[int] = None,
            options: Optional[UploadOptions] = None,
            progress: Optional[Callable[[int], None]] = None) -> None:
        """Upload a stream as one object.

        Args:
            bucket: S3 bucket name
            key: S3 object key
            stream: Binary stream positioned at the first byte to upload
            length: Number of bytes expected, for diagnostics
            options: ACL, grant and storage class options
            progress: Called with the number of bytes sent since the last call
        """
        extra_args = options.to_extra_args() if options else {}
        start = stream.tell() if stream.seekable() else None
        sent = 0

        def report(byte_count: int) -> None:
            nonlocal sent
            sent += byte_count
            progress(byte_count)

        def attempt():
            nonlocal sent
            if start is not None:
                stream.seek(start)
            if sent:
                # Discard the progress of the failed attempt
                progress(-sent)
                sent = 0
            self.s3_client.upload_fileobj(
                stream,
                bucket,
                key,
                ExtraArgs=extra_args or None,
                Callback=report if progress else None
            )

        logger.debug(f"PutObject s3://{bucket}/{key} ({length if length is not None else '?'} bytes)")
        self._call("PutObject", attempt, bucket=bucket, key=key)

    def get(self, bucket: str, key: str) -> ObjectStream:
        """Fetch an object.

        Raises:
            NoSuchKeyError: If no object exists at the key
            BackendError: For every other failure
        """
        response = self._call("GetObject", self.s3_client.get_object,
                              bucket=bucket, key=key, Bucket=bucket, Key=key)
        return ObjectStream(response['Body'], response.get('ContentLength'), bucket, key)

    def delete(self, bucket: str, key: str) -> None:
        self._call("DeleteObject", self.s3_client.delete_object,
                   bucket=bucket, key=key, Bucket=bucket, Key=key)

    def list(self, bucket: str, prefix: str = "", delimiter: Optional[str] = None,
             continuation_token: Optional[str] = None) -> ListPage:
        """Fetch one page of a listing.

        Args:
            bucket: S3 bucket name
            prefix: Only keys starting with this prefix are returned
            delimiter: Group keys by the next occurrence of this string
            continuation_token: Token from the previous page

        Returns:
            The page, with ``next_token`` set if more pages follow
        """
        request: Dict[str, Any] = {'Bucket': bucket, 'Prefix': prefix}
        if delimiter:
            request['Delimiter'] = delimiter
        if continuation_token:
            request['ContinuationToken'] = continuation_token
        response = self._call("ListObjectsV2", self.s3_client.list_objects_v2,
                              bucket=bucket, **request)
        objects = [
            ObjectInfo(
                key=item['Key'],
                size=item.get('Size', 0),
                last_modified=item.get('LastModified'),
                storage_class=item.get('StorageClass')
            )
            for item in response.get('Contents', [])
        ]
        prefixes = [p['Prefix'] for p in response.get('CommonPrefixes', [])]
        next_token = response.get('NextContinuationToken') if response.get('IsTruncated') else None
        return ListPage(objects=objects, common_prefixes=prefixes, next_token=next_token)

    def list_buckets(self) -> List[str]:
        response = self._call("ListBuckets", self.s3_client.list_buckets)
        return [b['Name'] for b in response.get('Buckets', [])]

    def create_bucket(self, bucket: str, region: Optional[str] = None,
                      request_args: Optional[Dict[str, str]] = None) -> None:
        """Create a bucket.

        Args:
            bucket: Bucket name
            region: Region to create the bucket in, defaults to the client's
            request_args: ACL/grant arguments for the request
        """
        region = region or self.region
        request: Dict[str, Any] = dict(request_args or {})
        request['Bucket'] = bucket
        if region and region != 'us-east-1':
            request['CreateBucketConfiguration'] = {'LocationConstraint': region}
        self._call("CreateBucket", self.s3_client.create_bucket, bucket=bucket, **request)
