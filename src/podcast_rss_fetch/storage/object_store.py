"""
S3-compatible object storage for episode media.

Talks to MinIO (or any S3 endpoint) through boto3 with path-style
addressing. Only the three calls the downloader needs are exposed:
bucket existence check, bucket creation and object upload.
"""

import logging
from typing import Any, BinaryIO, Optional, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from podcast_rss_fetch.config import Config
from podcast_rss_fetch.errors import StorageUnavailable

logger = logging.getLogger(__name__)

# MinIO ignores the region but boto3 requires one
DEFAULT_REGION = "us-east-1"
MISSING_BUCKET_CODES = ("404", "NoSuchBucket", "NotFound")


class ObjectStore:
    """
    Bucket-scoped S3 client.

    Example:
        >>> store = ObjectStore("http://localhost:9000", "minioadmin", "minioadmin", "podcasts")
        >>> store.ensure_bucket()
        >>> store.put_object("abc.mp3", b"...", "audio/mpeg")
    """

    def __init__(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        client: Optional[Any] = None,
    ):
        self.endpoint_url = endpoint_url
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=DEFAULT_REGION,
            config=BotoConfig(s3={"addressing_style": "path"}),
        )

    @classmethod
    def from_config(cls, config: Config) -> "ObjectStore":
        return cls(
            endpoint_url=config.minio_url,
            access_key=config.minio_access_key,
            secret_key=config.minio_secret_key,
            bucket=config.minio_bucket,
        )

    def bucket_exists(self) -> bool:
        """
        Check the bucket with a metadata-only HEAD request.

        Returns:
            False if the bucket does not exist

        Raises:
            StorageUnavailable: For any other failure
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except ClientError as exc:
            error = exc.response.get("Error", {})
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if str(error.get("Code")) in MISSING_BUCKET_CODES or status == 404:
                return False
            raise StorageUnavailable(f"Cannot access bucket {self.bucket}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageUnavailable(
                f"Cannot reach object storage at {self.endpoint_url}: {exc}"
            ) from exc

    def create_bucket(self) -> None:
        try:
            self.client.create_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as exc:
            raise StorageUnavailable(f"Cannot create bucket {self.bucket}: {exc}") from exc
        logger.info("Created bucket: %s", self.bucket)

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""
        logger.info("Trying to connect to object storage at: %s", self.endpoint_url)
        if self.bucket_exists():
            logger.info("Bucket %s already exists", self.bucket)
        else:
            self.create_bucket()

    def put_object(self, key: str, body: Union[bytes, BinaryIO], content_type: str) -> None:
        """Upload one object into the bucket."""
        self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        logger.info("File uploaded successfully to object storage: %s", key)
