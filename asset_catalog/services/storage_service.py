# asset_catalog/services/storage_service.py
import asyncio
import logging
import socket
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..config import Config

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
TRANSIENT_ERROR_CODES = {"RequestTimeout", "RequestTimeoutException"}
TRANSIENT_MARKERS = ("EAI_AGAIN", "ENOTFOUND", "ECONNRESET", "timeout", "timed out")
TRANSIENT_EXCEPTIONS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
    ConnectionResetError,
    socket.gaierror,
    TimeoutError,
    asyncio.TimeoutError,
)


def is_transient_error(exc: BaseException) -> bool:
    """Name resolution, connection reset and timeouts are worth retrying"""
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code") in TRANSIENT_ERROR_CODES
    message = str(exc)
    return any(marker in message for marker in TRANSIENT_MARKERS)


def is_not_found(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code")) in NOT_FOUND_CODES


class ObjectStorageService:
    """Thin async facade over a boto3 S3 client.

    boto3 is blocking, so every call runs in a worker thread. The client's own
    retries are switched off; retry policy belongs to the upload pipeline.
    """

    def __init__(self, client=None, bucket: Optional[str] = None,
                 region: Optional[str] = None, cdn_domain: Optional[str] = None):
        self.bucket = bucket or Config.AWS_S3_BUCKET
        self.region = region or Config.AWS_REGION
        self.cdn_domain = cdn_domain if cdn_domain is not None else Config.CDN_DOMAIN
        self.client = client or self._create_client()
        self.logger = logging.getLogger(__name__)

    def _create_client(self):
        return boto3.client(
            "s3",
            region_name=self.region,
            endpoint_url=Config.AWS_S3_ENDPOINT_URL or None,
            aws_access_key_id=Config.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=Config.AWS_SECRET_ACCESS_KEY or None,
            config=BotoConfig(
                connect_timeout=Config.S3_CONNECT_TIMEOUT,
                read_timeout=Config.S3_READ_TIMEOUT,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    async def _call(self, method: str, **kwargs) -> Dict[str, Any]:
        return await asyncio.to_thread(getattr(self.client, method), **kwargs)

    async def head(self, key: str) -> Optional[Dict[str, Any]]:
        """Object metadata, or None when the key is absent"""
        try:
            response = await self._call("head_object", Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        return {
            "key": key,
            "size": response.get("ContentLength", 0),
            "content_type": response.get("ContentType", "application/octet-stream"),
            "etag": response.get("ETag", ""),
            "last_modified": response.get("LastModified"),
            "metadata": response.get("Metadata", {}),
        }

    async def exists(self, key: str) -> bool:
        return await self.head(key) is not None

    async def put_object(self, key: str, body: bytes, content_type: str,
                         metadata: Dict[str, str]) -> str:
        """Single-request upload; returns the ETag"""
        response = await self._call(
            "put_object",
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            Metadata=metadata,
        )
        return response.get("ETag", "")

    async def create_multipart_upload(self, key: str, content_type: str,
                                      metadata: Dict[str, str]) -> str:
        response = await self._call(
            "create_multipart_upload",
            Bucket=self.bucket,
            Key=key,
            ContentType=content_type,
            Metadata=metadata,
        )
        upload_id = response.get("UploadId")
        if not upload_id:
            raise RuntimeError(f"No upload id received for {key}")
        self.logger.info(f"Multipart upload initiated for {key} ({upload_id})")
        return upload_id

    async def upload_part(self, key: str, upload_id: str, part_number: int,
                          body: bytes) -> str:
        response = await self._call(
            "upload_part",
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=body,
        )
        etag = response.get("ETag")
        if not etag:
            raise RuntimeError(f"No ETag received for part {part_number} of {key}")
        return etag

    async def complete_multipart_upload(self, key: str, upload_id: str,
                                        parts: List[Dict[str, Any]]):
        await self._call(
            "complete_multipart_upload",
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )
        self.logger.info(f"Multipart upload completed for {key} ({len(parts)} parts)")

    async def abort_multipart_upload(self, key: str, upload_id: str):
        await self._call(
            "abort_multipart_upload",
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
        )
        self.logger.info(f"Multipart upload aborted for {key} ({upload_id})")

    async def presigned_url(self, key: str, expires_in: int = 3600) -> str:
        """Time-limited download link"""
        return await asyncio.to_thread(
            self.client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def public_url(self, key: str) -> str:
        if self.cdn_domain:
            return f"https://{self.cdn_domain}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
