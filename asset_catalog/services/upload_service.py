# asset_catalog/services/upload_service.py
import asyncio
import hashlib
import logging
from typing import Any, Dict, List, Optional

from ..config import Config
from ..errors import InvalidInput, StorageWriteFailed, describe_error
from ..models.upload import UploadOptions, UploadResult
from .storage_service import ObjectStorageService, is_transient_error

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class UploadService:
    """Uploads bytes to the object store once per logical key.

    An existing object is reused instead of rewritten, transient network
    failures are retried with exponential backoff, and large payloads go
    through a multipart session that is aborted if it cannot be completed.
    """

    def __init__(self, storage: ObjectStorageService,
                 multipart_threshold: Optional[int] = None,
                 part_size: Optional[int] = None,
                 backoff_base: Optional[float] = None):
        self.storage = storage
        self.multipart_threshold = (
            multipart_threshold if multipart_threshold is not None else Config.MULTIPART_THRESHOLD
        )
        self.part_size = part_size or Config.MULTIPART_PART_SIZE
        self.backoff_base = backoff_base if backoff_base is not None else Config.UPLOAD_BACKOFF_BASE
        self.logger = logging.getLogger(__name__)

    async def upload(self, data: bytes, destination_key: str,
                     options: Optional[UploadOptions] = None) -> UploadResult:
        """Upload ``data`` to ``destination_key`` honoring skip/retry options"""
        options = options or UploadOptions()
        if not destination_key or not destination_key.strip("/"):
            raise InvalidInput("Destination key is required")

        max_attempts = max(1, options.max_retries)
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await self._attempt(data, destination_key, options)
            except Exception as e:
                last_error = e
                if not is_transient_error(e) or attempt >= max_attempts:
                    break
                delay = self.backoff_base ** attempt
                self.logger.warning(
                    f"Upload of {destination_key} failed (attempt {attempt}/{max_attempts}), "
                    f"retrying in {delay:.1f}s: {describe_error(e)}"
                )
                await asyncio.sleep(delay)

        self.logger.error(f"Upload of {destination_key} failed: {describe_error(last_error)}")
        raise StorageWriteFailed(
            "Object store upload failed",
            last_error=last_error,
            key=destination_key,
        ) from last_error

    async def _attempt(self, data: bytes, key: str, options: UploadOptions) -> UploadResult:
        if options.skip_if_exists:
            existing = await self.storage.head(key)
            if existing is not None and self._is_reusable(existing, options):
                self.logger.info(f"Object already exists at {key}, skipping upload")
                return UploadResult(
                    key=key,
                    public_url=self.storage.public_url(key),
                    size_bytes=existing["size"],
                    was_skipped=True,
                )

        content_type = options.content_type or DEFAULT_CONTENT_TYPE
        metadata = {str(k): str(v) for k, v in options.metadata.items()}

        if len(data) > self.multipart_threshold:
            await self._multipart_upload(data, key, content_type, metadata)
        else:
            await self.storage.put_object(key, data, content_type, metadata)

        self.logger.info(f"Uploaded {len(data)} bytes to {key}")
        return UploadResult(
            key=key,
            public_url=self.storage.public_url(key),
            size_bytes=len(data),
            was_skipped=False,
        )

    def _is_reusable(self, existing: Dict[str, Any], options: UploadOptions) -> bool:
        # A stored object whose checksum differs from ours is stale content
        stored = (existing.get("metadata") or {}).get("checksum")
        wanted = options.metadata.get("checksum")
        if stored and wanted and stored != wanted:
            self.logger.warning(
                f"Object at {existing['key']} has checksum {stored}, expected {wanted}; overwriting"
            )
            return False
        return True

    async def _multipart_upload(self, data: bytes, key: str, content_type: str,
                                metadata: Dict[str, str]):
        upload_id = await self.storage.create_multipart_upload(key, content_type, metadata)
        parts: List[Dict[str, Any]] = []

        try:
            for part_number, offset in enumerate(range(0, len(data), self.part_size), start=1):
                chunk = data[offset:offset + self.part_size]
                etag = await self.storage.upload_part(key, upload_id, part_number, chunk)
                parts.append({"PartNumber": part_number, "ETag": etag})
                self.logger.debug(
                    f"Uploaded part {part_number} of {key} "
                    f"(md5 {hashlib.md5(chunk).hexdigest()}, etag {etag})"
                )

            await self.storage.complete_multipart_upload(key, upload_id, parts)
        except (Exception, asyncio.CancelledError):
            # Leave no orphaned parts behind, including on caller timeouts
            try:
                await self.storage.abort_multipart_upload(key, upload_id)
            except Exception as abort_error:
                self.logger.error(
                    f"Failed to abort multipart upload {upload_id} for {key}: "
                    f"{describe_error(abort_error)}"
                )
            raise
