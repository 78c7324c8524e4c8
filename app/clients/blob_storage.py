"""
Blob storage client for product images.

Talks to a Dapr output binding (S3, Azure Blob, ...) over the sidecar's HTTP
API, the same way the service reaches other Dapr building blocks:

    POST http://localhost:<dapr-http-port>/v1.0/bindings/<binding-name>
    {"operation": "create", "data": "<base64>", "metadata": {"key": "...", ...}}
"""

import asyncio
import base64
import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from app.core.config import config
from app.core.errors import StorageError, ValidationError
from app.core.logger import logger
from app.middleware.request_context import get_trace_id

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


@dataclass
class UploadedImage:
    """An image file received from the client, fully read into memory"""
    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


class BlobStorage:
    """
    upload(file) -> url, upload_many(files) -> [url], delete(url), delete_many(urls).

    Failures surface as StorageError and are not retried here.
    """

    def __init__(
        self,
        binding_name: Optional[str] = None,
        folder: Optional[str] = None,
        public_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.binding_name = binding_name or config.blob_binding_name
        self.folder = folder or config.blob_folder
        self.public_base_url = (public_base_url or config.blob_public_base_url).rstrip("/")
        self.timeout = timeout or config.blob_timeout_seconds
        self.binding_url = f"http://localhost:{config.dapr_http_port}/v1.0/bindings/{self.binding_name}"

    def validate(self, file: UploadedImage) -> None:
        """Reject files the catalog does not accept before anything is uploaded"""
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                f"Unsupported image type '{file.content_type}'",
                details={"filename": file.filename, "allowed": sorted(ALLOWED_CONTENT_TYPES)},
            )
        if file.size == 0:
            raise ValidationError("Image file is empty", details={"filename": file.filename})
        if file.size > config.max_image_size:
            raise ValidationError(
                "File size exceeds the limits",
                details={"filename": file.filename, "max_bytes": config.max_image_size},
            )

    def build_key(self, file: UploadedImage) -> str:
        ext = os.path.splitext(file.filename or "")[1].lower()
        return f"{self.folder}/{uuid.uuid4()}{ext}"

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def key_from_url(self, url: str) -> str:
        prefix = f"{self.public_base_url}/"
        return url[len(prefix):] if url.startswith(prefix) else url

    async def _invoke(self, operation: str, metadata: Dict[str, str], data: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"operation": operation, "metadata": metadata}
        if data is not None:
            payload["data"] = data

        headers = {"Content-Type": "application/json"}
        trace_id = get_trace_id()
        if trace_id:
            headers["traceparent"] = f"00-{trace_id}-{trace_id[:16]}-01"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.binding_url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status >= 400:
                        error_text = await response.text()
                        raise StorageError(
                            f"Blob storage {operation} failed with status {response.status}",
                            details={"key": metadata.get("key"), "response": error_text},
                        )
        except aiohttp.ClientError as e:
            raise StorageError(
                f"Blob storage {operation} failed: {e}",
                details={"key": metadata.get("key")},
            ) from e
        except asyncio.TimeoutError as e:
            raise StorageError(
                f"Blob storage {operation} timed out",
                details={"key": metadata.get("key")},
            ) from e

    async def upload(self, file: UploadedImage) -> str:
        """Upload one file and return its public URL"""
        self.validate(file)
        key = self.build_key(file)
        await self._invoke(
            "create",
            metadata={"key": key, "contentType": file.content_type, "decodeBase64": "true"},
            data=base64.b64encode(file.content).decode("ascii"),
        )
        logger.debug(
            f"Uploaded image {file.filename}",
            metadata={"event": "blob_uploaded", "key": key, "bytes": file.size}
        )
        return self.url_for(key)

    async def upload_many(self, files: List[UploadedImage]) -> List[str]:
        """
        Upload all files concurrently. All-or-nothing: when any upload fails the
        ones that succeeded are deleted again and StorageError is raised.
        """
        if not files:
            return []

        for file in files:
            self.validate(file)

        results = await asyncio.gather(*(self.upload(f) for f in files), return_exceptions=True)
        uploaded = [r for r in results if isinstance(r, str)]
        failures = [r for r in results if isinstance(r, BaseException)]

        if failures:
            if uploaded:
                await self.discard(uploaded)
            first = failures[0]
            if isinstance(first, (StorageError, ValidationError)):
                raise first
            raise StorageError(f"Image upload failed: {first}") from first

        return uploaded

    async def delete(self, url: str) -> None:
        key = self.key_from_url(url)
        await self._invoke("delete", metadata={"key": key})
        logger.debug("Deleted image blob", metadata={"event": "blob_deleted", "key": key})

    async def delete_many(self, urls: List[str]) -> None:
        """Delete all blobs; raises StorageError naming every URL that could not be deleted"""
        if not urls:
            return

        results = await asyncio.gather(*(self.delete(u) for u in urls), return_exceptions=True)
        failed = [url for url, result in zip(urls, results) if isinstance(result, BaseException)]
        if failed:
            raise StorageError(
                f"Failed to delete {len(failed)} image blob(s)",
                details={"urls": failed},
            )

    async def discard(self, urls: List[str]) -> None:
        """
        Delete blobs that are no longer (or never were) referenced by a saved
        aggregate. Leftovers are logged for the reconciliation job instead of
        failing the request.
        """
        try:
            await self.delete_many(urls)
        except StorageError as e:
            logger.warning(
                "Orphaned image blobs left in storage",
                metadata={"event": "blob_orphaned", "urls": e.details.get("urls", urls)}
            )
