"""Tests for the blob storage client"""
import asyncio
import base64
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from app.clients.blob_storage import BlobStorage, UploadedImage
from app.core.errors import StorageError, ValidationError


def image(name="ring.jpg", content=b"\xff\xd8\xffdata", content_type="image/jpeg"):
    return UploadedImage(filename=name, content=content, content_type=content_type)


def mock_session(status=200, text=""):
    """aiohttp.ClientSession stand-in whose post() yields a response with status"""
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=text)

    post_context = MagicMock()
    post_context.__aenter__.return_value = response

    session = MagicMock()
    session.post.return_value = post_context

    session_context = MagicMock()
    session_context.__aenter__.return_value = session
    return session_context, session


@pytest.fixture
def storage():
    return BlobStorage(
        binding_name="product-images",
        folder="products",
        public_base_url="https://cdn.test/",
        timeout=2.0,
    )


class TestValidation:
    """Test file checks done before uploading"""

    def test_accepts_jpeg(self, storage):
        storage.validate(image())

    def test_rejects_unsupported_type(self, storage):
        with pytest.raises(ValidationError):
            storage.validate(image(name="doc.pdf", content_type="application/pdf"))

    def test_rejects_empty_file(self, storage):
        with pytest.raises(ValidationError):
            storage.validate(image(content=b""))

    def test_rejects_oversized_file(self, storage):
        with patch("app.clients.blob_storage.config") as mock_config:
            mock_config.max_image_size = 4
            with pytest.raises(ValidationError, match="exceeds the limits"):
                storage.validate(image(content=b"12345"))


class TestKeys:
    """Test key and URL mapping"""

    def test_build_key_keeps_extension(self, storage):
        key = storage.build_key(image(name="Ring.PNG", content_type="image/png"))
        assert key.startswith("products/")
        assert key.endswith(".png")

    def test_url_round_trip(self, storage):
        url = storage.url_for("products/abc.jpg")
        assert url == "https://cdn.test/products/abc.jpg"
        assert storage.key_from_url(url) == "products/abc.jpg"

    def test_foreign_url_is_used_as_key(self, storage):
        assert storage.key_from_url("https://elsewhere/x.jpg") == "https://elsewhere/x.jpg"


class TestInvoke:
    """Test calls to the Dapr output binding"""

    @pytest.mark.asyncio
    async def test_upload_posts_base64_content(self, storage):
        session_context, session = mock_session()

        with patch("app.clients.blob_storage.aiohttp.ClientSession", return_value=session_context):
            url = await storage.upload(image())

        assert url.startswith("https://cdn.test/products/")
        endpoint = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert endpoint.endswith("/v1.0/bindings/product-images")
        assert payload["operation"] == "create"
        assert base64.b64decode(payload["data"]) == b"\xff\xd8\xffdata"
        assert url == storage.url_for(payload["metadata"]["key"])

    @pytest.mark.asyncio
    async def test_error_status_raises_storage_error(self, storage):
        session_context, _ = mock_session(status=500, text="bucket unavailable")

        with patch("app.clients.blob_storage.aiohttp.ClientSession", return_value=session_context):
            with pytest.raises(StorageError) as exc:
                await storage.delete("https://cdn.test/products/abc.jpg")

        assert exc.value.status_code == 502
        assert exc.value.details["key"] == "products/abc.jpg"

    @pytest.mark.asyncio
    async def test_connection_error_raises_storage_error(self, storage):
        session_context, session = mock_session()
        session.post.side_effect = aiohttp.ClientConnectionError("refused")

        with patch("app.clients.blob_storage.aiohttp.ClientSession", return_value=session_context):
            with pytest.raises(StorageError):
                await storage.delete("https://cdn.test/products/abc.jpg")

    @pytest.mark.asyncio
    async def test_timeout_raises_storage_error(self, storage):
        session_context, session = mock_session()
        session.post.side_effect = asyncio.TimeoutError()

        with patch("app.clients.blob_storage.aiohttp.ClientSession", return_value=session_context):
            with pytest.raises(StorageError, match="timed out"):
                await storage.delete("https://cdn.test/products/abc.jpg")


class TestBatchOperations:
    """Test all-or-nothing uploads and batch deletes"""

    @pytest.mark.asyncio
    async def test_upload_many(self, storage):
        storage._invoke = AsyncMock()

        urls = await storage.upload_many([image("a.jpg"), image("b.jpg")])

        assert len(urls) == 2
        assert storage._invoke.await_count == 2

    @pytest.mark.asyncio
    async def test_upload_many_validates_before_uploading(self, storage):
        storage._invoke = AsyncMock()

        with pytest.raises(ValidationError):
            await storage.upload_many([image("a.jpg"), image("b.gif", content_type="text/plain")])

        storage._invoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_many_rolls_back_on_failure(self, storage):
        calls = []

        async def invoke(operation, metadata, data=None):
            calls.append((operation, metadata["key"]))
            if operation == "create" and len([c for c in calls if c[0] == "create"]) == 2:
                raise StorageError("Blob storage create failed")

        storage._invoke = invoke

        with pytest.raises(StorageError):
            await storage.upload_many([image("a.jpg"), image("b.jpg")])

        created = [key for op, key in calls if op == "create"]
        deleted = [key for op, key in calls if op == "delete"]
        assert deleted == [created[0]]

    @pytest.mark.asyncio
    async def test_upload_many_empty(self, storage):
        assert await storage.upload_many([]) == []

    @pytest.mark.asyncio
    async def test_delete_many_reports_failures(self, storage):
        async def invoke(operation, metadata, data=None):
            if metadata["key"].endswith("bad.jpg"):
                raise StorageError("Blob storage delete failed")

        storage._invoke = invoke

        with pytest.raises(StorageError) as exc:
            await storage.delete_many(["https://cdn.test/products/ok.jpg", "https://cdn.test/products/bad.jpg"])

        assert exc.value.details["urls"] == ["https://cdn.test/products/bad.jpg"]

    @pytest.mark.asyncio
    async def test_discard_logs_orphans(self, storage):
        storage._invoke = AsyncMock(side_effect=StorageError("Blob storage delete failed"))

        with patch("app.clients.blob_storage.logger") as mock_logger:
            await storage.discard(["https://cdn.test/products/a.jpg"])

        mock_logger.warning.assert_called_once()
        metadata = mock_logger.warning.call_args.kwargs["metadata"]
        assert metadata["event"] == "blob_orphaned"
        assert metadata["urls"] == ["https://cdn.test/products/a.jpg"]
