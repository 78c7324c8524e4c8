"""Tests for ProductRepository against a mocked MongoDB collection"""
import re
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import Decimal128, ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from app.core.errors import ConflictError, DatabaseError, NotFoundError, VersionConflictError
from app.models.product import ProductStatus, ProductVariant
from app.repositories.product import ProductRepository

PRODUCT_ID = "507f1f77bcf86cd799439011"
CATEGORY_ID = "507f1f77bcf86cd799439022"


@pytest.fixture
def mock_collection():
    """Mock MongoDB collection for testing"""
    collection = AsyncMock()
    collection.find = MagicMock()
    return collection


@pytest.fixture
def product_repository(mock_collection, mock_storage):
    return ProductRepository(mock_collection, mock_storage)


@pytest.fixture
def product_doc():
    """Product document as stored in MongoDB"""
    return {
        "_id": ObjectId(PRODUCT_ID),
        "title": "Gold Ring",
        "slug": "gold-ring",
        "price": Decimal128("499.00"),
        "status": "DRAFT",
        "tags": [],
        "sortOrder": 0,
        "categories": [ObjectId(CATEGORY_ID)],
        "variants": [{"id": "v1", "sku": "RING-G-7", "price": Decimal128("499.00"), "stock": 3}],
        "images": [
            {"id": "i1", "variantId": None, "url": "https://cdn.test/products/main.jpg",
             "position": 0, "isPrimary": True},
        ],
        "createdAt": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "updatedAt": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "version": 4,
    }


def cursor_returning(docs):
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=docs)
    return cursor


class TestReads:
    """Test lookups and document conversion"""

    @pytest.mark.asyncio
    async def test_find_by_id_converts_document(self, product_repository, mock_collection, product_doc):
        mock_collection.find_one.return_value = product_doc

        product = await product_repository.find_by_id(PRODUCT_ID)

        assert product.id == PRODUCT_ID
        assert product.price == Decimal("499.00")
        assert product.categories == [CATEGORY_ID]
        assert product.variants[0].price == Decimal("499.00")
        assert product.images[0].is_primary is True
        assert product.version == 4

    @pytest.mark.asyncio
    async def test_find_by_invalid_id(self, product_repository, mock_collection):
        assert await product_repository.find_by_id("not-an-id") is None
        mock_collection.find_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_find_by_slug_missing(self, product_repository, mock_collection):
        mock_collection.find_one.return_value = None
        assert await product_repository.find_by_slug("nope") is None

    @pytest.mark.asyncio
    async def test_database_error(self, product_repository, mock_collection):
        mock_collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(DatabaseError) as exc:
            await product_repository.find_by_id(PRODUCT_ID)
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_slug_exists_excludes_product(self, product_repository, mock_collection):
        mock_collection.count_documents.return_value = 0

        assert await product_repository.slug_exists("gold-ring", exclude_id=PRODUCT_ID) is False

        query = mock_collection.count_documents.call_args.args[0]
        assert query == {"slug": "gold-ring", "_id": {"$ne": ObjectId(PRODUCT_ID)}}

    @pytest.mark.asyncio
    async def test_find_existing_skus(self, product_repository, mock_collection):
        mock_collection.find.return_value = cursor_returning([
            {"_id": ObjectId(), "variants": [{"sku": "A"}, {"sku": "B"}]},
        ])

        existing = await product_repository.find_existing_skus(["B", "C", "A"])

        assert existing == ["B", "A"]

    @pytest.mark.asyncio
    async def test_list_products_filters(self, product_repository, mock_collection, product_doc):
        mock_collection.count_documents.return_value = 1
        cursor = cursor_returning([product_doc])
        mock_collection.find.return_value = cursor

        products, total = await product_repository.list_products(
            page=2, limit=5, search="gold (18k)", status=ProductStatus.DRAFT,
            category=CATEGORY_ID, sort_by="price", order="asc",
        )

        assert total == 1
        assert products[0].slug == "gold-ring"
        query = mock_collection.find.call_args.args[0]
        assert query["deletedAt"] is None
        assert query["title"] == {"$regex": re.escape("gold (18k)"), "$options": "i"}
        assert query["status"] == "DRAFT"
        assert query["categories"] == {"$in": [ObjectId(CATEGORY_ID)]}
        cursor.sort.assert_called_once_with("price", 1)
        cursor.skip.assert_called_once_with(5)


class TestSave:
    """Test whole-aggregate writes"""

    @pytest.mark.asyncio
    async def test_insert(self, product_repository, mock_collection, gold_ring):
        inserted_id = ObjectId()
        mock_collection.insert_one.return_value = MagicMock(inserted_id=inserted_id)

        saved = await product_repository.save(gold_ring)

        assert saved.id == str(inserted_id)
        assert saved.version == 1
        assert gold_ring.id is None
        doc = mock_collection.insert_one.call_args.args[0]
        assert "id" not in doc
        assert doc["price"] == Decimal128("499.00")
        assert doc["categories"] == [ObjectId(gold_ring.categories[0])]
        assert doc["variants"][0]["metalType"] == "18K"
        assert doc["version"] == 1

    @pytest.mark.asyncio
    async def test_update_is_conditioned_on_version(self, product_repository, mock_collection, gold_ring):
        gold_ring.id = PRODUCT_ID
        gold_ring.version = 4
        mock_collection.replace_one.return_value = MagicMock(matched_count=1)

        saved = await product_repository.save(gold_ring)

        assert saved.version == 5
        query, doc = mock_collection.replace_one.call_args.args
        assert query == {"_id": ObjectId(PRODUCT_ID), "version": 4}
        assert doc["version"] == 5

    @pytest.mark.asyncio
    async def test_update_document_without_version(self, product_repository, mock_collection, product_doc):
        """Documents written without a version field can still be updated"""
        del product_doc["version"]
        mock_collection.find_one.return_value = product_doc
        mock_collection.replace_one.return_value = MagicMock(matched_count=1)

        product = await product_repository.find_by_id(PRODUCT_ID)
        assert product.version == 0
        product.title = "Rose Gold Ring"
        saved = await product_repository.save(product)

        assert saved.version == 1
        query, doc = mock_collection.replace_one.call_args.args
        assert query == {
            "_id": ObjectId(PRODUCT_ID),
            "$or": [{"version": 0}, {"version": {"$exists": False}}],
        }
        assert doc["version"] == 1
        assert doc["title"] == "Rose Gold Ring"

    @pytest.mark.asyncio
    async def test_update_version_conflict(self, product_repository, mock_collection, gold_ring):
        gold_ring.id = PRODUCT_ID
        mock_collection.replace_one.return_value = MagicMock(matched_count=0)
        mock_collection.count_documents.return_value = 1

        with pytest.raises(VersionConflictError):
            await product_repository.save(gold_ring)

    @pytest.mark.asyncio
    async def test_update_deleted_product(self, product_repository, mock_collection, gold_ring):
        gold_ring.id = PRODUCT_ID
        mock_collection.replace_one.return_value = MagicMock(matched_count=0)
        mock_collection.count_documents.return_value = 0

        with pytest.raises(NotFoundError):
            await product_repository.save(gold_ring)

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, product_repository, mock_collection, gold_ring):
        mock_collection.insert_one.side_effect = DuplicateKeyError(
            "E11000 duplicate key error", code=11000,
            details={"keyPattern": {"slug": 1}, "keyValue": {"slug": "gold-ring"}},
        )

        with pytest.raises(ConflictError) as exc:
            await product_repository.save(gold_ring)
        assert exc.value.details == {"field": "slug", "value": "gold-ring"}

    @pytest.mark.asyncio
    async def test_duplicate_sku(self, product_repository, mock_collection, gold_ring):
        mock_collection.insert_one.side_effect = DuplicateKeyError(
            "E11000 duplicate key error", code=11000,
            details={"keyPattern": {"variants.sku": 1}, "keyValue": {"variants.sku": "RING-G-7"}},
        )

        with pytest.raises(ConflictError) as exc:
            await product_repository.save(gold_ring)
        assert exc.value.details["skus"] == ["RING-G-7"]

    @pytest.mark.asyncio
    async def test_duplicate_sku_within_document(self, product_repository, mock_collection, gold_ring):
        gold_ring.variants.append(ProductVariant(sku="RING-G-7", price=Decimal("1")))

        with pytest.raises(ConflictError):
            await product_repository.save(gold_ring)
        mock_collection.insert_one.assert_not_called()


class TestDelete:
    """Test aggregate deletion"""

    @pytest.mark.asyncio
    async def test_delete_discards_image_blobs(self, product_repository, mock_collection, mock_storage, product_doc):
        mock_collection.find_one_and_delete.return_value = product_doc

        removed = await product_repository.delete(PRODUCT_ID)

        assert removed.id == PRODUCT_ID
        mock_storage.discard.assert_awaited_once_with(["https://cdn.test/products/main.jpg"])

    @pytest.mark.asyncio
    async def test_delete_missing(self, product_repository, mock_collection, mock_storage):
        mock_collection.find_one_and_delete.return_value = None

        assert await product_repository.delete(PRODUCT_ID) is None
        mock_storage.discard.assert_not_called()


class TestCount:
    """Test product counting"""

    @pytest.mark.asyncio
    async def test_count_excludes_soft_deleted(self, product_repository, mock_collection):
        mock_collection.count_documents.return_value = 7

        assert await product_repository.count_products(status=ProductStatus.ACTIVE) == 7

        query = mock_collection.count_documents.call_args.args[0]
        assert query == {"deletedAt": None, "status": "ACTIVE"}
