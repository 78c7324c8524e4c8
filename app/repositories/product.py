"""
Product repository for data access layer following Repository pattern
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from bson import Decimal128, ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.clients.blob_storage import BlobStorage
from app.core.errors import ConflictError, DatabaseError, NotFoundError, VersionConflictError
from app.core.logger import logger
from app.models.product import Product, ProductStatus
from app.utils.sequence import find_duplicates

# API sort keys -> stored field names
SORT_FIELDS = {
    "createdAt": "createdAt",
    "created_at": "createdAt",
    "updatedAt": "updatedAt",
    "updated_at": "updatedAt",
    "publishedAt": "publishedAt",
    "published_at": "publishedAt",
    "price": "price",
    "title": "title",
    "sortOrder": "sortOrder",
    "sort_order": "sortOrder",
}


def _to_bson(value: Any) -> Any:
    """Decimals become Decimal128, recursively"""
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, dict):
        return {k: _to_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_bson(v) for v in value]
    return value


def _from_bson(value: Any) -> Any:
    """Decimal128 back to Decimal and ObjectId to str, recursively"""
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _from_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_bson(v) for v in value]
    return value


class ProductRepository:
    """
    Repository for the product aggregate.

    The whole aggregate is written in a single document operation. Every write
    is conditioned on the version that was loaded, so a concurrent writer is
    detected instead of silently overwritten.
    """

    def __init__(self, collection: AsyncIOMotorCollection, storage: Optional[BlobStorage] = None):
        self.collection = collection
        self.storage = storage

    @staticmethod
    def _to_object_id(product_id: Optional[str]) -> Optional[ObjectId]:
        if not product_id or not ObjectId.is_valid(product_id):
            return None
        return ObjectId(product_id)

    def _doc_to_model(self, doc: Optional[dict]) -> Optional[Product]:
        """Convert MongoDB document to the Product aggregate"""
        if not doc:
            return None

        data = _from_bson(dict(doc))
        data["id"] = data.pop("_id")

        for field in ["createdAt", "updatedAt"]:
            if field in data and not isinstance(data[field], datetime):
                data[field] = datetime.now(timezone.utc)

        return Product.model_validate(data)

    def _model_to_doc(self, product: Product) -> dict:
        """Convert the aggregate to the stored document shape"""
        doc = product.model_dump(by_alias=True, exclude={"id"})
        doc["status"] = product.status.value
        doc["categories"] = [ObjectId(c) if ObjectId.is_valid(c) else c for c in product.categories]
        return _to_bson(doc)

    @staticmethod
    def _conflict_from(error: DuplicateKeyError) -> ConflictError:
        details = error.details or {}
        key_pattern = details.get("keyPattern") or {}
        key_value = details.get("keyValue") or {}

        if "slug" in key_pattern:
            return ConflictError(
                f"Slug \"{key_value.get('slug')}\" already exists",
                details={"field": "slug", "value": key_value.get("slug")},
            )
        if "variants.sku" in key_pattern:
            sku = key_value.get("variants.sku")
            return ConflictError(
                "One or more SKUs already exist",
                details={"field": "sku", "skus": [sku] if sku else []},
            )
        return ConflictError("Duplicate key", details={"key": str(key_pattern)})

    @staticmethod
    def _version_filter(obj_id: ObjectId, version: int) -> Dict[str, Any]:
        # documents written without a version field load as version 0
        if version == 0:
            return {"_id": obj_id, "$or": [{"version": 0}, {"version": {"$exists": False}}]}
        return {"_id": obj_id, "version": version}

    @staticmethod
    def _check_in_document_skus(product: Product) -> None:
        # A multikey unique index does not reject duplicates inside one document
        duplicates = find_duplicates(product.skus)
        if duplicates:
            raise ConflictError("Duplicate SKUs in variants", details={"field": "sku", "skus": duplicates})

    async def find_by_id(self, product_id: str) -> Optional[Product]:
        """Get product by ID"""
        obj_id = self._to_object_id(product_id)
        if obj_id is None:
            return None

        try:
            doc = await self.collection.find_one({"_id": obj_id})
        except PyMongoError as e:
            logger.error("MongoDB error getting product", error=e, metadata={"product_id": product_id})
            raise DatabaseError("Database error during product retrieval")

        return self._doc_to_model(doc)

    async def find_by_slug(self, slug: str) -> Optional[Product]:
        """Get product by slug"""
        try:
            doc = await self.collection.find_one({"slug": slug})
        except PyMongoError as e:
            logger.error("MongoDB error getting product by slug", error=e, metadata={"slug": slug})
            raise DatabaseError("Database error during product retrieval")

        return self._doc_to_model(doc)

    async def slug_exists(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        query: Dict[str, Any] = {"slug": slug}
        exclude_obj_id = self._to_object_id(exclude_id)
        if exclude_obj_id is not None:
            query["_id"] = {"$ne": exclude_obj_id}

        try:
            return await self.collection.count_documents(query, limit=1) > 0
        except PyMongoError as e:
            logger.error("MongoDB error checking slug", error=e, metadata={"slug": slug})
            raise DatabaseError("Database error during slug check")

    async def find_existing_skus(self, skus: List[str], exclude_id: Optional[str] = None) -> List[str]:
        """Return the subset of skus already used by a variant of another product"""
        if not skus:
            return []

        query: Dict[str, Any] = {"variants.sku": {"$in": skus}}
        exclude_obj_id = self._to_object_id(exclude_id)
        if exclude_obj_id is not None:
            query["_id"] = {"$ne": exclude_obj_id}

        try:
            cursor = self.collection.find(query, {"variants.sku": 1})
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("MongoDB error checking SKUs", error=e, metadata={"skus": skus})
            raise DatabaseError("Database error during SKU check")

        persisted = {v.get("sku") for doc in docs for v in doc.get("variants", [])}
        return [sku for sku in skus if sku in persisted]

    async def save(self, product: Product) -> Product:
        """
        Insert a new aggregate or replace an existing one as a whole.

        Returns the saved aggregate with its id and bumped version; the passed
        instance is left untouched.

        Raises:
            ConflictError: slug or SKU already used
            VersionConflictError: the stored version differs from product.version
            NotFoundError: the product was deleted meanwhile
        """
        self._check_in_document_skus(product)

        now = datetime.now(timezone.utc)
        saved = product.model_copy(update={"updated_at": now, "version": product.version + 1}, deep=True)

        try:
            if product.id is None:
                saved.created_at = now
                result = await self.collection.insert_one(self._model_to_doc(saved))
                saved.id = str(result.inserted_id)
                logger.debug("Inserted product", metadata={"event": "product_inserted", "product_id": saved.id})
                return saved

            obj_id = self._to_object_id(product.id)
            if obj_id is None:
                raise NotFoundError("Product not found", details={"product_id": product.id})

            result = await self.collection.replace_one(
                self._version_filter(obj_id, product.version),
                self._model_to_doc(saved),
            )
            if result.matched_count == 0:
                if await self.collection.count_documents({"_id": obj_id}, limit=1) == 0:
                    raise NotFoundError("Product not found", details={"product_id": product.id})
                raise VersionConflictError(product.id, product.version)

            return saved

        except DuplicateKeyError as e:
            raise self._conflict_from(e)
        except PyMongoError as e:
            logger.error("MongoDB error saving product", error=e, metadata={"product_id": product.id})
            raise DatabaseError("Database error during product save")

    async def delete(self, product_id: str) -> Optional[Product]:
        """
        Remove the aggregate and the blobs of all its images.
        Returns the removed product, or None if it did not exist. Blob delete
        failures are logged as orphans, not raised.
        """
        obj_id = self._to_object_id(product_id)
        if obj_id is None:
            return None

        try:
            doc = await self.collection.find_one_and_delete({"_id": obj_id})
        except PyMongoError as e:
            logger.error("MongoDB error deleting product", error=e, metadata={"product_id": product_id})
            raise DatabaseError("Database error during product deletion")

        product = self._doc_to_model(doc)
        if product and self.storage and product.image_urls:
            await self.storage.discard(product.image_urls)
        return product

    def _listing_query(
        self,
        search: Optional[str] = None,
        status: Optional[ProductStatus] = None,
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"deletedAt": None}

        if search and search.strip():
            query["title"] = {"$regex": re.escape(search.strip()), "$options": "i"}
        if status:
            query["status"] = ProductStatus(status).value
        if category:
            category_obj_id = self._to_object_id(category)
            query["categories"] = {"$in": [category_obj_id if category_obj_id else category]}
        return query

    async def count_products(
        self,
        search: Optional[str] = None,
        status: Optional[ProductStatus] = None,
        category: Optional[str] = None,
    ) -> int:
        """Count products that are not soft-deleted and match the filters"""
        try:
            return await self.collection.count_documents(self._listing_query(search, status, category))
        except PyMongoError as e:
            logger.error("MongoDB error counting products", error=e)
            raise DatabaseError("Database error during product count")

    async def list_products(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        status: Optional[ProductStatus] = None,
        category: Optional[str] = None,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> Tuple[List[Product], int]:
        """List products with filters and pagination"""
        query = self._listing_query(search, status, category)
        sort_field = SORT_FIELDS.get(sort_by, "createdAt")
        sort_direction = ASCENDING if order == "asc" else DESCENDING
        skip = (page - 1) * limit

        try:
            total = await self.collection.count_documents(query)
            cursor = self.collection.find(query).sort(sort_field, sort_direction).skip(skip).limit(limit)
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            logger.error("MongoDB error listing products", error=e)
            raise DatabaseError("Database error during product listing")

        return [self._doc_to_model(doc) for doc in docs], total
