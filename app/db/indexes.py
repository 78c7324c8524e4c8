"""
Database index management for MongoDB.

The unique indexes here are the storage-level backstop for slug and SKU
uniqueness. They are created at application startup.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.core.logger import logger

PRODUCTS_COLLECTION = "products"
CATEGORIES_COLLECTION = "categories"

SLUG_INDEX = "idx_slug_unique"
SKU_INDEX = "idx_variant_sku_unique"


async def create_indexes(db: AsyncIOMotorDatabase) -> None:
    """
    Create all required MongoDB indexes for the product collection.

    Args:
        db: MongoDB database instance
    """
    products = db[PRODUCTS_COLLECTION]

    await products.create_index(
        [("slug", ASCENDING)],
        unique=True,
        name=SLUG_INDEX
    )
    logger.info("Created unique index on 'slug'")

    # Products without variants have no variants.sku value; the partial filter
    # keeps them from colliding with each other on a missing key.
    await products.create_index(
        [("variants.sku", ASCENDING)],
        unique=True,
        partialFilterExpression={"variants.sku": {"$exists": True}},
        name=SKU_INDEX
    )
    logger.info("Created unique index on 'variants.sku'")

    await products.create_index(
        [("status", ASCENDING), ("createdAt", DESCENDING)],
        name="idx_status_created"
    )
    await products.create_index(
        [("categories", ASCENDING), ("status", ASCENDING)],
        name="idx_categories_status"
    )
    await products.create_index([("deletedAt", ASCENDING)], name="idx_deleted_at")
    logger.info("Created listing indexes on products")

    await db[CATEGORIES_COLLECTION].create_index(
        [("isActive", ASCENDING), ("sortOrder", ASCENDING)],
        name="idx_active_sort"
    )
    logger.info("Created index on categories 'isActive', 'sortOrder'")
