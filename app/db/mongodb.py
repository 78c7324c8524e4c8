"""
MongoDB connection lifecycle and collection accessors
"""

from motor.motor_asyncio import AsyncIOMotorClient
from typing import Optional

from app.core.config import config
from app.core.errors import DatabaseError
from app.core.logger import logger
from app.db.indexes import CATEGORIES_COLLECTION, PRODUCTS_COLLECTION, create_indexes


class Database:
    """Database connection manager"""

    client: Optional[AsyncIOMotorClient] = None
    database = None


db = Database()


async def connect_to_mongo():
    """Create database connection and make sure indexes exist"""
    logger.info("Connecting to MongoDB...")

    try:
        db.client = AsyncIOMotorClient(config.mongodb_url)
        db.database = db.client[config.mongodb_database]

        # Test connection
        await db.client.admin.command('ping')
        await create_indexes(db.database)

        logger.info(
            f"Successfully connected to MongoDB database '{config.mongodb_database}'",
            metadata={
                "event": "mongodb_connected",
                "database": config.mongodb_database,
                "host": config.mongodb_host,
                "port": config.mongodb_port
            }
        )
    except Exception as e:
        logger.error(
            "Could not connect to MongoDB",
            error=e,
            metadata={"event": "mongodb_connection_error"}
        )
        raise DatabaseError(f"Could not connect to MongoDB: {e}")


async def close_mongo_connection():
    """Close database connection"""
    logger.info("Closing connection to MongoDB...")
    if db.client is not None:
        db.client.close()
        db.client = None
        db.database = None


async def get_database():
    """Get database instance"""
    if db.database is None:
        await connect_to_mongo()
    return db.database


async def get_product_collection():
    """Get products collection"""
    database = await get_database()
    return database[PRODUCTS_COLLECTION]


async def get_category_collection():
    """Get categories collection"""
    database = await get_database()
    return database[CATEGORIES_COLLECTION]
