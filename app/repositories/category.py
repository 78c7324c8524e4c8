"""
Category repository: read-only lookups used to validate product references
"""

from typing import Iterable, List, Set

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from app.core.errors import DatabaseError
from app.core.logger import logger
from app.models.category import Category


class CategoryRepository:
    """Read-only access to the categories collection"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def find_by_ids(self, category_ids: Iterable[str]) -> List[Category]:
        """
        Load the categories with the given ids.
        Ids that are not valid ObjectIds can never match and are left out.
        """
        object_ids = [ObjectId(cid) for cid in set(category_ids) if ObjectId.is_valid(cid)]
        if not object_ids:
            return []

        try:
            cursor = self.collection.find({"_id": {"$in": object_ids}})
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("MongoDB error looking up categories", error=e)
            raise DatabaseError("Database error during category lookup")

        categories = []
        for doc in docs:
            doc["id"] = str(doc.pop("_id"))
            if isinstance(doc.get("parentId"), ObjectId):
                doc["parentId"] = str(doc["parentId"])
            categories.append(Category.model_validate(doc))
        return categories

    async def find_active_by_ids(self, category_ids: Iterable[str]) -> Set[str]:
        """Return the subset of category_ids that exist and are active"""
        return {c.id for c in await self.find_by_ids(category_ids) if c.is_active}
