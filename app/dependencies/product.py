"""
Dependency injection for the product services and repositories
"""

from fastapi import Depends

from app.clients.blob_storage import BlobStorage
from app.db.mongodb import get_category_collection, get_product_collection
from app.repositories.category import CategoryRepository
from app.repositories.product import ProductRepository
from app.services.product import ProductService
from app.services.variant_image import VariantImageCoordinator
from app.validators.product import ProductValidator


def get_blob_storage() -> BlobStorage:
    """Get blob storage client"""
    return BlobStorage()


async def get_product_repository(
    storage: BlobStorage = Depends(get_blob_storage)
) -> ProductRepository:
    """Get product repository instance"""
    collection = await get_product_collection()
    return ProductRepository(collection, storage)


async def get_category_repository() -> CategoryRepository:
    """Get category repository instance"""
    collection = await get_category_collection()
    return CategoryRepository(collection)


def get_product_validator(
    products: ProductRepository = Depends(get_product_repository),
    categories: CategoryRepository = Depends(get_category_repository),
) -> ProductValidator:
    """Get product validator instance"""
    return ProductValidator(products, categories)


def get_variant_image_coordinator(
    repository: ProductRepository = Depends(get_product_repository),
    storage: BlobStorage = Depends(get_blob_storage),
    validator: ProductValidator = Depends(get_product_validator),
) -> VariantImageCoordinator:
    """Get variant/image coordinator instance"""
    return VariantImageCoordinator(repository, storage, validator)


def get_product_service(
    repository: ProductRepository = Depends(get_product_repository),
    validator: ProductValidator = Depends(get_product_validator),
    storage: BlobStorage = Depends(get_blob_storage),
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
) -> ProductService:
    """Get product service instance"""
    return ProductService(repository, validator, storage, coordinator)
