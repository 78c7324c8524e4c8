"""Shared test fixtures"""
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from bson import ObjectId

from app.clients.blob_storage import BlobStorage, UploadedImage
from app.core.errors import ConflictError, NotFoundError, VersionConflictError
from app.models.product import Product, ProductImage, ProductStatus, ProductVariant
from app.repositories.category import CategoryRepository
from app.repositories.product import ProductRepository
from app.services.product import ProductService
from app.services.variant_image import VariantImageCoordinator
from app.validators.product import ProductValidator

CATEGORY_ID = "507f1f77bcf86cd799439022"


class InMemoryProductRepository:
    """
    Stand-in for ProductRepository keeping aggregates in a dict.
    Mirrors the stored-version check and the unique slug / SKU indexes.
    """

    def __init__(self, storage=None):
        self.products: Dict[str, Product] = {}
        self.storage = storage
        self.save_calls = 0
        self.conflicts_to_raise = 0

    async def find_by_id(self, product_id: str) -> Optional[Product]:
        stored = self.products.get(product_id)
        return stored.model_copy(deep=True) if stored else None

    async def find_by_slug(self, slug: str) -> Optional[Product]:
        for stored in self.products.values():
            if stored.slug == slug:
                return stored.model_copy(deep=True)
        return None

    async def slug_exists(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        return any(p.slug == slug and pid != exclude_id for pid, p in self.products.items())

    async def find_existing_skus(self, skus: List[str], exclude_id: Optional[str] = None) -> List[str]:
        persisted = {v.sku for pid, p in self.products.items() if pid != exclude_id for v in p.variants}
        return [sku for sku in skus if sku in persisted]

    async def save(self, product: Product) -> Product:
        self.save_calls += 1
        ProductRepository._check_in_document_skus(product)

        if self.conflicts_to_raise > 0:
            self.conflicts_to_raise -= 1
            raise VersionConflictError(product.id, product.version)

        if await self.slug_exists(product.slug, exclude_id=product.id):
            raise ConflictError(f"Slug \"{product.slug}\" already exists", details={"field": "slug"})
        taken = await self.find_existing_skus(product.skus, exclude_id=product.id)
        if taken:
            raise ConflictError("One or more SKUs already exist", details={"field": "sku", "skus": taken})

        saved = product.model_copy(update={"version": product.version + 1}, deep=True)
        if product.id is None:
            saved.id = str(ObjectId())
        else:
            stored = self.products.get(product.id)
            if stored is None:
                raise NotFoundError("Product not found", details={"product_id": product.id})
            if stored.version != product.version:
                raise VersionConflictError(product.id, product.version)

        self.products[saved.id] = saved
        return saved.model_copy(deep=True)

    async def delete(self, product_id: str) -> Optional[Product]:
        removed = self.products.pop(product_id, None)
        if removed and self.storage:
            await self.storage.discard(removed.image_urls)
        return removed

    async def list_products(self, page=1, limit=10, search=None, status=None, category=None,
                            sort_by="createdAt", order="desc"):
        matches = [
            p for p in self.products.values()
            if (not search or search.lower() in p.title.lower())
            and (not status or p.status == status)
            and (not category or category in p.categories)
        ]
        start = (page - 1) * limit
        return matches[start:start + limit], len(matches)


def make_image(name: str, content_type: str = "image/jpeg") -> UploadedImage:
    return UploadedImage(filename=name, content=b"\xff\xd8\xff" + name.encode(), content_type=content_type)


@pytest.fixture
def mock_storage():
    """Blob storage that hands out deterministic URLs"""
    storage = AsyncMock(spec=BlobStorage)

    async def upload_many(files):
        return [f"https://cdn.test/products/{f.filename}" for f in files]

    storage.upload_many.side_effect = upload_many
    return storage


@pytest.fixture
def mock_categories():
    """Category repository where every well-formed id is an active category"""
    categories = AsyncMock(spec=CategoryRepository)

    async def find_active_by_ids(ids):
        return {cid for cid in ids if ObjectId.is_valid(cid)}

    categories.find_active_by_ids.side_effect = find_active_by_ids
    return categories


@pytest.fixture
def repository(mock_storage):
    return InMemoryProductRepository(storage=mock_storage)


@pytest.fixture
def validator(repository, mock_categories):
    return ProductValidator(repository, mock_categories)


@pytest.fixture
def coordinator(repository, mock_storage, validator):
    return VariantImageCoordinator(repository, mock_storage, validator, max_attempts=3)


@pytest.fixture
def product_service(repository, validator, mock_storage, coordinator):
    return ProductService(repository, validator, mock_storage, coordinator)


@pytest.fixture
def gold_ring():
    """Draft product with one variant, two variant images and one product image"""
    variant = ProductVariant(sku="RING-G-7", color="Gold", metal_type="18K", size="7", price=Decimal("499.00"))
    return Product(
        title="Gold Ring",
        slug="gold-ring",
        price=Decimal("499.00"),
        status=ProductStatus.DRAFT,
        categories=[CATEGORY_ID],
        variants=[variant],
        images=[
            ProductImage(url="https://cdn.test/products/main.jpg", position=0, is_primary=True),
            ProductImage(variant_id=variant.id, url="https://cdn.test/products/g1.jpg",
                         position=0, is_primary=True),
            ProductImage(variant_id=variant.id, url="https://cdn.test/products/g2.jpg",
                         position=1, is_primary=False),
        ],
    )


@pytest_asyncio.fixture
async def stored_ring(repository, gold_ring):
    """The gold ring persisted in the in-memory repository"""
    return await repository.save(gold_ring)
