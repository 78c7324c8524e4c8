"""
Product service containing business logic layer
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from app.clients.blob_storage import BlobStorage, UploadedImage
from app.core.config import config
from app.core.errors import NotFoundError
from app.core.logger import logger
from app.models.product import Product, ProductStatus, ProductVariant
from app.repositories.product import ProductRepository
from app.schemas.product import ImageMeta, ProductCreate, ProductDetailsUpdate
from app.services.variant_image import VariantImageCoordinator, append_images
from app.validators.product import ProductValidator


def build_product(payload: ProductCreate, slug: str, urls: List[str]) -> Product:
    """
    Assemble a new aggregate from a validated payload and the uploaded image URLs.

    Image i gets imagesMeta[i]; an entry with variantSku puts the image in that
    variant's scope. Each scope is numbered from 0 with one primary image.
    """
    variants = [ProductVariant(**v.model_dump()) for v in payload.variants]
    published_at = None
    if payload.status == ProductStatus.ACTIVE:
        published_at = payload.published_at or datetime.now(timezone.utc)

    product = Product(
        title=payload.title,
        slug=slug,
        description=payload.description,
        price=payload.price,
        compare_at_price=payload.compare_at_price,
        status=payload.status,
        tags=payload.tags,
        sort_order=payload.sort_order,
        categories=payload.categories,
        meta_title=payload.meta_title,
        meta_description=payload.meta_description,
        published_at=published_at,
        variants=variants,
    )

    scopes: Dict[Optional[str], List[Tuple[str, Optional[ImageMeta]]]] = {}
    for index, url in enumerate(urls):
        meta = payload.images_meta[index] if index < len(payload.images_meta) else None
        variant = product.find_variant_by_sku(meta.variant_sku) if meta and meta.variant_sku else None
        scopes.setdefault(variant.id if variant else None, []).append((url, meta))

    for variant_id, entries in scopes.items():
        append_images(product, variant_id, [url for url, _ in entries], [meta for _, meta in entries])

    return product


class ProductService:
    """Service layer for product business logic"""

    def __init__(
        self,
        repository: ProductRepository,
        validator: ProductValidator,
        storage: BlobStorage,
        coordinator: VariantImageCoordinator,
    ):
        self.repository = repository
        self.validator = validator
        self.storage = storage
        self.coordinator = coordinator

    async def create_product(
        self,
        payload: ProductCreate,
        files: List[UploadedImage],
        created_by: str = "system",
    ) -> Product:
        """Validate, upload images and persist a new product in one write"""
        slug = await self.validator.validate_create(payload, len(files))

        urls = await self.storage.upload_many(files)
        product = build_product(payload, slug, urls)

        try:
            saved = await self.repository.save(product)
        except Exception:
            await self.storage.discard(urls)
            raise

        logger.info(
            f"Created product {saved.id}",
            user_id=created_by,
            metadata={
                "event": "create_product",
                "product_id": saved.id,
                "slug": saved.slug,
                "variants": len(saved.variants),
                "images": len(saved.images),
            }
        )
        return saved

    async def get_product(self, product_id: str) -> Product:
        """Get product by ID"""
        product = await self.repository.find_by_id(product_id)
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    async def get_product_by_slug(self, slug: str) -> Product:
        """Get product by slug"""
        product = await self.repository.find_by_slug(slug)
        if not product:
            raise NotFoundError("Product not found", details={"slug": slug})
        return product

    async def list_products(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        status: Optional[ProductStatus] = None,
        category: Optional[str] = None,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> Dict[str, Any]:
        """List products with optional search and filters"""
        limit = min(limit or config.default_page_size, config.max_page_size)
        products, total = await self.repository.list_products(
            page=page, limit=limit, search=search, status=status,
            category=category, sort_by=sort_by, order=order,
        )

        logger.info(
            f"Fetched {len(products)} products",
            metadata={
                "event": "list_products",
                "count": len(products),
                "total": total,
                "filters": {"search": search, "status": status, "category": category},
            }
        )

        return {
            "products": products,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        }

    async def update_product_details(
        self,
        product_id: str,
        update: ProductDetailsUpdate,
        updated_by: str = "system",
    ) -> Product:
        """
        Edit product metadata. Images are not replaced here; they only grow
        through the image endpoints.
        """

        async def mutation(product: Product) -> Dict[str, Any]:
            changes = await self.validator.validate_details_update(product, update)
            for field, value in changes.items():
                setattr(product, field, value)

            if product.status == ProductStatus.ACTIVE and product.published_at is None:
                product.published_at = datetime.now(timezone.utc)
            return changes

        saved, changes = await self.coordinator.mutate(product_id, mutation, "update_product_details")

        logger.info(
            f"Updated product {product_id}",
            user_id=updated_by,
            metadata={"event": "update_product", "product_id": product_id, "fields": sorted(changes)}
        )
        return saved

    async def delete_product(self, product_id: str, deleted_by: str = "system") -> None:
        """Delete a product and the stored blobs of all its images"""
        removed = await self.repository.delete(product_id)
        if not removed:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        logger.info(
            f"Deleted product {product_id}",
            user_id=deleted_by,
            metadata={"event": "delete_product", "product_id": product_id, "images": len(removed.images)}
        )
