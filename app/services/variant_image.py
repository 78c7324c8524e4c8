"""
Variant and image management for the product aggregate.

Image invariants, per scope (the images of one variant, or the product-level
images when variant_id is None):
- positions are dense and zero-based: 0..n-1
- a non-empty scope has exactly one primary image

Every operation loads the aggregate, mutates it in memory and writes it back
as a whole, conditioned on the loaded version. Blobs are deleted only after
the aggregate write succeeded, so a failure never leaves an image reference
pointing at a deleted blob or variant.
"""

from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import ValidationError as PydanticValidationError

from app.clients.blob_storage import BlobStorage, UploadedImage
from app.core.config import config
from app.core.errors import ConflictError, NotFoundError, ValidationError, VersionConflictError
from app.core.logger import logger
from app.models.product import Product, ProductImage, ProductVariant
from app.repositories.product import ProductRepository
from app.schemas.product import ImageMeta, VariantCreate, VariantUpdate
from app.validators.product import ProductValidator

T = TypeVar("T")

# Variant fields that cannot be cleared through a partial update
_REQUIRED_VARIANT_FIELDS = ("sku", "price", "stock", "is_available")


def renumber_scope(images: Sequence[ProductImage]) -> None:
    """Rewrite positions of one scope as 0..n-1, keeping their relative order"""
    for position, image in enumerate(sorted(images, key=lambda img: img.position)):
        image.position = position


def ensure_single_primary(images: Sequence[ProductImage]) -> None:
    """
    Leave exactly one primary in a non-empty scope: the current primary with
    the lowest position, or the lowest-position image when there is none.
    """
    if not images:
        return
    ordered = sorted(images, key=lambda img: img.position)
    primary = next((img for img in ordered if img.is_primary), ordered[0])
    for image in ordered:
        image.is_primary = image is primary


def append_images(
    product: Product,
    variant_id: Optional[str],
    urls: Sequence[str],
    metas: Sequence[Optional[ImageMeta]] = (),
) -> List[ProductImage]:
    """
    Append uploaded images to one scope of the aggregate.

    Positions continue after the highest existing position. Primary policy:
    the first image whose metadata asks for it becomes the scope's primary
    (demoting the previous primary and any later requests); when no image asks
    and the scope has no primary yet, the first new image becomes primary.
    """
    scope = product.images_in_scope(variant_id)
    next_position = max((img.position for img in scope), default=-1) + 1

    new_images = []
    for index, url in enumerate(urls):
        meta = metas[index] if index < len(metas) else None
        new_images.append(ProductImage(
            variant_id=variant_id,
            url=url,
            alt_text=meta.alt_text if meta else None,
            position=next_position + index,
            is_primary=False,
        ))

    requested = [i for i, meta in enumerate(metas[:len(urls)]) if meta is not None and meta.is_primary]
    if requested:
        for image in scope:
            image.is_primary = False
        new_images[requested[0]].is_primary = True
    elif new_images and not any(img.is_primary for img in scope):
        new_images[0].is_primary = True

    product.images.extend(new_images)
    return new_images


class VariantImageCoordinator:
    """Keeps variants and images of a product consistent across mutations"""

    def __init__(
        self,
        repository: ProductRepository,
        storage: BlobStorage,
        validator: ProductValidator,
        max_attempts: Optional[int] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.validator = validator
        self.max_attempts = max_attempts or config.save_retry_attempts

    async def _load(self, product_id: str) -> Product:
        product = await self.repository.find_by_id(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    @staticmethod
    def _require_variant(product: Product, variant_id: Optional[str]) -> Optional[ProductVariant]:
        if variant_id is None:
            return None
        variant = product.find_variant(variant_id)
        if variant is None:
            raise NotFoundError(
                "Variant not found",
                details={"product_id": product.id, "variant_id": variant_id},
            )
        return variant

    async def mutate(
        self,
        product_id: str,
        mutation: Callable[[Product], Awaitable[T]],
        event: str,
    ) -> Tuple[Product, T]:
        """
        Load, apply mutation and save, retrying on a concurrent write.

        The mutation is re-applied to a freshly loaded aggregate on every
        attempt. When it leaves the aggregate unchanged nothing is written.
        """
        for attempt in range(1, self.max_attempts + 1):
            product = await self._load(product_id)
            before = product.model_dump()
            result = await mutation(product)

            if product.model_dump() == before:
                return product, result

            try:
                saved = await self.repository.save(product)
            except VersionConflictError:
                logger.warning(
                    f"Concurrent update of product {product_id}, retrying",
                    metadata={"event": f"{event}_retry", "product_id": product_id, "attempt": attempt}
                )
                continue

            logger.info(
                f"Product {product_id} updated: {event}",
                metadata={"event": event, "product_id": product_id, "version": saved.version}
            )
            return saved, result

        raise ConflictError(
            "Product was modified concurrently, please retry",
            details={"product_id": product_id, "attempts": self.max_attempts},
        )

    async def add_images(
        self,
        product_id: str,
        variant_id: Optional[str],
        files: List[UploadedImage],
        meta: Optional[List[ImageMeta]] = None,
    ) -> Product:
        """Upload files and append them to the product-level or variant scope"""
        meta = meta or []
        if not files:
            raise ValidationError("At least one image is required", details={"field": "images"})
        if len(meta) > len(files):
            raise ValidationError(
                "More image metadata entries than uploaded images",
                details={"field": "meta", "images": len(files), "meta": len(meta)},
            )

        # fail fast before anything is uploaded
        self._require_variant(await self._load(product_id), variant_id)

        urls = await self.storage.upload_many(files)

        async def mutation(product: Product) -> List[ProductImage]:
            self._require_variant(product, variant_id)
            return append_images(product, variant_id, urls, meta)

        try:
            saved, _ = await self.mutate(product_id, mutation, "add_images")
        except Exception:
            await self.storage.discard(urls)
            raise

        return saved

    async def delete_image(self, product_id: str, variant_id: Optional[str], image_id: str) -> Product:
        """
        Remove one image; promote a new primary and close the position gap.

        The blob is deleted after the save. A failed blob delete is logged as
        an orphan and not raised, since the aggregate write has committed.
        """

        async def mutation(product: Product) -> str:
            self._require_variant(product, variant_id)
            image = product.find_image(image_id, variant_id)
            if image is None:
                raise NotFoundError(
                    "Image not found",
                    details={"product_id": product_id, "variant_id": variant_id, "image_id": image_id},
                )

            product.images = [img for img in product.images if img.id != image_id]
            remaining = product.images_in_scope(variant_id)
            renumber_scope(remaining)
            ensure_single_primary(remaining)
            return image.url

        saved, url = await self.mutate(product_id, mutation, "delete_image")
        await self.storage.discard([url])
        return saved

    async def set_primary_image(self, product_id: str, variant_id: Optional[str], image_id: str) -> Product:
        """Make one image the scope's primary. Idempotent."""

        async def mutation(product: Product) -> None:
            self._require_variant(product, variant_id)
            if product.find_image(image_id, variant_id) is None:
                raise NotFoundError(
                    "Image not found",
                    details={"product_id": product_id, "variant_id": variant_id, "image_id": image_id},
                )
            for image in product.images_in_scope(variant_id):
                image.is_primary = image.id == image_id

        saved, _ = await self.mutate(product_id, mutation, "set_primary_image")
        return saved

    async def delete_variant(self, product_id: str, variant_id: str) -> Product:
        """
        Remove a variant together with every image scoped to it, in one write.
        Blob delete failures after the save are logged, not raised.
        """

        async def mutation(product: Product) -> List[str]:
            self._require_variant(product, variant_id)
            urls = [img.url for img in product.images if img.variant_id == variant_id]
            product.images = [img for img in product.images if img.variant_id != variant_id]
            product.variants = [v for v in product.variants if v.id != variant_id]
            return urls

        saved, urls = await self.mutate(product_id, mutation, "delete_variant")
        await self.storage.discard(urls)
        return saved

    async def edit_variant(self, product_id: str, variant_id: str, update: VariantUpdate) -> Product:
        """Partial update of one variant; a changed SKU is checked for global uniqueness"""
        fields = update.model_dump(exclude_unset=True)
        for name in _REQUIRED_VARIANT_FIELDS:
            if name in fields and fields[name] is None:
                fields.pop(name)

        async def mutation(product: Product) -> None:
            variant = self._require_variant(product, variant_id)
            if "sku" in fields and fields["sku"] != variant.sku:
                await self.validator.check_sku_available(product, fields["sku"], variant_id=variant_id)

            try:
                updated = ProductVariant.model_validate({**variant.model_dump(), **fields})
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid variant fields",
                    details={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]},
                )

            index = product.variants.index(variant)
            product.variants[index] = updated

        saved, _ = await self.mutate(product_id, mutation, "edit_variant")
        return saved

    async def add_variant(self, product_id: str, payload: VariantCreate) -> Product:
        """Append a new variant after checking its SKU"""

        async def mutation(product: Product) -> ProductVariant:
            await self.validator.check_sku_available(product, payload.sku)
            variant = ProductVariant(**payload.model_dump())
            product.variants.append(variant)
            return variant

        saved, _ = await self.mutate(product_id, mutation, "add_variant")
        return saved
