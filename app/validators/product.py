"""
Product payload validation against the catalog state.

Shape checks (types, positive prices, required fields) are done by the
pydantic schemas; this module covers the rules that need a lookup:
slug uniqueness, category validity, SKU uniqueness and status transitions.
Nothing here writes.
"""

import time
from typing import Dict, List, Optional

from app.core.errors import ConflictError, InvalidStateTransition, ValidationError
from app.core.logger import logger
from app.models.product import Product, ProductStatus
from app.repositories.category import CategoryRepository
from app.repositories.product import ProductRepository
from app.schemas.product import ProductCreate, ProductDetailsUpdate
from app.utils.sequence import find_duplicates
from app.utils.slug import is_valid_slug, slugify, with_time_suffix


class ProductValidator:
    """Validates product creation and update payloads"""

    def __init__(self, products: ProductRepository, categories: CategoryRepository):
        self.products = products
        self.categories = categories

    async def validate_create(self, payload: ProductCreate, image_count: int) -> str:
        """
        Run every creation check. All-or-nothing: the first failing rule raises.

        Returns:
            The slug to persist (derived from the title when none was given,
            suffixed when it collides with an existing product).
        """
        self.check_image_meta(payload, image_count)
        self.check_activation(payload.status, len(payload.variants), image_count)
        await self.check_categories(payload.categories)
        await self.check_skus([v.sku for v in payload.variants])
        return await self.resolve_slug(payload.slug, payload.title)

    async def validate_details_update(self, product: Product, update: ProductDetailsUpdate) -> Dict:
        """
        Validate a metadata edit against the current aggregate.

        Returns:
            The fields to apply (by attribute name), with the slug re-resolved
            when the title or slug changed.
        """
        changes = update.model_dump(exclude_unset=True)

        # explicit nulls on required fields mean "leave as is"
        for required in ("title", "slug", "price", "status", "tags", "sort_order", "categories"):
            if required in changes and changes[required] is None:
                changes.pop(required)

        if "slug" in changes:
            if changes["slug"] == product.slug:
                changes.pop("slug")
            else:
                changes["slug"] = await self.resolve_slug(changes["slug"], product.title, exclude_id=product.id)
        elif "title" in changes and changes["title"] != product.title:
            derived = slugify(changes["title"])
            if derived != product.slug:
                changes["slug"] = await self.resolve_slug(None, changes["title"], exclude_id=product.id)

        if "categories" in changes:
            await self.check_categories(changes["categories"])

        new_status = changes.get("status")
        if new_status is not None and new_status != product.status:
            self.check_activation(new_status, len(product.variants), len(product.images))

        if "tags" in changes:
            changes["tags"] = list(dict.fromkeys(t.strip() for t in changes["tags"] if t and t.strip()))

        return changes

    def check_image_meta(self, payload: ProductCreate, image_count: int) -> None:
        if len(payload.images_meta) > image_count:
            raise ValidationError(
                "More image metadata entries than uploaded images",
                details={"field": "imagesMeta", "images": image_count, "meta": len(payload.images_meta)},
            )

        payload_skus = {v.sku for v in payload.variants}
        unknown = [m.variant_sku for m in payload.images_meta if m.variant_sku and m.variant_sku not in payload_skus]
        if unknown:
            raise ValidationError(
                "Image metadata references unknown variant SKUs",
                details={"field": "imagesMeta.variantSku", "skus": unknown},
            )

    def check_activation(self, status: ProductStatus, variant_count: int, image_count: int) -> None:
        """A product can only be ACTIVE with at least one variant and one image"""
        if status != ProductStatus.ACTIVE:
            return
        if variant_count == 0:
            raise InvalidStateTransition(
                "Cannot activate product without variants",
                details={"field": "status", "status": status.value},
            )
        if image_count == 0:
            raise InvalidStateTransition(
                "Cannot activate product without images",
                details={"field": "status", "status": status.value},
            )

    async def check_categories(self, category_ids: List[str]) -> None:
        if not category_ids:
            raise ValidationError("At least one category is required", details={"field": "categories"})

        found = await self.categories.find_active_by_ids(category_ids)
        invalid = [cid for cid in dict.fromkeys(category_ids) if cid not in found]
        if invalid:
            logger.debug("Rejected invalid categories", metadata={"categories": invalid})
            raise ValidationError(
                "One or more categories are invalid or inactive",
                details={"field": "categories", "invalid_ids": invalid},
            )

    async def check_skus(self, skus: List[str], exclude_product_id: Optional[str] = None) -> None:
        """No duplicates within skus and none already persisted on another product"""
        if not skus:
            return

        duplicates = find_duplicates(skus)
        if duplicates:
            raise ConflictError("Duplicate SKUs in variants", details={"field": "sku", "skus": duplicates})

        existing = await self.products.find_existing_skus(skus, exclude_id=exclude_product_id)
        if existing:
            raise ConflictError("One or more SKUs already exist", details={"field": "sku", "skus": existing})

    async def check_sku_available(self, product: Product, sku: str, variant_id: Optional[str] = None) -> None:
        """A SKU for a new or edited variant of product must not be used by any other variant"""
        clash = product.find_variant_by_sku(sku)
        if clash is not None and clash.id != variant_id:
            raise ConflictError("SKU already used by another variant", details={"field": "sku", "skus": [sku]})

        await self.check_skus([sku], exclude_product_id=product.id)

    async def resolve_slug(self, slug: Optional[str], title: str, exclude_id: Optional[str] = None) -> str:
        """
        Validate an explicit slug or derive one from the title, then make it
        unique by appending a millisecond timestamp on collision.
        """
        if slug:
            if not is_valid_slug(slug):
                raise ValidationError(
                    "Slug must be lowercase and hyphen separated",
                    details={"field": "slug", "value": slug},
                )
            base = slug
        else:
            base = slugify(title)
            if not base:
                raise ValidationError(
                    "Title must contain at least one letter or digit",
                    details={"field": "title"},
                )

        if not await self.products.slug_exists(base, exclude_id=exclude_id):
            return base

        timestamp = int(time.time() * 1000)
        candidate = with_time_suffix(base, timestamp)
        while await self.products.slug_exists(candidate, exclude_id=exclude_id):
            timestamp += 1
            candidate = with_time_suffix(base, timestamp)

        logger.info(
            f"Slug '{base}' taken, using '{candidate}'",
            metadata={"event": "slug_disambiguated", "slug": candidate}
        )
        return candidate
