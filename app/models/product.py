"""
Product aggregate: the product document with its variants and images
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field


def utc_now():
    """Helper function for Pydantic default_factory to get current UTC time"""
    return datetime.now(timezone.utc)


def new_object_id() -> str:
    """Identifier for sub-entities embedded in the product document"""
    return str(ObjectId())


class ProductStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class ProductVariant(BaseModel):
    """A purchasable variant of a product, identified by a globally unique SKU"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_object_id)
    sku: str = Field(..., min_length=1)
    color: Optional[str] = None
    metal_type: Optional[str] = Field(None, alias="metalType")
    stone_type: Optional[str] = Field(None, alias="stoneType")
    size: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    compare_at_price: Optional[Decimal] = Field(None, gt=0, alias="compareAtPrice")
    stock: int = Field(default=0, ge=0)
    is_available: bool = Field(default=True, alias="isAvailable")
    weight: Optional[float] = Field(None, gt=0)


class ProductImage(BaseModel):
    """Image of a product; variant_id=None puts it in the product-level scope"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_object_id)
    variant_id: Optional[str] = Field(None, alias="variantId")
    url: str
    alt_text: Optional[str] = Field(None, alias="altText")
    position: int = Field(default=0, ge=0)
    is_primary: bool = Field(default=False, alias="isPrimary")


class Product(BaseModel):
    """Product aggregate root. Variants and images have no lifecycle of their own."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    title: str
    slug: str
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    compare_at_price: Optional[Decimal] = Field(None, gt=0, alias="compareAtPrice")
    status: ProductStatus = ProductStatus.DRAFT
    tags: List[str] = Field(default_factory=list)
    sort_order: int = Field(default=0, ge=0, alias="sortOrder")
    categories: List[str] = Field(default_factory=list)
    meta_title: Optional[str] = Field(None, alias="metaTitle")
    meta_description: Optional[str] = Field(None, alias="metaDescription")

    variants: List[ProductVariant] = Field(default_factory=list)
    images: List[ProductImage] = Field(default_factory=list)

    published_at: Optional[datetime] = Field(None, alias="publishedAt")
    deleted_at: Optional[datetime] = Field(None, alias="deletedAt")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    # Optimistic concurrency counter, 0 until first persisted
    version: int = Field(default=0, ge=0)

    def find_variant(self, variant_id: str) -> Optional[ProductVariant]:
        return next((v for v in self.variants if v.id == variant_id), None)

    def find_variant_by_sku(self, sku: str) -> Optional[ProductVariant]:
        return next((v for v in self.variants if v.sku == sku), None)

    def find_image(self, image_id: str, variant_id: Optional[str] = None) -> Optional[ProductImage]:
        """Find an image within the given scope"""
        return next(
            (img for img in self.images if img.id == image_id and img.variant_id == variant_id),
            None,
        )

    def images_in_scope(self, variant_id: Optional[str]) -> List[ProductImage]:
        """Images of one scope ordered by position"""
        return sorted(
            (img for img in self.images if img.variant_id == variant_id),
            key=lambda img: img.position,
        )

    def image_scopes(self) -> Dict[Optional[str], List[ProductImage]]:
        scopes: Dict[Optional[str], List[ProductImage]] = {}
        for img in sorted(self.images, key=lambda i: i.position):
            scopes.setdefault(img.variant_id, []).append(img)
        return scopes

    @property
    def skus(self) -> List[str]:
        return [v.sku for v in self.variants]

    @property
    def image_urls(self) -> List[str]:
        return [img.url for img in self.images]
