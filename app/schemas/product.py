"""
API schemas for Product endpoints following FastAPI best practices
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.product import Product, ProductStatus


class VariantCreate(BaseModel):
    """Schema for a variant submitted with a new product or added later"""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    sku: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=100)
    metal_type: Optional[str] = Field(None, max_length=100, alias="metalType")
    stone_type: Optional[str] = Field(None, max_length=100, alias="stoneType")
    size: Optional[str] = Field(None, max_length=50)
    price: Decimal = Field(..., gt=0)
    compare_at_price: Optional[Decimal] = Field(None, gt=0, alias="compareAtPrice")
    stock: int = Field(default=0, ge=0)
    is_available: bool = Field(default=True, alias="isAvailable")
    weight: Optional[float] = Field(None, gt=0)


class VariantUpdate(BaseModel):
    """Schema for a partial variant update; only set fields are applied"""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=100)
    metal_type: Optional[str] = Field(None, max_length=100, alias="metalType")
    stone_type: Optional[str] = Field(None, max_length=100, alias="stoneType")
    size: Optional[str] = Field(None, max_length=50)
    price: Optional[Decimal] = Field(None, gt=0)
    compare_at_price: Optional[Decimal] = Field(None, gt=0, alias="compareAtPrice")
    stock: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = Field(None, alias="isAvailable")
    weight: Optional[float] = Field(None, gt=0)


class ImageMeta(BaseModel):
    """Per-file metadata, matched to uploaded files by index"""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    variant_sku: Optional[str] = Field(None, alias="variantSku")
    alt_text: Optional[str] = Field(None, max_length=255, alias="altText")
    is_primary: Optional[bool] = Field(None, alias="isPrimary")


class ProductCreate(BaseModel):
    """Schema for creating a new product"""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    price: Decimal = Field(..., gt=0)
    compare_at_price: Optional[Decimal] = Field(None, gt=0, alias="compareAtPrice")
    status: ProductStatus = ProductStatus.DRAFT
    tags: List[str] = []
    sort_order: int = Field(default=0, ge=0, alias="sortOrder")
    categories: List[str] = Field(..., min_length=1)
    meta_title: Optional[str] = Field(None, max_length=255, alias="metaTitle")
    meta_description: Optional[str] = Field(None, max_length=500, alias="metaDescription")
    published_at: Optional[datetime] = Field(None, alias="publishedAt")

    variants: List[VariantCreate] = []
    images_meta: List[ImageMeta] = Field(default_factory=list, alias="imagesMeta")

    @field_validator("tags")
    @classmethod
    def tags_unique(cls, v):
        # tags behave like a set but keep submission order
        seen = []
        for tag in v:
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @field_validator("categories")
    @classmethod
    def categories_not_blank(cls, v):
        if any(not c for c in v):
            raise ValueError("Category ids cannot be empty")
        return v


class ProductDetailsUpdate(BaseModel):
    """Schema for editing product metadata. Variants and images have their own endpoints."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[Decimal] = Field(None, gt=0)
    compare_at_price: Optional[Decimal] = Field(None, gt=0, alias="compareAtPrice")
    status: Optional[ProductStatus] = None
    tags: Optional[List[str]] = None
    sort_order: Optional[int] = Field(None, ge=0, alias="sortOrder")
    categories: Optional[List[str]] = Field(None, min_length=1)
    meta_title: Optional[str] = Field(None, max_length=255, alias="metaTitle")
    meta_description: Optional[str] = Field(None, max_length=500, alias="metaDescription")
    published_at: Optional[datetime] = Field(None, alias="publishedAt")


class ProductResponse(Product):
    """Schema for product responses including all fields"""
    id: str


class ProductListResponse(BaseModel):
    """Response schema for product listing with pagination"""
    products: List[ProductResponse]
    total: int
    page: int
    limit: int
    total_pages: int
