"""
Models module initialization
"""

from .product import Product, ProductImage, ProductStatus, ProductVariant
from .category import Category
from .user import User

__all__ = [
    "Product",
    "ProductImage",
    "ProductStatus",
    "ProductVariant",
    "Category",
    "User",
]
