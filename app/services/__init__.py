"""
Services module initialization
"""

from .product import ProductService
from .variant_image import VariantImageCoordinator

__all__ = [
    "ProductService",
    "VariantImageCoordinator",
]
