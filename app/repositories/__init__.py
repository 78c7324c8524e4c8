"""
Repositories module initialization
"""

from .product import ProductRepository
from .category import CategoryRepository

__all__ = [
    "ProductRepository",
    "CategoryRepository",
]
