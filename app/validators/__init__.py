"""
Validators module initialization
"""

from .product import ProductValidator

__all__ = ["ProductValidator"]
