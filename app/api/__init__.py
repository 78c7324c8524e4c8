"""
API module initialization
"""

from . import health, home, products

__all__ = ["health", "home", "products"]
