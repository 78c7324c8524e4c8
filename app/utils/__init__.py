"""
Utility helpers
"""

from .sequence import find_duplicates
from .slug import slugify, is_valid_slug, with_time_suffix

__all__ = ["find_duplicates", "slugify", "is_valid_slug", "with_time_suffix"]
