"""
Sequence helpers
"""

from typing import Iterable, List


def find_duplicates(values: Iterable[str]) -> List[str]:
    """Values seen more than once, in order of their first repeat"""
    seen = set()
    duplicates = []
    for value in values:
        if value in seen and value not in duplicates:
            duplicates.append(value)
        seen.add(value)
    return duplicates
