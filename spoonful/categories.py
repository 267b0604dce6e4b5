"""
Static category reference list.

Categories are flat string tags read from a newline-delimited file
(spoonful/data/categories.txt). The list is read once and cached for the
lifetime of the process.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from spoonful.models import POPULAR_CATEGORY

DEFAULT_CATEGORIES_PATH = Path(__file__).resolve().parent / "data" / "categories.txt"

# Number of categories shown as home screen chips
HOME_CHIP_COUNT = 6


@lru_cache(maxsize=8)
def _read_categories(path: str) -> Tuple[str, ...]:
    with open(path, encoding="utf-8") as handle:
        return tuple(line.strip() for line in handle if line.strip())


def load_categories(path: Optional[str] = None) -> List[str]:
    """
    Load the category list in file order.

    Args:
        path: File location. Defaults to SPOONFUL_CATEGORIES_PATH, then the
            bundled data file.

    Returns:
        Trimmed, non-empty category names
    """
    resolved = path or os.getenv("SPOONFUL_CATEGORIES_PATH") or str(DEFAULT_CATEGORIES_PATH)
    return list(_read_categories(resolved))


def sorted_categories(categories: Sequence[str]) -> List[str]:
    """Alphabetical, case-insensitive."""
    return sorted(categories, key=str.lower)


def search_categories(categories: Sequence[str], text: str) -> List[str]:
    """Categories containing `text`, case-insensitive. Blank text matches all."""
    needle = text.lower()
    return [category for category in categories if needle in category.lower()]


def home_chips(categories: Sequence[str]) -> List[str]:
    """
    Category chips for the home screen: "Popular" followed by the first
    HOME_CHIP_COUNT categories.
    """
    return [POPULAR_CATEGORY] + list(categories[:HOME_CHIP_COUNT])


def clear_cache() -> None:
    """Forget cached category files (useful for testing)."""
    _read_categories.cache_clear()
