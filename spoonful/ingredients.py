"""
Ingredient reference table and calorie calculation.

The reference table is a pipe-delimited text file bundled with the package
(spoonful/data/ingredients.txt). Each line has 7 fields:

    name|cal_per_g|cal_per_piece|cal_per_tbsp|cal_per_tsp|cal_per_ml|cal_per_cup

A line that does not split into exactly 7 fields is dropped. A coefficient that
is not a number is stored as UNSUPPORTED (-1.0), meaning the unit is not
offered for that ingredient.

Calories for one ingredient line are amount * coefficient[unit]. Unknown
ingredients, unknown units and unsupported units contribute 0. A recipe total
is the sum over its lines, truncated to an integer.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from spoonful.models import Ingredient, IngredientInfo, UNITS, UNSUPPORTED

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_INGREDIENTS_PATH = DATA_DIR / "ingredients.txt"

_FIELD_COUNT = 7
_AMOUNT_PATTERN = re.compile(r"^\d*\.?\d*$")


def _coefficient(field: str) -> float:
    try:
        return float(field)
    except ValueError:
        return UNSUPPORTED


def parse_ingredient_line(line: str) -> Optional[IngredientInfo]:
    """
    Parse one line of the ingredient reference table.

    Args:
        line: Raw line, e.g. "Egg|1.5|70|1.5|0.5|x|60"

    Returns:
        IngredientInfo, or None if the line does not have exactly 7 fields

    Examples:
        >>> info = parse_ingredient_line("Egg|1.5|70|1.5|0.5|x|60")
        >>> info.calories_per_piece, info.calories_per_ml
        (70.0, -1.0)
        >>> parse_ingredient_line("Egg|1.5") is None
        True
    """
    parts = line.rstrip("\r\n").split("|")
    if len(parts) != _FIELD_COUNT:
        return None

    return IngredientInfo(
        name=parts[0].strip(),
        calories_per_g=_coefficient(parts[1]),
        calories_per_piece=_coefficient(parts[2]),
        calories_per_tbsp=_coefficient(parts[3]),
        calories_per_tsp=_coefficient(parts[4]),
        calories_per_ml=_coefficient(parts[5]),
        calories_per_cup=_coefficient(parts[6]),
    )


def load_ingredient_table(path: Optional[Union[str, Path]] = None) -> List[IngredientInfo]:
    """
    Read the ingredient reference table.

    Args:
        path: Table location. Defaults to SPOONFUL_INGREDIENTS_PATH, then the
            bundled data file.

    Returns:
        Parsed entries sorted by name, with malformed lines dropped
    """
    table_path = Path(path or os.getenv("SPOONFUL_INGREDIENTS_PATH") or DEFAULT_INGREDIENTS_PATH)

    entries: List[IngredientInfo] = []
    dropped = 0
    with table_path.open(encoding="utf-8") as handle:
        for line in handle:
            if not line.strip():
                continue
            info = parse_ingredient_line(line)
            if info is None:
                dropped += 1
                continue
            entries.append(info)

    if dropped:
        logger.debug("Dropped %d malformed lines from %s", dropped, table_path)

    entries.sort(key=lambda info: info.name)
    return entries


def ingredient_calories(info: Optional[IngredientInfo], unit: str, amount: Union[str, float]) -> float:
    """
    Calories for `amount` of an ingredient measured in `unit`.

    Returns 0.0 when the ingredient is unknown (None), the unit is unknown or
    unsupported for this ingredient, or the amount is not a number.
    """
    if info is None:
        return 0.0
    coefficient = info.coefficient(unit)
    if coefficient is None:
        return 0.0
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return 0.0
    return value * coefficient


def is_valid_amount(text: str) -> bool:
    """True if `text` is a plain positive decimal like "2" or "1.5"."""
    if not text or not _AMOUNT_PATTERN.match(text):
        return False
    try:
        return float(text) > 0.0
    except ValueError:
        # "." alone passes the pattern
        return False


def format_ingredient(name: str, amount: str, unit: str) -> str:
    """Render an ingredient as the legacy "<name> (<amount> <unit>)" string."""
    return Ingredient(name=name, amount=amount, unit=unit).display()


def parse_ingredient(text: str) -> Ingredient:
    """Parse a legacy ingredient string; malformed text becomes a name-only ingredient."""
    return Ingredient.parse(text)


class IngredientCatalog:
    """
    Lookup over the ingredient reference table.

    The table is read on first use and treated as immutable for the lifetime
    of the catalog.
    """

    def __init__(self, entries: Optional[Iterable[IngredientInfo]] = None, path: Optional[Union[str, Path]] = None) -> None:
        self._path = path
        self._by_name: Optional[Dict[str, IngredientInfo]] = None
        if entries is not None:
            self._by_name = {info.name: info for info in entries}

    def _entries(self) -> Dict[str, IngredientInfo]:
        if self._by_name is None:
            self._by_name = {info.name: info for info in load_ingredient_table(self._path)}
            logger.info("Loaded %d ingredient reference entries", len(self._by_name))
        return self._by_name

    def find(self, name: str) -> Optional[IngredientInfo]:
        return self._entries().get(name)

    def names(self) -> List[str]:
        return sorted(self._entries())

    def entries(self) -> List[IngredientInfo]:
        return [self._entries()[name] for name in self.names()]

    def available_units(self, name: str) -> List[str]:
        """Units offered for an ingredient; empty for unknown ingredients."""
        info = self.find(name)
        return info.available_units() if info else []

    def calories(self, ingredient: Ingredient) -> float:
        return ingredient_calories(self.find(ingredient.name), ingredient.unit, ingredient.amount)


def total_calories(ingredients: Iterable[Ingredient], catalog: IngredientCatalog) -> int:
    """
    Total calories for a list of ingredients, truncated to an integer.

    Examples:
        >>> catalog = IngredientCatalog([parse_ingredient_line("Egg|1.5|70|1.5|0.5|x|60")])
        >>> total_calories([Ingredient(name="Egg", amount="2", unit="piece")], catalog)
        140
    """
    return int(sum(catalog.calories(ingredient) for ingredient in ingredients))


__all__ = [
    "UNITS",
    "IngredientCatalog",
    "format_ingredient",
    "ingredient_calories",
    "is_valid_amount",
    "load_ingredient_table",
    "parse_ingredient",
    "parse_ingredient_line",
    "total_calories",
]
