"""
Recipe, ingredient and user models for Spoonful.

This module defines the canonical schemas used throughout the backend. Stored
documents keep the camelCase field names used by the mobile client
(imageUrl, authorId, favoriteCounter), so every model accepts both spellings
and serializes with aliases when written to a document store.

Ingredients are structured records (name, amount, unit) from creation through
storage. The legacy "<name> (<amount> <unit>)" display string is still accepted
on input and parsed back, so old documents keep loading.
"""

import re
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, ConfigDict, computed_field, field_validator

# Legacy ingredient display string: "Egg (2 piece)"
INGREDIENT_PATTERN = re.compile(r"^(.*) \((.+) (.+)\)$")

# Measurement units in the order they are offered to users
UNITS = ("g", "piece", "tbsp", "tsp", "ml", "cup")

# Coefficient value meaning "no conversion available for this unit"
UNSUPPORTED = -1.0

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
MAX_CATEGORIES = 5

POPULAR_CATEGORY = "Popular"


def _to_float(text: Any) -> Optional[float]:
    """Parse a number, returning None instead of raising."""
    try:
        return float(text)
    except (TypeError, ValueError):
        return None


class Ingredient(BaseModel):
    """A single recipe ingredient line."""
    name: str = Field(..., description="Ingredient name as listed in the reference table")
    amount: str = Field(default="", description="Amount as entered (decimal text, e.g. '1.5')")
    unit: str = Field(default="", description="Measurement unit (g, piece, tbsp, tsp, ml, cup)")

    model_config = ConfigDict(frozen=True)

    @property
    def amount_value(self) -> float:
        """Numeric amount, 0.0 when the amount is blank or not a number."""
        value = _to_float(self.amount)
        return value if value is not None else 0.0

    def display(self) -> str:
        """
        Render the ingredient as "<name> (<amount> <unit>)".

        Falls back to the bare name when amount or unit is missing, which is how
        malformed legacy strings are shown.
        """
        if not self.amount.strip() or not self.unit.strip():
            return self.name
        return f"{self.name} ({self.amount} {self.unit})"

    @classmethod
    def parse(cls, text: str) -> "Ingredient":
        """
        Parse a legacy display string back into an Ingredient.

        Examples:
            >>> Ingredient.parse("Egg (2 piece)")
            Ingredient(name='Egg', amount='2', unit='piece')
            >>> Ingredient.parse("Salt to taste")
            Ingredient(name='Salt to taste', amount='', unit='')
        """
        match = INGREDIENT_PATTERN.match(text or "")
        if not match:
            return cls(name=text or "", amount="", unit="")
        name, amount, unit = match.groups()
        return cls(name=name, amount=amount, unit=unit)


class Recipe(BaseModel):
    """
    A recipe as stored under recipes/{id}.

    favorite_counter is a denormalized aggregate of all users' favorite sets
    and is only adjusted through atomic increments. difficulty is 1..5 by
    construction of the upload form; the data layer does not enforce it.
    """
    id: str = Field(default="", description="Store-assigned identifier")
    title: str = Field(default="", description="Recipe title")
    description: str = Field(default="", description="Short description")
    ingredients: List[Ingredient] = Field(default_factory=list, description="Ordered ingredient lines")
    categories: List[str] = Field(default_factory=list, description="Category tags from the reference list")
    image_url: str = Field(default="", alias="imageUrl", description="Cover image URL")
    author_id: str = Field(default="", alias="authorId", description="uid of the uploading user")
    calories: int = Field(default=0, description="Total calories, truncated to an integer")
    difficulty: int = Field(default=1, description="Difficulty from 1 (easy) to 5 (hard)")
    time: str = Field(default="", description="Time to cook in minutes, as entered")
    favorite_counter: int = Field(default=0, ge=0, alias="favoriteCounter", description="Number of users who favorited this recipe")
    directions: List[str] = Field(default_factory=list, description="Ordered direction steps")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("ingredients", mode="before")
    @classmethod
    def _coerce_ingredients(cls, value: Any) -> Any:
        # Older documents store ingredients as display strings
        if value is None:
            return []
        if isinstance(value, dict):
            # Document stores may return ordered children as a keyed mapping
            value = list(value.values())
        return [Ingredient.parse(item) if isinstance(item, str) else item for item in value]

    @field_validator("categories", "directions", mode="before")
    @classmethod
    def _coerce_string_lists(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, dict):
            return list(value.values())
        return value

    @property
    def time_minutes(self) -> int:
        """Time to cook as whole minutes; non-numeric time counts as 0."""
        try:
            return int(self.time.strip())
        except ValueError:
            return 0

    def ingredient_strings(self) -> List[str]:
        """Display strings for all ingredients, in order."""
        return [ingredient.display() for ingredient in self.ingredients]

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the document store using the stored field names."""
        return self.model_dump(by_alias=True)


class IngredientInfo(BaseModel):
    """
    Reference entry from the ingredient table.

    Each coefficient is calories per one unit of measure. UNSUPPORTED (-1.0)
    means the unit is not offered for this ingredient.
    """
    name: str
    calories_per_g: float = UNSUPPORTED
    calories_per_piece: float = UNSUPPORTED
    calories_per_tbsp: float = UNSUPPORTED
    calories_per_tsp: float = UNSUPPORTED
    calories_per_ml: float = UNSUPPORTED
    calories_per_cup: float = UNSUPPORTED

    model_config = ConfigDict(frozen=True)

    def coefficient(self, unit: str) -> Optional[float]:
        """
        Calories per one `unit` of this ingredient.

        Returns:
            The coefficient, or None if the unit is unknown or unsupported
        """
        if unit not in UNITS:
            return None
        value = getattr(self, f"calories_per_{unit}")
        if value == UNSUPPORTED:
            return None
        return value

    def available_units(self) -> List[str]:
        return [unit for unit in UNITS if self.coefficient(unit) is not None]


class UserProfile(BaseModel):
    """Per-user stats stored under users/{uid}."""
    uid: str
    username: str = ""
    joined: int = Field(default=0, description="Join time in epoch milliseconds")
    recipes_created: int = Field(default=0, ge=0, alias="recipesCreated")
    favorites: List[str] = Field(default_factory=list, description="Favorited recipe ids")

    model_config = ConfigDict(populate_by_name=True)

    @computed_field
    @property
    def favorites_count(self) -> int:
        return len(self.favorites)


class AuthUser(BaseModel):
    """Identity of a signed-in user."""
    uid: str
    email: str

    model_config = ConfigDict(frozen=True)


class RecipeFilter(BaseModel):
    """
    User-chosen filter predicates for a recipe list.

    Predicates combine with AND, except `categories`, which matches a recipe
    carrying ANY of the selected tags.
    """
    search: str = Field(default="", description="Case-insensitive text query")
    max_difficulty: Optional[int] = Field(None, ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY, description="Keep recipes with difficulty <= this")
    max_time: Optional[int] = Field(None, ge=0, description="Keep recipes taking at most this many minutes")
    categories: Set[str] = Field(default_factory=set, description="Keep recipes tagged with any of these")
    selected_category: str = Field(default=POPULAR_CATEGORY, description="Home screen category chip")
    mine_only: bool = Field(default=False, description="Keep only the current user's recipes")
    show_all_popular: bool = Field(default=False, description="Do not truncate the Popular list")

    def has_active_filters(self) -> bool:
        """True if any filter other than the category chip is active."""
        return bool(
            self.search.strip()
            or self.max_difficulty is not None
            or self.max_time is not None
            or self.categories
        )
