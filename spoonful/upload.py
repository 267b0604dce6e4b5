"""
Recipe upload workflow.

Turns a user-entered draft into a stored recipe:
- Validates required fields (title, description, at least one category)
- Rejects ingredient amounts that are not positive numbers
- Looks up a cover image by title through the photo search service
- Computes the calorie total from the ingredient reference table
- Drops ingredient rows without a name, amount and unit
- Stores the recipe through the access layer

Editing an existing recipe always recalculates calories (recalculate()).
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from spoonful.ingredients import IngredientCatalog, is_valid_amount, total_calories
from spoonful.models import Ingredient, MAX_CATEGORIES, MAX_DIFFICULTY, MIN_DIFFICULTY, Recipe
from spoonful.photos import PhotoSearchService
from spoonful.repository import RecipeRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_ERROR = "All fields are required."
TOO_MANY_CATEGORIES_ERROR = f"Select at most {MAX_CATEGORIES} categories."
INVALID_AMOUNT_ERROR = "Enter a valid amount for every ingredient."
UPLOAD_FAILED_ERROR = "Failed to upload recipe."


class UploadError(Exception):
    """Raised when a draft cannot be turned into a recipe. The message is user-facing."""


class RecipeDraft(BaseModel):
    """Recipe as entered in the upload form, before an id and image exist."""
    title: str = ""
    description: str = ""
    ingredients: List[Ingredient] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    difficulty: int = Field(default=1, ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY)
    time: str = ""
    directions: List[str] = Field(default_factory=list)


class UploadResult(BaseModel):
    ok: bool
    recipe_id: Optional[str] = None
    error: Optional[str] = None


def _is_complete(ingredient: Ingredient) -> bool:
    return bool(ingredient.name.strip() and ingredient.amount.strip() and ingredient.unit.strip())


def check_amounts(ingredients: List[Ingredient]) -> None:
    """
    Raises:
        UploadError: If any row has an amount that is not a positive number.
            Rows with no amount are left alone.
    """
    for ingredient in ingredients:
        amount = ingredient.amount.strip()
        if amount and not is_valid_amount(amount):
            raise UploadError(INVALID_AMOUNT_ERROR)


def recalculate(recipe: Recipe, catalog: IngredientCatalog) -> Recipe:
    """Copy of `recipe` with calories recomputed from its ingredients."""
    return recipe.model_copy(update={"calories": total_calories(recipe.ingredients, catalog)})


class RecipeUploader:
    """Validates drafts and stores them as recipes."""

    def __init__(
        self,
        repository: RecipeRepository,
        photos: PhotoSearchService,
        catalog: IngredientCatalog,
    ) -> None:
        self.repository = repository
        self.photos = photos
        self.catalog = catalog

    def validate(self, draft: RecipeDraft) -> None:
        """
        Raises:
            UploadError: If title, description or categories are missing, too
                many categories are selected, or an amount is invalid
        """
        if not draft.title.strip() or not draft.description.strip() or not draft.categories:
            raise UploadError(REQUIRED_FIELDS_ERROR)
        if len(draft.categories) > MAX_CATEGORIES:
            raise UploadError(TOO_MANY_CATEGORIES_ERROR)
        check_amounts(draft.ingredients)

    def build_recipe(self, draft: RecipeDraft, author_id: str) -> Recipe:
        """
        Build the recipe to store from a validated draft.

        The calorie total covers every entered row, including rows that are
        then dropped for missing name, amount or unit.
        """
        image_url = self.photos.random_photo_url(draft.title)
        calories = total_calories(draft.ingredients, self.catalog)
        ingredients = [ingredient for ingredient in draft.ingredients if _is_complete(ingredient)]
        if len(ingredients) < len(draft.ingredients):
            logger.debug("Dropped %d incomplete ingredient rows", len(draft.ingredients) - len(ingredients))

        return Recipe(
            title=draft.title,
            description=draft.description,
            ingredients=ingredients,
            categories=list(draft.categories),
            image_url=image_url,
            author_id=author_id,
            calories=calories,
            difficulty=draft.difficulty,
            time=draft.time,
            directions=list(draft.directions),
        )

    def upload(self, draft: RecipeDraft, author_id: str) -> UploadResult:
        try:
            self.validate(draft)
        except UploadError as e:
            return UploadResult(ok=False, error=str(e))

        recipe = self.build_recipe(draft, author_id)
        recipe_id = self.repository.add_recipe(recipe)
        if recipe_id is None:
            return UploadResult(ok=False, error=UPLOAD_FAILED_ERROR)
        return UploadResult(ok=True, recipe_id=recipe_id)
