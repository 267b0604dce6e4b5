"""
Pydantic schemas for FastAPI request and response models.

Request models validate user input; response models fix the API contract
independently of the stored document layout in spoonful.models.

The schemas include:
- RecipeOut / RecipeListResponse: recipes as returned to clients
- RecipeDraftInput / RecipeUpdateInput: upload and edit payloads
- CalorieRequest / CalorieResponse: ingredient calorie calculation
- RegisterRequest / LoginRequest / AuthResponse: account endpoints
- ProfileResponse / FavoritesResponse: per-user endpoints
"""

from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from spoonful.models import Ingredient, MAX_CATEGORIES, MAX_DIFFICULTY, MIN_DIFFICULTY, Recipe


class RecipeOut(BaseModel):
    """Recipe as returned by the API (snake_case field names)."""
    id: str
    title: str
    description: str
    ingredients: List[Ingredient]
    ingredient_lines: List[str] = Field(..., description="Ingredients rendered as '<name> (<amount> <unit>)'")
    categories: List[str]
    image_url: str
    author_id: str
    calories: int
    difficulty: int
    time: str
    favorite_counter: int
    directions: List[str]

    @classmethod
    def from_recipe(cls, recipe: Recipe) -> "RecipeOut":
        return cls(
            id=recipe.id,
            title=recipe.title,
            description=recipe.description,
            ingredients=recipe.ingredients,
            ingredient_lines=recipe.ingredient_strings(),
            categories=recipe.categories,
            image_url=recipe.image_url,
            author_id=recipe.author_id,
            calories=recipe.calories,
            difficulty=recipe.difficulty,
            time=recipe.time,
            favorite_counter=recipe.favorite_counter,
            directions=recipe.directions,
        )


class RecipeListResponse(BaseModel):
    results: List[RecipeOut]
    show_view_more: bool = Field(False, description="Whether the Popular list was truncated and can be expanded")


class RecipeDraftInput(BaseModel):
    """Upload payload."""
    title: str = Field(..., description="Recipe title (required)")
    description: str = Field(..., description="Short description (required)")
    ingredients: List[Ingredient] = Field(default_factory=list)
    categories: List[str] = Field(..., description=f"1 to {MAX_CATEGORIES} category tags")
    difficulty: int = Field(1, ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY)
    time: str = Field("", description="Time to cook in minutes")
    directions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Tomato Soup",
                "description": "Quick weeknight soup",
                "ingredients": [
                    {"name": "Tomato", "amount": "4", "unit": "piece"},
                    {"name": "Olive oil", "amount": "1", "unit": "tbsp"},
                ],
                "categories": ["Soups", "Vegan"],
                "difficulty": 2,
                "time": "25",
                "directions": ["Chop the tomatoes", "Simmer for 20 minutes"],
            }
        }
    )


class RecipeUpdateInput(BaseModel):
    """Edit payload; replaces the editable fields of an existing recipe."""
    title: str
    description: str
    ingredients: List[Ingredient] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list, max_length=MAX_CATEGORIES)
    difficulty: int = Field(1, ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY)
    time: str = ""
    directions: List[str] = Field(default_factory=list)


class UploadResponse(BaseModel):
    id: str
    recipe: RecipeOut


class CalorieRequest(BaseModel):
    ingredients: List[Ingredient]


class CalorieLine(BaseModel):
    ingredient: Ingredient
    calories: float


class CalorieResponse(BaseModel):
    lines: List[CalorieLine]
    total: int = Field(..., description="Sum of line calories, truncated to an integer")


class IngredientInfoOut(BaseModel):
    name: str
    units: List[str] = Field(..., description="Units with a calorie conversion for this ingredient")


class RegisterRequest(BaseModel):
    email: str
    password: str
    username: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    uid: str
    email: str


class ProfileResponse(BaseModel):
    uid: str
    username: str
    joined: int
    recipes_created: int
    favorites_count: int
    most_liked_recipe: Optional[RecipeOut] = None


class FavoritesResponse(BaseModel):
    uid: str
    favorites: List[str]
    recipes: List[RecipeOut] = Field(default_factory=list, description="Favorited recipes that still exist, filtered")
