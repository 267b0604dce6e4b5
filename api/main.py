"""
FastAPI application for the Spoonful recipe API.

This module defines the REST API endpoints for recipes and reference data:
- GET /recipes: Filtered, popularity-sorted recipe list
- GET /recipes/{recipe_id}: One recipe
- POST /recipes: Upload a recipe (cover image and calories are filled in)
- PUT /recipes/{recipe_id}: Edit a recipe (author only, calories recalculated)
- DELETE /recipes/{recipe_id}: Delete a recipe (author only)
- GET /ingredients, GET /ingredients/{name}/units, POST /ingredients/calories
- GET /categories
- POST /maintenance/reconcile-counters: Repair denormalized counters

Account, profile and favorites endpoints live in api/routers/users.py.

The acting user is identified by the X-User-ID header (the uid returned by
POST /auth/login or POST /auth/register).

Run the API with:
    uvicorn api.main:app --reload
"""

# Import config early to load .env before anything reads environment variables
import api.config  # noqa: F401

import logging
import time
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status

from api.config import get_log_level
from api.dependencies import Services, get_services, get_user_id
from api.routers.users import router as users_router
from api.schemas import (
    CalorieLine,
    CalorieRequest,
    CalorieResponse,
    IngredientInfoOut,
    RecipeDraftInput,
    RecipeListResponse,
    RecipeOut,
    RecipeUpdateInput,
    UploadResponse,
)
from spoonful.categories import search_categories, sorted_categories
from spoonful.db import db_is_enabled
from spoonful.filtering import filter_recipes, should_show_view_more
from spoonful.ingredients import total_calories
from spoonful.models import POPULAR_CATEGORY, Recipe, RecipeFilter
from spoonful.upload import REQUIRED_FIELDS_ERROR, UPLOAD_FAILED_ERROR, RecipeDraft, UploadError, check_amounts, recalculate

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Track app start time for uptime calculation
_APP_START_TIME = time.time()

app = FastAPI(
    title="Spoonful API",
    description="Backend API for sharing, browsing and favoriting recipes",
    version="1.0.0",
    tags_metadata=[
        {"name": "recipes", "description": "Browse, upload, edit and delete recipes."},
        {"name": "reference", "description": "Ingredient table, calorie calculation and categories."},
        {"name": "users", "description": "Registration, login, profiles and favorites."},
        {"name": "health", "description": "Health check and monitoring endpoints."},
    ],
)

app.include_router(users_router)


def parse_categories(categories: Optional[str]) -> set:
    """Split a comma-separated category list, dropping blanks."""
    if not categories:
        return set()
    return {category.strip() for category in categories.split(",") if category.strip()}


@app.get(
    "/recipes",
    response_model=RecipeListResponse,
    tags=["recipes"],
    summary="List recipes",
    description="Recipes filtered by text, difficulty, time and categories. The default 'Popular' view is "
                "sorted by favorite count and limited to the top 10 unless show_all is set or a filter is active.",
)
def list_recipes(
    search: str = Query("", description="Case-insensitive text matched against title, description and ingredients"),
    max_difficulty: Optional[int] = Query(None, ge=1, le=5, description="Keep recipes with difficulty <= this"),
    max_time: Optional[int] = Query(None, ge=0, description="Keep recipes taking at most this many minutes"),
    categories: Optional[str] = Query(None, description="Comma-separated categories; a recipe matches if it has any"),
    category: str = Query(POPULAR_CATEGORY, description="Category chip; 'Popular' sorts by favorite count"),
    mine_only: bool = Query(False, description="Only recipes by the X-User-ID user"),
    show_all: bool = Query(False, description="Do not truncate the Popular list"),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID", description="Acting user (required for mine_only)"),
    services: Services = Depends(get_services),
) -> RecipeListResponse:
    criteria = RecipeFilter(
        search=search,
        max_difficulty=max_difficulty,
        max_time=max_time,
        categories=parse_categories(categories),
        selected_category=category,
        mine_only=mine_only,
        show_all_popular=show_all,
    )
    recipes = services.repository.list_recipes()
    results = filter_recipes(recipes, criteria, current_uid=x_user_id)
    return RecipeListResponse(
        results=[RecipeOut.from_recipe(recipe) for recipe in results],
        show_view_more=should_show_view_more(criteria, results),
    )


@app.get("/recipes/{recipe_id}", response_model=RecipeOut, tags=["recipes"])
def get_recipe(recipe_id: str, services: Services = Depends(get_services)) -> RecipeOut:
    recipe = services.repository.get_recipe(recipe_id)
    if recipe is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Recipe not found: {recipe_id}")
    return RecipeOut.from_recipe(recipe)


@app.post(
    "/recipes",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["recipes"],
    summary="Upload a recipe",
    description="Validates the draft, looks up a cover image by title, computes calories and stores the recipe.",
)
def upload_recipe(
    draft: RecipeDraftInput,
    uid: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> UploadResponse:
    result = services.uploader.upload(RecipeDraft(**draft.model_dump()), author_id=uid)
    if not result.ok:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR if result.error == UPLOAD_FAILED_ERROR else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=result.error)

    recipe = services.repository.get_recipe(result.recipe_id)
    if recipe is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Recipe was stored but could not be read back")
    return UploadResponse(id=result.recipe_id, recipe=RecipeOut.from_recipe(recipe))


def _require_author(recipe_id: str, uid: str, services: Services):
    recipe = services.repository.get_recipe(recipe_id)
    if recipe is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Recipe not found: {recipe_id}")
    if recipe.author_id != uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can change this recipe")
    return recipe


@app.put("/recipes/{recipe_id}", response_model=RecipeOut, tags=["recipes"], summary="Edit a recipe")
def update_recipe(
    recipe_id: str,
    changes: RecipeUpdateInput,
    uid: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> RecipeOut:
    """
    Replace the editable fields of a recipe.

    The id, author, image and favorite counter are kept; calories are always
    recalculated from the new ingredients. The write is a full overwrite.
    """
    existing = _require_author(recipe_id, uid, services)
    if not changes.title.strip() or not changes.description.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=REQUIRED_FIELDS_ERROR)
    try:
        check_amounts(changes.ingredients)
    except UploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    edited = Recipe.model_validate({**existing.model_dump(), **changes.model_dump()})
    updated = recalculate(edited, services.catalog)
    if not services.repository.update_recipe(updated):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update recipe.")
    return RecipeOut.from_recipe(updated)


@app.delete("/recipes/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["recipes"], summary="Delete a recipe")
def delete_recipe(
    recipe_id: str,
    uid: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> None:
    _require_author(recipe_id, uid, services)
    if not services.repository.delete_recipe(recipe_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete recipe.")


@app.get("/ingredients", response_model=List[IngredientInfoOut], tags=["reference"])
def list_ingredients(
    q: str = Query("", description="Case-insensitive name filter"),
    services: Services = Depends(get_services),
) -> List[IngredientInfoOut]:
    needle = q.lower()
    return [
        IngredientInfoOut(name=info.name, units=info.available_units())
        for info in services.catalog.entries()
        if needle in info.name.lower()
    ]


@app.get("/ingredients/{name}/units", response_model=List[str], tags=["reference"])
def ingredient_units(name: str, services: Services = Depends(get_services)) -> List[str]:
    if services.catalog.find(name) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown ingredient: {name}")
    return services.catalog.available_units(name)


@app.post("/ingredients/calories", response_model=CalorieResponse, tags=["reference"])
def calculate_calories(request: CalorieRequest, services: Services = Depends(get_services)) -> CalorieResponse:
    """Per-line and total calories; unknown ingredients or units count as 0."""
    lines = [
        CalorieLine(ingredient=ingredient, calories=services.catalog.calories(ingredient))
        for ingredient in request.ingredients
    ]
    return CalorieResponse(lines=lines, total=total_calories(request.ingredients, services.catalog))


@app.get("/categories", response_model=List[str], tags=["reference"])
def list_categories(
    q: str = Query("", description="Case-insensitive substring filter"),
    sort: bool = Query(False, description="Sort alphabetically instead of file order"),
    services: Services = Depends(get_services),
) -> List[str]:
    categories = services.categories()
    if sort:
        categories = sorted_categories(categories)
    return search_categories(categories, q)


@app.post("/maintenance/reconcile-counters", tags=["health"])
def reconcile_counters(services: Services = Depends(get_services)):
    """Recompute favorite and recipes-created counters from their source records."""
    return {"status": "ok", "fixed": services.repository.reconcile_counters()}


@app.get("/health", tags=["health"])
def health():
    """
    Health check endpoint for monitoring and status checks.

    Returns:
        Dictionary with status, API metadata, uptime and database status.
        Always returns 200 OK if the endpoint is reachable.
    """
    return {
        "status": "ok",
        "name": "Spoonful API",
        "version": "1.0.0",
        "uptime_seconds": int(time.time() - _APP_START_TIME),
        "db_enabled": db_is_enabled(),
    }


@app.get("/")
def root():
    return {
        "name": "Spoonful API",
        "version": "1.0.0",
        "description": "Backend API for sharing, browsing and favoriting recipes",
        "docs": "/docs",
    }
