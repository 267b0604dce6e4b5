"""
Users router for accounts, profiles and favorites.

This router provides:
- POST /auth/register - Create an account and profile
- POST /auth/login - Sign in, returning the uid to send as X-User-ID
- GET /users/{uid}/profile - Username, join time and counters
- GET /users/{uid}/favorites - Favorite ids and the matching recipes
- PUT /users/{uid}/favorites/{recipe_id} - Mark a favorite
- DELETE /users/{uid}/favorites/{recipe_id} - Unmark a favorite

Favorite changes are only allowed for the X-User-ID user.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.dependencies import Services, get_services, get_user_id
from api.schemas import (
    AuthResponse,
    FavoritesResponse,
    LoginRequest,
    ProfileResponse,
    RecipeOut,
    RegisterRequest,
)
from spoonful.auth import AuthError
from spoonful.filtering import favorite_recipes, most_liked_recipe
from spoonful.models import RecipeFilter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, services: Services = Depends(get_services)) -> AuthResponse:
    """
    Create an account and write the user's profile (username, join time).

    Raises:
        HTTPException 400: If the email is malformed or taken, or the password is too weak
    """
    try:
        user = services.auth.create_user(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if not services.repository.create_user_profile(user.uid, request.username):
        logger.warning("Profile for %s was not written", user.uid)
    return AuthResponse(uid=user.uid, email=user.email)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: LoginRequest, services: Services = Depends(get_services)) -> AuthResponse:
    try:
        user = services.auth.sign_in(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e
    return AuthResponse(uid=user.uid, email=user.email)


@router.get("/users/{uid}/profile", response_model=ProfileResponse)
def get_profile(uid: str, services: Services = Depends(get_services)) -> ProfileResponse:
    profile = services.repository.get_user_profile(uid)
    top = most_liked_recipe(services.repository.list_recipes(), uid)
    return ProfileResponse(
        uid=profile.uid,
        username=profile.username,
        joined=profile.joined,
        recipes_created=profile.recipes_created,
        favorites_count=profile.favorites_count,
        most_liked_recipe=RecipeOut.from_recipe(top) if top else None,
    )


@router.get("/users/{uid}/favorites", response_model=FavoritesResponse)
def get_favorites(
    uid: str,
    search: str = Query("", description="Case-insensitive text filter"),
    max_difficulty: Optional[int] = Query(None, ge=1, le=5),
    max_time: Optional[int] = Query(None, ge=0),
    categories: Optional[str] = Query(None, description="Comma-separated categories; matches any"),
    services: Services = Depends(get_services),
) -> FavoritesResponse:
    criteria = RecipeFilter(
        search=search,
        max_difficulty=max_difficulty,
        max_time=max_time,
        categories={c.strip() for c in (categories or "").split(",") if c.strip()},
    )
    favorite_ids = services.repository.list_user_favorites(uid)
    recipes = favorite_recipes(services.repository.list_recipes(), favorite_ids, criteria)
    return FavoritesResponse(
        uid=uid,
        favorites=favorite_ids,
        recipes=[RecipeOut.from_recipe(recipe) for recipe in recipes],
    )


def _set_favorite(uid: str, recipe_id: str, is_favorite: bool, acting_uid: str, services: Services) -> FavoritesResponse:
    if uid != acting_uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only change your own favorites")
    if services.repository.get_recipe(recipe_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Recipe not found: {recipe_id}")

    # The repository only moves the counter when the marker actually flips
    if not services.repository.set_user_favorite(uid, recipe_id, is_favorite):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update favorites.")
    return FavoritesResponse(uid=uid, favorites=services.repository.list_user_favorites(uid))


@router.put("/users/{uid}/favorites/{recipe_id}", response_model=FavoritesResponse)
def add_favorite(
    uid: str,
    recipe_id: str,
    acting_uid: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FavoritesResponse:
    return _set_favorite(uid, recipe_id, True, acting_uid, services)


@router.delete("/users/{uid}/favorites/{recipe_id}", response_model=FavoritesResponse)
def remove_favorite(
    uid: str,
    recipe_id: str,
    acting_uid: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FavoritesResponse:
    return _set_favorite(uid, recipe_id, False, acting_uid, services)
