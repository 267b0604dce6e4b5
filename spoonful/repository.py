"""
Recipe access layer over a document store.

RecipeRepository translates recipe CRUD and favorite toggles into document
store operations and keeps two denormalized counters in step:

- users/{uid}/recipesCreated: incremented on add, decremented on delete
- recipes/{id}/favoriteCounter: incremented/decremented when a favorite marker flips

Store layout:
    recipes/{id}                    Recipe document
    users/{uid}/username            display name
    users/{uid}/joined              epoch milliseconds
    users/{uid}/recipesCreated      counter
    users/{uid}/favorites/{id}      recipe id (present = favorited)

Error handling:
- Primary writes that fail return False (or None for add_recipe)
- Reads and subscriptions that fail degrade to an empty list
- Counter adjustments are best-effort: they run after the primary write as a
  separate atomic increment, and their failures are logged, not reported.
  reconcile_counters() repairs any drift.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from spoonful.models import Recipe, UserProfile
from spoonful.stores.base import ABORT, DocumentStore, StoreError, Subscription, join_path

logger = logging.getLogger(__name__)

RECIPES = "recipes"
USERS = "users"


def _children(snapshot: Any) -> List[Any]:
    """Child values of a collection snapshot, in key order."""
    if not isinstance(snapshot, dict):
        return []
    return [snapshot[key] for key in sorted(snapshot)]


def _to_recipes(snapshot: Any) -> List[Recipe]:
    recipes: List[Recipe] = []
    for document in _children(snapshot):
        if not isinstance(document, dict):
            continue
        try:
            recipes.append(Recipe.model_validate(document))
        except ValidationError as e:
            logger.warning("Skipping malformed recipe %s: %s", document.get("id", "?"), e.error_count())
    return recipes


def _to_ids(snapshot: Any) -> List[str]:
    return [value for value in _children(snapshot) if isinstance(value, str)]


def _count(value: Any) -> int:
    """Counter value; anything that is not an int counts as 0."""
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class RecipeRepository:
    """
    Data access for recipes, favorites and user stats.

    Construct one per store and pass it to whatever needs it; there is no
    process-wide instance.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def _adjust_counter(self, path: str, delta: int) -> None:
        """Best-effort atomic counter update, clamped at 0."""
        try:
            self.store.increment(path, delta, floor=0)
        except Exception as e:
            logger.warning("Counter update failed for %s (delta=%d): %s", path, delta, e)

    # ------------------------------------------------------------------
    # Recipes
    # ------------------------------------------------------------------

    def add_recipe(self, recipe: Recipe) -> Optional[str]:
        """
        Store a new recipe under a fresh identifier.

        On success the author's recipesCreated counter is incremented.

        Returns:
            The new recipe id, or None if the write failed
        """
        try:
            key = self.store.push_key(RECIPES)
        except Exception as e:
            logger.error("Could not allocate recipe id: %s", e)
            return None

        stored = recipe.model_copy(update={"id": key})
        try:
            self.store.set(join_path(RECIPES, key), stored.to_document())
        except StoreError as e:
            logger.error("Failed to add recipe %r: %s", recipe.title, e)
            return None

        if stored.author_id:
            self._adjust_counter(join_path(USERS, stored.author_id, "recipesCreated"), 1)
        logger.info("Added recipe %s by %s", key, stored.author_id or "<anonymous>")
        return key

    def get_recipes(self, on_data: Callable[[List[Recipe]], None]) -> Subscription:
        """
        Subscribe to the full recipe collection.

        `on_data` receives the whole list now and after every change; a failed
        read delivers an empty list.
        """
        return self.store.subscribe(
            RECIPES,
            lambda snapshot: on_data(_to_recipes(snapshot)),
            on_error=lambda e: on_data([]),
        )

    def list_recipes(self) -> List[Recipe]:
        try:
            return _to_recipes(self.store.get(RECIPES))
        except StoreError as e:
            logger.warning("Failed to read recipes: %s", e)
            return []

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        if not recipe_id or not recipe_id.strip():
            return None
        try:
            document = self.store.get(join_path(RECIPES, recipe_id))
        except StoreError as e:
            logger.warning("Failed to read recipe %s: %s", recipe_id, e)
            return None
        if not isinstance(document, dict):
            return None
        try:
            return Recipe.model_validate(document)
        except ValidationError:
            logger.warning("Recipe %s is malformed", recipe_id)
            return None

    def update_recipe(self, recipe: Recipe) -> bool:
        """
        Overwrite a recipe by id (last write wins).

        Returns:
            False if the recipe has no id or the write failed
        """
        if not recipe.id.strip():
            return False
        try:
            self.store.set(join_path(RECIPES, recipe.id), recipe.to_document())
        except StoreError as e:
            logger.error("Failed to update recipe %s: %s", recipe.id, e)
            return False
        return True

    def delete_recipe(self, recipe_id: str) -> bool:
        """
        Delete a recipe and decrement its author's recipesCreated counter.

        The record is taken out in one transaction, so only the call that
        actually removed it decrements the counter. Deleting a recipe that is
        already gone succeeds without touching any counter.

        Returns:
            False if the id is blank or the removal failed
        """
        if not recipe_id or not recipe_id.strip():
            return False

        removed: Dict[str, Any] = {}

        def take(current: Any) -> Any:
            if current is None:
                return ABORT
            removed["document"] = current
            return None

        try:
            self.store.transaction(join_path(RECIPES, recipe_id), take)
        except StoreError as e:
            logger.error("Failed to delete recipe %s: %s", recipe_id, e)
            return False

        document = removed.get("document")
        author_id = document.get("authorId") if isinstance(document, dict) else None
        if author_id:
            self._adjust_counter(join_path(USERS, author_id, "recipesCreated"), -1)
        return True

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    def get_user_favorites(self, uid: str, on_data: Callable[[List[str]], None]) -> Subscription:
        """Subscribe to one user's favorite recipe ids."""
        return self.store.subscribe(
            join_path(USERS, uid, "favorites"),
            lambda snapshot: on_data(_to_ids(snapshot)),
            on_error=lambda e: on_data([]),
        )

    def list_user_favorites(self, uid: str) -> List[str]:
        try:
            return _to_ids(self.store.get(join_path(USERS, uid, "favorites")))
        except StoreError as e:
            logger.warning("Failed to read favorites for %s: %s", uid, e)
            return []

    def set_user_favorite(self, uid: str, recipe_id: str, is_favorite: bool) -> bool:
        """
        Mark or unmark a recipe as a user's favorite.

        The marker is flipped in one transaction. The recipe's favoriteCounter
        is incremented or decremented (never below 0) only when this call
        changed the marker, so repeated or concurrent requests for the same
        state count once.

        Returns:
            True if the marker is now in the requested state
        """
        if not uid or not recipe_id:
            return False

        flipped: List[bool] = []

        def flip(current: Any) -> Any:
            if (current is not None) == is_favorite:
                return ABORT
            flipped.append(True)
            return recipe_id if is_favorite else None

        try:
            self.store.transaction(join_path(USERS, uid, "favorites", recipe_id), flip)
        except StoreError as e:
            logger.error("Failed to set favorite %s for %s: %s", recipe_id, uid, e)
            return False

        if flipped:
            self._adjust_counter(join_path(RECIPES, recipe_id, "favoriteCounter"), 1 if is_favorite else -1)
        return True

    # ------------------------------------------------------------------
    # User profiles
    # ------------------------------------------------------------------

    def create_user_profile(self, uid: str, username: str, joined: Optional[int] = None) -> bool:
        """Write a new user's username and join time (epoch millis)."""
        joined_ms = joined if joined is not None else int(time.time() * 1000)
        try:
            self.store.set(join_path(USERS, uid, "username"), username)
            self.store.set(join_path(USERS, uid, "joined"), joined_ms)
        except StoreError as e:
            logger.error("Failed to create profile for %s: %s", uid, e)
            return False
        return True

    def get_user_profile(self, uid: str) -> UserProfile:
        """User stats; missing fields fall back to defaults."""
        try:
            document = self.store.get(join_path(USERS, uid))
        except StoreError as e:
            logger.warning("Failed to read profile for %s: %s", uid, e)
            document = None
        if not isinstance(document, dict):
            document = {}

        recipes_created = document.get("recipesCreated")
        joined = document.get("joined")
        username = document.get("username")
        return UserProfile(
            uid=uid,
            username=username if isinstance(username, str) else "",
            joined=joined if isinstance(joined, int) else 0,
            recipes_created=recipes_created if isinstance(recipes_created, int) and recipes_created >= 0 else 0,
            favorites=_to_ids(document.get("favorites")),
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile_counters(self) -> Dict[str, int]:
        """
        Recompute both denormalized counters from their source records.

        favoriteCounter becomes the number of users whose favorite set holds
        the recipe; recipesCreated becomes the number of recipes the user
        authored. Only counters that drifted are corrected, and the correction
        is applied as a delta against the value read here, so increments that
        land while reconciliation runs are kept.

        Returns:
            Number of corrections per counter: {"favoriteCounter": n, "recipesCreated": m}
        """
        fixes = {"favoriteCounter": 0, "recipesCreated": 0}
        try:
            recipes = self.store.get(RECIPES) or {}
            users = self.store.get(USERS) or {}
        except StoreError as e:
            logger.error("Counter reconciliation aborted: %s", e)
            return fixes

        favorite_counts: Dict[str, int] = {}
        for user in users.values():
            if isinstance(user, dict):
                for recipe_id in _to_ids(user.get("favorites")):
                    favorite_counts[recipe_id] = favorite_counts.get(recipe_id, 0) + 1

        authored: Dict[str, int] = {}
        for recipe_id, document in recipes.items():
            if not isinstance(document, dict):
                continue
            expected = favorite_counts.get(recipe_id, 0)
            seen = _count(document.get("favoriteCounter"))
            if seen != expected:
                self._correct_counter(join_path(RECIPES, recipe_id, "favoriteCounter"), expected - seen)
                fixes["favoriteCounter"] += 1
            author_id = document.get("authorId")
            if author_id:
                authored[author_id] = authored.get(author_id, 0) + 1

        for uid in set(users) | set(authored):
            user = users.get(uid) if isinstance(users.get(uid), dict) else {}
            expected = authored.get(uid, 0)
            seen = _count(user.get("recipesCreated"))
            if seen != expected:
                self._correct_counter(join_path(USERS, uid, "recipesCreated"), expected - seen)
                fixes["recipesCreated"] += 1

        if any(fixes.values()):
            logger.info("Reconciled counters: %s", fixes)
        return fixes

    def _correct_counter(self, path: str, delta: int) -> None:
        """Shift a counter by `delta` from whatever it holds now, clamped at 0."""
        def apply(current: Any) -> Any:
            return max(_count(current) + delta, 0)

        try:
            self.store.transaction(path, apply)
        except StoreError as e:
            logger.warning("Failed to reconcile %s: %s", path, e)
