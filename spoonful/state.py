"""
Observable state holders for recipes and authentication.

RecipeState caches the live recipe list and the signed-in user's favorite
ids; AuthState caches the current identity plus login/registration busy and
error flags. Consumers subscribe to the Observable attributes and re-render
on change.

Both holders own their subscriptions. Call close() (or use them as context
managers) when the consumer goes away; nothing is delivered afterwards.
"""

import logging
import threading
import time
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from spoonful.auth import AuthError, AuthService
from spoonful.models import AuthUser, Recipe
from spoonful.repository import RecipeRepository
from spoonful.stores.base import Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """A value that notifies subscribers on every set()."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: Dict[int, Callable[[T], None]] = {}
        self._next_id = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            subscribers = list(self._subscribers.values())
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception("Observable subscriber failed")

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        with self._lock:
            subscriber_id = self._next_id
            self._next_id += 1
            self._subscribers[subscriber_id] = callback

        def cancel() -> None:
            with self._lock:
                self._subscribers.pop(subscriber_id, None)

        return Subscription(cancel)


class RecipeState:
    """
    Live recipe list and favorite ids for the signed-in user.

    Mutations re-pull the full recipe list afterwards (no incremental
    patching). A favorite toggle re-pulls the favorite ids only on success.
    """

    def __init__(self, repository: RecipeRepository, auth: AuthService) -> None:
        self.repository = repository
        self.auth = auth

        self.recipes: Observable[List[Recipe]] = Observable([])
        self.favorites: Observable[List[str]] = Observable([])
        self.edit_success: Observable[Optional[bool]] = Observable(None)
        self.delete_success: Observable[Optional[bool]] = Observable(None)

        self._favorites_subscription: Optional[Subscription] = None
        self._favorites_uid: Optional[str] = None
        self._closed = False

        self._recipes_subscription = repository.get_recipes(self.recipes.set)
        self._auth_subscription = auth.add_listener(self._on_auth_changed)

    def _on_auth_changed(self, user: Optional[AuthUser]) -> None:
        uid = user.uid if user else None
        if self._closed or uid == self._favorites_uid:
            return
        if self._favorites_subscription is not None:
            self._favorites_subscription.cancel()
            self._favorites_subscription = None
        self._favorites_uid = uid
        if uid is None:
            self.favorites.set([])
            return
        self._favorites_subscription = self.repository.get_user_favorites(uid, self.favorites.set)

    @property
    def current_uid(self) -> Optional[str]:
        user = self.auth.current_user
        return user.uid if user else None

    def fetch_recipes(self) -> None:
        self.recipes.set(self.repository.list_recipes())

    def load_favorites(self) -> None:
        uid = self.current_uid
        if uid is None:
            return
        self.favorites.set(self.repository.list_user_favorites(uid))

    def add_recipe(self, recipe: Recipe) -> Optional[str]:
        recipe_id = self.repository.add_recipe(recipe)
        self.fetch_recipes()
        return recipe_id

    def update_recipe(self, recipe: Recipe) -> bool:
        ok = self.repository.update_recipe(recipe)
        self.edit_success.set(ok)
        self.fetch_recipes()
        return ok

    def delete_recipe(self, recipe_id: str) -> bool:
        ok = self.repository.delete_recipe(recipe_id)
        self.delete_success.set(ok)
        self.fetch_recipes()
        return ok

    def toggle_favorite(self, recipe_id: str, is_favorite: bool) -> bool:
        """
        Mark or unmark a favorite for the signed-in user.

        Returns:
            False when nobody is signed in or the write failed
        """
        uid = self.current_uid
        if uid is None:
            return False
        ok = self.repository.set_user_favorite(uid, recipe_id, is_favorite)
        if ok:
            self.load_favorites()
        return ok

    def is_favorite(self, recipe_id: str) -> bool:
        return recipe_id in self.favorites.value

    def close(self) -> None:
        """Cancel all subscriptions held by this state holder."""
        self._closed = True
        self._recipes_subscription.cancel()
        self._auth_subscription.cancel()
        if self._favorites_subscription is not None:
            self._favorites_subscription.cancel()
            self._favorites_subscription = None

    def __enter__(self) -> "RecipeState":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class AuthState:
    """Current identity plus busy/error flags for login and registration."""

    def __init__(self, auth: AuthService, repository: RecipeRepository) -> None:
        self.auth = auth
        self.repository = repository

        self.user: Observable[Optional[AuthUser]] = Observable(auth.current_user)
        self.is_logged_in: Observable[bool] = Observable(auth.current_user is not None)
        self.loading: Observable[bool] = Observable(False)
        self.error: Observable[Optional[str]] = Observable(None)

        self._subscription = auth.add_listener(self._on_auth_changed)

    def _on_auth_changed(self, user: Optional[AuthUser]) -> None:
        self.user.set(user)
        self.is_logged_in.set(user is not None)

    def register(self, email: str, password: str, username: str) -> bool:
        """
        Create an account and write the user's profile (username, join time).

        Returns:
            True on success; on failure `error` holds the reason
        """
        self.loading.set(True)
        self.error.set(None)
        try:
            user = self.auth.create_user(email, password)
        except AuthError as e:
            self.loading.set(False)
            self.error.set(str(e))
            return False

        self.loading.set(False)
        # Profile writes are best-effort, matching the counter updates
        if not self.repository.create_user_profile(user.uid, username, int(time.time() * 1000)):
            logger.warning("Profile for %s was not written", user.uid)
        return True

    def login(self, email: str, password: str) -> bool:
        self.loading.set(True)
        self.error.set(None)
        try:
            self.auth.sign_in(email, password)
        except AuthError as e:
            self.error.set(str(e))
            return False
        finally:
            self.loading.set(False)
        return True

    def logout(self) -> None:
        self.auth.sign_out()

    def set_error(self, message: Optional[str]) -> None:
        self.error.set(message)

    def close(self) -> None:
        self._subscription.cancel()

    def __enter__(self) -> "AuthState":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
