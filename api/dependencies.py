"""
Service wiring for the API.

Services bundles the explicitly constructed collaborators (document store,
access layer, auth, photo search, ingredient catalog). One instance lives on
app.state and is handed to endpoints through FastAPI dependencies, so tests
can swap in their own.
"""

import logging
import threading
from typing import List, Optional

from fastapi import Header, HTTPException, Request, status

from api.config import AssetConfig, StoreConfig, UnsplashConfig
from spoonful.auth import AuthService, InMemoryAuthService
from spoonful.categories import load_categories
from spoonful.db import create_store
from spoonful.ingredients import IngredientCatalog
from spoonful.photos import PhotoSearchService, UnsplashPhotoService
from spoonful.repository import RecipeRepository
from spoonful.stores.base import DocumentStore
from spoonful.upload import RecipeUploader

logger = logging.getLogger(__name__)

_services_lock = threading.Lock()


class Services:
    """Collaborators shared by all requests."""

    def __init__(
        self,
        store: DocumentStore,
        auth: AuthService,
        photos: PhotoSearchService,
        catalog: IngredientCatalog,
        categories_path: Optional[str] = None,
    ) -> None:
        self.store = store
        self.auth = auth
        self.photos = photos
        self.catalog = catalog
        self.categories_path = categories_path
        self.repository = RecipeRepository(store)
        self.uploader = RecipeUploader(self.repository, photos, catalog)

    def categories(self) -> List[str]:
        return load_categories(self.categories_path)

    def close(self) -> None:
        self.store.close()


def build_services() -> Services:
    """Build services from the environment (see api.config)."""
    store = create_store(StoreConfig.get_database_url())
    photos = UnsplashPhotoService(
        access_key=UnsplashConfig.get_access_key(),
        base_url=UnsplashConfig.get_base_url(),
    )
    catalog = IngredientCatalog(path=AssetConfig.get_ingredients_path())
    logger.info("Services built with %s", type(store).__name__)
    return Services(
        store=store,
        auth=InMemoryAuthService(),
        photos=photos,
        catalog=catalog,
        categories_path=AssetConfig.get_categories_path(),
    )


def get_services(request: Request) -> Services:
    """Services on app.state, built on first use. Concurrent first requests share one build."""
    services = getattr(request.app.state, "services", None)
    if services is not None:
        return services
    with _services_lock:
        services = getattr(request.app.state, "services", None)
        if services is None:
            services = build_services()
            request.app.state.services = services
    return services


def get_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-ID")) -> str:
    """
    Get the acting user's uid from the X-User-ID header.

    Raises:
        HTTPException 401: If the header is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required. Sign in via POST /auth/login to obtain a uid.",
        )
    return x_user_id.strip()
