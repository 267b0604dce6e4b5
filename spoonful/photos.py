"""
Photo search integration for recipe cover images.

At upload time the recipe title is sent to Unsplash's "random photo" endpoint
and the returned image URL becomes the recipe's cover image. Any failure
(missing access key, HTTP error, timeout, unexpected body) falls back to a
placeholder image so an upload never fails because of the photo lookup.

Requires UNSPLASH_ACCESS_KEY in .env or the environment. The base URL can be
overridden with UNSPLASH_BASE_URL.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import requests

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/600x400"
DEFAULT_UNSPLASH_BASE_URL = "https://api.unsplash.com/"


class PhotoSearchService(ABC):
    """Interface for services that return an image URL for a text query."""

    @abstractmethod
    def random_photo_url(self, query: str) -> str:
        """
        Return an image URL matching `query`.

        Implementations never raise; they return PLACEHOLDER_IMAGE_URL when no
        photo can be found.
        """


class StaticPhotoService(PhotoSearchService):
    """Always returns the same URL. Used when no photo provider is configured."""

    def __init__(self, url: str = PLACEHOLDER_IMAGE_URL) -> None:
        self.url = url

    def random_photo_url(self, query: str) -> str:
        return self.url


class UnsplashPhotoService(PhotoSearchService):
    """
    Unsplash random-photo client.

    Sends GET {base_url}photos/random?query=<query> with the header
    "Authorization: Client-ID <access key>" and returns urls.regular from the
    response body.
    """

    def __init__(
        self,
        access_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Args:
            access_key: Unsplash access key (optional, reads UNSPLASH_ACCESS_KEY if not provided)
            base_url: API root (optional, reads UNSPLASH_BASE_URL or uses the public API)
            timeout: Request timeout in seconds
            session: requests.Session to reuse connections (optional)
        """
        self.access_key = access_key or os.getenv("UNSPLASH_ACCESS_KEY")
        base = base_url or os.getenv("UNSPLASH_BASE_URL") or DEFAULT_UNSPLASH_BASE_URL
        self.base_url = base if base.endswith("/") else base + "/"
        self.timeout = timeout
        self.session = session or requests.Session()

    def random_photo_url(self, query: str) -> str:
        if not self.access_key:
            logger.warning("UNSPLASH_ACCESS_KEY is not set; using placeholder image")
            return PLACEHOLDER_IMAGE_URL

        try:
            response = self.session.get(
                f"{self.base_url}photos/random",
                params={"query": query},
                headers={"Authorization": f"Client-ID {self.access_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.Timeout:
            logger.warning("Unsplash request timed out for query %r", query)
            return PLACEHOLDER_IMAGE_URL
        except requests.exceptions.RequestException as e:
            logger.warning("Unsplash request failed for query %r: %s", query, e)
            return PLACEHOLDER_IMAGE_URL
        except ValueError:
            logger.warning("Unsplash returned a non-JSON body for query %r", query)
            return PLACEHOLDER_IMAGE_URL

        urls = body.get("urls") if isinstance(body, dict) else None
        url = urls.get("regular") if isinstance(urls, dict) else None
        if not isinstance(url, str) or not url:
            logger.warning("Unsplash response for %r has no urls.regular", query)
            return PLACEHOLDER_IMAGE_URL
        return url
