"""
Configuration management for the Spoonful API.

This module centralizes environment variable loading from the .env file at the
project root. It should be imported early in api/main.py so .env is loaded
before any other code reads environment variables.

In production .env usually does not exist; load_dotenv() then does nothing and
the platform's environment variables are used.

Environment Variables:
- UNSPLASH_ACCESS_KEY: Optional, enables cover image lookup (placeholder image otherwise)
- UNSPLASH_BASE_URL: Optional, defaults to https://api.unsplash.com/
- DATABASE_URL: Optional, SQLAlchemy URL for persistent storage (in-memory otherwise)
- SPOONFUL_INGREDIENTS_PATH: Optional, overrides the bundled ingredient table
- SPOONFUL_CATEGORIES_PATH: Optional, overrides the bundled category list
- LOG_LEVEL: Optional, defaults to INFO
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_env_file() -> None:
    """
    Load environment variables from .env at the project root.

    Safe to call multiple times. Existing environment variables take
    precedence over values in the file.
    """
    # api/config.py -> api/ -> project root
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env", override=False)


load_env_file()


class UnsplashConfig:
    """Configuration for the photo search service."""

    @staticmethod
    def get_access_key() -> Optional[str]:
        """
        Get the Unsplash access key from the environment.

        Returns:
            Access key or None if not set

        Note:
            This does not raise an error; without a key uploads use a placeholder image.
        """
        return os.getenv("UNSPLASH_ACCESS_KEY")

    @staticmethod
    def get_base_url() -> str:
        return os.getenv("UNSPLASH_BASE_URL", "https://api.unsplash.com/")


class StoreConfig:
    """Configuration for the document store."""

    @staticmethod
    def get_database_url() -> Optional[str]:
        return os.getenv("DATABASE_URL")


class AssetConfig:
    """Locations of the static reference assets."""

    @staticmethod
    def get_ingredients_path() -> Optional[str]:
        """Ingredient table path, or None for the bundled file."""
        return os.getenv("SPOONFUL_INGREDIENTS_PATH")

    @staticmethod
    def get_categories_path() -> Optional[str]:
        """Category list path, or None for the bundled file."""
        return os.getenv("SPOONFUL_CATEGORIES_PATH")


def get_log_level() -> int:
    """Log level from LOG_LEVEL (default INFO); unknown names fall back to INFO."""
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_required_env_vars() -> dict:
    """
    Report which optional integrations are configured.

    Returns:
        Dictionary with keys:
        - unsplash_access_key: bool (True if set)
        - database_url: bool (True if set)
    """
    return {
        "unsplash_access_key": UnsplashConfig.get_access_key() is not None,
        "database_url": StoreConfig.get_database_url() is not None,
    }
