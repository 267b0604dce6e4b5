"""
Tests for the category reference list.
"""

import pytest

from spoonful.categories import (
    HOME_CHIP_COUNT,
    clear_cache,
    home_chips,
    load_categories,
    search_categories,
    sorted_categories,
)


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_cache()
    yield
    clear_cache()


class TestLoadCategories:
    def test_bundled_list_in_file_order(self):
        categories = load_categories()
        assert categories[:3] == ["Breakfast", "Dinner", "Desserts"]
        assert all(category == category.strip() and category for category in categories)

    def test_custom_file(self, tmp_path):
        path = tmp_path / "categories.txt"
        path.write_text("  Soups \n\nVegan\n", encoding="utf-8")
        assert load_categories(str(path)) == ["Soups", "Vegan"]

    def test_env_override(self, tmp_path, monkeypatch):
        path = tmp_path / "categories.txt"
        path.write_text("Brunch\n", encoding="utf-8")
        monkeypatch.setenv("SPOONFUL_CATEGORIES_PATH", str(path))
        assert load_categories() == ["Brunch"]

    def test_read_once(self, tmp_path):
        path = tmp_path / "categories.txt"
        path.write_text("Soups\n", encoding="utf-8")
        load_categories(str(path))
        path.write_text("Changed\n", encoding="utf-8")
        assert load_categories(str(path)) == ["Soups"]


class TestCategoryHelpers:
    def test_sorted_case_insensitive(self):
        assert sorted_categories(["vegan", "Breakfast", "dinner"]) == ["Breakfast", "dinner", "vegan"]

    def test_search(self):
        categories = ["Breakfast", "Quick & Easy", "Desserts"]
        assert search_categories(categories, "EASY") == ["Quick & Easy"]
        assert search_categories(categories, "") == categories

    def test_home_chips(self):
        categories = load_categories()
        chips = home_chips(categories)
        assert chips[0] == "Popular"
        assert chips[1:] == categories[:HOME_CHIP_COUNT]
