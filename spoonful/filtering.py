"""
Recipe filtering and popularity sorting.

All functions here are pure: they take an in-memory recipe list and return a
new list without mutating the input.

Filter pipeline (filter_recipes), applied in order:
1. mine_only: keep recipes authored by the current user
2. selected_category (anything but "Popular"): keep recipes with that tag
3. search: case-insensitive substring of title, description or any ingredient
4. max_difficulty: keep difficulty <= limit
5. max_time: keep time (minutes; non-numeric counts as 0) <= limit
6. categories: keep recipes tagged with ANY of the selected categories
7. "Popular" chip: sort by favorite counter, highest first; with no other
   filters active, keep only the top POPULAR_LIMIT unless the full list was
   requested
"""

from typing import Iterable, List, Optional, Sequence

from spoonful.models import POPULAR_CATEGORY, Recipe, RecipeFilter

POPULAR_LIMIT = 10


def _has_category(recipe: Recipe, wanted: Iterable[str]) -> bool:
    wanted_lower = {category.lower() for category in wanted}
    return any(category.lower() in wanted_lower for category in recipe.categories)


def matches_search(recipe: Recipe, query: str) -> bool:
    """True if the query occurs in the title, description or any ingredient line."""
    needle = query.lower()
    return (
        needle in recipe.title.lower()
        or needle in recipe.description.lower()
        or any(needle in line.lower() for line in recipe.ingredient_strings())
    )


def sort_by_popularity(recipes: Sequence[Recipe]) -> List[Recipe]:
    """Highest favorite counter first; ties keep their input order."""
    return sorted(recipes, key=lambda recipe: recipe.favorite_counter, reverse=True)


def popular_recipes(recipes: Sequence[Recipe], limit: Optional[int] = POPULAR_LIMIT) -> List[Recipe]:
    ranked = sort_by_popularity(recipes)
    return ranked if limit is None else ranked[:limit]


def apply_predicates(recipes: Sequence[Recipe], criteria: RecipeFilter) -> List[Recipe]:
    """
    Apply the text, difficulty, time and multi-category predicates.

    Shared by the home and favorites views; does not look at mine_only,
    selected_category or popularity.
    """
    filtered = list(recipes)

    if criteria.search.strip():
        filtered = [recipe for recipe in filtered if matches_search(recipe, criteria.search)]

    if criteria.max_difficulty is not None:
        filtered = [recipe for recipe in filtered if recipe.difficulty <= criteria.max_difficulty]

    if criteria.max_time is not None:
        filtered = [recipe for recipe in filtered if recipe.time_minutes <= criteria.max_time]

    if criteria.categories:
        filtered = [recipe for recipe in filtered if _has_category(recipe, criteria.categories)]

    return filtered


def filter_recipes(
    recipes: Sequence[Recipe],
    criteria: Optional[RecipeFilter] = None,
    current_uid: Optional[str] = None,
) -> List[Recipe]:
    """
    Filter and order a recipe list for the home view.

    Args:
        recipes: Cached recipe list
        criteria: Filter predicates (defaults to the unfiltered Popular view)
        current_uid: Signed-in user's uid, used by mine_only

    Returns:
        New list of matching recipes

    Examples:
        >>> soup = Recipe(title="Soup", difficulty=3, time="20", favoriteCounter=5)
        >>> cake = Recipe(title="Cake", difficulty=1, time="90", favoriteCounter=10)
        >>> [r.title for r in filter_recipes([soup, cake], RecipeFilter(max_difficulty=3, max_time=30))]
        ['Soup']
    """
    criteria = criteria or RecipeFilter()
    filtered = list(recipes)

    if criteria.mine_only and current_uid:
        filtered = [recipe for recipe in filtered if recipe.author_id == current_uid]

    if criteria.selected_category != POPULAR_CATEGORY:
        filtered = [recipe for recipe in filtered if _has_category(recipe, [criteria.selected_category])]

    filtered = apply_predicates(filtered, criteria)

    if criteria.selected_category == POPULAR_CATEGORY:
        if criteria.has_active_filters() or criteria.show_all_popular:
            filtered = popular_recipes(filtered, limit=None)
        else:
            filtered = popular_recipes(filtered)

    return filtered


def favorite_recipes(
    recipes: Sequence[Recipe],
    favorite_ids: Iterable[str],
    criteria: Optional[RecipeFilter] = None,
) -> List[Recipe]:
    """Recipes in the user's favorite set, filtered by the shared predicates."""
    favorites = set(favorite_ids)
    selected = [recipe for recipe in recipes if recipe.id in favorites]
    if criteria is None:
        return selected
    return apply_predicates(selected, criteria)


def recipes_by_author(recipes: Sequence[Recipe], uid: str) -> List[Recipe]:
    return [recipe for recipe in recipes if recipe.author_id == uid]


def most_liked_recipe(recipes: Sequence[Recipe], uid: str) -> Optional[Recipe]:
    """The user's recipe with the highest favorite counter, or None."""
    mine = recipes_by_author(recipes, uid)
    if not mine:
        return None
    return max(mine, key=lambda recipe: recipe.favorite_counter)


def should_show_view_more(criteria: RecipeFilter, results: Sequence[Recipe]) -> bool:
    """Whether the Popular view should offer "View more"."""
    return (
        criteria.selected_category == POPULAR_CATEGORY
        and not criteria.show_all_popular
        and len(results) > POPULAR_LIMIT - 1
    )
