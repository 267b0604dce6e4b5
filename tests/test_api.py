"""
End-to-end tests for the FastAPI endpoints.

Each test gets fresh services (in-memory store and auth, fixed cover image,
small ingredient table) installed on app.state, so no environment or network
access is needed.
"""

import threading
import time
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from api.dependencies import Services, get_services
from api.main import app
from spoonful.auth import InMemoryAuthService
from spoonful.ingredients import IngredientCatalog, parse_ingredient_line
from spoonful.photos import StaticPhotoService
from spoonful.stores.memory_store import MemoryDocumentStore

COVER_URL = "https://img/cover.jpg"


@pytest.fixture
def services():
    catalog = IngredientCatalog([
        parse_ingredient_line("Egg|1.5|70|1.5|0.5|x|60"),
        parse_ingredient_line("Tomato|0.18|22|x|x|x|32"),
        parse_ingredient_line("Olive oil|8.84|x|119|40|8.2|1909"),
    ])
    instance = Services(
        store=MemoryDocumentStore(),
        auth=InMemoryAuthService(),
        photos=StaticPhotoService(COVER_URL),
        catalog=catalog,
    )
    app.state.services = instance
    yield instance
    app.state.services = None


@pytest.fixture
def client(services):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


def register(client, email="cook@example.com", username="cook"):
    response = client.post("/auth/register", json={"email": email, "password": "secret1", "username": username})
    assert response.status_code == 201
    return response.json()["uid"]


def upload(client, uid, **overrides):
    payload = {
        "title": "Tomato Soup",
        "description": "Quick weeknight soup",
        "ingredients": [
            {"name": "Tomato", "amount": "4", "unit": "piece"},
            {"name": "Olive oil", "amount": "1", "unit": "tbsp"},
        ],
        "categories": ["Soups"],
        "difficulty": 2,
        "time": "25",
        "directions": ["Chop", "Simmer"],
    }
    payload.update(overrides)
    return client.post("/recipes", json=payload, headers={"X-User-ID": uid})


class TestRecipeEndpoints:
    """Tests for /recipes."""

    def test_upload_recipe(self, client):
        uid = register(client)

        response = upload(client, uid)

        assert response.status_code == 201
        data = response.json()
        recipe = data["recipe"]
        assert recipe["id"] == data["id"]
        assert recipe["author_id"] == uid
        assert recipe["image_url"] == COVER_URL
        assert recipe["calories"] == 207
        assert recipe["ingredient_lines"] == ["Tomato (4 piece)", "Olive oil (1 tbsp)"]

    def test_upload_requires_user(self, client):
        response = client.post("/recipes", json={"title": "Soup", "description": "x", "categories": ["Soups"]})
        assert response.status_code == 401

    def test_upload_missing_fields(self, client):
        response = upload(client, "u1", title="")
        assert response.status_code == 400
        assert response.json()["detail"] == "All fields are required."

    @pytest.mark.parametrize("amount", ["-3", "lots"])
    def test_upload_invalid_amount(self, client, services, amount):
        response = upload(client, "u1", ingredients=[{"name": "Tomato", "amount": amount, "unit": "piece"}])

        assert response.status_code == 400
        assert response.json()["detail"] == "Enter a valid amount for every ingredient."
        assert services.store.get("recipes") is None

    def test_update_invalid_amount(self, client):
        recipe_id = upload(client, "u1").json()["id"]

        response = client.put(
            f"/recipes/{recipe_id}",
            json={
                "title": "Tomato Soup",
                "description": "Quick weeknight soup",
                "ingredients": [{"name": "Tomato", "amount": "-3", "unit": "piece"}],
                "categories": ["Soups"],
            },
            headers={"X-User-ID": "u1"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Enter a valid amount for every ingredient."
        assert client.get(f"/recipes/{recipe_id}").json()["calories"] == 207

    def test_upload_bad_difficulty(self, client):
        assert upload(client, "u1", difficulty=9).status_code == 422

    def test_get_recipe(self, client):
        recipe_id = upload(client, "u1").json()["id"]

        response = client.get(f"/recipes/{recipe_id}")

        assert response.status_code == 200
        assert response.json()["title"] == "Tomato Soup"

    def test_get_unknown_recipe(self, client):
        assert client.get("/recipes/missing").status_code == 404

    def test_list_filters(self, client):
        upload(client, "u1", title="Soup", difficulty=3, time="20")
        upload(client, "u1", title="Cake", difficulty=1, time="90", categories=["Desserts"])

        response = client.get("/recipes", params={"max_difficulty": 3, "max_time": 30})

        assert response.status_code == 200
        assert [recipe["title"] for recipe in response.json()["results"]] == ["Soup"]

    def test_list_popular_truncated(self, client):
        for i in range(12):
            upload(client, "u1", title=f"Recipe {i}")

        data = client.get("/recipes").json()
        assert len(data["results"]) == 10
        assert data["show_view_more"] is True

        data = client.get("/recipes", params={"show_all": True}).json()
        assert len(data["results"]) == 12
        assert data["show_view_more"] is False

    def test_list_mine_only(self, client):
        upload(client, "u1", title="Mine")
        upload(client, "u2", title="Theirs")

        response = client.get("/recipes", params={"mine_only": True}, headers={"X-User-ID": "u1"})

        assert [recipe["title"] for recipe in response.json()["results"]] == ["Mine"]

    def test_list_category_chip(self, client):
        upload(client, "u1", title="Soup")
        upload(client, "u1", title="Cake", categories=["Desserts"])

        response = client.get("/recipes", params={"category": "Desserts"})

        assert [recipe["title"] for recipe in response.json()["results"]] == ["Cake"]

    def test_update_recalculates_calories(self, client):
        recipe_id = upload(client, "u1").json()["id"]

        response = client.put(
            f"/recipes/{recipe_id}",
            json={
                "title": "Egg Soup",
                "description": "With eggs",
                "ingredients": [{"name": "Egg", "amount": "2", "unit": "piece"}],
                "categories": ["Soups"],
                "difficulty": 1,
                "time": "15",
                "directions": ["Boil"],
            },
            headers={"X-User-ID": "u1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Egg Soup"
        assert data["calories"] == 140
        assert data["image_url"] == COVER_URL
        assert data["author_id"] == "u1"

    def test_update_by_other_user_forbidden(self, client):
        recipe_id = upload(client, "u1").json()["id"]
        response = client.put(
            f"/recipes/{recipe_id}",
            json={"title": "Hijacked", "description": "x"},
            headers={"X-User-ID": "u2"},
        )
        assert response.status_code == 403

    def test_delete_recipe(self, client, services):
        recipe_id = upload(client, "u1").json()["id"]
        assert services.store.get("users/u1/recipesCreated") == 1

        response = client.delete(f"/recipes/{recipe_id}", headers={"X-User-ID": "u1"})

        assert response.status_code == 204
        assert client.get(f"/recipes/{recipe_id}").status_code == 404
        assert services.store.get("users/u1/recipesCreated") == 0

    def test_delete_by_other_user_forbidden(self, client):
        recipe_id = upload(client, "u1").json()["id"]
        assert client.delete(f"/recipes/{recipe_id}", headers={"X-User-ID": "u2"}).status_code == 403


class TestReferenceEndpoints:
    def test_list_ingredients(self, client):
        data = client.get("/ingredients", params={"q": "OIL"}).json()
        assert data == [{"name": "Olive oil", "units": ["g", "tbsp", "tsp", "ml", "cup"]}]

    def test_ingredient_units(self, client):
        assert client.get("/ingredients/Tomato/units").json() == ["g", "piece", "cup"]
        assert client.get("/ingredients/Dragonfruit/units").status_code == 404

    def test_calories(self, client):
        response = client.post("/ingredients/calories", json={"ingredients": [
            {"name": "Egg", "amount": "2", "unit": "piece"},
            {"name": "Egg", "amount": "1", "unit": "ml"},
        ]})

        data = response.json()
        assert [line["calories"] for line in data["lines"]] == [140.0, 0.0]
        assert data["total"] == 140

    def test_categories(self, client):
        data = client.get("/categories").json()
        assert data[:2] == ["Breakfast", "Dinner"]

        assert client.get("/categories", params={"q": "soup"}).json() == ["Soups"]

    def test_categories_sorted(self, client):
        data = client.get("/categories", params={"sort": True}).json()
        assert data == sorted(data, key=str.lower)


class TestUserEndpoints:
    """Tests for registration, profiles and favorites."""

    def test_register_and_login(self, client):
        uid = register(client)

        response = client.post("/auth/login", json={"email": "cook@example.com", "password": "secret1"})

        assert response.status_code == 200
        assert response.json() == {"uid": uid, "email": "cook@example.com"}

    def test_register_bad_email(self, client):
        response = client.post("/auth/register", json={"email": "cook", "password": "secret1", "username": "c"})
        assert response.status_code == 400
        assert response.json()["detail"] == "The email address is badly formatted."

    def test_login_wrong_password(self, client):
        register(client)
        response = client.post("/auth/login", json={"email": "cook@example.com", "password": "nope123"})
        assert response.status_code == 401

    def test_profile(self, client):
        uid = register(client, username="cook")
        popular_id = upload(client, uid, title="Popular").json()["id"]
        upload(client, uid, title="Quiet")
        client.put(f"/users/other/favorites/{popular_id}", headers={"X-User-ID": "other"})

        data = client.get(f"/users/{uid}/profile").json()

        assert data["username"] == "cook"
        assert data["joined"] > 0
        assert data["recipes_created"] == 2
        assert data["favorites_count"] == 0
        assert data["most_liked_recipe"]["id"] == popular_id

    def test_profile_without_recipes(self, client):
        data = client.get("/users/nobody/profile").json()
        assert data["recipes_created"] == 0
        assert data["most_liked_recipe"] is None

    def test_favorite_and_unfavorite(self, client):
        recipe_id = upload(client, "u1").json()["id"]
        headers = {"X-User-ID": "u2"}

        response = client.put(f"/users/u2/favorites/{recipe_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["favorites"] == [recipe_id]
        assert client.get(f"/recipes/{recipe_id}").json()["favorite_counter"] == 1

        response = client.delete(f"/users/u2/favorites/{recipe_id}", headers=headers)
        assert response.json()["favorites"] == []
        assert client.get(f"/recipes/{recipe_id}").json()["favorite_counter"] == 0

    def test_repeated_favorite_counts_once(self, client):
        recipe_id = upload(client, "u1").json()["id"]
        headers = {"X-User-ID": "u2"}

        client.put(f"/users/u2/favorites/{recipe_id}", headers=headers)
        client.put(f"/users/u2/favorites/{recipe_id}", headers=headers)

        assert client.get(f"/recipes/{recipe_id}").json()["favorite_counter"] == 1

    def test_repeated_unfavorite_counts_once(self, client):
        recipe_id = upload(client, "u1").json()["id"]
        client.put(f"/users/u3/favorites/{recipe_id}", headers={"X-User-ID": "u3"})
        headers = {"X-User-ID": "u2"}
        client.put(f"/users/u2/favorites/{recipe_id}", headers=headers)

        client.delete(f"/users/u2/favorites/{recipe_id}", headers=headers)
        response = client.delete(f"/users/u2/favorites/{recipe_id}", headers=headers)

        assert response.status_code == 200
        assert response.json()["favorites"] == []
        assert client.get(f"/recipes/{recipe_id}").json()["favorite_counter"] == 1

    def test_favorite_for_other_user_forbidden(self, client):
        recipe_id = upload(client, "u1").json()["id"]
        response = client.put(f"/users/u2/favorites/{recipe_id}", headers={"X-User-ID": "u3"})
        assert response.status_code == 403

    def test_favorite_unknown_recipe(self, client):
        response = client.put("/users/u2/favorites/missing", headers={"X-User-ID": "u2"})
        assert response.status_code == 404

    def test_list_favorites(self, client):
        soup_id = upload(client, "u1", title="Soup", time="20").json()["id"]
        stew_id = upload(client, "u1", title="Stew", time="120").json()["id"]
        upload(client, "u1", title="Not favorited")
        headers = {"X-User-ID": "u2"}
        client.put(f"/users/u2/favorites/{soup_id}", headers=headers)
        client.put(f"/users/u2/favorites/{stew_id}", headers=headers)

        data = client.get("/users/u2/favorites", params={"max_time": 30}).json()

        assert sorted(data["favorites"]) == sorted([soup_id, stew_id])
        assert [recipe["title"] for recipe in data["recipes"]] == ["Soup"]


class TestHealthAndMaintenance:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "uptime_seconds" in data
        assert "db_enabled" in data

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"

    def test_reconcile_counters(self, client, services):
        recipe_id = upload(client, "u1").json()["id"]
        services.store.set(f"recipes/{recipe_id}/favoriteCounter", 7)

        response = client.post("/maintenance/reconcile-counters")

        assert response.json()["fixed"] == {"favoriteCounter": 1, "recipesCreated": 0}
        assert client.get(f"/recipes/{recipe_id}").json()["favorite_counter"] == 0


class TestServiceWiring:
    @patch("api.dependencies.build_services")
    def test_concurrent_first_requests_build_once(self, mock_build):
        built = Mock(spec=Services)

        def slow_build():
            time.sleep(0.05)
            return built

        mock_build.side_effect = slow_build
        request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(services=None)))
        results = []
        threads = [threading.Thread(target=lambda: results.append(get_services(request))) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        mock_build.assert_called_once_with()
        assert results == [built] * 4
        assert request.app.state.services is built

    def test_existing_services_reused(self, services):
        request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(services=services)))
        assert get_services(request) is services
