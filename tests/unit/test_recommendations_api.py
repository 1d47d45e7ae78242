"""Unit tests for the recommendations endpoint."""

from fastapi.testclient import TestClient

from storefront_recommender.domain import UserProfile

URL = "/api/v1/recommendations"


class TestGetRecommendations:
    """GET /api/v1/recommendations."""

    def test_popular_without_context(self, client: TestClient, store, shop_id: str) -> None:
        store.add_product("A", popularity=1.0, price=9.5)
        store.add_product("B", popularity=2.0)

        response = client.get(URL, params={"shop_domain": shop_id})
        assert response.status_code == 200

        data = response.json()
        assert data["tier"] == "popular"
        assert data["shop_domain"] == shop_id
        assert [r["product_id"] for r in data["recommendations"]] == ["B", "A"]
        assert data["recommendations"][1] == {"product_id": "A", "title": "Product A", "price": 9.5}
        assert "generated_at" in data

    def test_cached_recommendations(self, client: TestClient, store, shop_id: str) -> None:
        store.add_product("P")
        store.add_product("B")
        store.add_recommendation("P", "B", 1.0)

        response = client.get(URL, params={"shop_domain": shop_id, "product_id": "P"})

        assert response.status_code == 200
        assert response.json()["tier"] == "cache"

    def test_personalized(
        self, client: TestClient, store, shop_id: str, sample_user_id: str
    ) -> None:
        store.add_product("P", collections=["summer"])
        store.add_product("Y", collections=["summer"])
        store.profiles[(shop_id, sample_user_id)] = UserProfile(
            shop_id=shop_id, user_id=sample_user_id
        )

        response = client.get(
            URL,
            params={"shop_domain": shop_id, "product_id": "P", "user_id": sample_user_id},
        )

        assert response.json()["tier"] == "personalized"
        assert [r["product_id"] for r in response.json()["recommendations"]] == ["Y"]

    def test_limit(self, client: TestClient, store, shop_id: str) -> None:
        for pid in ("A", "B", "C"):
            store.add_product(pid)

        response = client.get(URL, params={"shop_domain": shop_id, "limit": 2})
        assert len(response.json()["recommendations"]) == 2

    def test_missing_shop_domain(self, client: TestClient) -> None:
        assert client.get(URL).status_code == 422
        assert client.get(URL, params={"shop_domain": ""}).status_code == 422

    def test_invalid_limit(self, client: TestClient, shop_id: str) -> None:
        assert client.get(URL, params={"shop_domain": shop_id, "limit": 0}).status_code == 422
        assert client.get(URL, params={"shop_domain": shop_id, "limit": 51}).status_code == 422

    def test_unknown_recommendation_type(self, client: TestClient, shop_id: str) -> None:
        response = client.get(
            URL, params={"shop_domain": shop_id, "recommendation_type": "TRENDING"}
        )
        assert response.status_code == 422

    def test_storage_failure_is_503(self, client: TestClient, store, shop_id: str) -> None:
        store.failing.add("find_metadata")

        response = client.get(URL, params={"shop_domain": shop_id})

        assert response.status_code == 503
        assert response.json()["detail"] == "storage unavailable"

    def test_default_limit(self, client: TestClient, store, shop_id: str) -> None:
        for i in range(7):
            store.add_product(f"P{i}")

        response = client.get(URL, params={"shop_domain": shop_id})
        assert len(response.json()["recommendations"]) == 5

    def test_maximum_limit_is_accepted(self, client: TestClient, store, shop_id: str) -> None:
        for i in range(60):
            store.add_product(f"P{i:02d}")

        response = client.get(URL, params={"shop_domain": shop_id, "limit": 50})

        assert response.status_code == 200
        assert len(response.json()["recommendations"]) == 50
