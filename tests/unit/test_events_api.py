"""Unit tests for the event recording endpoint."""

from fastapi.testclient import TestClient

from storefront_recommender.domain import EventKind

URL = "/api/v1/events"


class TestRecordEvent:
    """POST /api/v1/events."""

    def test_view_event(self, client: TestClient, store, shop_id: str) -> None:
        response = client.post(
            URL,
            json={
                "event_name": "VIEW",
                "shop_domain": shop_id,
                "product_id": "A",
                "session_id": "s-1",
                "occurred_at": "2026-10-01T12:00:00",
            },
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(store.events) == 1

        event = store.events[0]
        assert event.kind == EventKind.VIEW
        assert event.product_id == "A"
        assert event.session_id == "s-1"
        assert event.occurred_at.tzinfo is not None

    def test_cart_event_requires_product(self, client: TestClient, shop_id: str) -> None:
        response = client.post(URL, json={"event_name": "CART_ADD", "shop_domain": shop_id})
        assert response.status_code == 400

    def test_completed_order(self, client: TestClient, store, shop_id: str) -> None:
        response = client.post(
            URL,
            json={
                "event_name": "ORDER_COMPLETED",
                "shop_domain": shop_id,
                "order_id": "1001",
                "user_id": "u-1",
                "items": [
                    {"product_id": "A", "quantity": 2, "price": 10.0},
                    {"product_id": "B"},
                ],
            },
        )

        assert response.status_code == 200
        assert len(store.orders) == 1
        assert store.orders[0].distinct_product_ids() == ["A", "B"]
        assert [e.kind for e in store.events] == [EventKind.ORDER_COMPLETED] * 2

    def test_completed_order_requires_items(self, client: TestClient, shop_id: str) -> None:
        response = client.post(
            URL,
            json={"event_name": "ORDER_COMPLETED", "shop_domain": shop_id, "order_id": "1001"},
        )
        assert response.status_code == 400

    def test_unknown_event_name(self, client: TestClient, shop_id: str) -> None:
        response = client.post(
            URL, json={"event_name": "PAGE_SCROLL", "shop_domain": shop_id, "product_id": "A"}
        )
        assert response.status_code == 422

    def test_storage_failure_is_503(self, client: TestClient, store, shop_id: str) -> None:
        store.failing.add("record_event")
        response = client.post(
            URL, json={"event_name": "VIEW", "shop_domain": shop_id, "product_id": "A"}
        )
        assert response.status_code == 503

    def test_redelivered_order_is_recorded_once(
        self, client: TestClient, store, shop_id: str
    ) -> None:
        body = {
            "event_name": "ORDER_COMPLETED",
            "shop_domain": shop_id,
            "order_id": "1001",
            "items": [{"product_id": "A"}, {"product_id": "B"}],
        }

        first = client.post(URL, json=body)
        second = client.post(URL, json=body)

        assert first.status_code == 200
        assert second.status_code == 200
        assert len(store.orders) == 1
        assert len(store.events) == 2

    def test_same_order_id_in_other_shop_is_recorded(
        self, client: TestClient, store, shop_id: str
    ) -> None:
        body = {"event_name": "ORDER_COMPLETED", "order_id": "1001", "items": [{"product_id": "A"}]}

        client.post(URL, json={**body, "shop_domain": shop_id})
        client.post(URL, json={**body, "shop_domain": "other.example"})

        assert len(store.orders) == 2
