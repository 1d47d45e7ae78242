"""Pytest configuration and fixtures."""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from storefront_recommender.api.dependencies import get_cache, get_store
from storefront_recommender.api.v1.health import check_database
from storefront_recommender.config import Settings, get_settings
from storefront_recommender.domain import (
    Event,
    EventKind,
    Order,
    OrderItem,
    ProductMetadata,
    ProductRecommendation,
    RecommendationKey,
    RecommendationType,
    UserProfile,
)
from storefront_recommender.errors import NotFound, StorageUnavailable
from storefront_recommender.infrastructure.redis import CacheService
from storefront_recommender.main import create_app
from storefront_recommender.storage import EventQuery, MetadataFilter, RecommendationStore

SHOP = "test-shop.myshopify.com"


class InMemoryStore(RecommendationStore):
    """Dict-backed store with call counting and failure injection.

    ``calls`` counts every contract method invocation by name. Adding a
    method name to ``failing`` makes that method raise ``StorageUnavailable``.
    """

    def __init__(self) -> None:
        self.products: dict[tuple[str, str], ProductMetadata] = {}
        self.recommendations: dict[RecommendationKey, ProductRecommendation] = {}
        self.profiles: dict[tuple[str, str], UserProfile] = {}
        self.events: list[Event] = []
        self.orders: list[Order] = []
        self.calls: Counter[str] = Counter()
        self.failing: set[str] = set()

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if operation in self.failing:
            raise StorageUnavailable(operation, "injected failure")

    # -- test helpers ----------------------------------------------------------

    def add_product(self, product_id: str, shop_id: str = SHOP, **fields: Any) -> ProductMetadata:
        fields.setdefault("title", f"Product {product_id}")
        product = ProductMetadata(shop_id=shop_id, product_id=product_id, **fields)
        self.products[(shop_id, product_id)] = product
        return product

    def add_view(
        self,
        product_id: str,
        shop_id: str = SHOP,
        user_id: str | None = None,
        session_id: str | None = None,
        occurred_at: datetime | None = None,
    ) -> Event:
        event = Event(
            shop_id=shop_id,
            kind=EventKind.VIEW,
            product_id=product_id,
            user_id=user_id,
            session_id=session_id,
            occurred_at=occurred_at or datetime.now(timezone.utc),
        )
        self.events.append(event)
        return event

    def add_order(
        self,
        product_ids: list[str],
        shop_id: str = SHOP,
        user_id: str | None = None,
        completed_at: datetime | None = None,
        order_id: str | None = None,
    ) -> Order:
        order = Order(
            order_id=order_id or f"order-{len(self.orders) + 1}",
            shop_id=shop_id,
            user_id=user_id,
            completed_at=completed_at or datetime.now(timezone.utc),
            items=[OrderItem(product_id=pid) for pid in product_ids],
        )
        self.orders.append(order)
        return order

    def add_recommendation(
        self,
        source_product_id: str,
        recommended_product_id: str,
        score: float,
        recommendation_type: RecommendationType = RecommendationType.SIMILAR_PRODUCTS,
        shop_id: str = SHOP,
        last_calculated: datetime | None = None,
    ) -> None:
        key = RecommendationKey(
            shop_id=shop_id,
            source_product_id=source_product_id,
            recommended_product_id=recommended_product_id,
            recommendation_type=recommendation_type,
        )
        self.recommendations[key] = ProductRecommendation(
            **key.model_dump(),
            score=score,
            last_calculated=last_calculated or datetime.now(timezone.utc),
        )

    # -- catalog ---------------------------------------------------------------

    async def get_metadata(self, shop_id: str, product_id: str) -> ProductMetadata | None:
        self._enter("get_metadata")
        return self.products.get((shop_id, product_id))

    async def find_metadata(
        self,
        shop_id: str,
        metadata_filter: MetadataFilter,
        limit: int | None = None,
    ) -> list[ProductMetadata]:
        self._enter("find_metadata")
        f = metadata_filter
        excluded = set(f.exclude_ids or ())

        def matches(p: ProductMetadata) -> bool:
            if not f.has_criteria:
                return True
            return (
                (f.ids_in is not None and p.product_id in f.ids_in)
                or (f.collections_any is not None and bool(set(p.collections) & set(f.collections_any)))
                or (f.tags_any is not None and bool(set(p.tags) & set(f.tags_any)))
                or (f.product_type is not None and p.product_type == f.product_type)
                or (f.vendor_in is not None and p.vendor in f.vendor_in)
            )

        found = sorted(
            (
                p
                for (shop, _), p in self.products.items()
                if shop == shop_id and p.product_id not in excluded and matches(p)
            ),
            key=lambda p: (-p.popularity, p.product_id),
        )
        return found[:limit] if limit is not None else found

    async def list_product_ids(self, shop_id: str) -> list[str]:
        self._enter("list_product_ids")
        return sorted(pid for shop, pid in self.products if shop == shop_id)

    async def update_popularity(self, shop_id: str, product_id: str, popularity: float) -> None:
        self._enter("update_popularity")
        product = self.products.get((shop_id, product_id))
        if product is None:
            raise NotFound("product", product_id)
        self.products[(shop_id, product_id)] = product.model_copy(
            update={"popularity": popularity}
        )

    # -- recommendations -------------------------------------------------------

    async def upsert_recommendation(
        self, key: RecommendationKey, score: float, last_calculated: datetime
    ) -> None:
        self._enter("upsert_recommendation")
        self.recommendations[key] = ProductRecommendation(
            **key.model_dump(), score=score, last_calculated=last_calculated
        )

    async def list_recommendations(
        self,
        shop_id: str,
        source_product_id: str,
        recommendation_type: RecommendationType,
        limit: int | None = None,
    ) -> list[ProductRecommendation]:
        self._enter("list_recommendations")
        rows = sorted(
            (
                row
                for key, row in self.recommendations.items()
                if key.shop_id == shop_id
                and key.source_product_id == source_product_id
                and key.recommendation_type == recommendation_type
            ),
            key=lambda row: row.score,
            reverse=True,
        )
        return rows[:limit] if limit is not None else rows

    async def prune_recommendations(
        self,
        shop_id: str,
        source_product_id: str,
        recommendation_type: RecommendationType,
        keep_ids: list[str],
    ) -> int:
        self._enter("prune_recommendations")
        stale = [
            key
            for key in self.recommendations
            if key.shop_id == shop_id
            and key.source_product_id == source_product_id
            and key.recommendation_type == recommendation_type
            and key.recommended_product_id not in keep_ids
        ]
        for key in stale:
            del self.recommendations[key]
        return len(stale)

    # -- profiles --------------------------------------------------------------

    async def get_user_profile(self, shop_id: str, user_id: str) -> UserProfile | None:
        self._enter("get_user_profile")
        return self.profiles.get((shop_id, user_id))

    async def upsert_user_profile(self, profile: UserProfile) -> None:
        self._enter("upsert_user_profile")
        self.profiles[(profile.shop_id, profile.user_id)] = profile

    async def list_active_users(self, shop_id: str, since: datetime) -> list[str]:
        self._enter("list_active_users")
        users = {
            e.user_id
            for e in self.events
            if e.shop_id == shop_id
            and e.kind == EventKind.VIEW
            and e.user_id
            and e.occurred_at >= since
        }
        users |= {
            o.user_id
            for o in self.orders
            if o.shop_id == shop_id and o.user_id and o.completed_at >= since
        }
        return sorted(users)

    # -- events and orders -----------------------------------------------------

    async def query_events(self, query: EventQuery) -> list[Event]:
        self._enter("query_events")
        matching = [
            (i, e)
            for i, e in enumerate(self.events)
            if e.shop_id == query.shop_id
            and e.kind == query.kind
            and (query.product_id_in is None or e.product_id in query.product_id_in)
            and (query.user_id is None or e.user_id == query.user_id)
            and (query.session_id is None or e.session_id == query.session_id)
            and (query.session_id_in is None or e.session_id in query.session_id_in)
            and (query.since is None or e.occurred_at >= query.since)
            and (query.until is None or e.occurred_at < query.until)
        ]
        matching.sort(key=lambda pair: (pair[1].occurred_at, pair[0]))

        if query.distinct_product:
            latest: dict[str, tuple[int, Event]] = {}
            for pair in matching:
                if pair[1].product_id:
                    latest[pair[1].product_id] = pair
            matching = sorted(latest.values(), key=lambda pair: (pair[1].occurred_at, pair[0]))

        events = [e for _, e in matching]
        if query.newest_first:
            events.reverse()
        return events[: query.limit] if query.limit is not None else events

    async def query_orders(
        self,
        shop_id: str,
        completed_after: datetime | None = None,
        user_id: str | None = None,
    ) -> list[Order]:
        self._enter("query_orders")
        return sorted(
            (
                o
                for o in self.orders
                if o.shop_id == shop_id
                and (completed_after is None or o.completed_at >= completed_after)
                and (user_id is None or o.user_id == user_id)
            ),
            key=lambda o: o.completed_at,
        )

    async def record_event(self, event: Event) -> None:
        self._enter("record_event")
        self.events.append(event)

    async def record_order(self, order: Order) -> bool:
        self._enter("record_order")
        if any(
            o.shop_id == order.shop_id and o.order_id == order.order_id for o in self.orders
        ):
            return False
        self.orders.append(order)
        for item in order.items:
            self.events.append(
                Event(
                    shop_id=order.shop_id,
                    kind=EventKind.ORDER_COMPLETED,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    price=item.price,
                    user_id=order.user_id,
                    occurred_at=order.completed_at,
                )
            )
        return True

    async def list_shops(self) -> list[str]:
        self._enter("list_shops")
        return sorted({shop for shop, _ in self.products})


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
        redis_host="localhost",
        redis_port=6379,
        response_cache_ttl_seconds=0,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory storage collaborator."""
    return InMemoryStore()


@pytest.fixture
def minutes_ago() -> Callable[[int], datetime]:
    """Timestamp factory relative to now."""
    now = datetime.now(timezone.utc)
    return lambda minutes: now - timedelta(minutes=minutes)


@pytest.fixture
def app(test_settings: Settings, store: InMemoryStore) -> Any:
    """Create test application wired to the in-memory store."""

    def get_test_settings() -> Settings:
        return test_settings

    def get_test_store() -> RecommendationStore:
        return store

    def get_test_cache() -> CacheService:
        return CacheService(None)

    def database_ok() -> bool:
        return True

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_store] = get_test_store
    app.dependency_overrides[get_cache] = get_test_cache
    app.dependency_overrides[check_database] = database_ok
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


@pytest.fixture
def sample_user_id() -> str:
    """Sample user ID for tests."""
    return "test-user-123"


@pytest.fixture
def sample_session_id() -> str:
    """Sample storefront session ID for tests."""
    return "test-session-789"


@pytest.fixture
def shop_id() -> str:
    """Shop domain used by the in-memory store helpers."""
    return SHOP
