"""Storage collaborator contract.

The engine components never talk to a database directly. They receive a
``RecommendationStore`` at construction and go through this narrow async
contract. Implementations must raise ``StorageUnavailable`` for any failed
read or write and provide per-key atomic upserts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from storefront_recommender.domain import (
    Event,
    EventKind,
    Order,
    ProductMetadata,
    ProductRecommendation,
    RecommendationKey,
    RecommendationType,
    UserProfile,
)


@dataclass
class MetadataFilter:
    """Product metadata filter.

    Match criteria (``ids_in``, ``collections_any``, ``tags_any``,
    ``product_type``, ``vendor_in``) are OR'ed together. ``None`` means the
    criterion is absent, an empty list matches nothing. With no criteria at
    all every product in the shop matches. ``exclude_ids`` always applies.
    """

    ids_in: list[str] | None = None
    collections_any: list[str] | None = None
    tags_any: list[str] | None = None
    product_type: str | None = None
    vendor_in: list[str] | None = None
    exclude_ids: list[str] | None = None

    @property
    def has_criteria(self) -> bool:
        return any(
            value is not None
            for value in (
                self.ids_in,
                self.collections_any,
                self.tags_any,
                self.product_type,
                self.vendor_in,
            )
        )


@dataclass
class EventQuery:
    """Event filter. Time bounds are inclusive of ``since``, exclusive of ``until``."""

    shop_id: str
    kind: EventKind
    product_id_in: list[str] | None = None
    user_id: str | None = None
    session_id: str | None = None
    session_id_in: list[str] | None = None
    since: datetime | None = None
    until: datetime | None = None
    newest_first: bool = True
    # Keep only the latest event per product
    distinct_product: bool = False
    limit: int | None = None


class RecommendationStore(ABC):
    """Async read/write contract over events, catalog metadata and derived state."""

    # -- catalog ---------------------------------------------------------------

    @abstractmethod
    async def get_metadata(self, shop_id: str, product_id: str) -> ProductMetadata | None:
        ...

    @abstractmethod
    async def find_metadata(
        self,
        shop_id: str,
        metadata_filter: MetadataFilter,
        limit: int | None = None,
    ) -> list[ProductMetadata]:
        """Matching products ordered by popularity desc, then product ID."""

    @abstractmethod
    async def list_product_ids(self, shop_id: str) -> list[str]:
        ...

    @abstractmethod
    async def update_popularity(
        self, shop_id: str, product_id: str, popularity: float
    ) -> None:
        """Raises ``NotFound`` if the product has no metadata."""

    # -- recommendations -------------------------------------------------------

    @abstractmethod
    async def upsert_recommendation(
        self, key: RecommendationKey, score: float, last_calculated: datetime
    ) -> None:
        ...

    @abstractmethod
    async def list_recommendations(
        self,
        shop_id: str,
        source_product_id: str,
        recommendation_type: RecommendationType,
        limit: int | None = None,
    ) -> list[ProductRecommendation]:
        """Cached rows ordered by score desc."""

    @abstractmethod
    async def prune_recommendations(
        self,
        shop_id: str,
        source_product_id: str,
        recommendation_type: RecommendationType,
        keep_ids: list[str],
    ) -> int:
        """Delete rows of the group not in ``keep_ids``; returns the deleted count."""

    # -- profiles --------------------------------------------------------------

    @abstractmethod
    async def get_user_profile(self, shop_id: str, user_id: str) -> UserProfile | None:
        ...

    @abstractmethod
    async def upsert_user_profile(self, profile: UserProfile) -> None:
        ...

    @abstractmethod
    async def list_active_users(self, shop_id: str, since: datetime) -> list[str]:
        """Users with a view or an order since the given time."""

    # -- events and orders -----------------------------------------------------

    @abstractmethod
    async def query_events(self, query: EventQuery) -> list[Event]:
        ...

    @abstractmethod
    async def query_orders(
        self,
        shop_id: str,
        completed_after: datetime | None = None,
        user_id: str | None = None,
    ) -> list[Order]:
        """Completed orders with items, oldest first. ``None`` reads the full history."""

    @abstractmethod
    async def record_event(self, event: Event) -> None:
        ...

    @abstractmethod
    async def record_order(self, order: Order) -> bool:
        """Persist a completed order, its items and one ORDER_COMPLETED event per item.

        Idempotent per ``(shop_id, order_id)``: an order that was already
        recorded is left untouched and nothing is written. Returns whether
        the order was new.
        """

    @abstractmethod
    async def list_shops(self) -> list[str]:
        ...
