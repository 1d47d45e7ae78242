"""Domain records shared by the engine, the storage layer and the API.

Every record is scoped by ``shop_id``, which is the shop domain.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Behavioral signal kinds emitted by the storefront."""

    VIEW = "VIEW"
    CART_ADD = "CART_ADD"
    CART_REMOVE = "CART_REMOVE"
    CART_UPDATE = "CART_UPDATE"
    ORDER_COMPLETED = "ORDER_COMPLETED"


class RecommendationType(str, Enum):
    """Recommendation sets the engine computes and caches."""

    SIMILAR_PRODUCTS = "SIMILAR_PRODUCTS"
    PERSONALIZED = "PERSONALIZED"
    FREQUENTLY_BOUGHT_TOGETHER = "FREQUENTLY_BOUGHT_TOGETHER"


class Event(BaseModel):
    """A normalized, append-only storefront event."""

    shop_id: str
    kind: EventKind
    product_id: str | None = None
    variant_id: str | None = None
    quantity: int | None = None
    price: float | None = None
    user_id: str | None = None
    session_id: str | None = None
    occurred_at: datetime


class OrderItem(BaseModel):
    """A line item of a completed order."""

    product_id: str
    variant_id: str | None = None
    quantity: int = 1
    price: float | None = None


class Order(BaseModel):
    """A completed order with its line items."""

    order_id: str
    shop_id: str
    user_id: str | None = None
    completed_at: datetime
    items: list[OrderItem] = Field(default_factory=list)

    def distinct_product_ids(self) -> list[str]:
        """Product IDs of the line items, first occurrence wins."""
        seen: dict[str, None] = {}
        for item in self.items:
            if item.product_id:
                seen.setdefault(item.product_id, None)
        return list(seen)


class ProductMetadata(BaseModel):
    """Catalog attributes of a product, plus its derived popularity."""

    shop_id: str
    product_id: str
    title: str
    tags: list[str] = Field(default_factory=list)
    product_type: str | None = None
    vendor: str | None = None
    collections: list[str] = Field(default_factory=list)
    price: float | None = None
    popularity: float = 0.0
    updated_at: datetime | None = None


class RecommendationKey(BaseModel):
    """Unique key of a cached recommendation row."""

    model_config = ConfigDict(frozen=True)

    shop_id: str
    source_product_id: str
    recommended_product_id: str
    recommendation_type: RecommendationType


class ProductRecommendation(BaseModel):
    """A cached, scored recommendation edge."""

    shop_id: str
    source_product_id: str
    recommended_product_id: str
    recommendation_type: RecommendationType
    score: float = Field(ge=0)
    last_calculated: datetime

    @property
    def key(self) -> RecommendationKey:
        return RecommendationKey(
            shop_id=self.shop_id,
            source_product_id=self.source_product_id,
            recommended_product_id=self.recommended_product_id,
            recommendation_type=self.recommendation_type,
        )


class PriceRange(BaseModel):
    """Preferred price band derived from a user's products."""

    min: float
    max: float


class UserProfile(BaseModel):
    """Preference summary rebuilt from a user's views and orders."""

    shop_id: str
    user_id: str
    preferred_categories: list[str] = Field(default_factory=list)
    preferred_brands: list[str] = Field(default_factory=list)
    preferred_price_range: PriceRange | None = None
    viewed_products: list[str] = Field(default_factory=list)
    purchased_products: list[str] = Field(default_factory=list)
    last_active: datetime | None = None
