"""SQLAlchemy models for the recommendation system.

These models are stored in the 'recommender' schema. Product metadata rows
are written by the catalog sync process; the engine only updates their
popularity.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from storefront_recommender.domain import EventKind, RecommendationType

# Schema for all recommendation tables
SCHEMA = "recommender"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


# =============================================================================
# Product Metadata
# =============================================================================


class ProductMetadata(Base):
    """Catalog attributes mirrored from the storefront, one row per shop product."""

    __tablename__ = "product_metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    tags: Mapped[list[str]] = mapped_column(ARRAY(String(255)), default=list, nullable=False)
    product_type: Mapped[Optional[str]] = mapped_column(String(255))
    vendor: Mapped[Optional[str]] = mapped_column(String(255))
    collections: Mapped[list[str]] = mapped_column(
        ARRAY(String(255)), default=list, nullable=False
    )
    price: Mapped[Optional[float]] = mapped_column(Float)

    # Recency-windowed view/purchase score, written by the popularity job
    popularity: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("shop_id", "product_id", name="uq_product_metadata_shop_product"),
        Index("ix_product_metadata_shop_popularity", "shop_id", "popularity"),
        Index("ix_product_metadata_collections", "collections", postgresql_using="gin"),
        Index("ix_product_metadata_tags", "tags", postgresql_using="gin"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Events
# =============================================================================


class Event(Base):
    """Append-only storefront events (views, cart activity, completed orders)."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[EventKind] = mapped_column(Enum(EventKind), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(255))
    variant_id: Mapped[Optional[str]] = mapped_column(String(255))
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    price: Mapped[Optional[float]] = mapped_column(Float)
    user_id: Mapped[Optional[str]] = mapped_column(String(255))
    session_id: Mapped[Optional[str]] = mapped_column(String(255))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_events_shop_kind_occurred", "shop_id", "kind", "occurred_at"),
        Index("ix_events_shop_product", "shop_id", "product_id"),
        Index("ix_events_shop_user_kind", "shop_id", "user_id", "kind", "occurred_at"),
        Index("ix_events_shop_session", "shop_id", "session_id", "occurred_at"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Orders
# =============================================================================


class Order(Base):
    """Completed orders; their line items are the purchase signal."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(255))
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    items: Mapped[list["OrderLineItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderLineItem.id"
    )

    __table_args__ = (
        UniqueConstraint("shop_id", "order_id", name="uq_orders_shop_order"),
        Index("ix_orders_shop_completed", "shop_id", "completed_at"),
        Index("ix_orders_shop_user", "shop_id", "user_id"),
        {"schema": SCHEMA},
    )


class OrderLineItem(Base):
    """A product line within a completed order."""

    __tablename__ = "order_line_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_pk: Mapped[int] = mapped_column(
        ForeignKey(f"{SCHEMA}.orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(255))
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Float)

    order: Mapped[Order] = relationship(back_populates="items")

    __table_args__ = ({"schema": SCHEMA},)


# =============================================================================
# Product Recommendations
# =============================================================================


class ProductRecommendation(Base):
    """Cached recommendation edges, refreshed by upsert."""

    __tablename__ = "product_recommendations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[str] = mapped_column(String(255), nullable=False)
    source_product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    recommended_product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    recommendation_type: Mapped[RecommendationType] = mapped_column(
        Enum(RecommendationType), nullable=False
    )
    score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    last_calculated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "shop_id",
            "source_product_id",
            "recommended_product_id",
            "recommendation_type",
            name="uq_product_recommendations_key",
        ),
        Index(
            "ix_product_recommendations_lookup",
            "shop_id",
            "source_product_id",
            "recommendation_type",
            "score",
        ),
        {"schema": SCHEMA},
    )


# =============================================================================
# User Profiles
# =============================================================================


class UserProfile(Base):
    """Preference summary per shop user, rebuilt wholesale."""

    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    preferred_categories: Mapped[list[str]] = mapped_column(
        ARRAY(String(255)), default=list, nullable=False
    )
    preferred_brands: Mapped[list[str]] = mapped_column(
        ARRAY(String(255)), default=list, nullable=False
    )
    price_min: Mapped[Optional[float]] = mapped_column(Float)
    price_max: Mapped[Optional[float]] = mapped_column(Float)
    viewed_products: Mapped[list[str]] = mapped_column(
        ARRAY(String(255)), default=list, nullable=False
    )
    purchased_products: Mapped[list[str]] = mapped_column(
        ARRAY(String(255)), default=list, nullable=False
    )
    last_active: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("shop_id", "user_id", name="uq_user_profiles_shop_user"),
        {"schema": SCHEMA},
    )
