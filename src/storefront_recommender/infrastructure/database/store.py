"""PostgreSQL implementation of the storage collaborator.

Every write commits on its own so a failure only rolls back the unit that
failed; batch jobs rely on this to skip one product/user and keep going.
Upserts use ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent writers on
the same key resolve to last write wins.
"""

import functools
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from sqlalchemy import Select, delete, false, or_, select, union, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from storefront_recommender.domain import (
    Event,
    EventKind,
    Order,
    PriceRange,
    ProductMetadata,
    ProductRecommendation,
    RecommendationKey,
    RecommendationType,
    UserProfile,
)
from storefront_recommender.errors import NotFound, StorageUnavailable
from storefront_recommender.infrastructure.database import models as orm
from storefront_recommender.storage import EventQuery, MetadataFilter, RecommendationStore

logger = structlog.get_logger()

T = TypeVar("T")


def _storage_call(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Translate driver/ORM failures into ``StorageUnavailable``."""

    @functools.wraps(func)
    async def wrapper(self: "SqlRecommendationStore", *args: Any, **kwargs: Any) -> T:
        try:
            return await func(self, *args, **kwargs)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Storage call failed", operation=func.__name__, error=str(e))
            await self._rollback()
            raise StorageUnavailable(func.__name__, str(e)) from e

    return wrapper


def build_metadata_statement(
    shop_id: str, metadata_filter: MetadataFilter, limit: int | None = None
) -> Select:
    """Build the catalog query for a ``MetadataFilter``."""
    product = orm.ProductMetadata
    stmt = select(product).where(product.shop_id == shop_id)

    clauses = []
    if metadata_filter.ids_in is not None:
        clauses.append(
            product.product_id.in_(metadata_filter.ids_in) if metadata_filter.ids_in else false()
        )
    if metadata_filter.collections_any is not None:
        clauses.append(
            product.collections.overlap(metadata_filter.collections_any)
            if metadata_filter.collections_any
            else false()
        )
    if metadata_filter.tags_any is not None:
        clauses.append(
            product.tags.overlap(metadata_filter.tags_any) if metadata_filter.tags_any else false()
        )
    if metadata_filter.product_type is not None:
        clauses.append(product.product_type == metadata_filter.product_type)
    if metadata_filter.vendor_in is not None:
        clauses.append(
            product.vendor.in_(metadata_filter.vendor_in) if metadata_filter.vendor_in else false()
        )
    if clauses:
        stmt = stmt.where(or_(*clauses))

    if metadata_filter.exclude_ids:
        stmt = stmt.where(product.product_id.not_in(metadata_filter.exclude_ids))

    stmt = stmt.order_by(product.popularity.desc(), product.product_id.asc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


def build_events_statement(query: EventQuery) -> Select:
    """Build the event query, optionally keeping only the latest event per product."""
    event = orm.Event
    stmt = select(event).where(event.shop_id == query.shop_id, event.kind == query.kind)

    if query.product_id_in is not None:
        stmt = stmt.where(event.product_id.in_(query.product_id_in))
    if query.user_id is not None:
        stmt = stmt.where(event.user_id == query.user_id)
    if query.session_id is not None:
        stmt = stmt.where(event.session_id == query.session_id)
    if query.session_id_in is not None:
        stmt = stmt.where(event.session_id.in_(query.session_id_in))
    if query.since is not None:
        stmt = stmt.where(event.occurred_at >= query.since)
    if query.until is not None:
        stmt = stmt.where(event.occurred_at < query.until)

    row = event
    if query.distinct_product:
        latest = (
            stmt.where(event.product_id.is_not(None))
            .distinct(event.product_id)
            .order_by(event.product_id, event.occurred_at.desc(), event.id.desc())
            .subquery()
        )
        row = aliased(orm.Event, latest)
        stmt = select(row)

    if query.newest_first:
        stmt = stmt.order_by(row.occurred_at.desc(), row.id.desc())
    else:
        stmt = stmt.order_by(row.occurred_at.asc(), row.id.asc())
    if query.limit is not None:
        stmt = stmt.limit(query.limit)
    return stmt


class SqlRecommendationStore(RecommendationStore):
    """``RecommendationStore`` backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            logger.warning("Rollback after storage failure failed", error=str(e))

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    @_storage_call
    async def get_metadata(self, shop_id: str, product_id: str) -> ProductMetadata | None:
        result = await self.session.execute(
            select(orm.ProductMetadata).where(
                orm.ProductMetadata.shop_id == shop_id,
                orm.ProductMetadata.product_id == product_id,
            )
        )
        row = result.scalar_one_or_none()
        return ProductMetadata.model_validate(row, from_attributes=True) if row else None

    @_storage_call
    async def find_metadata(
        self,
        shop_id: str,
        metadata_filter: MetadataFilter,
        limit: int | None = None,
    ) -> list[ProductMetadata]:
        result = await self.session.execute(
            build_metadata_statement(shop_id, metadata_filter, limit)
        )
        return [
            ProductMetadata.model_validate(row, from_attributes=True)
            for row in result.scalars().all()
        ]

    @_storage_call
    async def list_product_ids(self, shop_id: str) -> list[str]:
        result = await self.session.execute(
            select(orm.ProductMetadata.product_id)
            .where(orm.ProductMetadata.shop_id == shop_id)
            .order_by(orm.ProductMetadata.product_id)
        )
        return list(result.scalars().all())

    @_storage_call
    async def update_popularity(
        self, shop_id: str, product_id: str, popularity: float
    ) -> None:
        result = await self.session.execute(
            update(orm.ProductMetadata)
            .where(
                orm.ProductMetadata.shop_id == shop_id,
                orm.ProductMetadata.product_id == product_id,
            )
            .values(popularity=popularity)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFound("product", product_id)
        await self.session.commit()

    # -------------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------------

    @_storage_call
    async def upsert_recommendation(
        self, key: RecommendationKey, score: float, last_calculated: datetime
    ) -> None:
        stmt = insert(orm.ProductRecommendation).values(
            shop_id=key.shop_id,
            source_product_id=key.source_product_id,
            recommended_product_id=key.recommended_product_id,
            recommendation_type=key.recommendation_type,
            score=score,
            last_calculated=last_calculated,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_product_recommendations_key",
            set_={"score": stmt.excluded.score, "last_calculated": stmt.excluded.last_calculated},
        )
        await self.session.execute(stmt)
        await self.session.commit()

    @_storage_call
    async def list_recommendations(
        self,
        shop_id: str,
        source_product_id: str,
        recommendation_type: RecommendationType,
        limit: int | None = None,
    ) -> list[ProductRecommendation]:
        rec = orm.ProductRecommendation
        stmt = (
            select(rec)
            .where(
                rec.shop_id == shop_id,
                rec.source_product_id == source_product_id,
                rec.recommendation_type == recommendation_type,
            )
            .order_by(rec.score.desc(), rec.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [
            ProductRecommendation.model_validate(row, from_attributes=True)
            for row in result.scalars().all()
        ]

    @_storage_call
    async def prune_recommendations(
        self,
        shop_id: str,
        source_product_id: str,
        recommendation_type: RecommendationType,
        keep_ids: list[str],
    ) -> int:
        rec = orm.ProductRecommendation
        stmt = delete(rec).where(
            rec.shop_id == shop_id,
            rec.source_product_id == source_product_id,
            rec.recommendation_type == recommendation_type,
        )
        if keep_ids:
            stmt = stmt.where(rec.recommended_product_id.not_in(keep_ids))
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount or 0

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    @_storage_call
    async def get_user_profile(self, shop_id: str, user_id: str) -> UserProfile | None:
        result = await self.session.execute(
            select(orm.UserProfile).where(
                orm.UserProfile.shop_id == shop_id,
                orm.UserProfile.user_id == user_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None

        price_range = None
        if row.price_min is not None and row.price_max is not None:
            price_range = PriceRange(min=row.price_min, max=row.price_max)

        return UserProfile(
            shop_id=row.shop_id,
            user_id=row.user_id,
            preferred_categories=list(row.preferred_categories or []),
            preferred_brands=list(row.preferred_brands or []),
            preferred_price_range=price_range,
            viewed_products=list(row.viewed_products or []),
            purchased_products=list(row.purchased_products or []),
            last_active=row.last_active,
        )

    @_storage_call
    async def upsert_user_profile(self, profile: UserProfile) -> None:
        price_range = profile.preferred_price_range
        values = {
            "preferred_categories": profile.preferred_categories,
            "preferred_brands": profile.preferred_brands,
            "price_min": price_range.min if price_range else None,
            "price_max": price_range.max if price_range else None,
            "viewed_products": profile.viewed_products,
            "purchased_products": profile.purchased_products,
            "last_active": profile.last_active,
            "updated_at": datetime.now(timezone.utc),
        }
        stmt = insert(orm.UserProfile).values(
            shop_id=profile.shop_id, user_id=profile.user_id, **values
        )
        stmt = stmt.on_conflict_do_update(constraint="uq_user_profiles_shop_user", set_=values)
        await self.session.execute(stmt)
        await self.session.commit()

    @_storage_call
    async def list_active_users(self, shop_id: str, since: datetime) -> list[str]:
        viewers = select(orm.Event.user_id.label("user_id")).where(
            orm.Event.shop_id == shop_id,
            orm.Event.kind == EventKind.VIEW,
            orm.Event.occurred_at >= since,
            orm.Event.user_id.is_not(None),
        )
        buyers = select(orm.Order.user_id.label("user_id")).where(
            orm.Order.shop_id == shop_id,
            orm.Order.completed_at >= since,
            orm.Order.user_id.is_not(None),
        )
        active = union(viewers, buyers).subquery()
        result = await self.session.execute(
            select(active.c.user_id).order_by(active.c.user_id)
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Events and orders
    # -------------------------------------------------------------------------

    @_storage_call
    async def query_events(self, query: EventQuery) -> list[Event]:
        result = await self.session.execute(build_events_statement(query))
        return [Event.model_validate(row, from_attributes=True) for row in result.scalars().all()]

    @_storage_call
    async def query_orders(
        self,
        shop_id: str,
        completed_after: datetime | None = None,
        user_id: str | None = None,
    ) -> list[Order]:
        stmt = (
            select(orm.Order)
            .options(selectinload(orm.Order.items))
            .where(orm.Order.shop_id == shop_id)
            .order_by(orm.Order.completed_at.asc(), orm.Order.id.asc())
        )
        if completed_after is not None:
            stmt = stmt.where(orm.Order.completed_at >= completed_after)
        if user_id is not None:
            stmt = stmt.where(orm.Order.user_id == user_id)
        result = await self.session.execute(stmt)
        return [Order.model_validate(row, from_attributes=True) for row in result.scalars().all()]

    @_storage_call
    async def record_event(self, event: Event) -> None:
        self.session.add(orm.Event(**event.model_dump()))
        await self.session.commit()

    @_storage_call
    async def record_order(self, order: Order) -> bool:
        inserted = await self.session.execute(
            insert(orm.Order)
            .values(
                shop_id=order.shop_id,
                order_id=order.order_id,
                user_id=order.user_id,
                completed_at=order.completed_at,
            )
            .on_conflict_do_nothing(constraint="uq_orders_shop_order")
            .returning(orm.Order.id)
        )
        order_pk = inserted.scalar_one_or_none()
        if order_pk is None:
            # Order already recorded
            await self.session.rollback()
            return False

        self.session.add_all(
            orm.OrderLineItem(order_pk=order_pk, **item.model_dump()) for item in order.items
        )
        self.session.add_all(
            orm.Event(
                shop_id=order.shop_id,
                kind=EventKind.ORDER_COMPLETED,
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                price=item.price,
                user_id=order.user_id,
                occurred_at=order.completed_at,
            )
            for item in order.items
        )
        await self.session.commit()
        return True

    @_storage_call
    async def list_shops(self) -> list[str]:
        result = await self.session.execute(
            select(orm.ProductMetadata.shop_id).distinct().order_by(orm.ProductMetadata.shop_id)
        )
        return list(result.scalars().all())
