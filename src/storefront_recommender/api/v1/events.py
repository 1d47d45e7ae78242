"""Normalized storefront event recording endpoints."""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from storefront_recommender.api.dependencies import get_store
from storefront_recommender.domain import Event, EventKind, Order, OrderItem
from storefront_recommender.storage import RecommendationStore

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class OrderItemRequest(BaseModel):
    """A line item of a completed order."""

    product_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    quantity: int = Field(1, ge=1)
    price: float | None = Field(None, ge=0)


class EventRequest(BaseModel):
    """A storefront event already normalized by the ingestion layer."""

    event_name: EventKind = Field(..., description="Event kind")
    shop_domain: str = Field(..., min_length=1, description="Shop domain")
    occurred_at: datetime | None = Field(None, description="Defaults to the time of receipt")
    product_id: str | None = Field(None, description="Required for view and cart events")
    variant_id: str | None = None
    quantity: int | None = Field(None, ge=0)
    price: float | None = Field(None, ge=0)
    user_id: str | None = None
    session_id: str | None = None
    order_id: str | None = Field(None, description="Required for ORDER_COMPLETED")
    items: list[OrderItemRequest] = Field(default_factory=list, max_length=250)


class EventResponse(BaseModel):
    """Response after recording an event."""

    success: bool
    recorded_at: str


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=EventResponse)
async def record_event(
    request: EventRequest,
    store: RecommendationStore = Depends(get_store),
) -> EventResponse:
    """
    Record a normalized storefront event.

    **Event kinds:**
    - `VIEW`: product page view (requires `product_id`)
    - `CART_ADD`, `CART_REMOVE`, `CART_UPDATE`: cart activity (requires `product_id`)
    - `ORDER_COMPLETED`: completed checkout (requires `order_id` and `items`)
    """
    occurred_at = request.occurred_at or datetime.now(timezone.utc)
    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)

    if request.event_name == EventKind.ORDER_COMPLETED:
        if not request.order_id or not request.items:
            raise HTTPException(
                status_code=400,
                detail="order_id and items are required for ORDER_COMPLETED events",
            )
        recorded = await store.record_order(
            Order(
                order_id=request.order_id,
                shop_id=request.shop_domain,
                user_id=request.user_id,
                completed_at=occurred_at,
                items=[OrderItem(**item.model_dump()) for item in request.items],
            )
        )
        if not recorded:
            logger.info(
                "Ignored already recorded order",
                shop_domain=request.shop_domain,
                order_id=request.order_id,
            )
    else:
        if not request.product_id:
            raise HTTPException(
                status_code=400,
                detail=f"product_id is required for {request.event_name.value} events",
            )
        await store.record_event(
            Event(
                shop_id=request.shop_domain,
                kind=request.event_name,
                product_id=request.product_id,
                variant_id=request.variant_id,
                quantity=request.quantity,
                price=request.price,
                user_id=request.user_id,
                session_id=request.session_id,
                occurred_at=occurred_at,
            )
        )

    logger.debug(
        "Recorded event",
        shop_domain=request.shop_domain,
        event_name=request.event_name.value,
        product_id=request.product_id,
    )
    return EventResponse(success=True, recorded_at=datetime.now(timezone.utc).isoformat())
