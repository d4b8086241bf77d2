from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.errors import CustomerNotFound
from app.models.order import Order, OrderItem
from app.schemas.common import pagination_meta
from app.schemas.order import OrderCreateIn, OrderIngestOut, OrderItemOut, OrderListOut, OrderOut
from app.services.customer_service import list_orders as list_order_rows
from app.services.customer_service import order_items_by_order_id
from app.services.ingestion_service import Ingestor, get_ingestor

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_out(order: Order, items: list[OrderItem]) -> OrderOut:
    return OrderOut(
        id=order.id,
        customer_email=order.customer_email,
        amount=float(order.amount),
        date=order.order_date,
        items=[OrderItemOut(sku=item.sku, qty=item.qty) for item in items],
        metadata=order.metadata_json or {},
        created_at=order.created_at,
    )


@router.post(
    "",
    response_model=OrderIngestOut,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest an order",
    description=(
        "Records the order against an existing customer and rolls the amount and order "
        "date up onto that customer. Returns 202 when queued ingestion is enabled."
    ),
    responses=error_responses(400, CustomerNotFound, 422, 500),
)
def create_order(
    payload: OrderCreateIn,
    response: Response,
    db: Session = Depends(get_db),
    ingestor: Ingestor = Depends(get_ingestor),
):
    outcome = ingestor.ingest_order(db, payload)
    if outcome.state == "queued":
        response.status_code = status.HTTP_202_ACCEPTED
        return OrderIngestOut(message="Order queued for ingestion", job_id=outcome.job.id)
    order = outcome.order
    items = order_items_by_order_id(db, [order.id]).get(order.id, [])
    return OrderIngestOut(message="Order recorded", data=_order_out(order, items))


@router.get(
    "",
    response_model=OrderListOut,
    summary="List orders",
    responses=error_responses(422, 500),
)
def list_orders(
    customer_email: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    normalized_email = customer_email.strip().lower() if customer_email and customer_email.strip() else None
    total, orders = list_order_rows(db, customer_email=normalized_email, limit=limit, offset=offset)
    items_map = order_items_by_order_id(db, [order.id for order in orders])
    items = [_order_out(order, items_map.get(order.id, [])) for order in orders]
    return OrderListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
        customer_email=normalized_email,
    )
