import uuid
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import CustomerNotFound
from app.core.id_utils import generate_id
from app.core.money import ZERO_MONEY, to_money
from app.core.time_utils import utc_now
from app.models.customer import Customer
from app.models.order import Order, OrderItem
from app.schemas.customer import CustomerCreateIn
from app.schemas.order import OrderCreateIn
from app.services.persistence import commit_or_raise


@dataclass(frozen=True)
class CustomerWriteResult:
    customer: Customer
    created: bool


def find_customer_by_email(db: Session, email: str, *, for_update: bool = False) -> Customer | None:
    stmt = select(Customer).where(Customer.email == email.strip().lower())
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def create_customer(db: Session, payload: CustomerCreateIn) -> CustomerWriteResult:
    """Insert a customer keyed by lowercased email; an existing email returns the stored row."""
    email = str(payload.email).lower()
    existing = find_customer_by_email(db, email)
    if existing:
        return CustomerWriteResult(customer=existing, created=False)

    customer = Customer(
        id=generate_id(),
        name=payload.name,
        email=email,
        phone=payload.phone,
        total_spent=to_money(payload.total_spent or ZERO_MONEY),
        last_order_date=payload.last_order_date,
        metadata_json=payload.metadata or {},
        created_at=utc_now(),
    )
    db.add(customer)
    try:
        db.flush()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same email.
        db.rollback()
        existing = find_customer_by_email(db, email)
        if existing:
            return CustomerWriteResult(customer=existing, created=False)
        raise
    commit_or_raise(db, operation="customer.create")
    db.refresh(customer)
    return CustomerWriteResult(customer=customer, created=True)


def create_order(db: Session, payload: OrderCreateIn) -> Order:
    """Record an order and roll its amount and date up onto the customer."""
    email = str(payload.customer_email).lower()
    customer = find_customer_by_email(db, email, for_update=True)
    if not customer:
        raise CustomerNotFound()

    order_date = payload.date or utc_now()
    order = Order(
        id=generate_id(),
        customer_id=customer.id,
        customer_email=email,
        amount=payload.amount,
        order_date=order_date,
        metadata_json=payload.metadata or {},
        created_at=utc_now(),
    )
    db.add(order)
    for item in payload.items:
        db.add(OrderItem(id=str(uuid.uuid4()), order_id=order.id, sku=item.sku, qty=item.qty))

    customer.total_spent = to_money((customer.total_spent or ZERO_MONEY) + payload.amount)
    customer.last_order_date = order_date
    commit_or_raise(db, operation="order.create")
    db.refresh(order)
    return order


def list_customers(db: Session, *, limit: int, offset: int) -> tuple[int, list[Customer]]:
    total = int(db.execute(select(func.count(Customer.seq))).scalar_one())
    rows = db.execute(
        select(Customer).order_by(Customer.seq.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return total, list(rows)


def list_orders(
    db: Session,
    *,
    customer_email: str | None,
    limit: int,
    offset: int,
) -> tuple[int, list[Order]]:
    count_stmt = select(func.count(Order.id))
    stmt = select(Order)
    if customer_email:
        normalized = customer_email.strip().lower()
        count_stmt = count_stmt.where(Order.customer_email == normalized)
        stmt = stmt.where(Order.customer_email == normalized)
    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(Order.created_at.asc(), Order.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return total, list(rows)


def order_items_by_order_id(db: Session, order_ids: list[str]) -> dict[str, list[OrderItem]]:
    if not order_ids:
        return {}
    rows = db.execute(
        select(OrderItem).where(OrderItem.order_id.in_(order_ids)).order_by(OrderItem.sku.asc())
    ).scalars().all()
    out: dict[str, list[OrderItem]] = {order_id: [] for order_id in order_ids}
    for row in rows:
        out.setdefault(row.order_id, []).append(row)
    return out
