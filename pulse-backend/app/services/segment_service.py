from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import SegmentNotFound
from app.core.id_utils import generate_id
from app.models.campaign import Segment
from app.models.customer import Customer
from app.services.persistence import commit_or_raise
from app.services.segment_rules import Condition, conditions_from_json, evaluate


@dataclass(frozen=True)
class AudiencePreview:
    count: int
    sample: list[Customer]


def resolve(customers: Iterable[Any], conditions: Sequence[Condition], logic: str) -> list[Any]:
    """Customers matching the rule set, in the order the store yields them."""
    return [customer for customer in customers if evaluate(customer, conditions, logic)]


def preview_matches(
    customers: Iterable[Any],
    conditions: Sequence[Condition],
    logic: str,
    *,
    sample_size: int,
) -> AudiencePreview:
    count = 0
    sample: list[Any] = []
    for customer in customers:
        if not evaluate(customer, conditions, logic):
            continue
        count += 1
        if len(sample) < sample_size:
            sample.append(customer)
    return AudiencePreview(count=count, sample=sample)


def iter_customers(db: Session) -> Iterable[Customer]:
    return db.execute(select(Customer).order_by(Customer.seq.asc())).scalars()


def segment_conditions(segment: Segment) -> list[Condition]:
    return conditions_from_json(segment.conditions_json)


def get_segment_or_raise(db: Session, segment_id: str) -> Segment:
    segment = db.execute(select(Segment).where(Segment.id == segment_id)).scalar_one_or_none()
    if not segment:
        raise SegmentNotFound()
    return segment


def save_segment(
    db: Session,
    *,
    name: str,
    conditions: Sequence[Condition],
    logic: str,
    created_by: str | None = None,
) -> Segment:
    # Fail fast on an empty or malformed rule set before it is stored.
    evaluate({}, conditions, logic)
    segment = Segment(
        id=generate_id(),
        name=name,
        conditions_json=[condition.to_dict() for condition in conditions],
        logic=logic.upper(),
        created_by=created_by,
    )
    db.add(segment)
    commit_or_raise(db, operation="segment.create")
    db.refresh(segment)
    return segment


def list_segments(db: Session, *, limit: int, offset: int) -> tuple[int, list[Segment]]:
    total = int(db.execute(select(func.count(Segment.id))).scalar_one())
    rows = db.execute(
        select(Segment).order_by(Segment.created_at.desc(), Segment.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return total, list(rows)


def resolve_segment_audience(db: Session, segment: Segment) -> list[Customer]:
    return resolve(iter_customers(db), segment_conditions(segment), segment.logic)


def preview_audience(db: Session, *, conditions: Sequence[Condition], logic: str) -> AudiencePreview:
    return preview_matches(
        iter_customers(db),
        conditions,
        logic,
        sample_size=settings.preview_sample_size,
    )
