from fastapi import APIRouter, Depends, Query, status
from pydantic import ValidationError as PayloadValidationError
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.errors import ValidationError
from app.core.identity import Identity, require_identity
from app.models.campaign import Segment
from app.routers.customers import customer_out
from app.schemas.campaign import (
    ConditionIn,
    ConditionOut,
    RuleSetIn,
    SegmentCreateIn,
    SegmentListOut,
    SegmentOut,
    SegmentPreviewOut,
)
from app.schemas.common import pagination_meta
from app.services.segment_rules import Condition
from app.services.segment_service import list_segments as list_segment_rows
from app.services.segment_service import preview_audience, save_segment, segment_conditions

router = APIRouter(prefix="/segments", tags=["segments"])


def _conditions(items: list[ConditionIn]) -> list[Condition]:
    return [Condition(field=item.field, op=item.op, value=item.value) for item in items]


def _segment_out(segment: Segment) -> SegmentOut:
    return SegmentOut(
        id=segment.id,
        name=segment.name,
        conditions=[
            ConditionOut(field=condition.field, op=condition.op, value=condition.value)
            for condition in segment_conditions(segment)
        ],
        logic=segment.logic,
        created_by=segment.created_by,
        created_at=segment.created_at,
    )


def _preview(db: Session, rule_set: RuleSetIn) -> SegmentPreviewOut:
    preview = preview_audience(db, conditions=_conditions(rule_set.conditions), logic=rule_set.logic)
    return SegmentPreviewOut(
        audience_count=preview.count,
        sample=[customer_out(customer) for customer in preview.sample],
    )


@router.post(
    "/preview",
    response_model=SegmentPreviewOut,
    summary="Preview the audience of a rule set",
    responses=error_responses(400, 422, 500),
)
def preview_segment(payload: RuleSetIn, db: Session = Depends(get_db)):
    return _preview(db, payload)


@router.get(
    "/preview",
    response_model=SegmentPreviewOut,
    summary="Preview the audience of a JSON-encoded rule set",
    responses=error_responses(400, 422, 500),
)
def preview_segment_query(
    rule: str = Query(description='JSON rule set, e.g. {"conditions": [...], "logic": "AND"}'),
    db: Session = Depends(get_db),
):
    try:
        rule_set = RuleSetIn.model_validate_json(rule)
    except PayloadValidationError as exc:
        raise ValidationError("rule must be a JSON rule set with at least one condition") from exc
    return _preview(db, rule_set)


@router.post(
    "",
    response_model=SegmentOut,
    status_code=status.HTTP_201_CREATED,
    summary="Save a segment",
    responses=error_responses(400, 401, 422, 500),
)
def create_segment(
    payload: SegmentCreateIn,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_identity),
):
    segment = save_segment(
        db,
        name=payload.name,
        conditions=_conditions(payload.conditions),
        logic=payload.logic,
        created_by=identity.primary_email or identity.id,
    )
    return _segment_out(segment)


@router.get(
    "",
    response_model=SegmentListOut,
    summary="List segments",
    responses=error_responses(401, 422, 500),
)
def list_segments(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_identity),
):
    total, segments = list_segment_rows(db, limit=limit, offset=offset)
    items = [_segment_out(segment) for segment in segments]
    return SegmentListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )
