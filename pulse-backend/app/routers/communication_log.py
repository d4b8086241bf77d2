from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.routers.campaigns import log_record_out
from app.schemas.campaign import CommunicationLogListOut
from app.schemas.common import pagination_meta
from app.services.campaign_service import list_communication_log as list_log_records

router = APIRouter(prefix="/communication-log", tags=["communication-log"])


@router.get(
    "",
    response_model=CommunicationLogListOut,
    summary="List communication log records in send order",
    responses=error_responses(422, 500),
)
def list_communication_log(
    campaign_id: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    normalized_campaign_id = campaign_id.strip() if campaign_id and campaign_id.strip() else None
    total, records = list_log_records(db, campaign_id=normalized_campaign_id, limit=limit, offset=offset)
    items = [log_record_out(record) for record in records]
    return CommunicationLogListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
        campaign_id=normalized_campaign_id,
    )
