from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.errors import CampaignAlreadyDispatched, CampaignNotFound, SegmentNotFound
from app.core.identity import Identity, require_identity
from app.models.campaign import Campaign, CommunicationLog
from app.schemas.campaign import (
    CampaignCreateIn,
    CampaignListOut,
    CampaignOut,
    CampaignSendOut,
    CampaignStatus,
    CommunicationLogOut,
)
from app.schemas.common import pagination_meta
from app.services.campaign_service import create_campaign as create_campaign_row
from app.services.campaign_service import list_campaigns as list_campaign_rows
from app.services.dispatch_service import send_campaign as dispatch_campaign
from app.services.messaging_provider import MessagingProvider, get_messaging_provider

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


def campaign_out(campaign: Campaign) -> CampaignOut:
    return CampaignOut(
        id=campaign.id,
        name=campaign.name,
        segment_id=campaign.segment_id,
        message=campaign.message,
        status=campaign.status,
        audience_count=campaign.audience_count,
        sent_count=campaign.sent_count,
        failed_count=campaign.failed_count,
        created_by=campaign.created_by,
        dispatched_at=campaign.dispatched_at,
        created_at=campaign.created_at,
    )


def log_record_out(record: CommunicationLog) -> CommunicationLogOut:
    return CommunicationLogOut(
        id=record.id,
        campaign_id=record.campaign_id,
        customer_email=record.customer_email,
        status=record.status,
        message=record.message,
        timestamp=record.timestamp,
        delivered_at=record.delivered_at,
    )


@router.post(
    "",
    response_model=CampaignOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a campaign for a saved segment",
    responses=error_responses(401, SegmentNotFound, 422, 500),
)
def create_campaign(
    payload: CampaignCreateIn,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_identity),
):
    campaign = create_campaign_row(
        db,
        name=payload.name,
        segment_id=payload.segment_id,
        message=payload.message,
        created_by=identity.primary_email or identity.id,
    )
    return campaign_out(campaign)


@router.get(
    "",
    response_model=CampaignListOut,
    summary="List campaigns",
    responses=error_responses(401, 422, 500),
)
def list_campaigns(
    status_filter: CampaignStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_identity),
):
    total, campaigns = list_campaign_rows(db, status=status_filter, limit=limit, offset=offset)
    items = [campaign_out(campaign) for campaign in campaigns]
    return CampaignListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
        status=status_filter,
    )


@router.post(
    "/{campaign_id}/send",
    response_model=CampaignSendOut,
    summary="Dispatch a campaign to its segment audience",
    description=(
        "Attempts one simulated send per matching customer and appends one communication "
        "log record per attempt. A campaign can be dispatched once; later calls return 409."
    ),
    responses=error_responses(401, CampaignNotFound, SegmentNotFound, CampaignAlreadyDispatched, 500),
)
def send_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_identity),
    provider: MessagingProvider = Depends(get_messaging_provider),
):
    result = dispatch_campaign(db, campaign_id, provider=provider)
    return CampaignSendOut(
        campaign_id=result.campaign.id,
        campaign_status=result.campaign.status,
        audience_count=result.audience_count,
        sent=result.sent,
        failed=result.failed,
        sample=[log_record_out(record) for record in result.sample],
    )
