from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import CampaignNotFound
from app.core.id_utils import generate_id
from app.models.campaign import Campaign, CommunicationLog
from app.services.persistence import commit_or_raise
from app.services.segment_service import get_segment_or_raise

CAMPAIGN_STATUS_CREATED = "CREATED"
CAMPAIGN_STATUS_SENDING = "SENDING"
CAMPAIGN_STATUS_NO_AUDIENCE = "NO_AUDIENCE"
CAMPAIGN_STATUS_SENT = "SENT"
CAMPAIGN_STATUS_PARTIAL_FAILED = "PARTIAL_FAILED"

TERMINAL_CAMPAIGN_STATUSES = frozenset(
    {CAMPAIGN_STATUS_NO_AUDIENCE, CAMPAIGN_STATUS_SENT, CAMPAIGN_STATUS_PARTIAL_FAILED}
)


def get_campaign_or_raise(db: Session, campaign_id: str) -> Campaign:
    campaign = db.execute(select(Campaign).where(Campaign.id == campaign_id)).scalar_one_or_none()
    if not campaign:
        raise CampaignNotFound()
    return campaign


def create_campaign(
    db: Session,
    *,
    name: str,
    segment_id: str,
    message: str,
    created_by: str | None = None,
) -> Campaign:
    get_segment_or_raise(db, segment_id)
    campaign = Campaign(
        id=generate_id(),
        segment_id=segment_id,
        name=name,
        message=message,
        status=CAMPAIGN_STATUS_CREATED,
        audience_count=0,
        sent_count=0,
        failed_count=0,
        created_by=created_by,
    )
    db.add(campaign)
    commit_or_raise(db, operation="campaign.create")
    db.refresh(campaign)
    return campaign


def list_campaigns(
    db: Session,
    *,
    status: str | None,
    limit: int,
    offset: int,
) -> tuple[int, list[Campaign]]:
    count_stmt = select(func.count(Campaign.id))
    stmt = select(Campaign)
    if status:
        normalized = status.strip().upper()
        count_stmt = count_stmt.where(Campaign.status == normalized)
        stmt = stmt.where(Campaign.status == normalized)
    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(Campaign.created_at.desc(), Campaign.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return total, list(rows)


def list_communication_log(
    db: Session,
    *,
    campaign_id: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[int, list[CommunicationLog]]:
    count_stmt = select(func.count(CommunicationLog.seq))
    stmt = select(CommunicationLog)
    if campaign_id:
        count_stmt = count_stmt.where(CommunicationLog.campaign_id == campaign_id)
        stmt = stmt.where(CommunicationLog.campaign_id == campaign_id)
    total = int(db.execute(count_stmt).scalar_one())
    stmt = stmt.order_by(CommunicationLog.seq.asc()).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return total, list(db.execute(stmt).scalars().all())
