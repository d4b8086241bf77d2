"""Campaign dispatch: resolve the audience, attempt one send per customer, record each attempt."""

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import CampaignAlreadyDispatched, StorageError
from app.core.id_utils import generate_id
from app.core.observability import log_event
from app.core.time_utils import utc_now
from app.models.campaign import Campaign, CommunicationLog
from app.services.campaign_service import (
    CAMPAIGN_STATUS_CREATED,
    CAMPAIGN_STATUS_NO_AUDIENCE,
    CAMPAIGN_STATUS_PARTIAL_FAILED,
    CAMPAIGN_STATUS_SENDING,
    CAMPAIGN_STATUS_SENT,
    get_campaign_or_raise,
)
from app.services.messaging_provider import (
    SEND_STATUS_FAILED,
    SEND_STATUS_SENT,
    MessageSendRequest,
    MessagingProvider,
    get_messaging_provider,
)
from app.services.persistence import commit_or_raise
from app.services.segment_service import get_segment_or_raise, resolve_segment_audience

logger = logging.getLogger("pulse.dispatch")


@dataclass(frozen=True)
class DispatchResult:
    campaign: Campaign
    audience_count: int
    sent: int
    failed: int
    sample: list[CommunicationLog]


def _claim_campaign(db: Session, campaign_id: str, next_status: str) -> None:
    # Conditional update so two concurrent sends cannot both leave CREATED.
    result = db.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id, Campaign.status == CAMPAIGN_STATUS_CREATED)
        .values(status=next_status, updated_at=utc_now())
    )
    if result.rowcount != 1:
        db.rollback()
        raise CampaignAlreadyDispatched()
    commit_or_raise(db, operation="campaign.claim")


def _record_attempt(
    db: Session,
    *,
    provider: MessagingProvider,
    campaign_id: str,
    message: str,
    customer_email: str,
) -> tuple[CommunicationLog, str]:
    request = MessageSendRequest(campaign_id=campaign_id, recipient=customer_email, content=message)
    try:
        outcome = provider.send_message(request)
        status = SEND_STATUS_SENT if outcome.status == SEND_STATUS_SENT else SEND_STATUS_FAILED
        provider_message_id = outcome.message_id
        error_message = outcome.error
    except Exception as exc:
        status = SEND_STATUS_FAILED
        provider_message_id = None
        error_message = str(exc)[:255] or exc.__class__.__name__
        log_event(
            logger,
            logging.WARNING,
            "dispatch_attempt_error",
            campaign_id=campaign_id,
            customer_email=customer_email,
            error=error_message,
        )

    record = CommunicationLog(
        id=generate_id("log"),
        campaign_id=campaign_id,
        customer_email=customer_email,
        status=status,
        message=message,
        provider_message_id=provider_message_id,
        error_message=error_message,
        timestamp=utc_now(),
    )
    db.add(record)
    # Each attempt is visible in the log before the next one starts.
    commit_or_raise(db, operation="communication_log.append")
    return record, status


def _finalize_interrupted(db: Session, campaign_id: str, *, audience_count: int, sent: int, failed: int) -> None:
    """Move a campaign out of SENDING after a storage failure stopped the attempt loop.

    With no committed record the campaign goes back to CREATED and can be sent
    again. Otherwise it ends PARTIAL_FAILED with the counts of the records
    that were written, so no recipient is ever logged twice.
    """
    if sent + failed == 0:
        values = {"status": CAMPAIGN_STATUS_CREATED}
    else:
        values = {
            "status": CAMPAIGN_STATUS_PARTIAL_FAILED,
            "audience_count": audience_count,
            "sent_count": sent,
            "failed_count": failed,
            "dispatched_at": utc_now(),
        }
    db.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id, Campaign.status == CAMPAIGN_STATUS_SENDING)
        .values(updated_at=utc_now(), **values)
    )
    try:
        commit_or_raise(db, operation="campaign.finalize_interrupted")
    except StorageError:
        log_event(logger, logging.ERROR, "campaign_stuck_sending", campaign_id=campaign_id)
        return
    log_event(
        logger,
        logging.WARNING,
        "campaign_dispatch_interrupted",
        campaign_id=campaign_id,
        status=values["status"],
        sent=sent,
        failed=failed,
        not_attempted=audience_count - sent - failed,
    )


def send_campaign(
    db: Session,
    campaign_id: str,
    *,
    provider: MessagingProvider | None = None,
) -> DispatchResult:
    """Dispatch a CREATED campaign once.

    Raises ``CampaignNotFound`` or ``SegmentNotFound`` without touching the
    store, and ``CampaignAlreadyDispatched`` for any campaign that has left
    CREATED. A ``StorageError`` while logging an attempt stops the run; the
    campaign is finalized from the records already written before the error
    propagates.
    """
    campaign = get_campaign_or_raise(db, campaign_id)
    if campaign.status != CAMPAIGN_STATUS_CREATED:
        raise CampaignAlreadyDispatched()
    segment = get_segment_or_raise(db, campaign.segment_id)
    audience_emails = [customer.email for customer in resolve_segment_audience(db, segment)]

    if not audience_emails:
        _claim_campaign(db, campaign_id, CAMPAIGN_STATUS_NO_AUDIENCE)
        campaign = get_campaign_or_raise(db, campaign_id)
        campaign.audience_count = 0
        campaign.dispatched_at = utc_now()
        commit_or_raise(db, operation="campaign.finalize")
        log_event(
            logger,
            logging.INFO,
            "campaign_dispatched",
            campaign_id=campaign_id,
            status=CAMPAIGN_STATUS_NO_AUDIENCE,
            audience_count=0,
        )
        return DispatchResult(campaign=campaign, audience_count=0, sent=0, failed=0, sample=[])

    message = campaign.message
    _claim_campaign(db, campaign_id, CAMPAIGN_STATUS_SENDING)
    provider = provider or get_messaging_provider()

    sent = 0
    failed = 0
    sample: list[CommunicationLog] = []
    try:
        for email in audience_emails:
            record, status = _record_attempt(
                db,
                provider=provider,
                campaign_id=campaign_id,
                message=message,
                customer_email=email,
            )
            if status == SEND_STATUS_SENT:
                sent += 1
            else:
                failed += 1
            if len(sample) < settings.dispatch_sample_size:
                sample.append(record)
    except StorageError:
        _finalize_interrupted(db, campaign_id, audience_count=len(audience_emails), sent=sent, failed=failed)
        raise

    campaign = get_campaign_or_raise(db, campaign_id)
    campaign.status = CAMPAIGN_STATUS_SENT if failed == 0 else CAMPAIGN_STATUS_PARTIAL_FAILED
    campaign.audience_count = len(audience_emails)
    campaign.sent_count = sent
    campaign.failed_count = failed
    campaign.dispatched_at = utc_now()
    commit_or_raise(db, operation="campaign.finalize")

    log_event(
        logger,
        logging.INFO,
        "campaign_dispatched",
        campaign_id=campaign_id,
        status=campaign.status,
        audience_count=len(audience_emails),
        sent=sent,
        failed=failed,
        provider=provider.name,
    )
    return DispatchResult(
        campaign=campaign,
        audience_count=len(audience_emails),
        sent=sent,
        failed=failed,
        sample=sample,
    )
