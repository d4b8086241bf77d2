"""Delivery receipt intake and the batch reconciler that applies receipts to the communication log.

Receipts arrive out of band from the messaging vendor. ``accept_receipt`` only
buffers them; ``ReceiptReconciler.tick`` drains the buffer on a schedule and
overwrites the status of the first matching log record. The buffer is process
local, so one API process owns one buffer and one reconciler.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.core.id_utils import generate_id
from app.core.observability import log_event
from app.core.time_utils import utc_now
from app.models.campaign import CommunicationLog
from app.services.persistence import commit_or_raise

logger = logging.getLogger("pulse.receipts")

DEFAULT_RECEIPT_STATUS = "SENT"


@dataclass(frozen=True)
class Receipt:
    campaign_id: str
    customer_email: str
    status: str
    id: str = field(default_factory=lambda: generate_id("rcpt"))
    received_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ReconcileSummary:
    drained: int
    matched: int
    unmatched: int


class ReceiptBuffer:
    def __init__(self):
        self._items: list[Receipt] = []
        self._lock = threading.Lock()

    def append(self, receipt: Receipt) -> None:
        with self._lock:
            self._items.append(receipt)

    def drain(self) -> list[Receipt]:
        # Swap and clear: receipts appended after this point land in the new list.
        with self._lock:
            drained, self._items = self._items, []
        return drained

    def restore(self, receipts: list[Receipt]) -> None:
        if not receipts:
            return
        with self._lock:
            self._items = list(receipts) + self._items

    def snapshot(self) -> list[Receipt]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


receipt_buffer = ReceiptBuffer()


def get_receipt_buffer() -> ReceiptBuffer:
    return receipt_buffer


def accept_receipt(
    buffer: ReceiptBuffer,
    *,
    campaign_id: str | None,
    customer_email: str | None,
    status: str | None = None,
) -> Receipt:
    campaign_id = (campaign_id or "").strip()
    customer_email = (customer_email or "").strip().lower()
    if not campaign_id or not customer_email:
        raise ValidationError("campaign_id and email required")
    receipt = Receipt(
        campaign_id=campaign_id,
        customer_email=customer_email,
        status=(status or "").strip().upper() or DEFAULT_RECEIPT_STATUS,
    )
    buffer.append(receipt)
    return receipt


def _first_matching_record(db: Session, receipt: Receipt) -> CommunicationLog | None:
    return db.execute(
        select(CommunicationLog)
        .where(
            CommunicationLog.campaign_id == receipt.campaign_id,
            CommunicationLog.customer_email == receipt.customer_email,
        )
        .order_by(CommunicationLog.seq.asc())
        .limit(1)
    ).scalar_one_or_none()


class ReceiptReconciler:
    def __init__(self, buffer: ReceiptBuffer, session_factory: Callable[[], Session]):
        self._buffer = buffer
        self._session_factory = session_factory
        self._tick_lock = threading.Lock()

    def tick(self) -> ReconcileSummary:
        """Drain the buffer and apply every receipt in one transaction.

        On a storage failure the drained receipts go back to the front of the
        buffer and the error propagates to the caller.
        """
        with self._tick_lock:
            drained = self._buffer.drain()
            if not drained:
                return ReconcileSummary(drained=0, matched=0, unmatched=0)

            db = self._session_factory()
            try:
                matched = 0
                unmatched = 0
                for receipt in drained:
                    record = _first_matching_record(db, receipt)
                    if record is None:
                        unmatched += 1
                        log_event(
                            logger,
                            logging.INFO,
                            "receipt_unmatched",
                            receipt_id=receipt.id,
                            campaign_id=receipt.campaign_id,
                            customer_email=receipt.customer_email,
                        )
                        continue
                    record.status = receipt.status
                    record.delivered_at = receipt.received_at or utc_now()
                    matched += 1
                if matched:
                    commit_or_raise(db, operation="receipt.reconcile")
            except Exception as exc:
                db.rollback()
                self._buffer.restore(drained)
                log_event(
                    logger,
                    logging.ERROR,
                    "receipt_reconcile_failed",
                    restored=len(drained),
                    error=str(exc),
                )
                raise
            finally:
                db.close()

        summary = ReconcileSummary(drained=len(drained), matched=matched, unmatched=unmatched)
        log_event(logger, logging.INFO, "receipt_reconcile", **asdict(summary))
        return summary
