"""Customer and order ingestion behind one interface.

``DirectIngestor`` writes straight to the store. ``QueuedIngestor`` records an
``IngestionJob`` and returns at once; the ingestion worker tick applies pending
jobs in enqueue order. Callers only see ``Ingestor`` and an ``IngestOutcome``.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Protocol

from pydantic import ValidationError as PayloadValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import CRMError, DependencyUnavailable, IngestionJobNotFound
from app.core.id_utils import generate_id
from app.core.observability import log_event
from app.core.time_utils import utc_now
from app.models.customer import Customer
from app.models.ingestion import IngestionJob
from app.models.order import Order
from app.schemas.customer import CustomerCreateIn
from app.schemas.order import OrderCreateIn
from app.services.customer_service import create_customer, create_order, find_customer_by_email
from app.services.persistence import commit_or_raise

logger = logging.getLogger("pulse.ingestion")

JOB_KIND_CUSTOMER = "customer"
JOB_KIND_ORDER = "order"


@dataclass(frozen=True)
class IngestOutcome:
    # "created", "existing" or "queued"
    state: str
    customer: Customer | None = None
    order: Order | None = None
    job: IngestionJob | None = None


@dataclass(frozen=True)
class IngestionRunSummary:
    processed: int
    done: int
    retried: int
    failed: int


class Ingestor(Protocol):
    mode: str

    def ingest_customer(self, db: Session, payload: CustomerCreateIn) -> IngestOutcome:
        ...

    def ingest_order(self, db: Session, payload: OrderCreateIn) -> IngestOutcome:
        ...


class DirectIngestor:
    mode = "direct"

    def ingest_customer(self, db: Session, payload: CustomerCreateIn) -> IngestOutcome:
        result = create_customer(db, payload)
        return IngestOutcome(state="created" if result.created else "existing", customer=result.customer)

    def ingest_order(self, db: Session, payload: OrderCreateIn) -> IngestOutcome:
        return IngestOutcome(state="created", order=create_order(db, payload))


class QueuedIngestor:
    mode = "queued"

    def __init__(self, *, fallback: Ingestor | None = None, max_attempts: int | None = None):
        self._fallback = fallback or DirectIngestor()
        self._max_attempts = max_attempts or settings.ingestion_max_attempts

    def ingest_customer(self, db: Session, payload: CustomerCreateIn) -> IngestOutcome:
        email = str(payload.email).lower()
        existing = find_customer_by_email(db, email)
        if existing:
            return IngestOutcome(state="existing", customer=existing)
        pending = _pending_job_for_identity(db, kind=JOB_KIND_CUSTOMER, identity_key=email)
        if pending:
            return IngestOutcome(state="queued", job=pending)
        try:
            job = self._enqueue(db, kind=JOB_KIND_CUSTOMER, identity_key=email, payload=payload.model_dump(mode="json"))
        except DependencyUnavailable:
            return self._fallback.ingest_customer(db, payload)
        return IngestOutcome(state="queued", job=job)

    def ingest_order(self, db: Session, payload: OrderCreateIn) -> IngestOutcome:
        try:
            job = self._enqueue(db, kind=JOB_KIND_ORDER, identity_key=None, payload=payload.model_dump(mode="json"))
        except DependencyUnavailable:
            return self._fallback.ingest_order(db, payload)
        return IngestOutcome(state="queued", job=job)

    def _enqueue(self, db: Session, *, kind: str, identity_key: str | None, payload: dict) -> IngestionJob:
        job = IngestionJob(
            id=generate_id("job"),
            kind=kind,
            identity_key=identity_key,
            payload_json=payload,
            status="pending",
            attempt_count=0,
            max_attempts=self._max_attempts,
        )
        db.add(job)
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log_event(
                logger,
                logging.WARNING,
                "ingestion_enqueue_failed",
                kind=kind,
                error=str(exc),
                fallback="direct",
            )
            raise DependencyUnavailable("Ingestion queue unavailable") from exc
        db.refresh(job)
        return job


def get_ingestor() -> Ingestor:
    if settings.ingestion_mode == "queued":
        return QueuedIngestor()
    return DirectIngestor()


def _pending_job_for_identity(db: Session, *, kind: str, identity_key: str) -> IngestionJob | None:
    return db.execute(
        select(IngestionJob)
        .where(
            IngestionJob.kind == kind,
            IngestionJob.identity_key == identity_key,
            IngestionJob.status == "pending",
        )
        .order_by(IngestionJob.seq.asc())
        .limit(1)
    ).scalar_one_or_none()


def get_job_or_raise(db: Session, job_id: str) -> IngestionJob:
    job = db.execute(select(IngestionJob).where(IngestionJob.id == job_id)).scalar_one_or_none()
    if not job:
        raise IngestionJobNotFound()
    return job


def _apply_job(db: Session, job: IngestionJob) -> str:
    if job.kind == JOB_KIND_CUSTOMER:
        return create_customer(db, CustomerCreateIn.model_validate(job.payload_json)).customer.id
    if job.kind == JOB_KIND_ORDER:
        return create_order(db, OrderCreateIn.model_validate(job.payload_json)).id
    raise ValueError(f"Unknown ingestion job kind '{job.kind}'")


def _record_job_failure(db: Session, *, job_seq: int, error: str, permanent: bool) -> str:
    job = db.get(IngestionJob, job_seq)
    job.attempt_count += 1
    job.last_error = error[:255]
    if permanent or job.attempt_count >= job.max_attempts:
        job.status = "failed"
        job.processed_at = utc_now()
    commit_or_raise(db, operation="ingestion.job.failure")
    return job.status


def process_pending_jobs(db: Session, *, limit: int | None = None) -> IngestionRunSummary:
    """Apply pending jobs oldest first. A storage failure aborts the run."""
    batch_size = limit or settings.ingestion_batch_size
    job_seqs = db.execute(
        select(IngestionJob.seq)
        .where(IngestionJob.status == "pending")
        .order_by(IngestionJob.seq.asc())
        .limit(batch_size)
    ).scalars().all()

    processed = 0
    done = 0
    retried = 0
    failed = 0
    for job_seq in job_seqs:
        job = db.get(IngestionJob, job_seq)
        if job is None or job.status != "pending":
            continue
        processed += 1
        job_id = job.id
        kind = job.kind
        try:
            # Job bookkeeping commits in the same transaction as the record it creates.
            job.attempt_count += 1
            job.status = "done"
            job.last_error = None
            job.processed_at = utc_now()
            result_id = _apply_job(db, job)
        except (PayloadValidationError, ValueError) as exc:
            db.rollback()
            status = _record_job_failure(db, job_seq=job_seq, error=str(exc), permanent=True)
            failed += 1
            _log_job_failure(job_id, kind, str(exc), status)
            continue
        except CRMError as exc:
            if exc.status_code >= 500:
                raise
            db.rollback()
            status = _record_job_failure(db, job_seq=job_seq, error=exc.message, permanent=False)
            if status == "failed":
                failed += 1
            else:
                retried += 1
            _log_job_failure(job_id, kind, exc.message, status)
            continue

        job = db.get(IngestionJob, job_seq)
        if job.status != "done":
            # The write path rolled back after a lost race and returned the existing row.
            job.status = "done"
            job.processed_at = utc_now()
        job.result_id = result_id
        commit_or_raise(db, operation="ingestion.job.complete")
        done += 1

    summary = IngestionRunSummary(processed=processed, done=done, retried=retried, failed=failed)
    if processed:
        log_event(logger, logging.INFO, "ingestion_run", **asdict(summary))
    return summary


def _log_job_failure(job_id: str, kind: str, error: str, status: str) -> None:
    log_event(
        logger,
        logging.WARNING,
        "ingestion_job_failed",
        job_id=job_id,
        kind=kind,
        error=error,
        status=status,
    )
