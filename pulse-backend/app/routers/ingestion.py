from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.errors import IngestionJobNotFound
from app.models.ingestion import IngestionJob
from app.schemas.ingestion import IngestionJobOut
from app.services.ingestion_service import get_job_or_raise

router = APIRouter(prefix="/ingestion", tags=["ingestion"])


def _job_out(job: IngestionJob) -> IngestionJobOut:
    return IngestionJobOut(
        id=job.id,
        kind=job.kind,
        status=job.status,
        attempt_count=job.attempt_count,
        max_attempts=job.max_attempts,
        last_error=job.last_error,
        result_id=job.result_id,
        processed_at=job.processed_at,
        created_at=job.created_at,
    )


@router.get(
    "/jobs/{job_id}",
    response_model=IngestionJobOut,
    summary="Get a queued ingestion job",
    responses=error_responses(IngestionJobNotFound, 500),
)
def get_ingestion_job(job_id: str, db: Session = Depends(get_db)):
    return _job_out(get_job_or_raise(db, job_id))
