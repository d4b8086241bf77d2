from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.models.customer import Customer
from app.schemas.common import pagination_meta
from app.schemas.customer import CustomerCreateIn, CustomerIngestOut, CustomerListOut, CustomerOut
from app.services.customer_service import list_customers as list_customer_rows
from app.services.ingestion_service import Ingestor, get_ingestor

router = APIRouter(prefix="/customers", tags=["customers"])


def customer_out(customer: Customer) -> CustomerOut:
    return CustomerOut(
        id=customer.id,
        name=customer.name,
        email=customer.email,
        phone=customer.phone,
        total_spent=float(customer.total_spent or 0),
        last_order_date=customer.last_order_date,
        metadata=customer.metadata_json or {},
        created_at=customer.created_at,
    )


@router.post(
    "",
    response_model=CustomerIngestOut,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a customer",
    description=(
        "Creates the customer (201), returns the stored customer when the email already "
        "exists (200), or accepts the payload for the ingestion worker when queued "
        "ingestion is enabled (202)."
    ),
    responses=error_responses(400, 422, 500),
)
def create_customer(
    payload: CustomerCreateIn,
    response: Response,
    db: Session = Depends(get_db),
    ingestor: Ingestor = Depends(get_ingestor),
):
    outcome = ingestor.ingest_customer(db, payload)
    if outcome.state == "queued":
        response.status_code = status.HTTP_202_ACCEPTED
        return CustomerIngestOut(message="Customer queued for ingestion", job_id=outcome.job.id)
    if outcome.state == "existing":
        response.status_code = status.HTTP_200_OK
        return CustomerIngestOut(message="Customer already exists", data=customer_out(outcome.customer))
    return CustomerIngestOut(message="Customer created", data=customer_out(outcome.customer))


@router.get(
    "",
    response_model=CustomerListOut,
    summary="List customers",
    responses=error_responses(422, 500),
)
def list_customers(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    total, customers = list_customer_rows(db, limit=limit, offset=offset)
    items = [customer_out(customer) for customer in customers]
    return CustomerListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )
