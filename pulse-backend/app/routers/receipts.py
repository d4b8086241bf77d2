from fastapi import APIRouter, Depends, status

from app.core.api_docs import error_responses
from app.schemas.campaign import DeliveryReceiptAcceptedOut, DeliveryReceiptIn, DeliveryReceiptOut
from app.services.receipt_service import ReceiptBuffer, accept_receipt, get_receipt_buffer

router = APIRouter(tags=["receipts"])


@router.post(
    "/delivery-receipts",
    response_model=DeliveryReceiptAcceptedOut,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Accept a vendor delivery receipt",
    description=(
        "Buffers the receipt and returns immediately. The reconciler applies buffered "
        "receipts to the communication log on its next tick."
    ),
    responses=error_responses(400, 422, 500),
)
def submit_delivery_receipt(
    payload: DeliveryReceiptIn,
    buffer: ReceiptBuffer = Depends(get_receipt_buffer),
):
    receipt = accept_receipt(
        buffer,
        campaign_id=payload.campaign_id,
        customer_email=payload.customer_email,
        status=payload.status,
    )
    return DeliveryReceiptAcceptedOut(
        data=DeliveryReceiptOut(
            id=receipt.id,
            campaign_id=receipt.campaign_id,
            customer_email=receipt.customer_email,
            status=receipt.status,
            received_at=receipt.received_at,
        )
    )
