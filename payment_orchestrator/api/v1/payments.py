"""Payment endpoints - initiation, lookup, cancel, retry and admin review"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from payment_orchestrator.api.dependencies import get_payment_saga, get_request_id
from payment_orchestrator.api.v1.schemas import (
    CancelRequest,
    PaymentCreateRequest,
    PaymentPage,
    PaymentResponse,
    StatusUpdateRequest,
)
from payment_orchestrator.domain.models import Location, PaymentRequest, PaymentStatus
from payment_orchestrator.services.payment_saga import MAX_PAGE_SIZE, PaymentSaga

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments", response_model=PaymentResponse, status_code=201)
async def initiate_payment(
    request_body: PaymentCreateRequest,
    request: Request,
    saga: PaymentSaga = Depends(get_payment_saga),
):
    """
    Create a payment and schedule its processing.

    Flow:
    1. For QR_CODE payments, resolve recipient and amount from the QR code
    2. Validate sender and recipient against the identity directory
    3. Persist the payment as PENDING
    4. Schedule fraud screening and settlement as a background task
    5. Return the PENDING payment immediately
    """
    payment = await saga.initiate(
        PaymentRequest(
            sender_id=request_body.sender_id,
            recipient_id=request_body.recipient_id,
            recipient_type=request_body.recipient_type,
            amount=request_body.amount,
            currency=request_body.currency,
            method=request_body.method,
            description=request_body.description,
            qr_code_id=request_body.qr_code_id,
            location=Location(**request_body.location.model_dump()) if request_body.location else None,
            device_info=request_body.device_info,
            loyalty_points=request_body.loyalty_points,
        )
    )
    logger.info(
        "Payment initiated",
        extra={"request_id": get_request_id(request), "payment_id": str(payment.id)},
    )
    return PaymentResponse.model_validate(payment)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: str, saga: PaymentSaga = Depends(get_payment_saga)):
    return PaymentResponse.model_validate(saga.get_payment(payment_id))


@router.get("/payments", response_model=PaymentPage)
def list_customer_payments(
    customer_id: str = Query(..., min_length=1, description="Sender or recipient"),
    status: Optional[PaymentStatus] = Query(None),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    from_date: Optional[datetime] = Query(None, description="Created at or after"),
    to_date: Optional[datetime] = Query(None, description="Created at or before"),
    saga: PaymentSaga = Depends(get_payment_saga),
):
    """Payments sent or received by a customer, newest first"""
    result = saga.list_customer_payments(customer_id, status, page, size, from_date=from_date, to_date=to_date)
    return PaymentPage(
        content=[PaymentResponse.model_validate(p) for p in result["content"]],
        total_elements=result["total_elements"],
        total_pages=result["total_pages"],
        size=result["size"],
        number=result["number"],
    )


@router.post("/payments/{payment_id}/cancel", response_model=PaymentResponse)
def cancel_payment(
    payment_id: str,
    request_body: Optional[CancelRequest] = None,
    saga: PaymentSaga = Depends(get_payment_saga),
):
    reason = request_body.reason if request_body else None
    return PaymentResponse.model_validate(saga.cancel(payment_id, reason))


@router.post("/payments/{payment_id}/retry", response_model=PaymentResponse)
def retry_payment(payment_id: str, saga: PaymentSaga = Depends(get_payment_saga)):
    """Retry a FAILED payment (bounded, same correlation ID)"""
    return PaymentResponse.model_validate(saga.retry(payment_id))


@router.patch("/payments/{payment_id}/status", response_model=PaymentResponse)
def update_payment_status(
    payment_id: str,
    request_body: StatusUpdateRequest,
    saga: PaymentSaga = Depends(get_payment_saga),
):
    """Admin approval or rejection of a payment held for review"""
    return PaymentResponse.model_validate(saga.update_status(payment_id, request_body.decision))
