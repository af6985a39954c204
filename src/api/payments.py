"""M-Pesa payment endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from src.api.dependencies import get_current_user, get_payment_coordinator
from src.api.errors import raise_for_result
from src.models.user import User
from src.schemas.mpesa import StkCallback
from src.schemas.payment import (
    CallbackAcknowledgement,
    PaymentInitiatedResponse,
    PaymentStatusResponse,
    StkPushRequest,
)
from src.services.payments import PaymentCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/mpesa", tags=["payments"])

STK_PUSH_SENT_MESSAGE = (
    "STK push sent to your phone. Please enter your M-Pesa PIN to complete the payment."
)


@router.post("/initiate-stk-push", response_model=PaymentInitiatedResponse)
async def initiate_stk_push(
    payment_data: StkPushRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    payments: Annotated[PaymentCoordinator, Depends(get_payment_coordinator)],
):
    """Create a payment and send the STK push prompt to the caller's phone."""
    result = await payments.create_and_initiate(
        current_user.id,
        payment_data.amount,
        payment_data.description,
        payment_data.account_reference,
    )
    raise_for_result(result)
    payment = result.value
    return PaymentInitiatedResponse(
        payment_id=payment.id,
        message=STK_PUSH_SENT_MESSAGE,
        checkout_request_id=payment.checkout_request_id,
    )


@router.post("/stk-push-callback", response_model=CallbackAcknowledgement)
async def stk_push_callback(
    request: Request,
    payments: Annotated[PaymentCoordinator, Depends(get_payment_coordinator)],
):
    """Receive the STK push outcome from M-Pesa.

    Unauthenticated: M-Pesa cannot present a user token. Anything that is not
    a recognizable callback is acknowledged and dropped so the gateway does
    not keep retrying it.
    """
    try:
        callback = StkCallback.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"Discarding malformed M-Pesa callback: {e}")
        return CallbackAcknowledgement()

    payments.reconcile_callback(callback)
    return CallbackAcknowledgement()


@router.get("/payment-status/{payment_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    payment_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    payments: Annotated[PaymentCoordinator, Depends(get_payment_coordinator)],
):
    """Get the status of one of the caller's payments."""
    result = payments.get_user_payment(current_user.id, payment_id)
    raise_for_result(result)
    return PaymentStatusResponse.from_payment(result.value)


@router.post("/payment-status/{payment_id}/query", response_model=PaymentStatusResponse)
async def query_payment_status(
    payment_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    payments: Annotated[PaymentCoordinator, Depends(get_payment_coordinator)],
):
    """Ask M-Pesa for the outcome of a payment whose callback has not arrived."""
    owned = payments.get_user_payment(current_user.id, payment_id)
    raise_for_result(owned)
    result = await payments.reconcile_status_query(payment_id)
    raise_for_result(result)
    return PaymentStatusResponse.from_payment(result.value)


@router.get("/all-user-payments", response_model=list[PaymentStatusResponse])
async def get_user_payments(
    current_user: Annotated[User, Depends(get_current_user)],
    payments: Annotated[PaymentCoordinator, Depends(get_payment_coordinator)],
):
    """Get all of the caller's payments, newest first."""
    return [
        PaymentStatusResponse.from_payment(payment)
        for payment in payments.list_user_payments(current_user.id)
    ]
