"""Payment request and status schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from src.models.enums import PaymentStatus
from src.models.payment import Payment


class StkPushRequest(BaseModel):
    """Request to charge the caller's registered phone number."""

    amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    account_reference: str = Field(..., min_length=1, max_length=100)

    @field_validator("amount")
    @classmethod
    def validate_whole_shillings(cls, v: Decimal) -> Decimal:
        """M-Pesa charges whole shillings only."""
        if v < 1 or v != v.to_integral_value():
            raise ValueError("Amount must be a whole number of shillings, at least 1")
        return v


class PaymentInitiatedResponse(BaseModel):
    """Returned once the STK push has been accepted by M-Pesa."""

    payment_id: uuid.UUID
    message: str
    checkout_request_id: str | None


class PaymentStatusResponse(BaseModel):
    """Current state of a payment as shown to its owner."""

    payment_id: uuid.UUID
    status: PaymentStatus
    mpesa_receipt_number: str | None
    status_description: str
    amount: Decimal
    phone_number: str
    transaction_date: datetime

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentStatusResponse":
        return cls(
            payment_id=payment.id,
            status=payment.status,
            mpesa_receipt_number=payment.mpesa_receipt_number,
            status_description=payment.status_description,
            amount=payment.amount,
            phone_number=payment.phone_number,
            transaction_date=payment.updated_at or payment.created_at,
        )


class CallbackAcknowledgement(BaseModel):
    """Body M-Pesa expects in reply to a callback."""

    ResultCode: int = 0  # noqa: N815 - M-Pesa field name
    ResultDesc: str = "Accepted"  # noqa: N815 - M-Pesa field name
