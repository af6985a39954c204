"""Data access for payment records."""

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.enums import PaymentStatus
from src.models.mixins import utcnow
from src.models.payment import Payment

logger = logging.getLogger(__name__)

NON_TERMINAL_STATUSES = (PaymentStatus.INITIATED, PaymentStatus.STK_PUSH_SENT)


class PaymentLedger:
    """Stores payments and applies status transitions.

    Every transition is a conditional UPDATE on the current status, so two
    writers racing on the same payment cannot both win. The loser sees
    ``False`` and the row keeps the winner's values.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, payment: Payment) -> Payment:
        try:
            self.db.add(payment)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to create payment for user {payment.user_id}", exc_info=True)
            raise
        self.db.refresh(payment)
        return payment

    def get(self, payment_id: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.id == payment_id).first()

    def get_by_checkout_request_id(self, checkout_request_id: str) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(Payment.checkout_request_id == checkout_request_id)
            .first()
        )

    def list_for_user(self, user_id: str) -> list[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    def list_awaiting_result(self, updated_before: datetime) -> list[Payment]:
        """STK pushes sent before the cutoff that have not been resolved yet."""
        return (
            self.db.query(Payment)
            .filter(
                Payment.status == PaymentStatus.STK_PUSH_SENT,
                Payment.checkout_request_id.isnot(None),
                Payment.updated_at < updated_before,
            )
            .order_by(Payment.updated_at)
            .all()
        )

    def _transition(
        self,
        payment_id: str,
        allowed_from: Iterable[PaymentStatus],
        values: dict,
    ) -> bool:
        values = {**values, "updated_at": utcnow()}
        try:
            result = self.db.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status.in_(list(allowed_from)))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to update payment {payment_id}", exc_info=True)
            raise

        if result.rowcount != 1:
            return False

        payment = self.get(payment_id)
        if payment is not None:
            self.db.refresh(payment)
        return True

    def mark_stk_push_sent(
        self,
        payment_id: str,
        checkout_request_id: str,
        merchant_request_id: str | None,
    ) -> bool:
        """Attach the gateway correlation ids and move INITIATED -> STK_PUSH_SENT."""
        return self._transition(
            payment_id,
            [PaymentStatus.INITIATED],
            {
                "status": PaymentStatus.STK_PUSH_SENT,
                "checkout_request_id": checkout_request_id,
                "merchant_request_id": merchant_request_id,
            },
        )

    def record_result(
        self,
        payment_id: str,
        status: PaymentStatus,
        result_code: int | None,
        result_description: str | None,
        mpesa_receipt_number: str | None = None,
    ) -> bool:
        """Move a non-terminal payment to a terminal status with the gateway result."""
        values = {
            "status": status,
            "result_code": result_code,
            "result_description": result_description,
        }
        if mpesa_receipt_number is not None:
            values["mpesa_receipt_number"] = mpesa_receipt_number
        return self._transition(payment_id, NON_TERMINAL_STATUSES, values)
