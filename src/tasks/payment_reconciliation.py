"""Celery tasks for reconciling STK pushes whose callback never arrived."""

import asyncio
import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.celery_app import app as celery_app
from src.config import get_settings
from src.database import SessionLocal
from src.models.enums import PaymentStatus
from src.models.mixins import utcnow
from src.services.payments import PaymentCoordinator

logger = logging.getLogger(__name__)


@celery_app.task
def reconcile_stale_payments() -> dict:
    """Query M-Pesa for payments stuck in STK_PUSH_SENT.

    This task runs every minute via celery-beat. A payment is queried once
    its last update is older than ``mpesa_status_query_after_minutes``.

    Returns:
        dict with reconciliation statistics
    """
    settings = get_settings()
    db: Session = SessionLocal()
    try:
        coordinator = PaymentCoordinator(db, settings)
        cutoff = utcnow() - timedelta(minutes=settings.mpesa_status_query_after_minutes)
        stale = coordinator.ledger.list_awaiting_result(updated_before=cutoff)
        payment_ids = [payment.id for payment in stale]

        stats = {"checked": 0, "resolved": 0, "pending": 0, "errors": 0}
        for payment_id in payment_ids:
            stats["checked"] += 1
            try:
                result = asyncio.run(coordinator.reconcile_status_query(payment_id))
            except SQLAlchemyError as e:
                logger.error(f"Error reconciling payment {payment_id}: {e}")
                stats["errors"] += 1
                continue

            if not result.is_success:
                stats["errors"] += 1
            elif result.value.status == PaymentStatus.STK_PUSH_SENT:
                stats["pending"] += 1
            else:
                stats["resolved"] += 1

        logger.info(f"Payment reconciliation complete: {stats}")
        return stats
    finally:
        db.close()
