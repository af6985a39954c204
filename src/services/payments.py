"""Payment lifecycle: creation, STK push initiation and result reconciliation."""

import logging
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from src.config import Settings
from src.models.enums import PaymentStatus
from src.models.payment import Payment
from src.schemas.mpesa import StkCallback
from src.services.credential_store import CredentialStore
from src.services.mpesa import GatewayAuthError, GatewayError, MpesaClient
from src.services.payment_ledger import PaymentLedger
from src.services.phone import normalize_phone_number
from src.services.results import ErrorKind, ServiceResult

logger = logging.getLogger(__name__)

SUCCESS_RESULT_CODE = 0
RECEIPT_METADATA_NAME = "MpesaReceiptNumber"

# Status query result codes with a dedicated terminal state; anything else
# non-zero is a failure.
QUERY_RESULT_STATUSES = {
    0: PaymentStatus.COMPLETED,
    1032: PaymentStatus.CANCELLED,  # request cancelled by user
    1037: PaymentStatus.TIMED_OUT,  # no response from the handset
}

GATEWAY_FAILURE_MESSAGE = "Payment request could not be processed, please try again"
INVALID_AMOUNT_MESSAGE = "Amount must be a whole number of shillings, at least 1"


def _truncate(value: str | None, length: int = 200) -> str | None:
    return value[:length] if value else value


def _parse_result_code(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class PaymentCoordinator:
    """Drives a payment from creation to a terminal status.

    The STK push leg and the callback leg arrive on different requests; the
    ledger's conditional updates keep them consistent when they race, and a
    terminal payment ignores anything that arrives afterwards.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        gateway: MpesaClient | None = None,
    ):
        self.settings = settings
        self.ledger = PaymentLedger(db)
        self.users = CredentialStore(db)
        self.gateway = gateway or MpesaClient(settings)

    def create_payment(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        account_reference: str,
    ) -> ServiceResult[Payment]:
        """Record the intent to pay before anything is sent to M-Pesa."""
        if amount < 1 or amount != amount.to_integral_value():
            # The stored amount must be exactly what M-Pesa will charge
            logger.warning(f"Payment creation rejected: invalid amount {amount}")
            return ServiceResult.fail(ErrorKind.VALIDATION_ERROR, INVALID_AMOUNT_MESSAGE)

        user = self.users.get_by_id(user_id)
        if user is None:
            logger.warning(f"Payment creation failed: user {user_id} not found")
            return ServiceResult.fail(ErrorKind.USER_NOT_FOUND, "User not found")

        payment = Payment(
            id=str(uuid.uuid4()),
            user_id=user.id,
            amount=amount,
            phone_number=normalize_phone_number(
                user.mobile_number, self.settings.phone_country_code
            ),
            description=description,
            account_reference=account_reference,
            status=PaymentStatus.INITIATED,
        )
        self.ledger.add(payment)
        logger.info(f"Payment {payment.id} created for user {user_id}: {amount}")
        return ServiceResult.ok(payment)

    async def initiate_gateway_push(self, user_id: str, payment_id: str) -> ServiceResult[Payment]:
        """Send the STK push for a payment created by ``create_payment``.

        On any gateway failure the payment stays INITIATED.
        """
        payment = self.ledger.get(payment_id)
        if payment is None or payment.user_id != user_id:
            return ServiceResult.fail(ErrorKind.PAYMENT_NOT_FOUND, "Payment not found")
        if payment.status != PaymentStatus.INITIATED:
            return ServiceResult.fail(ErrorKind.CONFLICT, "Payment has already been initiated")

        try:
            response = await self.gateway.initiate_stk_push(
                phone_number=normalize_phone_number(
                    payment.phone_number, self.settings.phone_country_code
                ),
                amount=payment.amount,
                account_reference=payment.account_reference,
                description=payment.description,
            )
        except GatewayAuthError:
            logger.error(f"M-Pesa authentication failed for payment {payment_id}", exc_info=True)
            return ServiceResult.fail(ErrorKind.GATEWAY_AUTH_ERROR, GATEWAY_FAILURE_MESSAGE)
        except GatewayError:
            logger.error(f"STK push failed for payment {payment_id}", exc_info=True)
            return ServiceResult.fail(ErrorKind.GATEWAY_ERROR, GATEWAY_FAILURE_MESSAGE)

        if not response.accepted:
            logger.error(
                f"STK push for payment {payment_id} rejected: "
                f"{response.response_code} {response.response_description}"
            )
            return ServiceResult.fail(ErrorKind.GATEWAY_ERROR, GATEWAY_FAILURE_MESSAGE)

        sent = self.ledger.mark_stk_push_sent(
            payment_id, response.checkout_request_id, response.merchant_request_id
        )
        if not sent:
            logger.warning(f"Payment {payment_id} changed state while the STK push was in flight")
            return ServiceResult.fail(ErrorKind.CONFLICT, "Payment was updated concurrently")

        logger.info(
            f"STK push sent for payment {payment_id}: "
            f"checkout_request_id={response.checkout_request_id}"
        )
        return ServiceResult.ok(
            self.ledger.get(payment_id), message=response.customer_message or ""
        )

    async def create_and_initiate(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        account_reference: str,
    ) -> ServiceResult[Payment]:
        """Create a payment and push it to the payer's phone, threading the new id through."""
        created = self.create_payment(user_id, amount, description, account_reference)
        if not created.is_success:
            return created
        return await self.initiate_gateway_push(user_id, created.value.id)

    def reconcile_callback(self, callback: StkCallback) -> ServiceResult[Payment | None]:
        """Apply an M-Pesa callback to the payment it refers to.

        Unknown correlation ids and callbacks for payments that already
        reached a terminal status are acknowledged without changing anything.
        """
        body = callback.body
        payment = self.ledger.get_by_checkout_request_id(body.checkout_request_id)
        if payment is None:
            logger.warning(
                f"Payment not found for checkout request ID: {body.checkout_request_id}"
            )
            return ServiceResult.ok(None, message="Unknown checkout request")

        if PaymentStatus(payment.status).is_terminal:
            logger.info(
                f"Ignoring callback for payment {payment.id}, already {payment.status.value}"
            )
            return ServiceResult.ok(payment, message="Already processed")

        receipt = None
        if body.result_code == SUCCESS_RESULT_CODE:
            status = PaymentStatus.COMPLETED
            value = body.metadata_value(RECEIPT_METADATA_NAME)
            receipt = str(value) if value is not None else None
        else:
            status = PaymentStatus.FAILED

        applied = self.ledger.record_result(
            payment.id,
            status,
            result_code=body.result_code,
            result_description=_truncate(body.result_desc),
            mpesa_receipt_number=receipt,
        )
        if not applied:
            logger.info(f"Callback for payment {payment.id} lost the race to another update")
            return ServiceResult.ok(self.ledger.get(payment.id), message="Already processed")

        logger.info(f"Payment {payment.id} {status.value} (ResultCode={body.result_code})")
        return ServiceResult.ok(self.ledger.get(payment.id))

    async def reconcile_status_query(self, payment_id: str) -> ServiceResult[Payment]:
        """Ask M-Pesa for the outcome of an STK push whose callback has not arrived."""
        payment = self.ledger.get(payment_id)
        if payment is None:
            return ServiceResult.fail(ErrorKind.PAYMENT_NOT_FOUND, "Payment not found")
        if payment.status != PaymentStatus.STK_PUSH_SENT or not payment.checkout_request_id:
            return ServiceResult.ok(payment)

        try:
            data = await self.gateway.query_stk_status(payment.checkout_request_id)
        except GatewayAuthError:
            logger.error(f"M-Pesa authentication failed querying {payment_id}", exc_info=True)
            return ServiceResult.fail(ErrorKind.GATEWAY_AUTH_ERROR, GATEWAY_FAILURE_MESSAGE)
        except GatewayError:
            logger.error(f"Status query failed for payment {payment_id}", exc_info=True)
            return ServiceResult.fail(ErrorKind.GATEWAY_ERROR, GATEWAY_FAILURE_MESSAGE)

        result_code = _parse_result_code(data.get("ResultCode"))
        if result_code is None:
            logger.info(f"Payment {payment_id} still pending: {data.get('errorMessage', data)}")
            return ServiceResult.ok(payment)

        status = QUERY_RESULT_STATUSES.get(result_code, PaymentStatus.FAILED)
        applied = self.ledger.record_result(
            payment.id,
            status,
            result_code=result_code,
            result_description=_truncate(data.get("ResultDesc")),
        )
        if applied:
            logger.info(f"Payment {payment_id} {status.value} via status query ({result_code})")
        else:
            logger.info(f"Status query for payment {payment_id} lost the race to another update")
        return ServiceResult.ok(self.ledger.get(payment_id))

    def get_payment(self, payment_id: str) -> Payment | None:
        return self.ledger.get(payment_id)

    def get_user_payment(self, user_id: str, payment_id: str) -> ServiceResult[Payment]:
        """Fetch a payment on behalf of its owner."""
        payment = self.ledger.get(payment_id)
        if payment is None:
            return ServiceResult.fail(ErrorKind.PAYMENT_NOT_FOUND, "Payment not found")
        if payment.user_id != user_id:
            logger.warning(f"User {user_id} attempted to read payment {payment_id}")
            return ServiceResult.fail(
                ErrorKind.FORBIDDEN, "You do not have permission to view this payment"
            )
        return ServiceResult.ok(payment)

    def list_user_payments(self, user_id: str) -> list[Payment]:
        """All of a user's payments, newest first."""
        return self.ledger.list_for_user(user_id)
