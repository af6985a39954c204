"""Enums for model fields."""

from enum import Enum


class UserRole(str, Enum):
    """Account types a user can register as."""

    INDIVIDUAL = "Individual"
    BUSINESS = "Business"


class PaymentStatus(str, Enum):
    """Lifecycle states of an M-Pesa STK push payment.

    INITIATED -> STK_PUSH_SENT -> COMPLETED | FAILED
    CANCELLED and TIMED_OUT are only reached through a status query.
    """

    INITIATED = "Initiated"
    STK_PUSH_SENT = "StkPushSent"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    TIMED_OUT = "TimedOut"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is accepted from this state."""
        return self in TERMINAL_PAYMENT_STATUSES

    @property
    def description(self) -> str:
        """Human readable description shown to the payer."""
        return _PAYMENT_STATUS_DESCRIPTIONS[self]


TERMINAL_PAYMENT_STATUSES = frozenset(
    {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.TIMED_OUT,
    }
)

_PAYMENT_STATUS_DESCRIPTIONS = {
    PaymentStatus.INITIATED: "Payment initiated",
    PaymentStatus.STK_PUSH_SENT: "STK push sent to your phone",
    PaymentStatus.COMPLETED: "Payment completed successfully",
    PaymentStatus.FAILED: "Payment failed",
    PaymentStatus.CANCELLED: "Payment cancelled",
    PaymentStatus.TIMED_OUT: "Payment request timed out",
}
