"""SQLAlchemy models."""

from src.models.payment import Payment
from src.models.user import User

__all__ = [
    "User",
    "Payment",
]
