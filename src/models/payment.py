"""Payment model."""

import uuid

from sqlalchemy import Column, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.enums import PaymentStatus
from src.models.mixins import TimestampMixin


class Payment(Base, TimestampMixin):
    """An M-Pesa STK push payment requested by a user."""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    phone_number = Column(String(20), nullable=False)
    description = Column(String(200), nullable=False)
    account_reference = Column(String(100), nullable=False)
    status = Column(
        Enum(
            PaymentStatus,
            name="paymentstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentStatus.INITIATED,
        nullable=False,
        index=True,
    )
    # Gateway correlation ids, set once the STK push is acknowledged
    checkout_request_id = Column(String(100), unique=True, nullable=True)
    merchant_request_id = Column(String(100), nullable=True)
    mpesa_receipt_number = Column(String(100), nullable=True)
    result_code = Column(Integer, nullable=True)
    result_description = Column(String(200), nullable=True)

    user = relationship("User", backref="payments")

    @property
    def status_description(self) -> str:
        """Gateway result description, falling back to the status description."""
        return self.result_description or PaymentStatus(self.status).description
