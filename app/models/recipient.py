import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.types import utcnow


class Recipient(Base):
    __tablename__ = "recipients"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    nickname = Column(Text, nullable=False)
    payment_method = Column(Text, nullable=False)  # upi, bank
    upi_id = Column(Text)
    account_number = Column(Text)
    ifsc_code = Column(Text)
    bank_name = Column(Text)
    account_holder_name = Column(Text)
    verified = Column(Boolean, nullable=False, default=False)
    verification_name = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="recipients")
    transfers = relationship("Transfer", back_populates="recipient")

    @property
    def payment_label(self) -> str:
        if self.payment_method == "upi":
            return f"UPI: {self.upi_id}"
        return f"{self.bank_name} ****{(self.account_number or '')[-4:]}"
