import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.types import utcnow


class BankAccount(Base):
    """US funding account linked through the bank-link aggregator."""

    __tablename__ = "bank_accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    link_access_token = Column(Text)
    link_account_id = Column(Text)
    account_number = Column(Text, nullable=False)
    routing_number = Column(Text, nullable=False)
    bank_name = Column(Text, nullable=False)
    account_holder_name = Column(Text, nullable=False)
    account_type = Column(Text, nullable=False, default="checking")
    verified = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="bank_accounts")

    @property
    def last4(self) -> str:
        return (self.account_number or "")[-4:]
