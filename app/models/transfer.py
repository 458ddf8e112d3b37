import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.types import utcnow


class Transfer(Base):
    __tablename__ = "transfers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    transfer_code = Column(Text, nullable=False, unique=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Uuid, ForeignKey("recipients.id"), nullable=False)
    bank_account_id = Column(Uuid, ForeignKey("bank_accounts.id"))
    amount_usd = Column(Numeric(12, 2), nullable=False)
    fee_usd = Column(Numeric(12, 2), nullable=False)
    fx_rate = Column(Numeric(12, 4), nullable=False)
    amount_inr = Column(Numeric(14, 2), nullable=False)
    # quote, processing_withdrawal, processing_payout, completed, cancelled, failed
    status = Column(Text, nullable=False, default="quote", index=True)
    quote_created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    quote_expires_at = Column(DateTime(timezone=True), nullable=False)
    withdrawal_initiated_at = Column(DateTime(timezone=True))
    withdrawal_completed_at = Column(DateTime(timezone=True))
    payout_initiated_at = Column(DateTime(timezone=True))
    payout_completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="transfers")
    recipient = relationship("Recipient", back_populates="transfers")
    bank_account = relationship("BankAccount")
