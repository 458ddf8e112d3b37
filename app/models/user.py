import uuid

from sqlalchemy import Column, Date, DateTime, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.types import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number = Column(Text, nullable=False, unique=True, index=True)
    full_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    address = Column(Text, nullable=False)
    kyc_status = Column(Text, nullable=False, default="pending")  # pending, verified, rejected
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    bank_accounts = relationship("BankAccount", back_populates="user")
    recipients = relationship("Recipient", back_populates="user")
    transfers = relationship("Transfer", back_populates="user")
