from sqlalchemy import Column, String, Boolean, Integer, DateTime, Text
from firefight.database import Base, utcnow
import uuid

KYC_STATUSES = ("pending", "verified", "rejected")


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False)
    username = Column(String, unique=True, nullable=False)
    kyc_status = Column(String, nullable=False, default="pending")
    kyc_notes = Column(Text, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_banned = Column(Boolean, nullable=False, default=False)

    # bumped by every wallet mutation so concurrent writers on the
    # same wallet serialize on this row
    ledger_version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
