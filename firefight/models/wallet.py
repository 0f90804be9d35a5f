from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Text
from firefight.database import Base, utcnow
import uuid

TRANSACTION_TYPES = (
    "deposit",
    "entry_fee",
    "prize",
    "refund",
    "admin_adjustment",
    "withdrawal",
)
TRANSACTION_STATUSES = ("pending", "completed", "failed")


class WalletTransaction(Base):
    """One ledger row. Rows are appended, only ``status`` of a pending row moves."""

    __tablename__ = "wallet_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)  # signed
    status = Column(String, nullable=False, default="pending")
    description = Column(Text, nullable=True)

    tournament_id = Column(String, ForeignKey("tournaments.id"), nullable=True)
    participant_id = Column(String, ForeignKey("tournament_participants.id"), nullable=True)

    # unique: a report pays out at most once, a transaction is refunded at most once,
    # a processor reference credits at most once
    match_report_id = Column(String, ForeignKey("match_reports.id"), unique=True, nullable=True)
    refund_of_id = Column(String, ForeignKey("wallet_transactions.id"), unique=True, nullable=True)
    external_ref = Column(String, unique=True, nullable=True)

    admin_id = Column(String, ForeignKey("users.id"), nullable=True)
    admin_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    settled_at = Column(DateTime, nullable=True)
