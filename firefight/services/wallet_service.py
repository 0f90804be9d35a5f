"""
Append-only wallet ledger.

A user's settled balance is the sum of their ``completed`` transactions.
Pending debits reserve funds: they count against the available balance
but not against the settled one. Nothing here updates a balance field;
refunds append an equal-and-opposite row that points at the original.
"""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, update, case
from sqlalchemy.orm import Session

from firefight.auth import Actor, require_admin, require_active
from firefight.config import settings
from firefight.database import utcnow
from firefight.errors import ValidationError, NotFoundError, InsufficientFunds
from firefight.events import relay
from firefight.models.user import User
from firefight.models.wallet import WalletTransaction, TRANSACTION_TYPES

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}")


def lock_wallet(db: Session, user_id: str) -> None:
    """Take the write lock on the user's row for the rest of the transaction.

    Every ledger mutation starts here, so check-then-append on one wallet
    never interleaves with another writer on the same wallet.
    """
    result = db.execute(
        update(User)
        .where(User.id == user_id)
        .values(ledger_version=User.ledger_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError(f"User {user_id} not found")


def settled_balance(db: Session, user_id: str) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(WalletTransaction.amount), 0))
        .filter(WalletTransaction.user_id == user_id)
        .filter(WalletTransaction.status == "completed")
        .scalar()
    )
    return to_money(total)


def reserved_amount(db: Session, user_id: str) -> Decimal:
    """Sum of pending debits, as a positive number."""
    total = (
        db.query(func.coalesce(func.sum(WalletTransaction.amount), 0))
        .filter(WalletTransaction.user_id == user_id)
        .filter(WalletTransaction.status == "pending")
        .filter(WalletTransaction.amount < 0)
        .scalar()
    )
    return -to_money(total)


def available_balance(db: Session, user_id: str) -> Decimal:
    return settled_balance(db, user_id) - reserved_amount(db, user_id)


def get_balance(db: Session, user_id: str):
    _get_user(db, user_id)
    settled = settled_balance(db, user_id)
    reserved = reserved_amount(db, user_id)
    return {
        "user_id": user_id,
        "balance": settled,
        "reserved": reserved,
        "available": settled - reserved,
    }


def get_by_id(db: Session, transaction_id: str):
    return db.query(WalletTransaction).filter(WalletTransaction.id == transaction_id).first()


def get_or_404(db: Session, transaction_id: str) -> WalletTransaction:
    txn = get_by_id(db, transaction_id)
    if not txn:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return txn


def list_for_user(db: Session, user_id: str, limit: int = 50):
    return (
        db.query(WalletTransaction)
        .filter(WalletTransaction.user_id == user_id)
        .order_by(WalletTransaction.created_at.desc())
        .limit(limit)
        .all()
    )


def list_all(db: Session, limit: int = 100, offset: int = 0):
    return (
        db.query(WalletTransaction)
        .order_by(WalletTransaction.created_at.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def _get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _check_type(type_: str) -> None:
    if type_ not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {type_}")


def _positive(amount) -> Decimal:
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    return amount


def _append(db: Session, user_id: str, amount: Decimal, type_: str, status: str, **metadata):
    txn = WalletTransaction(
        user_id=user_id,
        amount=amount,
        type=type_,
        status=status,
        settled_at=utcnow() if status == "completed" else None,
        **metadata,
    )
    db.add(txn)
    db.flush()
    return txn


def credit(db: Session, user_id: str, amount, type_: str, commit: bool = True, **metadata):
    """Append a completed credit. ``metadata`` maps onto transaction columns."""
    amount = _positive(amount)
    _check_type(type_)
    _get_user(db, user_id)

    lock_wallet(db, user_id)
    txn = _append(db, user_id, amount, type_, "completed", **metadata)
    if commit:
        db.commit()
        db.refresh(txn)
    return txn


def debit(db: Session, user_id: str, amount, type_: str, status: str = "completed",
          commit: bool = True, **metadata):
    """Append a debit of ``amount`` (stored negative).

    A ``pending`` debit is a reservation that settles later. Raises
    InsufficientFunds, without writing anything, when the available
    balance does not cover the amount.
    """
    amount = _positive(amount)
    _check_type(type_)
    if status not in ("pending", "completed"):
        raise ValidationError(f"Cannot create a debit with status {status}")
    _get_user(db, user_id)

    lock_wallet(db, user_id)
    available = available_balance(db, user_id)
    if available < amount:
        if commit:
            db.rollback()
        raise InsufficientFunds(f"Available balance {available} is less than {amount}")

    txn = _append(db, user_id, -amount, type_, status, **metadata)
    if commit:
        db.commit()
        db.refresh(txn)
    return txn


def settle(db: Session, txn: WalletTransaction, status: str) -> WalletTransaction:
    """Move a pending transaction to completed or failed. Does not commit.

    The move is a conditional UPDATE on ``pending``, so of two sessions
    settling the same row only one succeeds.
    """
    if status not in ("completed", "failed"):
        raise ValidationError(f"Cannot settle to {status}")

    result = db.execute(
        update(WalletTransaction)
        .where(WalletTransaction.id == txn.id)
        .where(WalletTransaction.status == "pending")
        .values(status=status, settled_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.refresh(txn)
    if result.rowcount == 0:
        raise ValidationError(f"Transaction {txn.id} is already {txn.status}")
    return txn


def refund(db: Session, transaction_id: str, reason: str = None, commit: bool = True):
    """Reverse a completed transaction with an equal-and-opposite ``refund`` row."""
    original = get_or_404(db, transaction_id)
    if original.status != "completed":
        raise ValidationError("Only completed transactions can be refunded")
    if original.type == "refund":
        raise ValidationError("A refund cannot be refunded")

    lock_wallet(db, original.user_id)
    existing = (
        db.query(WalletTransaction)
        .filter(WalletTransaction.refund_of_id == original.id)
        .first()
    )
    if existing:
        if commit:
            db.rollback()
        raise ValidationError(f"Transaction {original.id} was already refunded")

    amount = -to_money(original.amount)
    if amount < 0 and available_balance(db, original.user_id) < -amount:
        if commit:
            db.rollback()
        raise InsufficientFunds("Balance does not cover reversing this credit")

    txn = _append(
        db,
        original.user_id,
        amount,
        "refund",
        "completed",
        refund_of_id=original.id,
        tournament_id=original.tournament_id,
        participant_id=original.participant_id,
        description=reason or f"Refund of {original.type}",
    )
    logger.info(f"Refunded transaction {original.id} ({amount}) for user {original.user_id}")
    if commit:
        db.commit()
        db.refresh(txn)
    return txn


def admin_refund(db: Session, transaction_id: str, admin: Actor, reason: str = None):
    require_admin(admin)
    original = get_or_404(db, transaction_id)
    if original.type == "entry_fee":
        raise ValidationError("Entry fees are refunded by removing the participant")

    txn = refund(db, transaction_id, reason=reason, commit=False)
    txn.admin_id = admin.user_id
    txn.admin_reason = reason
    db.commit()
    db.refresh(txn)
    return txn


def admin_adjust(db: Session, user_id: str, amount, admin: Actor, reason: str):
    """Signed manual adjustment. Admin-only, reason required, always logged."""
    require_admin(admin)
    if not reason or not reason.strip():
        raise ValidationError("A reason is required for wallet adjustments")
    amount = to_money(amount)
    if amount == 0:
        raise ValidationError("Adjustment amount cannot be zero")
    _get_user(db, user_id)

    lock_wallet(db, user_id)
    if amount < 0:
        available = available_balance(db, user_id)
        if available + amount < 0:
            db.rollback()
            raise InsufficientFunds(f"Adjustment of {amount} exceeds available balance {available}")

    txn = _append(
        db,
        user_id,
        amount,
        "admin_adjustment",
        "completed",
        admin_id=admin.user_id,
        admin_reason=reason.strip(),
        description="Manual adjustment",
    )
    db.commit()
    db.refresh(txn)

    logger.info(
        f"Admin {admin.user_id} adjusted wallet of {user_id} by {amount}: {reason.strip()}"
    )
    return txn


def deposit(db: Session, user_id: str, amount, external_ref: str):
    """Processor-confirmed top-up. The same ``external_ref`` never credits twice."""
    if not external_ref:
        raise ValidationError("external_ref is required")

    existing = (
        db.query(WalletTransaction)
        .filter(WalletTransaction.external_ref == external_ref)
        .first()
    )
    if existing:
        if existing.user_id != user_id:
            raise ValidationError(f"Reference {external_ref} belongs to another wallet")
        return existing

    txn = credit(
        db,
        user_id,
        amount,
        "deposit",
        external_ref=external_ref,
        description="Wallet top-up",
    )
    logger.info(f"Deposit {txn.amount} credited to {user_id} ({external_ref})")
    relay.publish("payment_received", {
        "user_id": user_id,
        "transaction_id": txn.id,
        "type": "deposit",
        "amount": str(txn.amount),
    })
    return txn


def request_withdrawal(db: Session, actor: Actor, amount):
    require_active(actor)
    amount = to_money(amount)
    if amount < settings.min_withdrawal:
        raise ValidationError(f"Minimum withdrawal is {settings.min_withdrawal}")

    txn = debit(
        db,
        actor.user_id,
        amount,
        "withdrawal",
        status="pending",
        description="Withdrawal request",
    )
    logger.info(f"User {actor.user_id} requested withdrawal of {amount}")
    return txn


def list_pending_withdrawals(db: Session, admin: Actor):
    require_admin(admin)
    return (
        db.query(WalletTransaction)
        .filter(WalletTransaction.type == "withdrawal")
        .filter(WalletTransaction.status == "pending")
        .order_by(WalletTransaction.created_at.asc())
        .all()
    )


def decide_withdrawal(db: Session, transaction_id: str, admin: Actor, approve: bool):
    require_admin(admin)
    txn = get_or_404(db, transaction_id)
    if txn.type != "withdrawal":
        raise ValidationError(f"Transaction {txn.id} is not a withdrawal")

    lock_wallet(db, txn.user_id)
    db.refresh(txn)
    if txn.status != "pending":
        db.rollback()
        raise ValidationError(f"Withdrawal {txn.id} is already {txn.status}")

    settle(db, txn, "completed" if approve else "failed")
    txn.admin_id = admin.user_id
    db.commit()
    db.refresh(txn)

    logger.info(
        f"Admin {admin.user_id} {'approved' if approve else 'rejected'} withdrawal {txn.id}"
    )
    return txn


def stats(db: Session):
    def total(type_, status="completed"):
        value = (
            db.query(func.coalesce(func.sum(WalletTransaction.amount), 0))
            .filter(WalletTransaction.type == type_)
            .filter(WalletTransaction.status == status)
            .scalar()
        )
        return to_money(value)

    pending_count = (
        db.query(func.count(WalletTransaction.id))
        .filter(WalletTransaction.type == "withdrawal")
        .filter(WalletTransaction.status == "pending")
        .scalar()
    )
    # entry fees kept by the platform: collected fees net of their refunds
    entry_refunds = (
        db.query(func.coalesce(func.sum(
            case((WalletTransaction.participant_id.isnot(None), WalletTransaction.amount), else_=0)
        ), 0))
        .filter(WalletTransaction.type == "refund")
        .filter(WalletTransaction.status == "completed")
        .scalar()
    )

    return {
        "total_deposits": total("deposit"),
        "total_withdrawals": -total("withdrawal"),
        "entry_fees_collected": -total("entry_fee") - to_money(entry_refunds),
        "prizes_paid": total("prize"),
        "pending_withdrawals": pending_count,
    }
