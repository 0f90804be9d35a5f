import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from firefight.auth import Actor, require_admin
from firefight.errors import ValidationError, NotFoundError
from firefight.models.user import User, KYC_STATUSES

logger = logging.getLogger(__name__)


def get_by_id(db: Session, user_id: str):
    return db.query(User).filter(User.id == user_id).first()


def get_or_404(db: Session, user_id: str) -> User:
    user = get_by_id(db, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def get_all(db: Session, limit: int = 50, offset: int = 0):
    return (
        db.query(User)
        .order_by(User.created_at.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def create(db: Session, email: str, username: str, is_admin: bool = False):
    email = (email or "").strip().lower()
    username = (username or "").strip()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if not username:
        raise ValidationError("Username is required")

    existing = (
        db.query(User)
        .filter(or_(User.email == email, User.username.ilike(username)))
        .first()
    )
    if existing:
        raise ValidationError("Email or username already taken")

    user = User(email=email, username=username, is_admin=is_admin)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update(db: Session, admin: Actor, user_id: str, is_banned: bool = None, is_admin: bool = None):
    require_admin(admin)
    user = get_or_404(db, user_id)

    if is_banned is not None:
        user.is_banned = is_banned
    if is_admin is not None:
        if user.id == admin.user_id and not is_admin:
            raise ValidationError("Admins cannot revoke their own admin flag")
        user.is_admin = is_admin

    db.commit()
    db.refresh(user)
    logger.info(f"Admin {admin.user_id} updated user {user_id}: banned={user.is_banned} admin={user.is_admin}")
    return user


def set_kyc_status(db: Session, admin: Actor, user_id: str, status: str, notes: str = None):
    require_admin(admin)
    if status not in KYC_STATUSES:
        raise ValidationError(f"KYC status must be one of {', '.join(KYC_STATUSES)}")
    user = get_or_404(db, user_id)

    user.kyc_status = status
    user.kyc_notes = notes
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {admin.user_id} set KYC of {user_id} to {status}")
    return user
