"""
Identity seam. The session provider in front of this service resolves
the caller and forwards it as ``X-User-Id``; the id is trusted as-is.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from firefight.database import get_db
from firefight.errors import Unauthorized
from firefight.models.user import User


@dataclass(frozen=True)
class Actor:
    user_id: str
    is_admin: bool = False
    is_banned: bool = False


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, is_admin=bool(user.is_admin), is_banned=bool(user.is_banned))


def require_admin(actor: Actor) -> None:
    """The one capability check in front of every admin-only operation."""
    if actor is None or not actor.is_admin:
        raise Unauthorized("Admin access required")


def require_active(actor: Actor) -> None:
    if actor.is_banned:
        raise Unauthorized("Account is banned")


def get_current_actor(
    x_user_id: str = Header(None),
    db: Session = Depends(get_db),
) -> Actor:
    if not x_user_id:
        raise HTTPException(401, "Not authenticated")

    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        raise HTTPException(401, "Unknown user")
    return actor_for(user)


def get_admin_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    require_admin(actor)
    return actor
