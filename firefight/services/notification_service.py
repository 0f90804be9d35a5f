import logging

from sqlalchemy.orm import Session

from firefight.errors import NotFoundError
from firefight.models.notification import Notification

logger = logging.getLogger(__name__)

# event type -> (notification type, title)
EVENT_NOTIFICATIONS = {
    "payment_received": ("payment", "Payment received"),
    "match_result": ("match", "Match result verified"),
}


def create(db: Session, user_id: str, title: str, message: str, type_: str, data=None):
    notification = Notification(user_id=user_id, title=title, message=message, type=type_, data=data)
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def get_for_user(db: Session, user_id: str, limit: int = 50):
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )


def mark_read(db: Session, user_id: str, notification_id: str):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        raise NotFoundError(f"Notification {notification_id} not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def _message(event_type: str, payload: dict) -> str:
    if event_type == "payment_received":
        if payload.get("type") == "entry_fee":
            return f"Entry fee of {payload['amount']} confirmed."
        return f"{payload['amount']} was added to your wallet."
    return f"Your placement #{payload.get('placement')} was verified. Prize: {payload.get('prize')}."


def make_listener(session_factory):
    """Event listener that stores a notification for events addressed to a user.

    Runs after the publishing transaction committed, in its own session.
    """
    def listener(event_type: str, payload: dict):
        if event_type not in EVENT_NOTIFICATIONS or not payload.get("user_id"):
            return
        type_, title = EVENT_NOTIFICATIONS[event_type]

        db = session_factory()
        try:
            create(db, payload["user_id"], title, _message(event_type, payload), type_, data=payload)
        finally:
            db.close()

    return listener
