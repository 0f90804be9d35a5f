from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from firefight.auth import Actor, get_current_actor
from firefight.database import get_db
from firefight.schemas import NotificationOut
from firefight.services import notification_service

router = APIRouter(prefix="/api/notifications")


@router.get("", response_model=List[NotificationOut])
def list_notifications(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return notification_service.get_for_user(db, actor.user_id)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: str, actor: Actor = Depends(get_current_actor),
              db: Session = Depends(get_db)):
    return notification_service.mark_read(db, actor.user_id, notification_id)
