from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sportshub.core.exceptions import NotFound, NotOwner
from sportshub.core.security import ensure_self_or_staff, get_current_user
from sportshub.database import get_db, transaction
from sportshub.models.notification import Notification
from sportshub.models.user import User
from sportshub.schemas.notification import NotificationResponse

router = APIRouter()


@router.get("/users/{user_id}", response_model=List[NotificationResponse])
def get_user_notifications(
    user_id: int,
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_self_or_staff(current_user, user_id)
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with transaction(db):
        notification = db.query(Notification).filter(Notification.id == notification_id).first()
        if not notification:
            raise NotFound("Notificación no encontrada")
        if notification.user_id != current_user.id:
            raise NotOwner("La notificación pertenece a otro usuario")
        notification.read = True
    return notification
