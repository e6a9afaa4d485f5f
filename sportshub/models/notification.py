from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from sportshub.models.base import BaseModel


class Notification(BaseModel):
    __tablename__ = "notifications"

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)  # RESERVATION, PAYMENT, WALLET
    read = Column(Boolean, nullable=False, default=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # Evento de outbox que originó la notificación
    outbox_event_id = Column(Integer, ForeignKey("outbox_events.id"), unique=True)

    user = relationship("User", back_populates="notifications")
