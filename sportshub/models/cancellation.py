from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from sportshub.models.base import BaseModel


class Cancellation(BaseModel):
    __tablename__ = "cancellations"

    reason = Column(Text, nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, unique=True)
    # NULL cuando cancela el sistema (expiración automática)
    actor_id = Column(Integer, ForeignKey("users.id"))

    reservation = relationship("Reservation", back_populates="cancellation")
