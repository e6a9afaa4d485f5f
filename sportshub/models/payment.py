from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from sportshub.models.base import BaseModel
from sportshub.models.enums import GatewayPaymentStatus


class Payment(BaseModel):
    __tablename__ = "payments"

    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String(20), nullable=False, default="REDSYS")
    # Ds_Order de Redsys (4-12 caracteres, los 4 primeros numéricos)
    order_reference = Column(String(12), unique=True, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=GatewayPaymentStatus.PENDING.value)
    response_code = Column(String(8))
    authorisation_code = Column(String(20))

    reservation = relationship("Reservation", back_populates="payments")


class WebhookEvent(BaseModel):
    """Una fila por notificación de pasarela aplicada; evita aplicar dos veces un reenvío."""
    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("provider", "event_key", name="uq_webhook_event"),
    )

    provider = Column(String(20), nullable=False)
    event_key = Column(String(100), nullable=False)
    order_reference = Column(String(12), nullable=False)
    outcome = Column(String(20), nullable=False)
