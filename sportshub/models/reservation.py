from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from sportshub.models.base import BaseModel, UTCDateTime
from sportshub.models.enums import PaymentStatus, ReservationStatus


class Reservation(BaseModel):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_reservation_window"),
    )

    court_id = Column(Integer, ForeignKey("courts.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sport = Column(String(50), nullable=False)
    # Intervalo semiabierto [start_time, end_time) en UTC
    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(20), nullable=False)
    check_in_time = Column(UTCDateTime)
    check_out_time = Column(UTCDateTime)
    # Solo mientras la reserva está PENDING
    expires_at = Column(UTCDateTime)
    paid_at = Column(UTCDateTime)
    credits_used = Column(Numeric(12, 2))
    tariff_id = Column(Integer, ForeignKey("tariffs.id"))
    notes = Column(Text)

    user = relationship("User", back_populates="reservations")
    court = relationship("Court", back_populates="reservations")
    payments = relationship("Payment", back_populates="reservation")
    cancellation = relationship("Cancellation", back_populates="reservation", uselist=False)

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes} - {note}" if self.notes else note
