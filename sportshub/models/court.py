from datetime import time

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Time, UniqueConstraint
from sqlalchemy.orm import relationship

from sportshub.models.base import BaseModel


class Court(BaseModel):
    __tablename__ = "courts"

    name = Column(String(100), nullable=False)
    sport = Column(String(50), nullable=False)
    # Horario local del centro
    opening_time = Column(Time, nullable=False)
    closing_time = Column(Time, nullable=False)
    day_starts_at = Column(Time, nullable=False, default=time(6, 0))
    night_starts_at = Column(Time, nullable=False, default=time(18, 0))
    is_active = Column(Boolean, nullable=False, default=True)

    rates = relationship("CourtRate", back_populates="court", cascade="all, delete-orphan")
    reservations = relationship("Reservation", back_populates="court")


class CourtRate(BaseModel):
    __tablename__ = "court_rates"
    __table_args__ = (
        UniqueConstraint("court_id", "sport", "period", name="uq_court_rate_period"),
    )

    court_id = Column(Integer, ForeignKey("courts.id", ondelete="CASCADE"), nullable=False, index=True)
    sport = Column(String(50), nullable=False)
    period = Column(String(10), nullable=False)  # DAY, NIGHT
    price_per_hour = Column(Numeric(10, 2), nullable=False)

    court = relationship("Court", back_populates="rates")
