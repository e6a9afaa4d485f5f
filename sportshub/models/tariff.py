from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from sportshub.database import Base
from sportshub.models.base import BaseModel, UTCDateTime
from sportshub.models.enums import EnrollmentStatus

tariff_courts = Table(
    "tariff_courts",
    Base.metadata,
    Column("tariff_id", Integer, ForeignKey("tariffs.id", ondelete="CASCADE"), primary_key=True),
    Column("court_id", Integer, ForeignKey("courts.id", ondelete="CASCADE"), primary_key=True),
)


class Tariff(BaseModel):
    __tablename__ = "tariffs"

    segment = Column(String(30), nullable=False)  # JUNIOR, SENIOR, ...
    min_age = Column(Integer, nullable=False, default=0)
    max_age = Column(Integer)
    discount_percent = Column(Numeric(5, 2), nullable=False)
    description = Column(Text)
    requires_manual_approval = Column(Boolean, nullable=False, default=True)
    valid_from = Column(UTCDateTime, nullable=False)
    valid_until = Column(UTCDateTime)
    is_active = Column(Boolean, nullable=False, default=True)

    # Sin canchas asociadas la tarifa aplica a todas
    courts = relationship("Court", secondary=tariff_courts)
    enrollments = relationship("TariffEnrollment", back_populates="tariff")

    @property
    def court_ids(self):
        return [court.id for court in self.courts]


class TariffEnrollment(BaseModel):
    __tablename__ = "tariff_enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "tariff_id", name="uq_enrollment_user_tariff"),
    )

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tariff_id = Column(Integer, ForeignKey("tariffs.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default=EnrollmentStatus.PENDING.value)
    reviewed_by = Column(Integer, ForeignKey("users.id"))
    reviewed_at = Column(UTCDateTime)
    rejection_reason = Column(Text)

    user = relationship("User", back_populates="enrollments", foreign_keys=[user_id])
    tariff = relationship("Tariff", back_populates="enrollments")
