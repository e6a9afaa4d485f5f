from sqlalchemy import Boolean, Column, Date, Numeric, String
from sqlalchemy.orm import relationship

from sportshub.models.base import BaseModel


class User(BaseModel):
    __tablename__ = "users"

    name = Column(String(150), nullable=False)
    email = Column(String(150), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default="CLIENT")  # ADMIN, STAFF, CLIENT
    birth_date = Column(Date)
    # Saldo vivo; cada cambio queda reflejado en wallet_ledger.balance_after
    credits_balance = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    reservations = relationship("Reservation", back_populates="user")
    ledger_entries = relationship("WalletLedger", back_populates="user")
    enrollments = relationship("TariffEnrollment", back_populates="user", foreign_keys="TariffEnrollment.user_id")
    notifications = relationship("Notification", back_populates="user")
