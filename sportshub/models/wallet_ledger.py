from sqlalchemy import JSON, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from sportshub.models.base import BaseModel


class WalletLedger(BaseModel):
    """Movimiento inmutable del monedero. Las correcciones son movimientos nuevos."""
    __tablename__ = "wallet_ledger"

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False)  # CREDIT, DEBIT
    reason = Column(String(20), nullable=False)  # ORDER, TOPUP, REFUND, ADJUST
    credits = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    # 'metadata' está reservado por SQLAlchemy en las clases declarativas
    details = Column("metadata", JSON, nullable=False, default=dict)
    idempotency_key = Column(String(120), unique=True)

    user = relationship("User", back_populates="ledger_entries")
