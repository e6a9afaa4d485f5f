# sportshub/schemas/payment.py

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from sportshub.models.enums import LedgerReason, LedgerType, PaymentMethod


class PayWithCreditsRequest(BaseModel):
    idempotency_key: Optional[str] = Field(None, max_length=120, description="Clave para reintentos seguros")


class ManualPaymentRequest(BaseModel):
    method: PaymentMethod
    reference: Optional[str] = Field(None, max_length=120, description="Justificante (transferencia, ticket de caja...)")


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class AdjustCreditsRequest(BaseModel):
    user_id: int
    type: LedgerType
    amount: Decimal = Field(..., gt=0)
    reason: LedgerReason = LedgerReason.ADJUST
    idempotency_key: Optional[str] = Field(None, max_length=120)
    allow_negative: bool = False
    note: Optional[str] = Field(None, max_length=500)


class LedgerEntryResponse(BaseModel):
    id: int
    user_id: int
    type: str
    reason: str
    credits: Decimal
    balance_after: Decimal
    details: dict = Field(default_factory=dict, serialization_alias="metadata")
    idempotency_key: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WalletResponse(BaseModel):
    user_id: int
    balance: Decimal


class WebhookResult(BaseModel):
    order_reference: str
    reservation_id: Optional[int] = None
    outcome: str
    duplicate: bool = False


class RefundResult(BaseModel):
    reservation_id: int
    reservation_status: str
    payment_status: str
    credits_refunded: Decimal
    ledger_entry_id: Optional[int] = None
