# sportshub/schemas/outbox.py
#
# Un modelo por tipo de evento; el campo event_type es la etiqueta que
# discrimina la unión al leer el outbox.

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class ReservationCreated(BaseModel):
    event_type: Literal["RESERVATION_CREATED"] = "RESERVATION_CREATED"
    reservation_id: int
    user_id: int
    court_id: int
    start_time: datetime
    end_time: datetime
    total_price: Decimal
    payment_method: str
    expires_at: Optional[datetime] = None


class ReservationPaid(BaseModel):
    event_type: Literal["RESERVATION_PAID"] = "RESERVATION_PAID"
    reservation_id: int
    user_id: int
    method: str
    amount: Decimal
    provider: Optional[str] = None
    credits_used: Optional[Decimal] = None


class ReservationCheckedIn(BaseModel):
    event_type: Literal["RESERVATION_CHECKED_IN"] = "RESERVATION_CHECKED_IN"
    reservation_id: int
    user_id: int
    actor_id: Optional[int] = None
    check_in_time: datetime


class ReservationCheckedOut(BaseModel):
    event_type: Literal["RESERVATION_CHECKED_OUT"] = "RESERVATION_CHECKED_OUT"
    reservation_id: int
    user_id: int
    actor_id: Optional[int] = None
    check_out_time: datetime
    automatic: bool = False


class ReservationCancelled(BaseModel):
    event_type: Literal["RESERVATION_CANCELLED"] = "RESERVATION_CANCELLED"
    reservation_id: int
    user_id: int
    court_id: int
    reason: str
    actor_id: Optional[int] = None
    previous_status: str
    refunded: bool = False


class ReservationAutoCancelled(BaseModel):
    event_type: Literal["RESERVATION_AUTO_CANCELLED"] = "RESERVATION_AUTO_CANCELLED"
    reservation_id: int
    user_id: int
    court_id: int
    reason: str
    expired_at: datetime


class ReservationNoShow(BaseModel):
    event_type: Literal["RESERVATION_NO_SHOW"] = "RESERVATION_NO_SHOW"
    reservation_id: int
    user_id: int
    previous_status: str


class ReservationRefunded(BaseModel):
    event_type: Literal["RESERVATION_REFUNDED"] = "RESERVATION_REFUNDED"
    reservation_id: int
    user_id: int
    credits_refunded: Decimal
    reason: str
    actor_id: Optional[int] = None


class PaymentFailed(BaseModel):
    event_type: Literal["PAYMENT_FAILED"] = "PAYMENT_FAILED"
    reservation_id: int
    user_id: int
    order_reference: str
    response_code: Optional[str] = None


class LatePaymentRejected(BaseModel):
    event_type: Literal["LATE_PAYMENT_REJECTED"] = "LATE_PAYMENT_REJECTED"
    reservation_id: int
    user_id: int
    order_reference: str
    amount: Decimal


class WalletAdjusted(BaseModel):
    event_type: Literal["WALLET_ADJUSTED"] = "WALLET_ADJUSTED"
    user_id: int
    type: str
    reason: str
    credits: Decimal
    balance_after: Decimal
    actor_id: Optional[int] = None


OutboxPayload = Annotated[
    Union[
        ReservationCreated,
        ReservationPaid,
        ReservationCheckedIn,
        ReservationCheckedOut,
        ReservationCancelled,
        ReservationAutoCancelled,
        ReservationNoShow,
        ReservationRefunded,
        PaymentFailed,
        LatePaymentRejected,
        WalletAdjusted,
    ],
    Field(discriminator="event_type"),
]

outbox_payload_adapter = TypeAdapter(OutboxPayload)
