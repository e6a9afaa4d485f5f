# sportshub/schemas/reservation.py

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from sportshub.models.enums import PaymentMethod


class ReservationCreate(BaseModel):
    court_id: int = Field(..., description="ID de la cancha")
    start_time: datetime = Field(..., description="Inicio (ISO 8601, se normaliza a UTC)")
    end_time: datetime = Field(..., description="Fin, exclusivo")
    payment_method: PaymentMethod
    sport: Optional[str] = Field(None, description="Deporte; por defecto el de la cancha")
    notes: Optional[str] = Field(None, max_length=500)
    # Solo staff puede reservar a nombre de otro usuario
    user_id: Optional[int] = None


class ReservationCancel(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v):
        v = v.strip()
        if len(v) < 3:
            raise ValueError("El motivo debe tener al menos 3 caracteres")
        return v


class ReservationResponse(BaseModel):
    id: int
    court_id: int
    user_id: int
    sport: str
    start_time: datetime
    end_time: datetime
    total_price: Decimal
    status: str
    payment_status: str
    payment_method: str
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    credits_used: Optional[Decimal] = None
    tariff_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BusySlot(BaseModel):
    start_time: datetime
    end_time: datetime
    status: str


class CourtAvailability(BaseModel):
    court_id: int
    day: date
    opening_time: time
    closing_time: time
    busy: List[BusySlot] = []


class SweepResponse(BaseModel):
    expired: List[int] = []
    no_show: List[int] = []
    completed: List[int] = []
    failed: List[int] = []
