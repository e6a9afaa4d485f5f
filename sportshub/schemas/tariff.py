# sportshub/schemas/tariff.py

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class TariffCreate(BaseModel):
    segment: str = Field(..., min_length=2, max_length=30, description="Segmento (JUNIOR, SENIOR, ...)")
    min_age: int = Field(0, ge=0)
    max_age: Optional[int] = Field(None, ge=0)
    discount_percent: Decimal = Field(..., ge=0, le=100)
    description: Optional[str] = None
    requires_manual_approval: bool = True
    valid_from: datetime
    valid_until: Optional[datetime] = None
    court_ids: List[int] = Field(default_factory=list, description="Vacío = todas las canchas")

    @model_validator(mode="after")
    def check_bounds(self):
        if self.max_age is not None and self.max_age < self.min_age:
            raise ValueError("max_age no puede ser menor que min_age")
        if self.valid_until is not None and self.valid_until <= self.valid_from:
            raise ValueError("valid_until debe ser posterior a valid_from")
        return self


class TariffResponse(BaseModel):
    id: int
    segment: str
    min_age: int
    max_age: Optional[int] = None
    discount_percent: Decimal
    description: Optional[str] = None
    requires_manual_approval: bool
    valid_from: datetime
    valid_until: Optional[datetime] = None
    is_active: bool
    court_ids: List[int] = []

    class Config:
        from_attributes = True


class EnrollmentRequest(BaseModel):
    # Solo staff puede inscribir a otro usuario
    user_id: Optional[int] = None


class EnrollmentReject(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class EnrollmentResponse(BaseModel):
    id: int
    user_id: int
    tariff_id: int
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
