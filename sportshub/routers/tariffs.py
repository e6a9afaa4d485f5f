from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sportshub.core.security import ensure_self_or_staff, get_current_user, require_admin, require_staff
from sportshub.database import get_db
from sportshub.models.user import User
from sportshub.schemas.tariff import (
    EnrollmentReject,
    EnrollmentRequest,
    EnrollmentResponse,
    TariffCreate,
    TariffResponse,
)
from sportshub.services.tariff_service import TariffService

router = APIRouter()


@router.get("/", response_model=List[TariffResponse])
def list_tariffs(db: Session = Depends(get_db)):
    return TariffService(db).list_tariffs()


@router.post("/", response_model=TariffResponse, status_code=201)
def create_tariff(data: TariffCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return TariffService(db).create_tariff(data)


@router.delete("/{tariff_id}", response_model=TariffResponse)
def deactivate_tariff(tariff_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    """Desactiva la tarifa; las inscripciones se conservan para auditoría."""
    return TariffService(db).deactivate_tariff(tariff_id)


@router.post("/{tariff_id}/enrollments", response_model=EnrollmentResponse, status_code=201)
def enroll(
    tariff_id: int,
    data: EnrollmentRequest = EnrollmentRequest(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = data.user_id or current_user.id
    ensure_self_or_staff(current_user, user_id)
    return TariffService(db).enroll(user_id, tariff_id)


@router.post("/enrollments/{enrollment_id}/approve", response_model=EnrollmentResponse)
def approve_enrollment(enrollment_id: int, db: Session = Depends(get_db), staff: User = Depends(require_staff)):
    return TariffService(db).approve_enrollment(enrollment_id, reviewer_id=staff.id)


@router.post("/enrollments/{enrollment_id}/reject", response_model=EnrollmentResponse)
def reject_enrollment(
    enrollment_id: int,
    data: EnrollmentReject,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return TariffService(db).reject_enrollment(enrollment_id, reviewer_id=staff.id, reason=data.reason)
