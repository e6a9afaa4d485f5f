from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sportshub.core.core import allowed_roles
from sportshub.core.exceptions import NotOwner
from sportshub.core.security import get_current_user, require_staff
from sportshub.database import get_db
from sportshub.models.enums import STAFF_ROLES
from sportshub.models.user import User
from sportshub.schemas.reservation import (
    CourtAvailability,
    ReservationCancel,
    ReservationCreate,
    ReservationResponse,
)
from sportshub.services.reservation_service import ReservationService

router = APIRouter()


def _is_staff(user: User) -> bool:
    return allowed_roles(user, list(STAFF_ROLES))


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    data: ReservationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Crea una reserva PENDING (o PAID si el precio es cero)."""
    user_id = current_user.id
    if data.user_id is not None and data.user_id != current_user.id:
        if not _is_staff(current_user):
            raise NotOwner("Solo el staff puede reservar a nombre de otro usuario")
        user_id = data.user_id

    return ReservationService(db).create_reservation(
        court_id=data.court_id,
        user_id=user_id,
        start=data.start_time,
        end=data.end_time,
        payment_method=data.payment_method,
        sport=data.sport,
        notes=data.notes,
    )


@router.get("/", response_model=List[ReservationResponse])
def list_reservations(
    user_id: Optional[int] = None,
    court_id: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # Un cliente solo ve sus reservas
    if not _is_staff(current_user):
        user_id = current_user.id
    return ReservationService(db).list_reservations(
        user_id=user_id, court_id=court_id, status=status_filter, limit=limit
    )


@router.get("/courts/{court_id}/availability", response_model=CourtAvailability)
def court_availability(
    court_id: int,
    day: date,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ReservationService(db).court_availability(court_id, day)


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reservation = ReservationService(db).get_reservation(reservation_id)
    if reservation.user_id != current_user.id and not _is_staff(current_user):
        raise NotOwner()
    return reservation


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    data: ReservationCancel,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Cancela la reserva; si estaba pagada se reembolsa en créditos."""
    return ReservationService(db).cancel(reservation_id, data.reason, actor_id=current_user.id)


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse)
def check_in(
    reservation_id: int,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return ReservationService(db).check_in(reservation_id, actor_id=staff.id)


@router.post("/{reservation_id}/check-out", response_model=ReservationResponse)
def check_out(
    reservation_id: int,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return ReservationService(db).check_out(reservation_id, actor_id=staff.id)
