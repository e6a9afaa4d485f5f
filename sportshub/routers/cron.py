from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sportshub.core.security import require_cron
from sportshub.database import get_db
from sportshub.schemas.notification import OutboxRunResponse
from sportshub.schemas.reservation import SweepResponse
from sportshub.services.outbox import process_outbox_notifications
from sportshub.services.sweeper import ReservationSweeper

router = APIRouter(dependencies=[Depends(require_cron)])


@router.post("/sweep", response_model=SweepResponse)
def run_sweep(db: Session = Depends(get_db)):
    """Expira retenciones, marca no-shows y auto-completa reservas en curso."""
    return SweepResponse(**asdict(ReservationSweeper(db).run()))


@router.post("/outbox/notifications", response_model=OutboxRunResponse)
def run_outbox_notifications(limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_db)):
    return process_outbox_notifications(db, limit=limit)
