# sportshub/services/sweeper.py

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from sportshub.config import Settings, settings as default_settings
from sportshub.core.core import now_utc
from sportshub.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired: List[int] = field(default_factory=list)
    no_show: List[int] = field(default_factory=list)
    completed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.expired) + len(self.no_show) + len(self.completed)


class ReservationSweeper:
    """
    Convierte condiciones de tiempo en transiciones. No guarda estado entre
    invocaciones: lo dispara el planificador externo vía /cron/sweep.
    """

    def __init__(self, db: Session, settings: Settings = default_settings):
        self.reservations = ReservationService(db, settings)

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or now_utc()
        result = SweepResult()

        # Orden: expirar retenciones, luego no-shows, luego auto-completar
        result.expired, failed = self.reservations.expire_pending(now)
        result.failed.extend(failed)
        result.no_show, failed = self.reservations.mark_no_show(now)
        result.failed.extend(failed)
        result.completed, failed = self.reservations.auto_complete(now)
        result.failed.extend(failed)

        if result.total or result.failed:
            logger.info(
                f"🧹 [SWEEPER] {now.isoformat()}: {len(result.expired)} expiradas, "
                f"{len(result.no_show)} no-show, {len(result.completed)} completadas, "
                f"{len(result.failed)} con error"
            )
        return result
