# sportshub/services/tariff_service.py

import logging
from datetime import datetime
from typing import List, Optional

import pytz
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sportshub.config import Settings, settings as default_settings
from sportshub.core.core import now_utc
from sportshub.core.exceptions import ConflictError, NotFound, ValidationFailed
from sportshub.database import transaction
from sportshub.models.court import Court
from sportshub.models.enums import EnrollmentStatus
from sportshub.models.tariff import Tariff, TariffEnrollment
from sportshub.models.user import User
from sportshub.schemas.tariff import TariffCreate
from sportshub.services.pricing_service import tariff_matches_age

logger = logging.getLogger(__name__)


class TariffService:
    def __init__(self, db: Session, settings: Settings = default_settings):
        self.db = db
        self.settings = settings
        self.timezone = pytz.timezone(settings.CENTER_TIMEZONE)

    def get_tariff(self, tariff_id: int) -> Tariff:
        tariff = self.db.query(Tariff).filter(Tariff.id == tariff_id).first()
        if not tariff:
            raise NotFound(f"Tarifa {tariff_id} no encontrada")
        return tariff

    def list_tariffs(self, only_active: bool = True) -> List[Tariff]:
        query = self.db.query(Tariff)
        if only_active:
            query = query.filter(Tariff.is_active.is_(True))
        return query.order_by(Tariff.discount_percent.desc(), Tariff.id).all()

    def create_tariff(self, data: TariffCreate) -> Tariff:
        with transaction(self.db):
            courts = []
            if data.court_ids:
                courts = self.db.query(Court).filter(Court.id.in_(data.court_ids)).all()
                missing = set(data.court_ids) - {c.id for c in courts}
                if missing:
                    raise NotFound(f"Canchas no encontradas: {sorted(missing)}")

            tariff = Tariff(
                segment=data.segment.upper(),
                min_age=data.min_age,
                max_age=data.max_age,
                discount_percent=data.discount_percent,
                description=data.description,
                requires_manual_approval=data.requires_manual_approval,
                valid_from=data.valid_from,
                valid_until=data.valid_until,
                is_active=True,
            )
            tariff.courts = courts
            self.db.add(tariff)

        logger.info(f"🏷️ [TARIFAS] Tarifa {tariff.id} ({tariff.segment}, {tariff.discount_percent}%) creada")
        return tariff

    def deactivate_tariff(self, tariff_id: int) -> Tariff:
        with transaction(self.db):
            tariff = self.get_tariff(tariff_id)
            tariff.is_active = False
        logger.info(f"🏷️ [TARIFAS] Tarifa {tariff_id} desactivada")
        return tariff

    def enroll(self, user_id: int, tariff_id: int, now: Optional[datetime] = None) -> TariffEnrollment:
        """
        Inscribe al usuario verificando la edad. Si la tarifa no requiere
        revisión manual la inscripción queda APROBADA directamente.
        """
        now = now or now_utc()
        try:
            with transaction(self.db):
                tariff = self.get_tariff(tariff_id)
                if not tariff.is_active:
                    raise ValidationFailed("La tarifa no está activa")
                if tariff.valid_until is not None and tariff.valid_until < now:
                    raise ValidationFailed("La tarifa ya no está vigente")

                user = self.db.query(User).filter(User.id == user_id).first()
                if not user:
                    raise NotFound(f"Usuario {user_id} no encontrado")
                if not tariff_matches_age(tariff, user.birth_date, now.astimezone(self.timezone).date()):
                    raise ValidationFailed("La edad del usuario no cumple los requisitos de la tarifa")

                enrollment = TariffEnrollment(user_id=user.id, tariff_id=tariff.id)
                if tariff.requires_manual_approval:
                    enrollment.status = EnrollmentStatus.PENDING.value
                else:
                    enrollment.status = EnrollmentStatus.APPROVED.value
                    enrollment.reviewed_at = now
                self.db.add(enrollment)
                self.db.flush()
        except IntegrityError:
            raise ConflictError("El usuario ya tiene una inscripción en esta tarifa")

        logger.info(f"📝 [TARIFAS] Usuario {user_id} inscrito en tarifa {tariff_id} ({enrollment.status})")
        return enrollment

    def _pending_enrollment(self, enrollment_id: int) -> TariffEnrollment:
        enrollment = (
            self.db.query(TariffEnrollment)
            .filter(TariffEnrollment.id == enrollment_id)
            .with_for_update()
            .first()
        )
        if not enrollment:
            raise NotFound(f"Inscripción {enrollment_id} no encontrada")
        if enrollment.status != EnrollmentStatus.PENDING.value:
            raise ConflictError(f"La inscripción ya fue revisada ({enrollment.status})")
        return enrollment

    def approve_enrollment(self, enrollment_id: int, reviewer_id: int, now: Optional[datetime] = None) -> TariffEnrollment:
        now = now or now_utc()
        with transaction(self.db):
            enrollment = self._pending_enrollment(enrollment_id)
            enrollment.status = EnrollmentStatus.APPROVED.value
            enrollment.reviewed_by = reviewer_id
            enrollment.reviewed_at = now
        logger.info(f"✅ [TARIFAS] Inscripción {enrollment_id} aprobada por {reviewer_id}")
        return enrollment

    def reject_enrollment(
        self, enrollment_id: int, reviewer_id: int, reason: str, now: Optional[datetime] = None
    ) -> TariffEnrollment:
        now = now or now_utc()
        with transaction(self.db):
            enrollment = self._pending_enrollment(enrollment_id)
            enrollment.status = EnrollmentStatus.REJECTED.value
            enrollment.reviewed_by = reviewer_id
            enrollment.reviewed_at = now
            enrollment.rejection_reason = reason
        logger.info(f"⛔ [TARIFAS] Inscripción {enrollment_id} rechazada por {reviewer_id}: {reason}")
        return enrollment
