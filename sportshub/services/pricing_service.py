# sportshub/services/pricing_service.py

import logging
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import pytz
from sqlalchemy.orm import Session

from sportshub.config import Settings, settings as default_settings
from sportshub.core.exceptions import NoPricingConfigured
from sportshub.models.court import Court, CourtRate
from sportshub.models.enums import EnrollmentStatus, RatePeriod
from sportshub.models.tariff import Tariff, TariffEnrollment
from sportshub.models.user import User
from sportshub.schemas.pricing import PriceQuote

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def age_on(birth_date: date, reference: date) -> int:
    years = reference.year - birth_date.year
    if (reference.month, reference.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def tariff_matches_age(tariff: Tariff, birth_date: Optional[date], reference: date) -> bool:
    if birth_date is None:
        # Sin fecha de nacimiento solo aplican tarifas sin límites de edad
        return (tariff.min_age or 0) == 0 and tariff.max_age is None
    age = age_on(birth_date, reference)
    if age < (tariff.min_age or 0):
        return False
    if tariff.max_age is not None and age > tariff.max_age:
        return False
    return True


def _overlap_minutes(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> int:
    start = max(a_start, b_start)
    end = min(a_end, b_end)
    if end <= start:
        return 0
    return int((end - start).total_seconds() // 60)


class PricingService:
    """Calcula el precio de una reserva: tarifa base día/noche y mejor descuento aprobado."""

    def __init__(self, db: Session, settings: Settings = default_settings):
        self.db = db
        self.settings = settings
        self.timezone = pytz.timezone(settings.CENTER_TIMEZONE)

    def split_day_night(self, court: Court, start: datetime, end: datetime):
        """Minutos diurnos y nocturnos de [start, end) en la hora local del centro."""
        local_start = start.astimezone(self.timezone).replace(tzinfo=None)
        local_end = end.astimezone(self.timezone).replace(tzinfo=None)
        total_minutes = int((end - start).total_seconds() // 60)

        day_minutes = 0
        current = local_start.date()
        while current <= local_end.date():
            day_window_start = datetime.combine(current, court.day_starts_at)
            day_window_end = datetime.combine(current, court.night_starts_at)
            day_minutes += _overlap_minutes(local_start, local_end, day_window_start, day_window_end)
            current += timedelta(days=1)

        day_minutes = min(day_minutes, total_minutes)
        return day_minutes, total_minutes - day_minutes

    def base_price(self, court: Court, sport: str, start: datetime, end: datetime):
        day_minutes, night_minutes = self.split_day_night(court, start, end)

        rates = {
            rate.period: Decimal(rate.price_per_hour)
            for rate in self.db.query(CourtRate).filter(
                CourtRate.court_id == court.id,
                CourtRate.sport == sport,
            )
        }

        base = Decimal("0")
        for period, minutes in ((RatePeriod.DAY.value, day_minutes), (RatePeriod.NIGHT.value, night_minutes)):
            if minutes == 0:
                continue
            if period not in rates:
                raise NoPricingConfigured(
                    f"No hay tarifa {period} para la cancha {court.id} y el deporte '{sport}'"
                )
            base += rates[period] * Decimal(minutes) / Decimal(60)

        return to_money(base), day_minutes, night_minutes

    def best_tariff(self, user_id: int, court_id: int, reference: datetime) -> Optional[Tariff]:
        """Tarifa APROBADA con mayor descuento vigente en la fecha de referencia."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None

        enrollments = (
            self.db.query(TariffEnrollment)
            .join(Tariff, TariffEnrollment.tariff_id == Tariff.id)
            .filter(
                TariffEnrollment.user_id == user_id,
                TariffEnrollment.status == EnrollmentStatus.APPROVED.value,
                Tariff.is_active.is_(True),
                Tariff.valid_from <= reference,
            )
            .all()
        )

        reference_date = reference.astimezone(self.timezone).date()
        best = None
        for enrollment in enrollments:
            tariff = enrollment.tariff
            if tariff.valid_until is not None and tariff.valid_until < reference:
                continue
            if tariff.courts and court_id not in [c.id for c in tariff.courts]:
                continue
            if not tariff_matches_age(tariff, user.birth_date, reference_date):
                continue
            if best is None or Decimal(tariff.discount_percent) > Decimal(best.discount_percent):
                best = tariff
        return best

    def quote(self, court: Court, sport: str, start: datetime, end: datetime, user_id: int) -> PriceQuote:
        base, day_minutes, night_minutes = self.base_price(court, sport, start, end)

        tariff = self.best_tariff(user_id, court.id, start)
        discount_percent = Decimal(tariff.discount_percent) if tariff else Decimal("0")

        total = base * (Decimal(100) - discount_percent) / Decimal(100)
        if total < 0:
            total = Decimal("0")

        quote = PriceQuote(
            base_price=base,
            day_minutes=day_minutes,
            night_minutes=night_minutes,
            discount_percent=discount_percent,
            tariff_id=tariff.id if tariff else None,
            total=to_money(total),
        )
        logger.debug(f"💰 [PRICING] Cancha {court.id} {start.isoformat()} -> {quote.total} (tarifa {quote.tariff_id})")
        return quote
