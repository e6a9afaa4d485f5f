# sportshub/services/reservation_service.py

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

import pytz
from sqlalchemy.orm import Session

from sportshub.config import Settings, settings as default_settings
from sportshub.core.core import allowed_roles, ensure_utc, now_utc
from sportshub.core.exceptions import (
    AlreadyCompleted,
    AlreadyStarted,
    InvalidTransition,
    InvalidWindow,
    NotFound,
    NotInProgress,
    NotOwner,
    NotPaid,
    NotPending,
    OutsideWindow,
    SlotUnavailable,
    ValidationFailed,
)
from sportshub.database import transaction
from sportshub.models.cancellation import Cancellation
from sportshub.models.court import Court
from sportshub.models.enums import (
    ACTIVE_STATUSES,
    ASYNC_SETTLEMENT_METHODS,
    STAFF_ROLES,
    TERMINAL_STATUSES,
    PaymentMethod,
    PaymentStatus,
    ReservationStatus,
)
from sportshub.models.reservation import Reservation
from sportshub.models.user import User
from sportshub.schemas.outbox import (
    ReservationAutoCancelled,
    ReservationCancelled,
    ReservationCheckedIn,
    ReservationCheckedOut,
    ReservationCreated,
    ReservationNoShow,
    ReservationPaid,
)
from sportshub.schemas.reservation import BusySlot, CourtAvailability
from sportshub.services import outbox
from sportshub.services.pricing_service import PricingService

logger = logging.getLogger(__name__)

S = ReservationStatus

# Grafo único de transiciones legales
ALLOWED_TRANSITIONS = {
    S.PENDING.value: {S.PAID.value, S.CANCELLED.value, S.NO_SHOW.value},
    S.PAID.value: {S.IN_PROGRESS.value, S.CANCELLED.value, S.NO_SHOW.value},
    S.IN_PROGRESS.value: {S.COMPLETED.value, S.CANCELLED.value},
    S.COMPLETED.value: set(),
    S.CANCELLED.value: set(),
    S.NO_SHOW.value: set(),
}

AUTO_CANCEL_NOTE = "Cancelada automáticamente: tiempo de retención agotado sin pago"


def transition(reservation: Reservation, target: str) -> None:
    current = reservation.status
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Transición no permitida: {current} -> {target}")
    reservation.status = target


def hold_deadline(reservation: Reservation, settings: Settings = default_settings) -> Optional[datetime]:
    """
    Momento en que expira la retención de una reserva PENDING. Los métodos de
    liquidación asíncrona (transferencia, en sitio, cortesía) reciben un margen extra.
    """
    if reservation.expires_at is None:
        return None
    deadline = ensure_utc(reservation.expires_at)
    if reservation.payment_method in ASYNC_SETTLEMENT_METHODS:
        deadline += timedelta(minutes=settings.ASYNC_SETTLEMENT_GRACE_MINUTES)
    return deadline


def is_hold_expired(reservation: Reservation, now: datetime, settings: Settings = default_settings) -> bool:
    deadline = hold_deadline(reservation, settings)
    return deadline is not None and deadline <= now


class ReservationService:
    def __init__(self, db: Session, settings: Settings = default_settings):
        self.db = db
        self.settings = settings
        self.timezone = pytz.timezone(settings.CENTER_TIMEZONE)

    # =======================================================
    # LECTURA
    # =======================================================

    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not reservation:
            raise NotFound(f"Reserva {reservation_id} no encontrada")
        return reservation

    def list_reservations(
        self,
        user_id: Optional[int] = None,
        court_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Reservation]:
        query = self.db.query(Reservation)
        if user_id is not None:
            query = query.filter(Reservation.user_id == user_id)
        if court_id is not None:
            query = query.filter(Reservation.court_id == court_id)
        if status:
            query = query.filter(Reservation.status == status.upper())
        return query.order_by(Reservation.start_time.desc()).limit(limit).all()

    def court_availability(self, court_id: int, day: date) -> CourtAvailability:
        """Franjas ocupadas (reservas no finales) de una cancha en un día local del centro."""
        court = self.db.query(Court).filter(Court.id == court_id).first()
        if not court:
            raise NotFound(f"Cancha {court_id} no encontrada")

        day_start = self.timezone.localize(datetime.combine(day, time.min)).astimezone(pytz.utc)
        day_end = self.timezone.localize(datetime.combine(day + timedelta(days=1), time.min)).astimezone(pytz.utc)

        busy = (
            self.db.query(Reservation)
            .filter(
                Reservation.court_id == court_id,
                Reservation.status.in_(ACTIVE_STATUSES),
                Reservation.start_time < day_end,
                Reservation.end_time > day_start,
            )
            .order_by(Reservation.start_time)
            .all()
        )
        return CourtAvailability(
            court_id=court.id,
            day=day,
            opening_time=court.opening_time,
            closing_time=court.closing_time,
            busy=[BusySlot(start_time=r.start_time, end_time=r.end_time, status=r.status) for r in busy],
        )

    # =======================================================
    # CREACIÓN
    # =======================================================

    def validate_window(self, court: Court, start: datetime, end: datetime, now: datetime) -> None:
        if start >= end:
            raise InvalidWindow("La hora de inicio debe ser anterior a la hora de fin")
        if start < now:
            raise InvalidWindow("No se puede reservar en el pasado")

        minutes = (end - start).total_seconds() / 60
        if minutes < self.settings.MIN_RESERVATION_MINUTES or minutes > self.settings.MAX_RESERVATION_MINUTES:
            raise InvalidWindow(
                f"La duración debe estar entre {self.settings.MIN_RESERVATION_MINUTES} "
                f"y {self.settings.MAX_RESERVATION_MINUTES} minutos"
            )

        local_start = start.astimezone(self.timezone).replace(tzinfo=None)
        local_end = end.astimezone(self.timezone).replace(tzinfo=None)
        opening = datetime.combine(local_start.date(), court.opening_time)
        # Cierre a las 00:00 significa medianoche del mismo día
        if court.closing_time == time(0, 0):
            closing = datetime.combine(local_start.date() + timedelta(days=1), time.min)
        else:
            closing = datetime.combine(local_start.date(), court.closing_time)

        if local_start < opening or local_end > closing:
            raise InvalidWindow(
                f"Fuera del horario de la cancha ({court.opening_time.strftime('%H:%M')}"
                f"-{court.closing_time.strftime('%H:%M')})"
            )

    def find_overlap(self, court_id: int, start: datetime, end: datetime) -> Optional[Reservation]:
        # [start, end) solapa con [s, e) si start < e y end > s
        return (
            self.db.query(Reservation)
            .filter(
                Reservation.court_id == court_id,
                Reservation.status.in_(ACTIVE_STATUSES),
                Reservation.start_time < end,
                Reservation.end_time > start,
            )
            .first()
        )

    def create_reservation(
        self,
        court_id: int,
        user_id: int,
        start: datetime,
        end: datetime,
        payment_method: str,
        sport: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        """
        Crea una reserva PENDING con retención temporal.

        La fila de la cancha se bloquea (SELECT ... FOR UPDATE) antes de buscar
        solapes, de modo que dos creaciones concurrentes sobre la misma cancha
        se serializan: la segunda ve la reserva de la primera y falla con
        SlotUnavailable.
        """
        now = now or now_utc()
        start = ensure_utc(start)
        end = ensure_utc(end)
        payment_method = str(getattr(payment_method, "value", payment_method)).upper()
        if payment_method not in [m.value for m in PaymentMethod]:
            raise ValidationFailed(f"Método de pago no soportado: {payment_method}")

        with transaction(self.db):
            court = self.db.query(Court).filter(Court.id == court_id).with_for_update().first()
            if not court or not court.is_active:
                raise NotFound(f"Cancha {court_id} no encontrada o inactiva")
            if not self.db.query(User).filter(User.id == user_id).first():
                raise NotFound(f"Usuario {user_id} no encontrado")

            self.validate_window(court, start, end, now)

            overlap = self.find_overlap(court.id, start, end)
            if overlap:
                logger.warning(f"⛔ [RESERVAS] Solape en cancha {court.id} con la reserva {overlap.id}")
                raise SlotUnavailable()

            sport = sport or court.sport
            quote = PricingService(self.db, self.settings).quote(court, sport, start, end, user_id)

            reservation = Reservation(
                court_id=court.id,
                user_id=user_id,
                sport=sport,
                start_time=start,
                end_time=end,
                total_price=quote.total,
                status=S.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=payment_method,
                expires_at=now + timedelta(minutes=self.settings.PENDING_HOLD_MINUTES),
                tariff_id=quote.tariff_id,
                notes=notes,
            )

            # Precio cero: no hay nada que cobrar, se confirma directamente
            if quote.total == 0:
                reservation.status = S.PAID.value
                reservation.payment_status = PaymentStatus.PAID.value
                reservation.paid_at = now
                reservation.expires_at = None

            self.db.add(reservation)
            self.db.flush()

            outbox.emit(self.db, ReservationCreated(
                reservation_id=reservation.id,
                user_id=user_id,
                court_id=court.id,
                start_time=start,
                end_time=end,
                total_price=reservation.total_price,
                payment_method=payment_method,
                expires_at=reservation.expires_at,
            ))
            if reservation.status == S.PAID.value:
                outbox.emit(self.db, ReservationPaid(
                    reservation_id=reservation.id,
                    user_id=user_id,
                    method=payment_method,
                    amount=reservation.total_price,
                ))

        logger.info(
            f"✅ [RESERVAS] Reserva {reservation.id} creada ({reservation.status}) cancha {court_id} "
            f"{start.isoformat()} - {end.isoformat()} por {reservation.total_price}"
        )
        return reservation

    # =======================================================
    # TRANSICIONES
    # =======================================================

    def lock(self, reservation_id: int) -> Reservation:
        reservation = (
            self.db.query(Reservation)
            .filter(Reservation.id == reservation_id)
            .with_for_update()
            .first()
        )
        if not reservation:
            raise NotFound(f"Reserva {reservation_id} no encontrada")
        return reservation

    def mark_paid(self, reservation: Reservation, method: str, now: datetime) -> None:
        """PENDING -> PAID. Se ejecuta dentro de la transacción del llamador."""
        if reservation.status != S.PENDING.value:
            raise NotPending(f"La reserva {reservation.id} está en estado {reservation.status}")
        transition(reservation, S.PAID.value)
        reservation.payment_status = PaymentStatus.PAID.value
        reservation.payment_method = method
        reservation.paid_at = now
        reservation.expires_at = None

    def check_in(self, reservation_id: int, actor_id: Optional[int] = None, now: Optional[datetime] = None) -> Reservation:
        now = now or now_utc()
        with transaction(self.db):
            reservation = self.lock(reservation_id)

            if reservation.status == S.IN_PROGRESS.value:
                raise AlreadyStarted()
            if reservation.status == S.COMPLETED.value:
                raise AlreadyCompleted()
            if reservation.status in TERMINAL_STATUSES:
                raise InvalidTransition(f"La reserva {reservation.id} está {reservation.status}")
            if reservation.status != S.PAID.value:
                raise NotPaid("La reserva debe estar pagada para hacer check-in")

            tolerance = timedelta(minutes=self.settings.CHECKIN_TOLERANCE_MINUTES)
            if now < reservation.start_time - tolerance or now > reservation.end_time:
                raise OutsideWindow(
                    f"El check-in se permite desde {self.settings.CHECKIN_TOLERANCE_MINUTES} minutos "
                    f"antes del inicio hasta el fin de la reserva"
                )

            transition(reservation, S.IN_PROGRESS.value)
            reservation.check_in_time = now
            outbox.emit(self.db, ReservationCheckedIn(
                reservation_id=reservation.id,
                user_id=reservation.user_id,
                actor_id=actor_id,
                check_in_time=now,
            ))

        logger.info(f"🟢 [RESERVAS] Check-in reserva {reservation.id} por actor {actor_id}")
        return reservation

    def check_out(self, reservation_id: int, actor_id: Optional[int] = None, now: Optional[datetime] = None) -> Reservation:
        now = now or now_utc()
        with transaction(self.db):
            reservation = self.lock(reservation_id)
            if reservation.status != S.IN_PROGRESS.value:
                raise NotInProgress(f"La reserva {reservation.id} está en estado {reservation.status}")

            transition(reservation, S.COMPLETED.value)
            reservation.check_out_time = now
            outbox.emit(self.db, ReservationCheckedOut(
                reservation_id=reservation.id,
                user_id=reservation.user_id,
                actor_id=actor_id,
                check_out_time=now,
            ))

        logger.info(f"🏁 [RESERVAS] Check-out reserva {reservation.id}")
        return reservation

    def cancel(self, reservation_id: int, reason: str, actor_id: int, now: Optional[datetime] = None) -> Reservation:
        """
        Cancela una reserva no final. Solo el dueño o el staff. Si estaba
        pagada, el importe se devuelve en créditos en la misma transacción.
        """
        now = now or now_utc()
        if not reason or not reason.strip():
            raise ValidationFailed("El motivo de cancelación es obligatorio")

        with transaction(self.db):
            reservation = self.lock(reservation_id)
            actor = self.db.query(User).filter(User.id == actor_id).first()
            if not actor:
                raise NotFound(f"Usuario {actor_id} no encontrado")
            if reservation.user_id != actor.id and not allowed_roles(actor, list(STAFF_ROLES)):
                logger.warning(f"🚫 [RESERVAS] Usuario {actor.id} intentó cancelar la reserva {reservation.id}")
                raise NotOwner()
            if reservation.status in TERMINAL_STATUSES:
                raise InvalidTransition(f"La reserva {reservation.id} ya está {reservation.status}")

            self.apply_cancel(reservation, reason.strip(), actor.id, now)

        logger.info(f"❌ [RESERVAS] Reserva {reservation.id} cancelada por {actor_id}: {reason}")
        return reservation

    def apply_cancel(self, reservation: Reservation, reason: str, actor_id: Optional[int], now: datetime) -> bool:
        """Cancela dentro de la transacción del llamador. Devuelve True si hubo reembolso."""
        from sportshub.services.payment_service import PaymentService

        previous_status = reservation.status
        was_paid = reservation.payment_status == PaymentStatus.PAID.value

        transition(reservation, S.CANCELLED.value)
        reservation.expires_at = None
        reservation.append_note(f"Cancelada: {reason}")
        self.db.add(Cancellation(reservation_id=reservation.id, reason=reason, actor_id=actor_id))

        if was_paid:
            PaymentService(self.db, self.settings).apply_refund(reservation, reason, actor_id)

        outbox.emit(self.db, ReservationCancelled(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            court_id=reservation.court_id,
            reason=reason,
            actor_id=actor_id,
            previous_status=previous_status,
            refunded=was_paid,
        ))
        return was_paid

    # =======================================================
    # PASADAS DEL BARRIDO (idempotentes: solo filas aún en el estado de partida)
    # =======================================================

    def _each_in_savepoint(self, rows, apply, tag: str) -> Tuple[List[int], List[int]]:
        done, failed = [], []
        for reservation in rows:
            try:
                with self.db.begin_nested():
                    apply(reservation)
                done.append(reservation.id)
            except Exception:
                logger.exception(f"❌ [SWEEPER] Error en {tag} para la reserva {reservation.id}")
                failed.append(reservation.id)
        return done, failed

    def expire_pending(self, now: Optional[datetime] = None) -> Tuple[List[int], List[int]]:
        now = now or now_utc()
        with transaction(self.db):
            candidates = (
                self.db.query(Reservation)
                .filter(
                    Reservation.status == S.PENDING.value,
                    Reservation.expires_at.isnot(None),
                    Reservation.expires_at <= now,
                )
                .order_by(Reservation.id)
                .with_for_update(skip_locked=True)
                .all()
            )
            rows = [r for r in candidates if is_hold_expired(r, now, self.settings)]

            def expire(reservation: Reservation):
                expired_at = hold_deadline(reservation, self.settings)
                transition(reservation, S.CANCELLED.value)
                reservation.expires_at = None
                reservation.append_note(AUTO_CANCEL_NOTE)
                self.db.add(Cancellation(reservation_id=reservation.id, reason=AUTO_CANCEL_NOTE, actor_id=None))
                outbox.emit(self.db, ReservationAutoCancelled(
                    reservation_id=reservation.id,
                    user_id=reservation.user_id,
                    court_id=reservation.court_id,
                    reason=AUTO_CANCEL_NOTE,
                    expired_at=expired_at,
                ))

            return self._each_in_savepoint(rows, expire, "expiración")

    def mark_no_show(self, now: Optional[datetime] = None) -> Tuple[List[int], List[int]]:
        now = now or now_utc()
        cutoff = now - timedelta(minutes=self.settings.NO_SHOW_GRACE_MINUTES)
        with transaction(self.db):
            rows = (
                self.db.query(Reservation)
                .filter(
                    Reservation.status.in_([S.PENDING.value, S.PAID.value]),
                    Reservation.check_in_time.is_(None),
                    Reservation.end_time < cutoff,
                )
                .order_by(Reservation.id)
                .with_for_update(skip_locked=True)
                .all()
            )

            def no_show(reservation: Reservation):
                previous_status = reservation.status
                transition(reservation, S.NO_SHOW.value)
                reservation.expires_at = None
                outbox.emit(self.db, ReservationNoShow(
                    reservation_id=reservation.id,
                    user_id=reservation.user_id,
                    previous_status=previous_status,
                ))

            return self._each_in_savepoint(rows, no_show, "no-show")

    def auto_complete(self, now: Optional[datetime] = None) -> Tuple[List[int], List[int]]:
        now = now or now_utc()
        with transaction(self.db):
            rows = (
                self.db.query(Reservation)
                .filter(
                    Reservation.status == S.IN_PROGRESS.value,
                    Reservation.end_time < now,
                )
                .order_by(Reservation.id)
                .with_for_update(skip_locked=True)
                .all()
            )

            def complete(reservation: Reservation):
                transition(reservation, S.COMPLETED.value)
                reservation.check_out_time = now
                outbox.emit(self.db, ReservationCheckedOut(
                    reservation_id=reservation.id,
                    user_id=reservation.user_id,
                    check_out_time=now,
                    automatic=True,
                ))

            return self._each_in_savepoint(rows, complete, "auto-completado")
