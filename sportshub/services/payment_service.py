# sportshub/services/payment_service.py

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sportshub.config import Settings, settings as default_settings
from sportshub.core.core import allowed_roles, now_utc
from sportshub.core.exceptions import (
    AlreadyCompleted,
    AlreadyStarted,
    IdempotencyConflict,
    NotFound,
    NotOwner,
    NotPaid,
    NotPending,
    PaymentGatewayError,
    ReservationExpired,
    ValidationFailed,
)
from sportshub.core.redsys_service import RedsysService
from sportshub.database import transaction
from sportshub.models.enums import (
    ACTIVE_STATUSES,
    ASYNC_SETTLEMENT_METHODS,
    STAFF_ROLES,
    GatewayPaymentStatus,
    LedgerReason,
    LedgerType,
    PaymentMethod,
    PaymentStatus,
    ReservationStatus,
)
from sportshub.models.payment import Payment, WebhookEvent
from sportshub.models.reservation import Reservation
from sportshub.models.user import User
from sportshub.models.wallet_ledger import WalletLedger
from sportshub.schemas.outbox import LatePaymentRejected, PaymentFailed, ReservationPaid, ReservationRefunded
from sportshub.schemas.payment import RefundResult, WebhookResult
from sportshub.schemas.redsys import RedsysNotification, RedsysPaymentForm
from sportshub.services import outbox
from sportshub.services.reservation_service import ReservationService, is_hold_expired
from sportshub.services.wallet_service import WalletService, to_credits

logger = logging.getLogger(__name__)

PROVIDER_REDSYS = "REDSYS"


def credits_key(reservation_id: int, client_key: Optional[str] = None) -> str:
    # La clave del cliente solo desambigua reintentos dentro de la misma reserva
    if client_key:
        return f"RESERVATION_CREDITS:{reservation_id}:{client_key}"
    return f"RESERVATION_CREDITS:{reservation_id}"


def refund_key(reservation_id: int) -> str:
    return f"REFUND:RES:{reservation_id}"


class PaymentService:
    """
    Aplica resultados de pago a las reservas exactamente una vez, sea cual sea
    el origen: notificación de Redsys, créditos del monedero o pago manual.
    """

    def __init__(self, db: Session, settings: Settings = default_settings, redsys: Optional[RedsysService] = None):
        self.db = db
        self.settings = settings
        self.redsys = redsys or RedsysService(settings)
        self.wallet = WalletService(db, settings)
        self.reservations = ReservationService(db, settings)

    def to_credits(self, amount) -> Decimal:
        return to_credits(Decimal(amount) / Decimal(self.settings.EURO_PER_CREDIT))

    # =======================================================
    # WEBHOOK DE REDSYS
    # =======================================================

    def handle_gateway_webhook(self, merchant_parameters: str, signature: str, now: Optional[datetime] = None) -> WebhookResult:
        notification = self.redsys.verify_notification(merchant_parameters, signature)
        now = now or now_utc()
        logger.info(f"🎯 [WEBHOOK] Notificación Redsys pedido {notification.order}, respuesta {notification.response}")

        previous = self._find_event(notification.event_key)
        if previous:
            return self._replay(previous)

        try:
            with transaction(self.db):
                payment = (
                    self.db.query(Payment)
                    .filter(Payment.order_reference == notification.order)
                    .with_for_update()
                    .first()
                )
                if not payment:
                    raise NotFound(f"No existe un pago con el pedido {notification.order}")

                reservation = self.reservations.lock(payment.reservation_id)
                outcome = self._apply_notification(payment, reservation, notification, now)

                self.db.add(WebhookEvent(
                    provider=PROVIDER_REDSYS,
                    event_key=notification.event_key,
                    order_reference=notification.order,
                    outcome=outcome,
                ))
                self.db.flush()
        except IntegrityError:
            # Entrega concurrente del mismo evento: la otra ya lo aplicó
            previous = self._find_event(notification.event_key)
            if previous:
                return self._replay(previous)
            raise

        if outcome == GatewayPaymentStatus.REJECTED_LATE.value:
            raise ReservationExpired()

        return WebhookResult(
            order_reference=notification.order,
            reservation_id=reservation.id,
            outcome=outcome,
        )

    def _find_event(self, event_key: str) -> Optional[WebhookEvent]:
        return (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.provider == PROVIDER_REDSYS, WebhookEvent.event_key == event_key)
            .first()
        )

    def _replay(self, event: WebhookEvent) -> WebhookResult:
        logger.info(f"🔁 [WEBHOOK] Evento {event.event_key} ya aplicado ({event.outcome}), sin cambios")
        if event.outcome == GatewayPaymentStatus.REJECTED_LATE.value:
            raise ReservationExpired()
        payment = self.db.query(Payment).filter(Payment.order_reference == event.order_reference).first()
        return WebhookResult(
            order_reference=event.order_reference,
            reservation_id=payment.reservation_id if payment else None,
            outcome=event.outcome,
            duplicate=True,
        )

    def _apply_notification(
        self,
        payment: Payment,
        reservation: Reservation,
        notification: RedsysNotification,
        now: datetime,
    ) -> str:
        payment.response_code = notification.response

        if not notification.is_success:
            # La reserva sigue PENDING; el barrido la expirará si no llega otro pago
            if payment.status == GatewayPaymentStatus.PENDING.value:
                payment.status = GatewayPaymentStatus.FAILED.value
                outbox.emit(self.db, PaymentFailed(
                    reservation_id=reservation.id,
                    user_id=reservation.user_id,
                    order_reference=payment.order_reference,
                    response_code=notification.response,
                ))
            logger.warning(f"⚠️ [WEBHOOK] Pago denegado para la reserva {reservation.id} (código {notification.response})")
            return GatewayPaymentStatus.FAILED.value

        paid_amount = notification.amount_decimal
        if paid_amount is not None and paid_amount != Decimal(payment.amount):
            raise PaymentGatewayError(
                f"Importe notificado {paid_amount} distinto del esperado {payment.amount} (pedido {payment.order_reference})"
            )

        payment.authorisation_code = notification.authorisation_code

        if payment.status == GatewayPaymentStatus.PAID.value:
            return GatewayPaymentStatus.PAID.value

        if reservation.status != ReservationStatus.PENDING.value or is_hold_expired(reservation, now, self.settings):
            payment.status = GatewayPaymentStatus.REJECTED_LATE.value
            outbox.emit(self.db, LatePaymentRejected(
                reservation_id=reservation.id,
                user_id=reservation.user_id,
                order_reference=payment.order_reference,
                amount=payment.amount,
            ))
            logger.warning(
                f"⏰ [WEBHOOK] Pago tardío rechazado para la reserva {reservation.id} "
                f"(estado {reservation.status}, pedido {payment.order_reference})"
            )
            return GatewayPaymentStatus.REJECTED_LATE.value

        self.reservations.mark_paid(reservation, PaymentMethod.CARD.value, now)
        payment.status = GatewayPaymentStatus.PAID.value
        outbox.emit(self.db, ReservationPaid(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            method=PaymentMethod.CARD.value,
            amount=payment.amount,
            provider=PROVIDER_REDSYS,
        ))
        logger.info(f"✅ [WEBHOOK] Reserva {reservation.id} PAGADA con tarjeta (pedido {payment.order_reference})")
        return GatewayPaymentStatus.PAID.value

    # =======================================================
    # PAGO CON TARJETA (inicio)
    # =======================================================

    def start_card_payment(self, reservation_id: int, user_id: int, now: Optional[datetime] = None) -> RedsysPaymentForm:
        """Crea el intento de pago y devuelve el formulario firmado para Redsys."""
        now = now or now_utc()
        with transaction(self.db):
            reservation = self.reservations.lock(reservation_id)
            self._check_owner(reservation, user_id)
            if reservation.status != ReservationStatus.PENDING.value:
                raise NotPending()
            if is_hold_expired(reservation, now, self.settings):
                raise ReservationExpired()

            # Ds_Order: 12 dígitos, id de reserva + número de intento
            attempt = len(reservation.payments) + 1
            order_reference = f"{reservation.id:08d}{attempt:04d}"
            payment = Payment(
                reservation_id=reservation.id,
                provider=PROVIDER_REDSYS,
                order_reference=order_reference,
                amount=reservation.total_price,
                status=GatewayPaymentStatus.PENDING.value,
            )
            reservation.payment_method = PaymentMethod.CARD.value
            self.db.add(payment)
            amount = Decimal(reservation.total_price)

        logger.info(f"💳 [PAGOS] Pedido Redsys {order_reference} para la reserva {reservation_id} por {amount}")
        return self.redsys.build_payment_form(order_reference, amount, description=f"Reserva {reservation_id}")

    # =======================================================
    # PAGO CON CRÉDITOS
    # =======================================================

    def pay_with_credits(
        self,
        reservation_id: int,
        user_id: int,
        idempotency_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WalletLedger:
        """
        Débito en el monedero y paso a PAID en una sola transacción. Un
        reintento con la misma clave devuelve el movimiento original.
        """
        now = now or now_utc()
        key = credits_key(reservation_id, idempotency_key)

        existing = self.wallet.find_by_key(key)
        if existing:
            logger.info(f"🔁 [PAGOS] Pago con créditos {key} ya aplicado")
            return self._credits_replay(existing, reservation_id, user_id)

        try:
            with transaction(self.db):
                reservation = self.reservations.lock(reservation_id)
                if reservation.user_id != user_id:
                    logger.warning(f"🚫 [PAGOS] Usuario {user_id} intentó pagar la reserva {reservation_id}")
                    raise NotOwner()
                if reservation.status != ReservationStatus.PENDING.value:
                    raise NotPending()
                if is_hold_expired(reservation, now, self.settings):
                    raise ReservationExpired()

                credits = self.to_credits(reservation.total_price)
                entry = self.wallet.apply(
                    user_id,
                    LedgerType.DEBIT.value,
                    credits,
                    LedgerReason.ORDER.value,
                    idempotency_key=key,
                    metadata={"reservation_id": reservation.id, "description": "Pago de reserva con créditos"},
                )
                # Si apply devolvió un movimiento previo, tiene que ser el débito de esta reserva
                self._credits_replay(entry, reservation.id, user_id)
                self.reservations.mark_paid(reservation, PaymentMethod.CREDITS.value, now)
                reservation.credits_used = credits
                outbox.emit(self.db, ReservationPaid(
                    reservation_id=reservation.id,
                    user_id=user_id,
                    method=PaymentMethod.CREDITS.value,
                    amount=reservation.total_price,
                    credits_used=credits,
                ))
        except IntegrityError:
            existing = self.wallet.find_by_key(key)
            if existing:
                return self._credits_replay(existing, reservation_id, user_id)
            raise

        logger.info(f"✅ [PAGOS] Reserva {reservation_id} pagada con {credits} créditos, saldo {entry.balance_after}")
        return entry

    # =======================================================
    # PAGO MANUAL (transferencia, en sitio, cortesía)
    # =======================================================

    def record_manual_payment(
        self,
        reservation_id: int,
        actor_id: int,
        method: str,
        reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        now = now or now_utc()
        method = str(getattr(method, "value", method)).upper()
        if method not in ASYNC_SETTLEMENT_METHODS:
            raise ValidationFailed(f"El método {method} no se liquida manualmente")

        with transaction(self.db):
            reservation = self.reservations.lock(reservation_id)
            if reservation.status != ReservationStatus.PENDING.value:
                raise NotPending()
            if is_hold_expired(reservation, now, self.settings):
                raise ReservationExpired()

            self.reservations.mark_paid(reservation, method, now)
            note = f"Pago {method} registrado por {actor_id}"
            if reference:
                note += f" (ref. {reference})"
            reservation.append_note(note)
            outbox.emit(self.db, ReservationPaid(
                reservation_id=reservation.id,
                user_id=reservation.user_id,
                method=method,
                amount=reservation.total_price,
            ))

        logger.info(f"✅ [PAGOS] Reserva {reservation_id} pagada manualmente ({method}) por {actor_id}")
        return reservation

    # =======================================================
    # REEMBOLSO
    # =======================================================

    def refund(self, reservation_id: int, reason: str, actor_id: Optional[int], now: Optional[datetime] = None) -> RefundResult:
        """
        Devuelve el importe pagado en créditos. Si la reserva sigue activa se
        cancela en la misma transacción. Repetir el reembolso no vuelve a abonar.
        """
        now = now or now_utc()
        if not reason or not reason.strip():
            raise ValidationFailed("El motivo del reembolso es obligatorio")

        with transaction(self.db):
            reservation = self.reservations.lock(reservation_id)
            if reservation.status == ReservationStatus.IN_PROGRESS.value:
                raise AlreadyStarted("No se puede reembolsar una reserva en curso")
            if reservation.status == ReservationStatus.COMPLETED.value:
                raise AlreadyCompleted("No se puede reembolsar una reserva completada")

            if reservation.payment_status != PaymentStatus.REFUNDED.value:
                if reservation.payment_status != PaymentStatus.PAID.value:
                    raise NotPaid("La reserva no tiene un pago que reembolsar")
                if reservation.status in ACTIVE_STATUSES:
                    self.reservations.apply_cancel(reservation, reason.strip(), actor_id, now)
                else:
                    self.apply_refund(reservation, reason.strip(), actor_id)

            entry = self.wallet.find_by_key(refund_key(reservation.id))
            result = RefundResult(
                reservation_id=reservation.id,
                reservation_status=reservation.status,
                payment_status=reservation.payment_status,
                credits_refunded=entry.credits if entry else Decimal("0"),
                ledger_entry_id=entry.id if entry else None,
            )

        logger.info(f"💸 [PAGOS] Reembolso de la reserva {reservation_id}: {result.credits_refunded} créditos")
        return result

    def apply_refund(self, reservation: Reservation, reason: str, actor_id: Optional[int]) -> Optional[WalletLedger]:
        """Abona en créditos dentro de la transacción del llamador."""
        if reservation.credits_used is not None:
            credits = to_credits(reservation.credits_used)
        else:
            credits = self.to_credits(reservation.total_price)

        entry = None
        if credits > 0:
            entry = self.wallet.apply(
                reservation.user_id,
                LedgerType.CREDIT.value,
                credits,
                LedgerReason.REFUND.value,
                idempotency_key=refund_key(reservation.id),
                metadata={
                    "reservation_id": reservation.id,
                    "reason": reason,
                    "actor_id": actor_id,
                    "original_method": reservation.payment_method,
                },
            )

        reservation.payment_status = PaymentStatus.REFUNDED.value
        for payment in reservation.payments:
            if payment.status == GatewayPaymentStatus.PAID.value:
                payment.status = GatewayPaymentStatus.REFUNDED.value

        outbox.emit(self.db, ReservationRefunded(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            credits_refunded=credits,
            reason=reason,
            actor_id=actor_id,
        ))
        return entry

    def _credits_replay(self, existing: WalletLedger, reservation_id: int, user_id: int) -> WalletLedger:
        if existing.user_id != user_id:
            logger.warning(f"🚫 [PAGOS] Usuario {user_id} reutilizó la clave {existing.idempotency_key} de otro usuario")
            raise NotOwner()
        if (existing.details or {}).get("reservation_id") != reservation_id:
            raise IdempotencyConflict(
                f"La clave {existing.idempotency_key} corresponde a otro movimiento, no a la reserva {reservation_id}"
            )
        return existing

    def _check_owner(self, reservation: Reservation, user_id: int) -> None:
        if reservation.user_id == user_id:
            return
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or not allowed_roles(user, list(STAFF_ROLES)):
            raise NotOwner()
