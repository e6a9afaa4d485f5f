# sportshub/services/outbox.py

import logging
from typing import Optional

from sqlalchemy.orm import Session

from sportshub.core.core import now_utc
from sportshub.database import transaction
from sportshub.models.notification import Notification
from sportshub.models.outbox_event import OutboxEvent
from sportshub.schemas.outbox import OutboxPayload, outbox_payload_adapter

logger = logging.getLogger(__name__)


def emit(db: Session, payload: OutboxPayload) -> OutboxEvent:
    """
    Agrega el evento a la sesión del llamador. No hace commit: el evento se
    confirma (o se descarta) junto con el cambio de estado que describe.
    """
    event = OutboxEvent(
        event_type=payload.event_type,
        event_data=payload.model_dump(mode="json"),
        processed=False,
    )
    db.add(event)
    return event


def load_payload(event: OutboxEvent) -> OutboxPayload:
    return outbox_payload_adapter.validate_python(event.event_data)


# Tipo de evento -> (categoría, título, plantilla del mensaje)
NOTIFICATION_TEMPLATES = {
    "RESERVATION_CREATED": ("RESERVATION", "Reserva creada", "Se ha creado la reserva {reservation_id}."),
    "RESERVATION_PAID": ("PAYMENT", "Pago registrado", "Pago registrado para la reserva {reservation_id}."),
    "RESERVATION_CHECKED_IN": ("RESERVATION", "Check-in realizado", "Check-in realizado para la reserva {reservation_id}."),
    "RESERVATION_CHECKED_OUT": ("RESERVATION", "Check-out realizado", "Check-out realizado para la reserva {reservation_id}."),
    "RESERVATION_CANCELLED": ("RESERVATION", "Reserva cancelada", "Se canceló la reserva {reservation_id}: {reason}"),
    "RESERVATION_AUTO_CANCELLED": (
        "RESERVATION",
        "Reserva cancelada",
        "La reserva {reservation_id} se canceló porque no recibimos el pago a tiempo.",
    ),
    "RESERVATION_NO_SHOW": ("RESERVATION", "No se presentó", "Reserva {reservation_id} marcada como no presentada."),
    "RESERVATION_REFUNDED": (
        "PAYMENT",
        "Reembolso realizado",
        "Se reembolsaron {credits_refunded} créditos por la reserva {reservation_id}.",
    ),
    "PAYMENT_FAILED": ("PAYMENT", "Pago rechazado", "El pago de la reserva {reservation_id} fue rechazado."),
    "LATE_PAYMENT_REJECTED": (
        "PAYMENT",
        "Pago fuera de plazo",
        "Recibimos un pago para la reserva {reservation_id} después de que expirara. Será devuelto.",
    ),
    "WALLET_ADJUSTED": ("WALLET", "Saldo actualizado", "Tu saldo de créditos ahora es {balance_after}."),
}


def process_outbox_notifications(db: Session, limit: int = 50, now=None) -> dict:
    """
    Materializa eventos pendientes del outbox como notificaciones de usuario
    y los marca como procesados. Cada evento se procesa en su propio savepoint.
    """
    now = now or now_utc()
    limit = max(1, min(200, limit))

    events = (
        db.query(OutboxEvent)
        .filter(OutboxEvent.processed.is_(False))
        .order_by(OutboxEvent.id)
        .limit(limit)
        .all()
    )

    processed = 0
    notified = 0
    failed = []
    with transaction(db):
        for event in events:
            try:
                with db.begin_nested():
                    notification = _build_notification(event)
                    if notification is not None:
                        db.add(notification)
                        notified += 1
                    event.processed = True
                    event.processed_at = now
                processed += 1
            except Exception:
                logger.exception(f"❌ [OUTBOX] Error procesando evento {event.id} ({event.event_type})")
                failed.append(event.id)

    logger.info(f"📬 [OUTBOX] Procesados {processed}/{len(events)} eventos, {notified} notificaciones creadas")
    return {"processed": processed, "notifications": notified, "failed": failed}


def _build_notification(event: OutboxEvent) -> Optional[Notification]:
    template = NOTIFICATION_TEMPLATES.get(event.event_type)
    if template is None:
        return None

    payload = load_payload(event)
    category, title, message = template
    return Notification(
        user_id=payload.user_id,
        title=title,
        message=message.format(**payload.model_dump()),
        category=category,
        outbox_event_id=event.id,
    )
