"""Utilidades compartidas por los tests."""

from datetime import date, datetime, time, timedelta, timezone

import pytz

from sportshub.core.redsys_service import RedsysService
from sportshub.models.outbox_event import OutboxEvent

MADRID = pytz.timezone("Europe/Madrid")

# Martes 4 de junio de 2030, 08:00 en Madrid (06:00 UTC, horario de verano)
DAY = date(2030, 6, 4)
NOW = datetime(2030, 6, 4, 6, 0, tzinfo=timezone.utc)


def local(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    """Hora local del centro convertida a UTC."""
    return MADRID.localize(datetime.combine(day, time(hour, minute))).astimezone(timezone.utc)


def minutes(n: int) -> timedelta:
    return timedelta(minutes=n)


def events_of(db, event_type: str):
    return (
        db.query(OutboxEvent)
        .filter(OutboxEvent.event_type == event_type)
        .order_by(OutboxEvent.id)
        .all()
    )


def signed_notification(order: str, response: str = "0000", amount_cents: str = "2000", redsys: RedsysService = None):
    """Notificación de Redsys firmada con la clave de pruebas."""
    redsys = redsys or RedsysService()
    parameters = redsys.encode_parameters({
        "Ds_Date": "04/06/2030",
        "Ds_Hour": "08:05",
        "Ds_Amount": amount_cents,
        "Ds_Currency": "978",
        "Ds_Order": order,
        "Ds_MerchantCode": "999008881",
        "Ds_Terminal": "1",
        "Ds_Response": response,
        "Ds_TransactionType": "0",
        "Ds_AuthorisationCode": "123456" if response == "0000" else "",
    })
    return parameters, redsys.sign(order, parameters)
