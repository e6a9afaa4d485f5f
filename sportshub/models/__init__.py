from .user import User
from .court import Court, CourtRate
from .tariff import Tariff, TariffEnrollment, tariff_courts
from .reservation import Reservation
from .cancellation import Cancellation
from .payment import Payment, WebhookEvent
from .wallet_ledger import WalletLedger
from .outbox_event import OutboxEvent
from .notification import Notification

__all__ = [
    "User", "Court", "CourtRate", "Tariff", "TariffEnrollment", "tariff_courts",
    "Reservation", "Cancellation", "Payment", "WebhookEvent", "WalletLedger",
    "OutboxEvent", "Notification",
]
