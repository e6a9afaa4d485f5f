from .reservation import *
from .payment import *
from .pricing import *
from .tariff import *
from .notification import *

__all__ = [
    # Reserva
    "ReservationCreate", "ReservationCancel", "ReservationResponse", "BusySlot", "CourtAvailability",
    "SweepResponse",

    # Pagos y créditos
    "PayWithCreditsRequest", "ManualPaymentRequest", "RefundRequest", "AdjustCreditsRequest",
    "LedgerEntryResponse", "WalletResponse", "WebhookResult", "RefundResult",

    # Precios
    "PriceQuote",

    # Tarifas
    "TariffCreate", "TariffResponse", "EnrollmentRequest", "EnrollmentReject", "EnrollmentResponse",

    # Notificaciones
    "NotificationResponse", "OutboxRunResponse",
]
