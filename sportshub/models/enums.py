from enum import Enum


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


ACTIVE_STATUSES = (
    ReservationStatus.PENDING.value,
    ReservationStatus.PAID.value,
    ReservationStatus.IN_PROGRESS.value,
)
TERMINAL_STATUSES = (
    ReservationStatus.COMPLETED.value,
    ReservationStatus.CANCELLED.value,
    ReservationStatus.NO_SHOW.value,
)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CREDITS = "CREDITS"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    ON_SITE = "ON_SITE"
    COURTESY = "COURTESY"


# Métodos que se liquidan fuera de línea: reciben un margen de retención mayor
ASYNC_SETTLEMENT_METHODS = (
    PaymentMethod.BANK_TRANSFER.value,
    PaymentMethod.ON_SITE.value,
    PaymentMethod.COURTESY.value,
)


class LedgerType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class LedgerReason(str, Enum):
    ORDER = "ORDER"
    TOPUP = "TOPUP"
    REFUND = "REFUND"
    ADJUST = "ADJUST"


class GatewayPaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REJECTED_LATE = "REJECTED_LATE"
    REFUNDED = "REFUNDED"


class EnrollmentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RatePeriod(str, Enum):
    DAY = "DAY"
    NIGHT = "NIGHT"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    CLIENT = "CLIENT"


STAFF_ROLES = (UserRole.ADMIN.value, UserRole.STAFF.value)
