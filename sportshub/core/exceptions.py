# sportshub/core/exceptions.py

from fastapi import HTTPException, status


class AuthException(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

class ForbiddenException(HTTPException):
    def __init__(self, detail: str = "No tiene permisos para realizar esta acción"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class PaymentGatewayError(Exception):
    """
    Excepción para payloads de la pasarela (Redsys) que no se pueden
    decodificar o no traen los campos mínimos.
    """
    def __init__(self, message: str = "Notificación de la pasarela de pago inválida"):
        self.message = message
        super().__init__(self.message)


# =======================================================
# ERRORES DEL DOMINIO DE RESERVAS Y PAGOS
# =======================================================

class DomainError(Exception):
    """
    Error de negocio con un tipo estable (`kind`) y un mensaje para el usuario.
    El manejador de FastAPI lo traduce a {"kind": ..., "message": ...}.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Operación no permitida"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


# --- Validación ---

class ValidationFailed(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Datos de entrada inválidos"

class InvalidWindow(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "El horario solicitado no es válido"

class NoPricingConfigured(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "No hay tarifa base configurada para esta cancha y horario"

class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Recurso no encontrado"


# --- Conflicto ---

class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT

class SlotUnavailable(ConflictError):
    default_message = "La cancha no está disponible en el horario solicitado"

class NotPending(ConflictError):
    default_message = "La reserva no está pendiente de pago"

class NotPaid(ConflictError):
    default_message = "La reserva no está pagada"

class AlreadyStarted(ConflictError):
    default_message = "La reserva ya está en curso"

class AlreadyCompleted(ConflictError):
    default_message = "La reserva ya fue completada"

class NotInProgress(ConflictError):
    default_message = "La reserva no está en curso"

class InvalidTransition(ConflictError):
    default_message = "La reserva está en un estado final y no admite cambios"

class ReservationExpired(ConflictError):
    default_message = "La reserva ya no está disponible: el tiempo de retención expiró"

class OutsideWindow(ConflictError):
    default_message = "Fuera de la ventana horaria permitida para el check-in"

class InsufficientBalance(ConflictError):
    default_message = "Saldo de créditos insuficiente"

class IdempotencyConflict(ConflictError):
    default_message = "La clave de idempotencia ya se usó para otra operación"


# --- Autorización ---

class NotOwner(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "No tienes permisos sobre esta reserva"

class InvalidSignature(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Firma de la notificación inválida"
