import json
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from sportshub.core.exceptions import DomainError, InvalidSignature, PaymentGatewayError
from sportshub.core.redsys_service import RedsysService, get_redsys_service
from sportshub.core.security import get_current_user, require_staff
from sportshub.database import get_db
from sportshub.models.user import User
from sportshub.schemas.payment import (
    LedgerEntryResponse,
    ManualPaymentRequest,
    PayWithCreditsRequest,
    RefundRequest,
    RefundResult,
    WebhookResult,
)
from sportshub.schemas.redsys import RedsysPaymentForm, RedsysWebhookBody
from sportshub.schemas.reservation import ReservationResponse
from sportshub.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/reservations/{reservation_id}/credits", response_model=LedgerEntryResponse)
def pay_with_credits(
    reservation_id: int,
    data: PayWithCreditsRequest = PayWithCreditsRequest(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Paga la reserva con créditos del monedero. Reintentos con la misma clave son seguros."""
    return PaymentService(db).pay_with_credits(
        reservation_id, current_user.id, idempotency_key=data.idempotency_key
    )


@router.post("/reservations/{reservation_id}/card", response_model=RedsysPaymentForm)
def start_card_payment(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    redsys: RedsysService = Depends(get_redsys_service),
):
    return PaymentService(db, redsys=redsys).start_card_payment(reservation_id, current_user.id)


@router.post("/reservations/{reservation_id}/manual", response_model=ReservationResponse)
def record_manual_payment(
    reservation_id: int,
    data: ManualPaymentRequest,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return PaymentService(db).record_manual_payment(
        reservation_id, actor_id=staff.id, method=data.method, reference=data.reference
    )


@router.post("/reservations/{reservation_id}/refund", response_model=RefundResult)
def refund_reservation(
    reservation_id: int,
    data: RefundRequest,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return PaymentService(db).refund(reservation_id, data.reason, actor_id=staff.id)


# ====================================================================
# WEBHOOK DE REDSYS
# ====================================================================

@router.post(
    "/webhook/redsys",
    response_model=WebhookResult,
    summary="Notificación (webhook) del TPV virtual de Redsys",
)
async def redsys_webhook(
    request: Request,
    db: Session = Depends(get_db),
    redsys: RedsysService = Depends(get_redsys_service),
):
    """
    Firma inválida: 401, Redsys no debe reintentar. Cualquier otro fallo
    devuelve un código no 2xx para que Redsys vuelva a entregar la notificación.
    """
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            raw = await request.json()
        else:
            raw = dict(await request.form())
        body = RedsysWebhookBody.model_validate(raw)
    except (ValidationError, ValueError, json.JSONDecodeError) as e:
        logger.warning(f"❌ [WEBHOOK] Cuerpo de notificación inválido: {e}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"kind": "PaymentGatewayError", "message": "Cuerpo de la notificación inválido"},
        )

    service = PaymentService(db, redsys=redsys)
    try:
        return service.handle_gateway_webhook(body.Ds_MerchantParameters, body.Ds_Signature)
    except InvalidSignature:
        raise
    except PaymentGatewayError as e:
        logger.warning(f"❌ [WEBHOOK] {e.message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"kind": "PaymentGatewayError", "message": e.message},
        )
    except DomainError as e:
        logger.warning(f"⚠️ [WEBHOOK] Notificación no aplicada: {e.kind} - {e.message}")
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=e.to_dict())
