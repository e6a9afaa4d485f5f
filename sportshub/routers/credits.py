from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sportshub.core.security import ensure_self_or_staff, get_current_user, require_staff
from sportshub.database import get_db
from sportshub.models.user import User
from sportshub.schemas.payment import AdjustCreditsRequest, LedgerEntryResponse, WalletResponse
from sportshub.services.wallet_service import WalletService

router = APIRouter()


@router.post("/adjust", response_model=LedgerEntryResponse)
def adjust_credits(
    data: AdjustCreditsRequest,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    """Ajuste manual del saldo. Con idempotency_key un reintento devuelve el movimiento original."""
    metadata = {"note": data.note} if data.note else {}
    return WalletService(db).adjust_credits(
        data.user_id,
        data.type.value,
        data.amount,
        data.reason.value,
        idempotency_key=data.idempotency_key,
        metadata=metadata,
        allow_negative=data.allow_negative,
        actor_id=staff.id,
    )


@router.get("/users/{user_id}/ledger", response_model=List[LedgerEntryResponse])
def list_ledger(
    user_id: int,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_self_or_staff(current_user, user_id)
    return WalletService(db).list_ledger(user_id, limit=limit)


@router.get("/users/{user_id}/balance", response_model=WalletResponse)
def get_balance(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_self_or_staff(current_user, user_id)
    return WalletResponse(user_id=user_id, balance=WalletService(db).balance(user_id))
