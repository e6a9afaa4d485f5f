# sportshub/services/wallet_service.py

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sportshub.config import Settings, settings as default_settings
from sportshub.core.exceptions import IdempotencyConflict, InsufficientBalance, NotFound, ValidationFailed
from sportshub.database import transaction
from sportshub.models.enums import LedgerType
from sportshub.models.user import User
from sportshub.models.wallet_ledger import WalletLedger
from sportshub.schemas.outbox import WalletAdjusted
from sportshub.services import outbox

logger = logging.getLogger(__name__)


def to_credits(value) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class WalletService:
    """
    Monedero de créditos. El saldo vivo está en users.credits_balance y cada
    cambio deja un movimiento inmutable en wallet_ledger con balance_after.
    """

    def __init__(self, db: Session, settings: Settings = default_settings):
        self.db = db
        self.settings = settings

    def find_by_key(self, idempotency_key: Optional[str]) -> Optional[WalletLedger]:
        if not idempotency_key:
            return None
        return self.db.query(WalletLedger).filter(WalletLedger.idempotency_key == idempotency_key).first()

    def replay(self, existing: WalletLedger, user_id: int) -> WalletLedger:
        """Devuelve el movimiento ya aplicado solo si pertenece al mismo usuario."""
        if existing.user_id != user_id:
            logger.warning(
                f"🚫 [WALLET] Clave {existing.idempotency_key} de usuario {existing.user_id} reutilizada por {user_id}"
            )
            raise IdempotencyConflict()
        return existing

    def lock_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).with_for_update().first()
        if not user:
            raise NotFound(f"Usuario {user_id} no encontrado")
        return user

    def apply(
        self,
        user_id: int,
        type: str,
        amount,
        reason: str,
        idempotency_key: Optional[str] = None,
        metadata: Optional[dict] = None,
        allow_negative: bool = False,
    ) -> WalletLedger:
        """
        Aplica un movimiento dentro de la transacción del llamador (sin commit).
        Bloquea la fila del usuario para que lectura y escritura del saldo
        ocurran en la misma transacción.
        """
        if type not in (LedgerType.CREDIT.value, LedgerType.DEBIT.value):
            raise ValidationFailed(f"Tipo de movimiento inválido: {type}")
        credits = to_credits(amount)
        if credits <= 0:
            raise ValidationFailed("La cantidad de créditos debe ser mayor que cero")

        user = self.lock_user(user_id)

        existing = self.find_by_key(idempotency_key)
        if existing:
            return self.replay(existing, user_id)

        balance = Decimal(user.credits_balance or 0)
        if type == LedgerType.CREDIT.value:
            new_balance = balance + credits
        else:
            new_balance = balance - credits
            if new_balance < 0 and not allow_negative:
                raise InsufficientBalance(
                    f"Saldo insuficiente: disponible {balance}, requerido {credits}"
                )

        entry = WalletLedger(
            user_id=user.id,
            type=type,
            reason=reason,
            credits=credits,
            balance_after=to_credits(new_balance),
            details=metadata or {},
            idempotency_key=idempotency_key,
        )
        user.credits_balance = to_credits(new_balance)
        self.db.add(entry)
        # Flush para que una clave duplicada falle aquí y no en el commit
        self.db.flush()
        return entry

    def adjust_credits(
        self,
        user_id: int,
        type: str,
        amount,
        reason: str,
        idempotency_key: Optional[str] = None,
        metadata: Optional[dict] = None,
        allow_negative: bool = False,
        actor_id: Optional[int] = None,
    ) -> WalletLedger:
        """
        Ajuste manual de créditos (staff). Con idempotency_key, un reintento
        devuelve el movimiento original sin volver a aplicarlo.
        """
        existing = self.find_by_key(idempotency_key)
        if existing:
            logger.info(f"🔁 [WALLET] Clave {idempotency_key} ya aplicada, devolviendo movimiento {existing.id}")
            return self.replay(existing, user_id)

        details = dict(metadata or {})
        if actor_id is not None:
            details.setdefault("actor_id", actor_id)

        try:
            with transaction(self.db):
                entry = self.apply(
                    user_id, type, amount, reason,
                    idempotency_key=idempotency_key,
                    metadata=details,
                    allow_negative=allow_negative,
                )
                outbox.emit(self.db, WalletAdjusted(
                    user_id=user_id,
                    type=entry.type,
                    reason=entry.reason,
                    credits=entry.credits,
                    balance_after=entry.balance_after,
                    actor_id=actor_id,
                ))
        except IntegrityError:
            # Otra petición con la misma clave confirmó antes
            existing = self.find_by_key(idempotency_key)
            if existing:
                return self.replay(existing, user_id)
            raise

        logger.info(
            f"💳 [WALLET] {entry.type} {entry.credits} créditos a usuario {user_id} "
            f"({entry.reason}), saldo {entry.balance_after}"
        )
        return entry

    def balance(self, user_id: int) -> Decimal:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"Usuario {user_id} no encontrado")
        return Decimal(user.credits_balance or 0)

    def list_ledger(self, user_id: int, limit: int = 100) -> List[WalletLedger]:
        return (
            self.db.query(WalletLedger)
            .filter(WalletLedger.user_id == user_id)
            .order_by(WalletLedger.created_at, WalletLedger.id)
            .limit(limit)
            .all()
        )
