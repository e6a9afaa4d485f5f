from datetime import datetime, timezone
from typing import Any, List


def allowed_roles(current_user: Any, required_roles: List[str]) -> bool:
    """
    Verifica si el rol del usuario actual está entre los roles permitidos.

    current_user debe ser el objeto retornado por get_current_user,
    y asumimos que tiene un atributo 'role'.
    """
    user_role = (current_user.role or "").upper()
    return user_role in [r.upper() for r in required_roles]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Las fechas sin zona se interpretan como UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
