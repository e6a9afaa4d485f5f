import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from sportshub.config import settings
from sportshub.core.core import allowed_roles
from sportshub.core.exceptions import AuthException, ForbiddenException, NotOwner
from sportshub.database import get_db
from sportshub.models.enums import STAFF_ROLES, UserRole
from sportshub.models.user import User

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 30

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str):
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No se pudieron validar las credenciales",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if token is None:
        raise credentials_exception

    payload = verify_token(token)
    if payload is None:
        logger.warning("[AUTH] Token inválido o expirado")
        raise credentials_exception

    email = payload.get("sub")
    if email is None:
        raise credentials_exception

    user = db.query(User).filter(User.email == email).first()
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def get_current_user_optional(
    token: Optional[str] = Depends(oauth2_scheme),  # auto_error=False permite None
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Versión opcional de get_current_user: devuelve None si no hay token o no es válido.
    La usa el cron, que acepta el secreto compartido o un token de admin.
    """
    if token is None:
        return None
    payload = verify_token(token)
    if payload is None or payload.get("sub") is None:
        return None
    return db.query(User).filter(User.email == payload["sub"]).first()


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if not allowed_roles(current_user, list(STAFF_ROLES)):
        logger.warning(f"[AUTH] Usuario {current_user.id} sin rol de staff")
        raise ForbiddenException()
    return current_user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not allowed_roles(current_user, [UserRole.ADMIN.value]):
        logger.warning(f"[AUTH] Usuario {current_user.id} sin rol de administrador")
        raise ForbiddenException()
    return current_user


def require_cron(
    x_cron_secret: Optional[str] = Header(None),
    current_user: Optional[User] = Depends(get_current_user_optional),
) -> None:
    """El planificador externo se autentica con X-Cron-Secret; un admin con su token."""
    if settings.CRON_SECRET and hmac.compare_digest(x_cron_secret or "", settings.CRON_SECRET):
        return
    if current_user is not None and allowed_roles(current_user, [UserRole.ADMIN.value]):
        return
    logger.warning("[AUTH] Llamada al cron sin secreto válido")
    raise AuthException("Credenciales de cron inválidas")


def ensure_self_or_staff(current_user: User, user_id: int) -> None:
    if current_user.id != user_id and not allowed_roles(current_user, list(STAFF_ROLES)):
        logger.warning(f"[AUTH] Usuario {current_user.id} intentó acceder a datos del usuario {user_id}")
        raise NotOwner("No tienes permisos sobre este usuario")
