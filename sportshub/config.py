# sportshub/config.py

from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./sportshub.db"

    # JWT
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"

    # CORS
    FRONTEND_URLS: str = "http://localhost:5173,http://localhost:3000"
    FRONTEND_BASE_URL: str = "http://localhost:3000"

    LOG_LEVEL: str = "INFO"

    # =======================================================
    # ⏱️ CICLO DE VIDA DE RESERVAS
    # =======================================================
    # Zona horaria del centro: horarios de apertura y tramos día/noche
    CENTER_TIMEZONE: str = "Europe/Madrid"
    # Ventana de retención de una reserva PENDING antes de expirar
    PENDING_HOLD_MINUTES: int = 10
    # Margen extra para métodos de liquidación asíncrona (transferencia, en sitio, cortesía)
    ASYNC_SETTLEMENT_GRACE_MINUTES: int = 24 * 60
    CHECKIN_TOLERANCE_MINUTES: int = 30
    NO_SHOW_GRACE_MINUTES: int = 15
    MIN_RESERVATION_MINUTES: int = 30
    MAX_RESERVATION_MINUTES: int = 480

    # Créditos
    EURO_PER_CREDIT: Decimal = Decimal("1")

    # =======================================================
    # 💳 PASARELA REDSYS
    # =======================================================
    REDSYS_MERCHANT_CODE: str = "999008881"
    REDSYS_TERMINAL: str = "1"
    # Clave 3DES del comercio en base64 (24 bytes decodificados)
    REDSYS_MERCHANT_KEY: str = "sq7HjrUOBfKmC576ILgskD5srU870gJ7"
    REDSYS_CURRENCY: str = "978"
    REDSYS_TEST_MODE: bool = True
    # URL pública a donde Redsys envía la notificación (webhook)
    REDSYS_MERCHANT_URL: str = "http://localhost:8000/payments/webhook/redsys"

    # Secreto compartido con el planificador externo (cron)
    CRON_SECRET: str = ""

    @property
    def allowed_origins(self) -> List[str]:
        urls = self.FRONTEND_URLS.split(",")
        all_urls = []
        for url in urls:
            url = url.strip()
            if url:
                all_urls.append(url)
                # Añadir versión HTTPS si es HTTP
                if url.startswith("http://"):
                    all_urls.append(url.replace("http://", "https://"))
        return all_urls

    class Config:
        env_file = ".env"


settings = Settings()
