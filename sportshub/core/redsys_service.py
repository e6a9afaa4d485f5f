# sportshub/core/redsys_service.py

import base64
import binascii
import hashlib
import hmac
import json
import logging
from decimal import Decimal

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives.ciphers import Cipher, modes
from pydantic import ValidationError

from sportshub.config import Settings, settings as default_settings
from sportshub.core.exceptions import InvalidSignature, PaymentGatewayError
from sportshub.schemas.redsys import RedsysNotification, RedsysPaymentForm

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "HMAC_SHA256_V1"
TEST_URL = "https://sis-t.redsys.es:25443/sis/realizarPago"
PRODUCTION_URL = "https://sis.redsys.es/sis/realizarPago"


# Dependencia para que los routers puedan inyectar el servicio
def get_redsys_service():
    return RedsysService()


def _b64decode_any(value: str) -> bytes:
    """Redsys notifica en base64 url-safe; el formulario usa base64 estándar."""
    normalized = value.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized, validate=True)


def _comparable(signature: str) -> str:
    return signature.strip().replace("+", "-").replace("/", "_").rstrip("=")


class RedsysService:
    def __init__(self, settings: Settings = default_settings):
        self.merchant_code = settings.REDSYS_MERCHANT_CODE
        self.terminal = settings.REDSYS_TERMINAL
        self.merchant_key = settings.REDSYS_MERCHANT_KEY
        self.currency = settings.REDSYS_CURRENCY
        self.merchant_url = settings.REDSYS_MERCHANT_URL
        self.frontend_base_url = settings.FRONTEND_BASE_URL
        self.test_mode = settings.REDSYS_TEST_MODE

    @property
    def url(self) -> str:
        return TEST_URL if self.test_mode else PRODUCTION_URL

    # =======================================================
    # FIRMA HMAC_SHA256_V1
    # =======================================================

    def _order_key(self, order: str) -> bytes:
        """Clave por pedido: 3DES-CBC (IV a cero) del número de pedido con la clave del comercio."""
        key = base64.b64decode(self.merchant_key)
        data = order.encode("utf-8")
        # Relleno con ceros hasta múltiplo de 8 bytes
        if len(data) % 8:
            data += b"\0" * (8 - len(data) % 8)
        encryptor = Cipher(TripleDES(key), modes.CBC(b"\0" * 8)).encryptor()
        return encryptor.update(data) + encryptor.finalize()

    def sign(self, order: str, merchant_parameters: str) -> str:
        mac = hmac.new(self._order_key(order), merchant_parameters.encode("utf-8"), hashlib.sha256)
        return base64.b64encode(mac.digest()).decode("ascii")

    @staticmethod
    def encode_parameters(parameters: dict) -> str:
        return base64.b64encode(json.dumps(parameters).encode("utf-8")).decode("ascii")

    @staticmethod
    def decode_parameters(merchant_parameters: str) -> dict:
        try:
            decoded = json.loads(_b64decode_any(merchant_parameters).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise PaymentGatewayError(f"Ds_MerchantParameters no decodificable: {e}")
        if not isinstance(decoded, dict):
            raise PaymentGatewayError("Ds_MerchantParameters no es un objeto JSON")
        return decoded

    # =======================================================
    # PAGO CON TARJETA
    # =======================================================

    def build_payment_form(self, order_reference: str, amount: Decimal, description: str = "") -> RedsysPaymentForm:
        """Parámetros firmados para redirigir al usuario al TPV virtual."""
        cents = int((Decimal(amount) * 100).quantize(Decimal("1")))
        parameters = {
            "DS_MERCHANT_AMOUNT": str(cents),
            "DS_MERCHANT_ORDER": order_reference,
            "DS_MERCHANT_MERCHANTCODE": self.merchant_code,
            "DS_MERCHANT_CURRENCY": self.currency,
            "DS_MERCHANT_TRANSACTIONTYPE": "0",
            "DS_MERCHANT_TERMINAL": self.terminal,
            "DS_MERCHANT_MERCHANTURL": self.merchant_url,
            "DS_MERCHANT_URLOK": f"{self.frontend_base_url}/payment/success",
            "DS_MERCHANT_URLKO": f"{self.frontend_base_url}/payment/cancel",
            "DS_MERCHANT_PRODUCTDESCRIPTION": description,
        }
        merchant_parameters = self.encode_parameters(parameters)
        return RedsysPaymentForm(
            action=self.url,
            Ds_SignatureVersion=SIGNATURE_VERSION,
            Ds_MerchantParameters=merchant_parameters,
            Ds_Signature=self.sign(order_reference, merchant_parameters),
            order_reference=order_reference,
            amount=amount,
        )

    # =======================================================
    # NOTIFICACIÓN (WEBHOOK)
    # =======================================================

    def verify_notification(self, merchant_parameters: str, signature: str) -> RedsysNotification:
        """
        Verifica la firma y devuelve la notificación tipada.
        Falla cerrado: sin firma o con firma distinta lanza InvalidSignature.
        """
        if not merchant_parameters or not signature:
            raise InvalidSignature("Notificación sin parámetros o sin firma")

        parameters = self.decode_parameters(merchant_parameters)
        order = parameters.get("Ds_Order")
        if not order:
            raise PaymentGatewayError("La notificación no trae Ds_Order")

        expected = self.sign(str(order), merchant_parameters)
        if not hmac.compare_digest(_comparable(expected), _comparable(signature)):
            logger.warning(f"🚫 [WEBHOOK] Firma Redsys inválida para el pedido {order}")
            raise InvalidSignature()

        try:
            return RedsysNotification.model_validate(parameters)
        except ValidationError as e:
            raise PaymentGatewayError(f"Notificación de Redsys incompleta: {e}")
