# sportshub/schemas/redsys.py

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

# ----------------------------------------------------
# FORMULARIO DE PAGO (lo devuelve la API al frontend)
# ----------------------------------------------------

class RedsysPaymentForm(BaseModel):
    """Campos que el frontend envía por POST al TPV virtual de Redsys."""
    action: str = Field(..., description="URL del TPV virtual (pruebas o producción)")
    Ds_SignatureVersion: str = "HMAC_SHA256_V1"
    Ds_MerchantParameters: str
    Ds_Signature: str
    order_reference: str
    amount: Decimal


# ----------------------------------------------------
# NOTIFICACIÓN (webhook) YA VERIFICADA
# ----------------------------------------------------

class RedsysNotification(BaseModel):
    """
    Parámetros decodificados de Ds_MerchantParameters. Solo se construye
    después de verificar la firma.
    """
    order: str = Field(..., alias="Ds_Order")
    response: str = Field(..., alias="Ds_Response")
    amount: Optional[str] = Field(None, alias="Ds_Amount")
    currency: Optional[str] = Field(None, alias="Ds_Currency")
    merchant_code: Optional[str] = Field(None, alias="Ds_MerchantCode")
    terminal: Optional[str] = Field(None, alias="Ds_Terminal")
    transaction_type: Optional[str] = Field(None, alias="Ds_TransactionType")
    authorisation_code: Optional[str] = Field(None, alias="Ds_AuthorisationCode")
    date: Optional[str] = Field(None, alias="Ds_Date")
    hour: Optional[str] = Field(None, alias="Ds_Hour")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @property
    def is_success(self) -> bool:
        # Redsys: 0000-0099 autorizada, cualquier otro código es denegación
        try:
            code = int(self.response)
        except ValueError:
            return False
        return 0 <= code <= 99

    @property
    def amount_decimal(self) -> Optional[Decimal]:
        if not self.amount:
            return None
        return (Decimal(self.amount) / Decimal(100)).quantize(Decimal("0.01"))

    @property
    def event_key(self) -> str:
        return f"{self.order}:{self.response}"


class RedsysWebhookBody(BaseModel):
    """Cuerpo del POST de notificación (form o JSON)."""
    Ds_SignatureVersion: Optional[str] = None
    Ds_MerchantParameters: str
    Ds_Signature: str

    class Config:
        extra = "ignore"
