from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class PriceQuote(BaseModel):
    base_price: Decimal
    day_minutes: int
    night_minutes: int
    discount_percent: Decimal = Decimal("0")
    tariff_id: Optional[int] = None
    total: Decimal
