import re
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field, field_validator

from backend.app.db.models.core_types import SaleStatus


class SaleLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, le=1000)


class SaleCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=255)
    customer_email: EmailStr | None = None
    customer_phone: str | None = Field(default=None, max_length=20)
    lines: list[SaleLineCreate] = Field(min_length=1)

    @field_validator("customer_name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("customer_phone", mode="before")
    @classmethod
    def _digits_only(cls, v):
        # on ne garde que les chiffres ("+33 6 12-34" -> "3361234")
        if isinstance(v, str):
            v = re.sub(r"[^0-9]", "", v)
            return v or None
        return v


class SaleCreated(BaseModel):
    sale_id: int
    invoice_number: str
    total: Decimal
    line_count: int


class SaleLineRead(BaseModel):
    position: int
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class SaleRead(BaseModel):
    id: int
    customer_name: str
    customer_email: str | None
    customer_phone: str | None
    total: Decimal
    status: SaleStatus
    invoice_number: str
    seller_id: int
    created_at: datetime
    cancelled_at: datetime | None
    cancelled_by: int | None
    lines: list[SaleLineRead]

    class Config:
        from_attributes = True


class SaleListRead(BaseModel):
    items: list[SaleRead]
    total_count: int
    total_amount: Decimal
    average_amount: Decimal
    limit: int
    offset: int
