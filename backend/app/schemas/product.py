from decimal import Decimal

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    category: str | None = Field(default=None, max_length=100)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    stock: int = Field(default=0, ge=0)
    stock_min: int = Field(default=0, ge=0)
    active: bool = True


class ProductRead(BaseModel):
    id: int
    sku: str
    name: str
    category: str | None
    price: Decimal
    stock: int
    stock_min: int
    active: bool

    class Config:
        from_attributes = True


class ProductUpdate(BaseModel):
    # le stock ne se modifie que via ventes, annulations ou /stock/{id}/adjust
    name: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = Field(default=None, max_length=100)
    price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    stock_min: int | None = Field(default=None, ge=0)
    active: bool | None = None
