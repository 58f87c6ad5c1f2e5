from datetime import datetime

from pydantic import BaseModel, Field

from backend.app.db.models.core_types import MovementType, StockOperation


class StockLevelRead(BaseModel):
    id: int
    sku: str
    name: str

    stock: int
    stock_min: int
    active: bool

    class Config:
        from_attributes = True


class StockAdjust(BaseModel):
    operation: StockOperation
    quantity: int = Field(gt=0)
    reason: str | None = Field(default=None, max_length=255)


class StockMovementRead(BaseModel):
    id: int
    product_id: int
    sale_id: int | None
    movement_type: MovementType
    quantity: int
    stock_after: int  # READ ONLY : stock résultant du mouvement
    reason: str | None
    created_by: int
    created_at: datetime

    class Config:
        from_attributes = True
