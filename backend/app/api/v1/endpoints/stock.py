from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, require_capability
from backend.app.db.models.models_v1 import Product, StockMovement
from backend.app.schemas.stock import StockAdjust, StockLevelRead, StockMovementRead
from backend.services.authorization import Actor, Capability
from backend.services.inventory import adjust_stock

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[StockLevelRead],
)
def get_stock(
    product_id: int | None = None,
    low_only: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_sales)),
):
    """
    Stock (READ ONLY)
    - le stock ne se modifie que via ventes, annulations ou /adjust
    """
    stmt = select(Product).order_by(Product.sku)

    if product_id is not None:
        stmt = stmt.where(Product.id == product_id)

    if low_only:
        stmt = stmt.where(Product.active.is_(True)).where(Product.stock <= Product.stock_min)

    return db.execute(stmt).scalars().all()


@router.post("/{product_id}/adjust", response_model=StockMovementRead)
def adjust_product_stock(
    product_id: int,
    payload: StockAdjust,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.adjust_stock)),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    return adjust_stock(
        db,
        product_id,
        payload.operation,
        payload.quantity,
        actor_id=actor.id,
        idempotency_key=idempotency_key,
        reason=payload.reason,
    )


@router.get("/{product_id}/movements", response_model=list[StockMovementRead])
def list_movements(
    product_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.adjust_stock)),
):
    rows = (
        db.execute(
            select(StockMovement)
            .where(StockMovement.product_id == product_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        )
        .scalars()
        .all()
    )
    return rows
