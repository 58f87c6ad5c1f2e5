from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, require_capability
from backend.app.db.models.core_types import SaleStatus
from backend.app.schemas.sale import SaleCreate, SaleCreated, SaleListRead, SaleRead
from backend.services import cancellation, orders
from backend.services.authorization import Actor, Capability

router = APIRouter(prefix="/sales")


@router.post("", response_model=SaleCreated, status_code=201)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.create_sale)),
):
    request = orders.SaleRequest(
        customer_name=payload.customer_name,
        customer_email=str(payload.customer_email) if payload.customer_email else None,
        customer_phone=payload.customer_phone,
        lines=[orders.SaleLineRequest(product_id=ln.product_id, quantity=ln.quantity) for ln in payload.lines],
    )
    sale = orders.create_sale(db, request, actor_id=actor.id)
    return SaleCreated(
        sale_id=sale.id,
        invoice_number=sale.invoice_number,
        total=sale.total,
        line_count=len(sale.lines),
    )


@router.get("", response_model=SaleListRead)
def list_sales(
    start: date | None = None,
    end: date | None = None,
    customer: str | None = None,
    status: SaleStatus | None = None,
    seller_id: int | None = None,
    order_by: Literal["created_at", "total", "customer_name", "status"] = "created_at",
    direction: Literal["asc", "desc"] = "desc",
    limit: int = Query(default=15, ge=1, le=orders.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_sales)),
):
    page = orders.list_sales(
        db,
        orders.SaleFilters(start=start, end=end, customer=customer, status=status, seller_id=seller_id),
        order_by=order_by,
        direction=direction,
        limit=limit,
        offset=offset,
    )
    return SaleListRead(
        items=[SaleRead.model_validate(s) for s in page.items],
        total_count=page.total_count,
        total_amount=page.total_amount,
        average_amount=page.average_amount,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/{sale_id}", response_model=SaleRead)
def get_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_sales)),
):
    return orders.get_sale(db, sale_id)


@router.patch("/{sale_id}/cancel")
def cancel_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.cancel_sale)),
):
    sale = cancellation.cancel_sale(db, sale_id, actor_id=actor.id)
    return {
        "id": sale.id,
        "invoice_number": sale.invoice_number,
        "status": sale.status,
        "detail": "Sale cancelled, stock restored",
    }
