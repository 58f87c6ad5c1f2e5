"""
Order processor : validation, tarification, numéro de facture, persistance
et sortie de stock d'une vente, en une seule transaction atomique.

Aucune vente partielle n'est jamais observable : toute erreur annule la vente,
ses lignes, les mouvements de stock et l'incrément du compteur de factures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from backend.app.db.models.models_v1 import Sale, SaleLine
from backend.app.db.models.core_types import MovementType, SaleStatus
from backend.services.errors import (
    EmptySale,
    InsufficientStock,
    InvalidQuantity,
    ProductInactive,
    ProductNotFound,
    SaleNotFound,
)
from backend.services.inventory import apply_deltas, lock_products
from backend.services.invoicing import next_invoice_number
from backend.services.transactions import run_in_transaction
from backend.services.utils import as_utc, day_bounds, to_money

logger = logging.getLogger(__name__)

MIN_LINE_QUANTITY = 1
MAX_LINE_QUANTITY = 1000

SALE_SORT_COLUMNS = {
    "created_at": Sale.created_at,
    "total": Sale.total,
    "customer_name": Sale.customer_name,
    "status": Sale.status,
}
MAX_PAGE_SIZE = 50


@dataclass(frozen=True, slots=True)
class SaleLineRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True, slots=True)
class SaleRequest:
    """Vente demandée par la couche HTTP (déjà validée syntaxiquement)."""

    customer_name: str
    lines: List[SaleLineRequest]
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SaleFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    customer: Optional[str] = None
    status: Optional[SaleStatus] = None
    seller_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class SalePage:
    items: List[Sale]
    total_count: int
    total_amount: Decimal
    average_amount: Decimal
    limit: int
    offset: int
    filters: SaleFilters = field(default_factory=SaleFilters)


def _validate_request(request: SaleRequest) -> None:
    if not request.lines:
        raise EmptySale()
    for line in request.lines:
        if not MIN_LINE_QUANTITY <= line.quantity <= MAX_LINE_QUANTITY:
            raise InvalidQuantity(line.quantity, minimum=MIN_LINE_QUANTITY, maximum=MAX_LINE_QUANTITY)


def _requested_by_product(request: SaleRequest) -> dict[int, int]:
    # une même référence peut apparaître sur plusieurs lignes : le contrôle
    # de stock porte sur la quantité cumulée
    requested: dict[int, int] = {}
    for line in request.lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
    return requested


def create_sale(
    db: Session,
    request: SaleRequest,
    *,
    actor_id: int,
    now: datetime | None = None,
) -> Sale:
    """
    Enregistre une vente complète (statut completed).

    Étapes, dans une transaction :
    1. verrouillage des produits par id croissant, contrôle existence /
       actif / stock
    2. sous-totaux au prix courant, total
    3. numéro de facture (compteur annuel atomique)
    4. insertion de la vente et de ses lignes
    5. sortie de stock via le ledger
    """
    _validate_request(request)
    created_at = as_utc(now)

    def work(db: Session) -> Sale:
        requested = _requested_by_product(request)
        products = lock_products(db, requested)

        for pid in sorted(requested):
            product = products.get(pid)
            if product is None:
                raise ProductNotFound(pid)
            if not product.active:
                raise ProductInactive(pid, product.name)
            if product.stock < requested[pid]:
                raise InsufficientStock(pid, available=product.stock, requested=requested[pid])

        lines: list[SaleLine] = []
        total = to_money(0)
        for position, item in enumerate(request.lines, start=1):
            unit_price = to_money(products[item.product_id].price)
            subtotal = to_money(unit_price * item.quantity)
            total += subtotal
            lines.append(
                SaleLine(
                    position=position,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    subtotal=subtotal,
                )
            )

        invoice_number = next_invoice_number(db, created_at.year)

        sale = Sale(
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            total=to_money(total),
            status=SaleStatus.completed,
            invoice_number=invoice_number,
            seller_id=actor_id,
            created_at=created_at,
            lines=lines,
        )
        db.add(sale)
        db.flush()  # sale.id pour les mouvements

        apply_deltas(
            db,
            {pid: -qty for pid, qty in requested.items()},
            movement_type=MovementType.sale,
            actor_id=actor_id,
            key_prefix=f"SALE:{sale.id}",
            sale_id=sale.id,
            reason=f"Sale {invoice_number}",
        )
        db.flush()
        return sale

    sale = run_in_transaction(db, work, operation="create_sale")
    logger.info(
        "Sale %s created: invoice=%s total=%s lines=%d seller=%s",
        sale.id, sale.invoice_number, sale.total, len(sale.lines), actor_id,
    )
    return sale


def get_sale(db: Session, sale_id: int) -> Sale:
    sale = db.execute(
        select(Sale)
        .where(Sale.id == sale_id)
        .options(selectinload(Sale.lines).selectinload(SaleLine.product), selectinload(Sale.seller))
    ).scalar_one_or_none()
    if sale is None:
        raise SaleNotFound(sale_id)
    return sale


def list_sales(
    db: Session,
    filters: SaleFilters | None = None,
    *,
    order_by: str = "created_at",
    direction: str = "desc",
    limit: int = 15,
    offset: int = 0,
) -> SalePage:
    """Ventes filtrées + statistiques sur l'ensemble filtré (pas seulement la page)."""
    filters = filters or SaleFilters()
    clauses = []

    if filters.start is not None and filters.end is not None:
        lower, upper = day_bounds(filters.start, filters.end)
        clauses += [Sale.created_at >= lower, Sale.created_at < upper]
    elif filters.start is not None:
        clauses.append(Sale.created_at >= day_bounds(filters.start, filters.start)[0])
    elif filters.end is not None:
        clauses.append(Sale.created_at < day_bounds(filters.end, filters.end)[1])
    if filters.customer:
        # % et _ saisis par l'utilisateur restent littéraux
        pattern = filters.customer.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        clauses.append(Sale.customer_name.ilike(f"%{pattern}%", escape="\\"))
    if filters.status is not None:
        clauses.append(Sale.status == filters.status)
    if filters.seller_id is not None:
        clauses.append(Sale.seller_id == filters.seller_id)

    count, amount, average = db.execute(
        select(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total), 0),
            func.avg(Sale.total),
        ).where(*clauses)
    ).one()

    column = SALE_SORT_COLUMNS.get(order_by, Sale.created_at)
    ordering = (column.asc(), Sale.id.asc()) if direction == "asc" else (column.desc(), Sale.id.desc())
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    items = (
        db.execute(
            select(Sale)
            .where(*clauses)
            .options(selectinload(Sale.lines))
            .order_by(*ordering)
            .limit(limit)
            .offset(offset)
        )
        .scalars()
        .all()
    )

    return SalePage(
        items=list(items),
        total_count=int(count),
        total_amount=to_money(amount),
        average_amount=to_money(average),
        limit=limit,
        offset=offset,
        filters=filters,
    )


__all__ = [
    "SaleLineRequest",
    "SaleRequest",
    "SaleFilters",
    "SalePage",
    "create_sale",
    "get_sale",
    "list_sales",
    "MAX_LINE_QUANTITY",
]
