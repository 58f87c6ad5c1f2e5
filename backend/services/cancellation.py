"""
Compensation : annulation d'une vente complétée.

Remet en stock la quantité de chaque ligne puis passe la vente en
cancelled, dans une seule transaction. L'annulation n'a lieu qu'une fois :
un second appel échoue (AlreadyCancelled) sans toucher au stock.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Sale, SaleLine
from backend.app.db.models.core_types import MovementType, SaleStatus
from backend.services.errors import AlreadyCancelled, SaleNotCompleted, SaleNotFound
from backend.services.inventory import apply_deltas
from backend.services.transactions import run_in_transaction
from backend.services.utils import as_utc

logger = logging.getLogger(__name__)


def cancel_sale(
    db: Session,
    sale_id: int,
    *,
    actor_id: int,
    now: datetime | None = None,
) -> Sale:
    cancelled_at = as_utc(now)

    def work(db: Session) -> Sale:
        # ordre des verrous : la vente d'abord, puis ses produits par id croissant
        sale = db.execute(select(Sale).where(Sale.id == sale_id).with_for_update()).scalar_one_or_none()
        if sale is None:
            raise SaleNotFound(sale_id)
        if sale.status == SaleStatus.cancelled:
            raise AlreadyCancelled(sale_id)
        if sale.status != SaleStatus.completed:
            raise SaleNotCompleted(sale_id, sale.status.value)

        # compare-and-swap completed -> cancelled : un seul appelant passe
        swapped = db.execute(
            update(Sale)
            .where(Sale.id == sale_id)
            .where(Sale.status == SaleStatus.completed)
            .values(status=SaleStatus.cancelled, cancelled_at=cancelled_at, cancelled_by=actor_id)
            .execution_options(synchronize_session=False)
        ).rowcount
        if swapped != 1:
            raise AlreadyCancelled(sale_id)

        lines = db.execute(select(SaleLine).where(SaleLine.sale_id == sale_id)).scalars().all()
        restored: dict[int, int] = {}
        for line in lines:
            restored[line.product_id] = restored.get(line.product_id, 0) + line.quantity

        apply_deltas(
            db,
            restored,
            movement_type=MovementType.sale_reversal,
            actor_id=actor_id,
            key_prefix=f"SALE-REVERSAL:{sale_id}",
            sale_id=sale_id,
            reason=f"Cancellation of {sale.invoice_number}",
        )
        db.flush()
        db.expire(sale)
        return sale

    sale = run_in_transaction(db, work, operation="cancel_sale")
    logger.info("Sale %s (%s) cancelled by %s, stock restored", sale_id, sale.invoice_number, actor_id)
    return sale


__all__ = ["cancel_sale"]
