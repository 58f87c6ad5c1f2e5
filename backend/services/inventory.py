from __future__ import annotations

import hashlib
import logging
from typing import Iterable, Mapping
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.util import identity_key

from backend.app.db.models.models_v1 import Product, StockMovement
from backend.app.db.models.core_types import MovementType, StockOperation
from backend.services.errors import InsufficientStock, InvalidQuantity, ProductNotFound
from backend.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


def movement_key(*parts: object) -> str:
    raw = ":".join(str(p) for p in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def check_available(db: Session, product_id: int, qty: int) -> bool:
    """Vrai ssi le produit existe, est actif et a au moins `qty` en stock (qty >= 1)."""
    if qty < 1:
        return False
    product = db.get(Product, product_id)
    return product is not None and product.active and product.stock >= qty


def lock_products(db: Session, product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Verrouille (FOR UPDATE) les lignes produits, toujours par id croissant.

    L'ordre fixe évite l'attente circulaire entre deux ventes multi-produits
    qui partagent des produits. Les ids absents ne sont pas dans le résultat.
    """
    ids = sorted({int(pid) for pid in product_ids if pid is not None})
    if not ids:
        return {}

    rows = (
        db.execute(
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id.asc())
            .with_for_update()
        )
        .scalars()
        .all()
    )
    return {int(p.id): p for p in rows}


def _sync_stock(db: Session, product_id: int, stock: int) -> None:
    # l'UPDATE est fait hors ORM : on aligne l'objet éventuellement chargé
    product = db.identity_map.get(identity_key(Product, product_id))
    if product is not None:
        set_committed_value(product, "stock", stock)


def apply_delta(
    db: Session,
    product_id: int,
    delta: int,
    *,
    movement_type: MovementType,
    actor_id: int,
    idempotency_key: str,
    sale_id: int | None = None,
    reason: str | None = None,
) -> StockMovement:
    """
    Ajoute `delta` au stock, de façon atomique.

    UPDATE gardé (stock + delta >= 0) : même sans verrou préalable, le stock
    ne peut jamais devenir négatif. Enregistre le mouvement correspondant.
    """
    if delta == 0:
        raise InvalidQuantity(delta)

    new_stock = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .where(Product.stock + delta >= 0)
        .values(stock=Product.stock + delta)
        .returning(Product.stock)
        .execution_options(synchronize_session=False)
    ).scalar_one_or_none()

    if new_stock is None:
        current = db.execute(select(Product.stock).where(Product.id == product_id)).scalar_one_or_none()
        if current is None:
            raise ProductNotFound(product_id)
        raise InsufficientStock(product_id, available=int(current), requested=-delta)

    _sync_stock(db, product_id, int(new_stock))

    mv = StockMovement(
        product_id=product_id,
        sale_id=sale_id,
        movement_type=movement_type,
        quantity=abs(delta),
        stock_after=int(new_stock),
        reason=reason,
        created_by=actor_id,
        idempotency_key=idempotency_key,
    )
    db.add(mv)
    return mv


def apply_deltas(
    db: Session,
    deltas: Mapping[int, int],
    *,
    movement_type: MovementType,
    actor_id: int,
    key_prefix: str,
    sale_id: int | None = None,
    reason: str | None = None,
) -> list[StockMovement]:
    """
    Ajustement multi-produits tout-ou-rien.

    Tous les produits sont verrouillés puis validés avant la première
    écriture : si une ligne échoue, aucun stock n'est touché.
    """
    ids = sorted(deltas)
    products = lock_products(db, ids)

    for pid in ids:
        product = products.get(pid)
        if product is None:
            raise ProductNotFound(pid)
        if product.stock + deltas[pid] < 0:
            raise InsufficientStock(pid, available=product.stock, requested=-deltas[pid])

    return [
        apply_delta(
            db,
            pid,
            deltas[pid],
            movement_type=movement_type,
            actor_id=actor_id,
            idempotency_key=movement_key(key_prefix, pid),
            sale_id=sale_id,
            reason=reason,
        )
        for pid in ids
    ]


def _find_existing_movement(db: Session, key: str) -> StockMovement | None:
    return db.execute(select(StockMovement).where(StockMovement.idempotency_key == key)).scalar_one_or_none()


def adjust_stock(
    db: Session,
    product_id: int,
    operation: StockOperation,
    quantity: int,
    *,
    actor_id: int,
    idempotency_key: str | None = None,
    reason: str | None = None,
) -> StockMovement:
    """
    Ajustement direct hors vente (réassort, casse, inventaire).

    Avec une clé d'idempotence, un rejeu renvoie le mouvement déjà
    enregistré sans retoucher le stock.
    """
    if quantity < 1:
        raise InvalidQuantity(quantity)

    if idempotency_key and idempotency_key.strip():
        key = movement_key("ADJUST-IDEMP", idempotency_key.strip())
    else:
        key = uuid4().hex

    delta = quantity if operation == StockOperation.add else -quantity
    movement_type = MovementType.restock if operation == StockOperation.add else MovementType.adjustment

    replayed = False

    def work(db: Session) -> StockMovement:
        nonlocal replayed
        existing = _find_existing_movement(db, key)
        if existing:
            replayed = True
            return existing

        if product_id not in lock_products(db, [product_id]):
            raise ProductNotFound(product_id)

        mv = apply_delta(
            db,
            product_id,
            delta,
            movement_type=movement_type,
            actor_id=actor_id,
            idempotency_key=key,
            reason=reason,
        )
        db.flush()
        return mv

    try:
        mv = run_in_transaction(db, work, operation="adjust_stock")
    except IntegrityError:
        # deux rejeux simultanés de la même clé : le premier a gagné
        existing = _find_existing_movement(db, key)
        if existing is None:
            raise
        return existing

    if replayed:
        logger.info("Stock adjust replay product=%s movement=%s", product_id, mv.id)
        return mv

    logger.info(
        "Stock %s product=%s qty=%s stock_after=%s actor=%s",
        operation.value, product_id, quantity, mv.stock_after, actor_id,
    )
    return mv


def low_stock_products(db: Session, threshold: int | None = None) -> list[Product]:
    """Produits actifs sous le seuil explicite, ou sous leur stock_min."""
    stmt = select(Product).where(Product.active.is_(True))
    if threshold is not None:
        stmt = stmt.where(Product.stock <= threshold)
    else:
        stmt = stmt.where(Product.stock <= Product.stock_min)
    return list(db.execute(stmt.order_by(Product.stock.asc(), Product.id.asc())).scalars().all())


__all__ = [
    "check_available",
    "lock_products",
    "apply_delta",
    "apply_deltas",
    "adjust_stock",
    "low_stock_products",
    "movement_key",
]
