from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, require_capability
from backend.app.db.models.models_v1 import Product
from backend.app.schemas.product import ProductCreate, ProductRead, ProductUpdate
from backend.services.authorization import Actor, Capability
from backend.services.errors import ProductNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products")


def _get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


@router.get("", response_model=list[ProductRead])
def list_products(
    active: bool | None = None,
    category: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_sales)),
):
    stmt = select(Product).order_by(Product.sku)
    if active is not None:
        stmt = stmt.where(Product.active.is_(active))
    if category is not None:
        stmt = stmt.where(Product.category == category)
    return db.execute(stmt).scalars().all()


@router.post("", response_model=ProductRead, status_code=201)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.manage_catalog)),
):
    exists = db.execute(select(Product).where(Product.sku == payload.sku)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="SKU already exists")

    p = Product(
        sku=payload.sku,
        name=payload.name,
        category=payload.category,
        price=payload.price,
        stock=payload.stock,
        stock_min=payload.stock_min,
        active=payload.active,
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@router.get("/{product_id}", response_model=ProductRead)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_sales)),
):
    return _get_product(db, product_id)


@router.patch("/{product_id}", response_model=ProductRead)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.manage_catalog)),
):
    """
    Mise à jour partielle du catalogue.
    Les ventes déjà enregistrées gardent leur prix unitaire figé.
    """
    p = _get_product(db, product_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        # seule la catégorie accepte null
        if value is None and field != "category":
            continue
        setattr(p, field, value)
    db.commit()
    db.refresh(p)
    logger.info("Product %s updated by %s: %s", product_id, actor.id, sorted(changes))
    return p


def _set_active(db: Session, product_id: int, active: bool, actor: Actor) -> Product:
    p = _get_product(db, product_id)
    p.active = active
    db.commit()
    db.refresh(p)
    logger.info("Product %s %s by %s", product_id, "restored" if active else "deactivated", actor.id)
    return p


@router.delete("/{product_id}", response_model=ProductRead)
def deactivate_product(
    product_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.manage_catalog)),
):
    # désactivation logique : les lignes de vente gardent leur référence
    return _set_active(db, product_id, False, actor)


@router.post("/{product_id}/restore", response_model=ProductRead)
def restore_product(
    product_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.manage_catalog)),
):
    return _set_active(db, product_id, True, actor)
