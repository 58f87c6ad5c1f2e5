from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select

from backend.app.core.logging import setup_logging
from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import Product, User
from backend.app.db.models.core_types import Role

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    ("CAF-001", "Café molido 500g", "Bebidas", Decimal("10.00"), 40, 5),
    ("TE-001", "Té verde 20u", "Bebidas", Decimal("4.50"), 25, 5),
    ("GAL-001", "Galletas surtidas", "Snacks", Decimal("2.75"), 60, 10),
    ("AZU-001", "Azúcar 1kg", "Despensa", Decimal("1.90"), 3, 8),
]


def run_seed():
    db = SessionLocal()
    try:
        # 1) Admin + vendeur
        if not db.scalar(select(User).where(User.name == "ADMIN")):
            db.add(User(name="ADMIN", role=Role.admin, active=True))
        if not db.scalar(select(User).where(User.name == "VENDEDOR")):
            db.add(User(name="VENDEDOR", role=Role.employee, active=True))

        # 2) Catalogue de démo
        for sku, name, category, price, stock, stock_min in SAMPLE_PRODUCTS:
            if db.scalar(select(Product).where(Product.sku == sku)):
                continue
            db.add(
                Product(
                    sku=sku,
                    name=name,
                    category=category,
                    price=price,
                    stock=stock,
                    stock_min=stock_min,
                    active=True,
                )
            )

        db.commit()
        logger.info("SEED OK: users=ADMIN,VENDEDOR products=%d", len(SAMPLE_PRODUCTS))
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    run_seed()
