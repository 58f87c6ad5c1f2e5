from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from backend.app.db.models.models_v1 import InvoiceSequence, Product, Sale, SaleLine, StockMovement
from backend.app.db.models.core_types import MovementType, SaleStatus
from backend.services.errors import (
    EmptySale,
    InsufficientStock,
    InvalidQuantity,
    ProductInactive,
    ProductNotFound,
    SaleNotFound,
)
from backend.services.orders import SaleFilters, SaleLineRequest, SaleRequest, create_sale, get_sale, list_sales

SALE_TIME = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _request(*lines, customer="Marie Dupont"):
    return SaleRequest(
        customer_name=customer,
        lines=[SaleLineRequest(product_id=pid, quantity=qty) for pid, qty in lines],
    )


def _count(db, column):
    return db.execute(select(func.count(column))).scalar_one()


def _stock(db, product_id):
    return db.execute(select(Product.stock).where(Product.id == product_id)).scalar_one()


def test_create_sale_two_lines(db_session, make_product, employee):
    """
    GIVEN P1 à 10.00 (stock 5), P2 à 20.00 (stock 3)
    - vente : 2 x P1 + 1 x P2

    THEN
    - total 40.00, première facture de l'année FAC-2025-000001
    - stocks P1=3, P2=2, une sortie SALE par produit
    """
    p1 = make_product("OP-1", price="10.00", stock=5)
    p2 = make_product("OP-2", price="20.00", stock=3)

    sale = create_sale(db_session, _request((p1.id, 2), (p2.id, 1)), actor_id=employee.id, now=SALE_TIME)

    assert sale.total == Decimal("40.00")
    assert sale.invoice_number == "FAC-2025-000001"
    assert sale.status == SaleStatus.completed
    assert sale.seller_id == employee.id
    assert [(ln.position, ln.product_id, ln.quantity, ln.subtotal) for ln in sale.lines] == [
        (1, p1.id, 2, Decimal("20.00")),
        (2, p2.id, 1, Decimal("20.00")),
    ]

    assert _stock(db_session, p1.id) == 3
    assert _stock(db_session, p2.id) == 2

    movements = db_session.execute(
        select(StockMovement).where(StockMovement.sale_id == sale.id).order_by(StockMovement.product_id)
    ).scalars().all()
    assert [(m.product_id, m.movement_type, m.quantity, m.stock_after) for m in movements] == [
        (p1.id, MovementType.sale, 2, 3),
        (p2.id, MovementType.sale, 1, 2),
    ]


def test_invoice_numbers_follow_each_other(db_session, make_product, employee):
    p = make_product("OP-3", stock=10)

    first = create_sale(db_session, _request((p.id, 1)), actor_id=employee.id, now=SALE_TIME)
    second = create_sale(db_session, _request((p.id, 1)), actor_id=employee.id, now=SALE_TIME)

    assert first.invoice_number == "FAC-2025-000001"
    assert second.invoice_number == "FAC-2025-000002"


def test_same_product_on_two_lines_checks_cumulated_quantity(db_session, make_product, employee):
    """
    GIVEN P stock=3
    - deux lignes de 2 x P
    THEN InsufficientStock sur la quantité cumulée (4), rien n'est écrit
    """
    p = make_product("OP-4", stock=3)

    with pytest.raises(InsufficientStock) as exc:
        create_sale(db_session, _request((p.id, 2), (p.id, 2)), actor_id=employee.id, now=SALE_TIME)

    assert exc.value.available == 3
    assert exc.value.requested == 4
    assert _stock(db_session, p.id) == 3


def test_unit_price_is_snapshotted(db_session, make_product, employee):
    p = make_product("OP-5", price="12.50", stock=10)
    sale = create_sale(db_session, _request((p.id, 3)), actor_id=employee.id, now=SALE_TIME)

    db_session.execute(Product.__table__.update().where(Product.id == p.id).values(price=Decimal("99.99")))
    db_session.commit()

    line = get_sale(db_session, sale.id).lines[0]
    assert line.unit_price == Decimal("12.50")
    assert line.subtotal == Decimal("37.50")
    assert get_sale(db_session, sale.id).total == Decimal("37.50")


def test_failed_sale_leaves_no_trace(db_session, make_product, employee):
    """
    GIVEN P1 stock=5, P2 stock=0
    - vente 1 x P1 + 1 x P2

    THEN
    - InsufficientStock
    - ni vente, ni ligne, ni mouvement, stock P1 inchangé
    - le compteur de factures n'a pas été consommé
    """
    p1 = make_product("OP-6", stock=5)
    p2 = make_product("OP-7", stock=0)

    with pytest.raises(InsufficientStock):
        create_sale(db_session, _request((p1.id, 1), (p2.id, 1)), actor_id=employee.id, now=SALE_TIME)

    assert _count(db_session, Sale.id) == 0
    assert _count(db_session, SaleLine.id) == 0
    assert _count(db_session, StockMovement.id) == 0
    assert _count(db_session, InvoiceSequence.year) == 0
    assert _stock(db_session, p1.id) == 5

    ok = create_sale(db_session, _request((p1.id, 1)), actor_id=employee.id, now=SALE_TIME)
    assert ok.invoice_number == "FAC-2025-000001"


def test_unknown_and_inactive_products(db_session, make_product, employee):
    off = make_product("OP-8", stock=10, active=False)

    with pytest.raises(ProductNotFound):
        create_sale(db_session, _request((999_999, 1)), actor_id=employee.id)
    with pytest.raises(ProductInactive):
        create_sale(db_session, _request((off.id, 1)), actor_id=employee.id)

    assert _stock(db_session, off.id) == 10


def test_validation_errors(db_session, make_product, employee):
    p = make_product("OP-9", stock=10)

    with pytest.raises(EmptySale):
        create_sale(db_session, _request(), actor_id=employee.id)
    with pytest.raises(InvalidQuantity):
        create_sale(db_session, _request((p.id, 0)), actor_id=employee.id)
    with pytest.raises(InvalidQuantity):
        create_sale(db_session, _request((p.id, 1001)), actor_id=employee.id)


def test_get_sale_not_found(db_session):
    with pytest.raises(SaleNotFound):
        get_sale(db_session, 12345)


def test_list_sales_filters_and_stats(db_session, make_product, employee, admin):
    p = make_product("OP-10", price="5.00", stock=100)

    create_sale(db_session, _request((p.id, 1), customer="Alice Martin"), actor_id=employee.id, now=SALE_TIME)
    create_sale(db_session, _request((p.id, 3), customer="Bruno Petit"), actor_id=admin.id, now=SALE_TIME)
    create_sale(
        db_session,
        _request((p.id, 2), customer="Alice Durand"),
        actor_id=employee.id,
        now=SALE_TIME.replace(month=4),
    )

    page = list_sales(db_session, SaleFilters(start=date(2025, 3, 1), end=date(2025, 3, 31)))
    assert page.total_count == 2
    assert page.total_amount == Decimal("20.00")
    assert page.average_amount == Decimal("10.00")

    page = list_sales(db_session, SaleFilters(customer="alice"), order_by="total", direction="asc")
    assert [s.customer_name for s in page.items] == ["Alice Martin", "Alice Durand"]

    page = list_sales(db_session, SaleFilters(seller_id=admin.id))
    assert [s.customer_name for s in page.items] == ["Bruno Petit"]

    page = list_sales(db_session, limit=2, offset=2)
    assert page.total_count == 3
    assert len(page.items) == 1


def test_customer_filter_treats_wildcards_literally(db_session, make_product, employee):
    p = make_product("OP-11", stock=10)
    create_sale(db_session, _request((p.id, 1), customer="Boutique 50% Off"), actor_id=employee.id, now=SALE_TIME)
    create_sale(db_session, _request((p.id, 1), customer="Alice Martin"), actor_id=employee.id, now=SALE_TIME)

    assert [s.customer_name for s in list_sales(db_session, SaleFilters(customer="%")).items] == ["Boutique 50% Off"]
    assert list_sales(db_session, SaleFilters(customer="_")).total_count == 0


def test_naive_now_is_read_as_utc(db_session, make_product, employee):
    """
    GIVEN now naïf au 31/12 23:30
    THEN lu comme de l'UTC : facture de l'année 2025, quel que soit le fuseau de l'hôte
    """
    p = make_product("OP-12", stock=10)

    sale = create_sale(db_session, _request((p.id, 1)), actor_id=employee.id, now=datetime(2025, 12, 31, 23, 30))

    assert sale.invoice_number == "FAC-2025-000001"
    assert sale.created_at.replace(tzinfo=None) == datetime(2025, 12, 31, 23, 30)
