from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from backend.services import reporting
from backend.services.cancellation import cancel_sale
from backend.services.errors import InvalidDateRange
from backend.services.orders import SaleLineRequest, SaleRequest, create_sale
from backend.services.utils import utc_day

MARCH = (date(2025, 3, 1), date(2025, 3, 31))


def _at(month, day):
    return datetime(2025, month, day, 12, 0, tzinfo=timezone.utc)


def _sell(db, seller, when, *lines):
    request = SaleRequest(
        customer_name="Client",
        lines=[SaleLineRequest(product_id=p.id, quantity=qty) for p, qty in lines],
    )
    return create_sale(db, request, actor_id=seller.id, now=when)


@pytest.fixture
def catalog(make_product):
    return {
        "A": make_product("RP-A", price="10.00", stock=50, category="Boissons"),
        "B": make_product("RP-B", price="5.00", stock=50, category="Snacks"),
        "C": make_product("RP-C", price="20.00", stock=10, category="Boissons"),
        "D": make_product("RP-D", price="20.00", stock=10, category="Boissons"),
    }


@pytest.fixture
def march_sales(db_session, catalog, employee, admin):
    """
    - 10/03 employee : 2 x A + 2 x B = 30.00
    - 12/03 admin    : 1 x C + 1 x D = 40.00
    - 17/03 employee : 4 x B         = 20.00
    - 17/03 employee : 1 x A         = 10.00 (annulée)
    - 20/02 employee : 1 x A         = 10.00 (période précédente)
    """
    a, b, c, d = catalog["A"], catalog["B"], catalog["C"], catalog["D"]
    _sell(db_session, employee, _at(3, 10), (a, 2), (b, 2))
    _sell(db_session, admin, _at(3, 12), (c, 1), (d, 1))
    _sell(db_session, employee, _at(3, 17), (b, 4))
    cancelled = _sell(db_session, employee, _at(3, 17), (a, 1))
    cancel_sale(db_session, cancelled.id, actor_id=admin.id)
    _sell(db_session, employee, _at(2, 20), (a, 1))
    return catalog


def test_period_totals_only_completed(db_session, march_sales):
    totals = reporting.period_totals(db_session, *MARCH)

    assert totals.sales_count == 3
    assert totals.revenue == Decimal("90.00")
    assert totals.average == Decimal("30.00")


def test_period_totals_empty_range(db_session, march_sales):
    totals = reporting.period_totals(db_session, date(2024, 1, 1), date(2024, 1, 31))

    assert totals.sales_count == 0
    assert totals.revenue == Decimal("0.00")
    assert totals.average == Decimal("0.00")


def test_range_end_is_inclusive(db_session, march_sales):
    assert reporting.period_totals(db_session, date(2025, 3, 17), date(2025, 3, 17)).sales_count == 1
    assert reporting.period_totals(db_session, date(2025, 3, 11), date(2025, 3, 16)).sales_count == 1


def test_invalid_range(db_session):
    with pytest.raises(InvalidDateRange):
        reporting.period_totals(db_session, date(2025, 3, 31), date(2025, 3, 1))


def test_sales_series_buckets(db_session, march_sales):
    by_day = reporting.sales_series(db_session, *MARCH, bucket="day")
    assert [(p.label, p.sales_count, p.revenue) for p in by_day] == [
        ("10/03", 1, Decimal("30.00")),
        ("12/03", 1, Decimal("40.00")),
        ("17/03", 1, Decimal("20.00")),
    ]

    by_week = reporting.sales_series(db_session, *MARCH, bucket="week")
    assert [(p.bucket_start, p.label, p.sales_count, p.revenue) for p in by_week] == [
        (date(2025, 3, 10), "2025-W11", 2, Decimal("70.00")),
        (date(2025, 3, 17), "2025-W12", 1, Decimal("20.00")),
    ]

    by_month = reporting.sales_series(db_session, date(2025, 2, 1), date(2025, 3, 31), bucket="month")
    assert [(p.label, p.sales_count, p.revenue) for p in by_month] == [
        ("2025-02", 1, Decimal("10.00")),
        ("2025-03", 3, Decimal("90.00")),
    ]

    with pytest.raises(ValueError):
        reporting.sales_series(db_session, *MARCH, bucket="year")


def test_top_products_ranking_and_tie_break(db_session, march_sales):
    """
    THEN
    - B (30.00) devant A (20.00, qty 2) devant C et D (20.00, qty 1)
    - C avant D : égalité parfaite, départagés par id croissant
    - pourcentages calculés sur les totaux de la plage
    """
    top = reporting.top_products(db_session, *MARCH)

    assert [i.sku for i in top.items] == ["RP-B", "RP-A", "RP-C", "RP-D"]
    assert [i.rank for i in top.items] == [1, 2, 3, 4]
    assert top.total_revenue == Decimal("90.00")
    assert top.total_quantity == 10

    first = top.items[0]
    assert (first.quantity, first.revenue, first.times_purchased) == (6, Decimal("30.00"), 2)
    assert first.revenue_pct == Decimal("33.33")
    assert first.quantity_pct == Decimal("60.00")

    assert [i.sku for i in reporting.top_products(db_session, *MARCH, limit=2).items] == ["RP-B", "RP-A"]


def test_growth_against_previous_period(db_session, march_sales):
    growth = reporting.period_growth(db_session, *MARCH)

    assert growth.previous.sales_count == 1
    assert growth.sales_growth_pct == Decimal("200.00")
    assert growth.revenue_growth_pct == Decimal("800.00")


def test_growth_is_zero_without_previous_sales(db_session, march_sales):
    growth = reporting.period_growth(db_session, date(2025, 2, 1), date(2025, 2, 28))

    assert growth.previous.sales_count == 0
    assert growth.sales_growth_pct == Decimal("0.00")
    assert growth.revenue_growth_pct == Decimal("0.00")


def test_previous_period_same_length():
    assert reporting.previous_period(date(2025, 3, 1), date(2025, 3, 31)) == (date(2025, 1, 29), date(2025, 2, 28))
    assert reporting.previous_period(date(2025, 3, 10), date(2025, 3, 10)) == (date(2025, 3, 9), date(2025, 3, 9))


def test_seller_ranking(db_session, march_sales, employee, admin):
    report = reporting.seller_ranking(db_session, *MARCH)

    assert [(s.seller_id, s.sales_count, s.revenue) for s in report.items] == [
        (employee.id, 2, Decimal("50.00")),
        (admin.id, 1, Decimal("40.00")),
    ]
    assert report.items[0].average_ticket == Decimal("25.00")
    assert report.items[0].revenue_pct == Decimal("55.56")
    assert report.items[1].sales_pct == Decimal("33.33")
    assert report.total_sales == 3


def test_sales_report(db_session, march_sales):
    report = reporting.sales_report(db_session, *MARCH, bucket="week", top=1)

    assert report.days == 31
    assert report.totals.revenue == Decimal("90.00")
    assert len(report.series) == 2
    assert [i.sku for i in report.top_products.items] == ["RP-B"]


def test_financial_summary(db_session, march_sales):
    summary = reporting.financial_summary(db_session, *MARCH)

    assert summary.revenue == Decimal("90.00")
    assert summary.average_ticket == Decimal("30.00")
    # A: 47 x 10, B: 44 x 5, C et D: 9 x 20
    assert summary.inventory_value == Decimal("1050.00")
    assert [(c.category, c.revenue, c.quantity) for c in summary.by_category] == [
        ("Boissons", Decimal("60.00"), 4),
        ("Snacks", Decimal("30.00"), 6),
    ]


def test_dashboard(db_session, march_sales):
    board = reporting.dashboard(db_session, date(2025, 3, 17))

    assert board.sales_today == 1
    assert board.revenue_today == Decimal("20.00")
    assert board.active_products == 4
    assert board.low_stock_products == 0


def test_low_stock_report(db_session, make_product):
    make_product("LW-X", stock=0, stock_min=2)
    make_product("LW-Y", stock=1, stock_min=3)
    make_product("LW-Z", stock=4, stock_min=10)
    make_product("LW-W", stock=8, stock_min=2)

    report = reporting.low_stock_report(db_session)
    assert [(i.name, i.status) for i in report.items] == [
        ("Product LW-X", "out_of_stock"),
        ("Product LW-Y", "critical"),
        ("Product LW-Z", "critical"),
    ]
    assert (report.affected, report.out_of_stock, report.critical) == (3, 1, 2)
    assert report.affected_value == Decimal("50.00")
    assert report.review_minimum == 1

    report = reporting.low_stock_report(db_session, threshold=8)
    assert report.items[-1].status == "low"
    assert report.affected == 4


def test_utc_day_ignores_session_time_zone():
    """
    GIVEN un timestamptz renvoyé dans le fuseau de session (America/Lima, UTC-5)
    THEN le jour retenu est le jour UTC de l'instant, pas le jour local
    """
    lima = timezone(timedelta(hours=-5))
    assert utc_day(datetime(2025, 3, 9, 21, 0, tzinfo=lima)) == date(2025, 3, 10)
    # SQLite : naïf, déjà en UTC
    assert utc_day(datetime(2025, 3, 10, 2, 0)) == date(2025, 3, 10)


def test_series_buckets_stay_inside_the_range(db_session, catalog, employee):
    """
    GIVEN des ventes à 00:30Z et 23:30Z le 10/03
    THEN une seule barre 10/03 pour la plage [10/03, 10/03], avec les deux ventes
    """
    a = catalog["A"]
    _sell(db_session, employee, datetime(2025, 3, 10, 0, 30, tzinfo=timezone.utc), (a, 1))
    _sell(db_session, employee, datetime(2025, 3, 10, 23, 30, tzinfo=timezone.utc), (a, 2))
    _sell(db_session, employee, datetime(2025, 3, 11, 0, 5, tzinfo=timezone.utc), (a, 1))

    series = reporting.sales_series(db_session, date(2025, 3, 10), date(2025, 3, 10))

    assert [(p.bucket_start, p.sales_count, p.revenue) for p in series] == [
        (date(2025, 3, 10), 2, Decimal("30.00")),
    ]


def test_financial_summary_daily_trend(db_session, march_sales):
    summary = reporting.financial_summary(db_session, *MARCH)

    assert [(p.label, p.revenue) for p in summary.trend] == [
        ("10/03", Decimal("30.00")),
        ("12/03", Decimal("40.00")),
        ("17/03", Decimal("20.00")),
    ]
