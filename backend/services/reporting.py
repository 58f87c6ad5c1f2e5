"""
Reporting (lecture seule) sur les ventes complétées.

Règles communes :
- seules les ventes status=completed comptent
- plages de dates inclusives (start <= jour <= end), en UTC
- pourcentages calculés sur les totaux de la plage, 0 si dénominateur nul
- classements déterministes (tie-break explicite)

Pas de verrou ni de snapshot : les rapports prennent la cohérence de lecture
par défaut du store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Product, Sale, SaleLine, User
from backend.app.db.models.core_types import SaleStatus
from backend.services.inventory import low_stock_products
from backend.services.utils import day_bounds, percentage, to_money, utc_day

BUCKETS = ("day", "week", "month")

# écart (stock - stock_min) en dessous duquel le minimum mérite d'être revu
REVIEW_MINIMUM_GAP = -5


# ---------- Résultats ----------
@dataclass(frozen=True, slots=True)
class PeriodTotals:
    start: date
    end: date
    sales_count: int
    revenue: Decimal
    average: Decimal


@dataclass(frozen=True, slots=True)
class SeriesPoint:
    bucket_start: date
    label: str
    sales_count: int
    revenue: Decimal


@dataclass(frozen=True, slots=True)
class ProductRanking:
    rank: int
    product_id: int
    name: str
    sku: str
    quantity: int
    revenue: Decimal
    times_purchased: int
    average_unit_price: Decimal
    revenue_pct: Decimal
    quantity_pct: Decimal


@dataclass(frozen=True, slots=True)
class TopProducts:
    start: date
    end: date
    items: List[ProductRanking]
    total_revenue: Decimal
    total_quantity: int


@dataclass(frozen=True, slots=True)
class Growth:
    current: PeriodTotals
    previous: PeriodTotals
    sales_growth_pct: Decimal
    revenue_growth_pct: Decimal


@dataclass(frozen=True, slots=True)
class SellerRanking:
    rank: int
    seller_id: int
    name: str
    role: str
    sales_count: int
    revenue: Decimal
    average_ticket: Decimal
    revenue_pct: Decimal
    sales_pct: Decimal


@dataclass(frozen=True, slots=True)
class SellerReport:
    start: date
    end: date
    items: List[SellerRanking]
    total_revenue: Decimal
    total_sales: int


@dataclass(frozen=True, slots=True)
class SalesReport:
    start: date
    end: date
    days: int
    bucket: str
    totals: PeriodTotals
    growth: Growth
    series: List[SeriesPoint]
    top_products: TopProducts


@dataclass(frozen=True, slots=True)
class Dashboard:
    day: date
    sales_today: int
    revenue_today: Decimal
    active_products: int
    low_stock_products: int


@dataclass(frozen=True, slots=True)
class CategoryRevenue:
    category: Optional[str]
    revenue: Decimal
    quantity: int


@dataclass(frozen=True, slots=True)
class FinancialSummary:
    start: date
    end: date
    revenue: Decimal
    sales_count: int
    average_ticket: Decimal
    inventory_value: Decimal
    by_category: List[CategoryRevenue]
    trend: List[SeriesPoint]


@dataclass(frozen=True, slots=True)
class LowStockItem:
    product_id: int
    name: str
    category: Optional[str]
    stock: int
    stock_min: int
    gap: int
    price: Decimal
    inventory_value: Decimal
    status: str  # out_of_stock | critical | low


@dataclass(frozen=True, slots=True)
class LowStockReport:
    threshold: Optional[int]
    items: List[LowStockItem]
    affected: int
    out_of_stock: int
    critical: int
    affected_value: Decimal
    review_minimum: int


# ---------- Helpers ----------
def _completed_between(start: date, end: date):
    lower, upper = day_bounds(start, end)
    return (
        Sale.status == SaleStatus.completed,
        Sale.created_at >= lower,
        Sale.created_at < upper,
    )


def _bucket_of(day: date, bucket: str) -> tuple[date, str]:
    if bucket == "day":
        return day, day.strftime("%d/%m")
    if bucket == "week":
        monday = day - timedelta(days=day.weekday())
        year, week, _ = monday.isocalendar()
        return monday, f"{year}-W{week:02d}"
    first = day.replace(day=1)
    return first, first.strftime("%Y-%m")


# ---------- Rapports ----------
def period_totals(db: Session, start: date, end: date) -> PeriodTotals:
    count, revenue = db.execute(
        select(func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0)).where(*_completed_between(start, end))
    ).one()
    count = int(count)
    revenue = to_money(revenue)
    average = to_money(revenue / count) if count else to_money(0)
    return PeriodTotals(start=start, end=end, sales_count=count, revenue=revenue, average=average)


def sales_series(db: Session, start: date, end: date, bucket: str = "day") -> list[SeriesPoint]:
    """
    Série temporelle par jour, semaine ou mois.

    Le jour d'une vente est son jour UTC, calculé côté Python quel que soit
    le fuseau de la session SQL.
    """
    if bucket not in BUCKETS:
        raise ValueError(f"Unknown bucket '{bucket}' (expected one of {', '.join(BUCKETS)})")

    rows = db.execute(
        select(Sale.created_at, Sale.total).where(*_completed_between(start, end)).order_by(Sale.created_at)
    ).all()

    buckets: dict[date, list] = {}
    for created_at, total in rows:
        bucket_start, label = _bucket_of(utc_day(created_at), bucket)
        acc = buckets.setdefault(bucket_start, [label, 0, Decimal("0")])
        acc[1] += 1
        acc[2] += to_money(total)

    return [
        SeriesPoint(bucket_start=key, label=label, sales_count=count, revenue=to_money(revenue))
        for key, (label, count, revenue) in sorted(buckets.items())
    ]


def top_products(db: Session, start: date, end: date, limit: int = 10) -> TopProducts:
    """
    Classement produits : CA décroissant, puis quantité décroissante, puis id.

    Tous les groupes sont ramenés puis triés en Decimal côté Python, ce qui
    rend le tie-break exact quel que soit le backend.
    """
    rows = db.execute(
        select(
            SaleLine.product_id,
            Product.name,
            Product.sku,
            func.coalesce(func.sum(SaleLine.quantity), 0),
            func.coalesce(func.sum(SaleLine.subtotal), 0),
            func.count(func.distinct(SaleLine.sale_id)),
            func.avg(SaleLine.unit_price),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .join(Product, Product.id == SaleLine.product_id)
        .where(*_completed_between(start, end))
        .group_by(SaleLine.product_id, Product.name, Product.sku)
    ).all()

    groups = [
        (int(pid), name, sku, int(qty), to_money(revenue), int(times), to_money(avg_price))
        for pid, name, sku, qty, revenue, times, avg_price in rows
    ]
    total_revenue = to_money(sum((g[4] for g in groups), Decimal("0")))
    total_quantity = sum(g[3] for g in groups)

    groups.sort(key=lambda g: (-g[4], -g[3], g[0]))

    items = [
        ProductRanking(
            rank=rank,
            product_id=pid,
            name=name,
            sku=sku,
            quantity=qty,
            revenue=revenue,
            times_purchased=times,
            average_unit_price=avg_price,
            revenue_pct=percentage(revenue, total_revenue),
            quantity_pct=percentage(qty, total_quantity),
        )
        for rank, (pid, name, sku, qty, revenue, times, avg_price) in enumerate(groups[: max(limit, 0)], start=1)
    ]
    return TopProducts(
        start=start,
        end=end,
        items=items,
        total_revenue=total_revenue,
        total_quantity=total_quantity,
    )


def previous_period(start: date, end: date) -> tuple[date, date]:
    """Période précédente de même longueur, finissant la veille de `start`."""
    day_bounds(start, end)
    days = (end - start).days + 1
    prev_end = start - timedelta(days=1)
    return prev_end - timedelta(days=days - 1), prev_end


def period_growth(db: Session, start: date, end: date) -> Growth:
    prev_start, prev_end = previous_period(start, end)
    current = period_totals(db, start, end)
    previous = period_totals(db, prev_start, prev_end)
    return Growth(
        current=current,
        previous=previous,
        sales_growth_pct=percentage(current.sales_count - previous.sales_count, previous.sales_count),
        revenue_growth_pct=percentage(current.revenue - previous.revenue, previous.revenue),
    )


def seller_ranking(db: Session, start: date, end: date, limit: int | None = None) -> SellerReport:
    rows = db.execute(
        select(
            Sale.seller_id,
            User.name,
            User.role,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total), 0),
        )
        .join(User, User.id == Sale.seller_id)
        .where(*_completed_between(start, end))
        .group_by(Sale.seller_id, User.name, User.role)
    ).all()

    groups = [(int(sid), name, role, int(count), to_money(revenue)) for sid, name, role, count, revenue in rows]
    total_revenue = to_money(sum((g[4] for g in groups), Decimal("0")))
    total_sales = sum(g[3] for g in groups)

    groups.sort(key=lambda g: (-g[4], -g[3], g[0]))
    if limit is not None:
        groups = groups[: max(limit, 0)]

    items = [
        SellerRanking(
            rank=rank,
            seller_id=sid,
            name=name,
            role=getattr(role, "value", role),
            sales_count=count,
            revenue=revenue,
            average_ticket=to_money(revenue / count) if count else to_money(0),
            revenue_pct=percentage(revenue, total_revenue),
            sales_pct=percentage(count, total_sales),
        )
        for rank, (sid, name, role, count, revenue) in enumerate(groups, start=1)
    ]
    return SellerReport(start=start, end=end, items=items, total_revenue=total_revenue, total_sales=total_sales)


def sales_report(db: Session, start: date, end: date, *, bucket: str = "day", top: int = 10) -> SalesReport:
    growth = period_growth(db, start, end)
    return SalesReport(
        start=start,
        end=end,
        days=(end - start).days + 1,
        bucket=bucket,
        totals=growth.current,
        growth=growth,
        series=sales_series(db, start, end, bucket),
        top_products=top_products(db, start, end, limit=top),
    )


def dashboard(db: Session, today: date) -> Dashboard:
    totals = period_totals(db, today, today)
    active = db.execute(select(func.count(Product.id)).where(Product.active.is_(True))).scalar_one()
    low = db.execute(
        select(func.count(Product.id))
        .where(Product.active.is_(True))
        .where(Product.stock <= Product.stock_min)
    ).scalar_one()
    return Dashboard(
        day=today,
        sales_today=totals.sales_count,
        revenue_today=totals.revenue,
        active_products=int(active),
        low_stock_products=int(low),
    )


def financial_summary(db: Session, start: date, end: date) -> FinancialSummary:
    totals = period_totals(db, start, end)

    inventory_value = db.execute(
        select(func.coalesce(func.sum(Product.price * Product.stock), 0)).where(Product.active.is_(True))
    ).scalar_one()

    rows = db.execute(
        select(
            Product.category,
            func.coalesce(func.sum(SaleLine.subtotal), 0),
            func.coalesce(func.sum(SaleLine.quantity), 0),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .join(Product, Product.id == SaleLine.product_id)
        .where(*_completed_between(start, end))
        .group_by(Product.category)
    ).all()
    by_category = sorted(
        (CategoryRevenue(category=cat, revenue=to_money(rev), quantity=int(qty)) for cat, rev, qty in rows),
        key=lambda c: (-c.revenue, c.category or ""),
    )

    return FinancialSummary(
        start=start,
        end=end,
        revenue=totals.revenue,
        sales_count=totals.sales_count,
        average_ticket=totals.average,
        inventory_value=to_money(inventory_value),
        by_category=by_category,
        trend=sales_series(db, start, end, "day"),
    )


def low_stock_report(db: Session, threshold: int | None = None) -> LowStockReport:
    items = []
    for p in low_stock_products(db, threshold):
        if p.stock == 0:
            status = "out_of_stock"
        elif p.stock <= p.stock_min:
            status = "critical"
        else:
            status = "low"
        items.append(
            LowStockItem(
                product_id=p.id,
                name=p.name,
                category=p.category,
                stock=p.stock,
                stock_min=p.stock_min,
                gap=p.stock - p.stock_min,
                price=to_money(p.price),
                inventory_value=to_money(p.price * p.stock),
                status=status,
            )
        )

    return LowStockReport(
        threshold=threshold,
        items=items,
        affected=len(items),
        out_of_stock=sum(1 for i in items if i.status == "out_of_stock"),
        critical=sum(1 for i in items if i.status == "critical"),
        affected_value=to_money(sum((i.inventory_value for i in items), Decimal("0"))),
        review_minimum=sum(1 for i in items if i.gap < REVIEW_MINIMUM_GAP),
    )


__all__ = [
    "period_totals",
    "sales_series",
    "top_products",
    "previous_period",
    "period_growth",
    "seller_ranking",
    "sales_report",
    "dashboard",
    "financial_summary",
    "low_stock_report",
]
