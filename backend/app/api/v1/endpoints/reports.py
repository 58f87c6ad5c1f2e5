from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, require_capability
from backend.services import reporting
from backend.services.authorization import Actor, Capability

router = APIRouter(prefix="/reports")


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _range_or_current_month(start: date | None, end: date | None) -> tuple[date, date]:
    # par défaut : le mois en cours, du 1er au dernier jour
    today = _today()
    if start is None:
        start = today.replace(day=1)
    if end is None:
        end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    return start, end


@router.get("/dashboard")
def get_dashboard(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_reports)),
):
    return reporting.dashboard(db, _today())


@router.get("/sales")
def get_sales_report(
    start: date | None = None,
    end: date | None = None,
    bucket: Literal["day", "week", "month"] = "day",
    top: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_reports)),
):
    start, end = _range_or_current_month(start, end)
    return reporting.sales_report(db, start, end, bucket=bucket, top=top)


@router.get("/top-products")
def get_top_products(
    start: date | None = None,
    end: date | None = None,
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_reports)),
):
    start, end = _range_or_current_month(start, end)
    return reporting.top_products(db, start, end, limit=limit)


@router.get("/sellers")
def get_seller_ranking(
    start: date | None = None,
    end: date | None = None,
    limit: int | None = Query(default=None, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_reports)),
):
    start, end = _range_or_current_month(start, end)
    return reporting.seller_ranking(db, start, end, limit=limit)


@router.get("/low-stock")
def get_low_stock(
    threshold: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_reports)),
):
    return reporting.low_stock_report(db, threshold)


@router.get("/financial")
def get_financial_summary(
    start: date | None = None,
    end: date | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.view_reports)),
):
    start, end = _range_or_current_month(start, end)
    return reporting.financial_summary(db, start, end)
