from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.products import router as products_router
from backend.app.api.v1.endpoints.stock import router as stock_router
from backend.app.api.v1.endpoints.sales import router as sales_router
from backend.app.api.v1.endpoints.reports import router as reports_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(stock_router, tags=["stock"])
router.include_router(sales_router, tags=["sales"])
router.include_router(reports_router, tags=["reports"])
