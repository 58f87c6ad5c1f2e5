import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.core.logging import setup_logging
from backend.services.errors import SaleError

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="RETAIL BACKOFFICE", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(SaleError)
async def sale_error_handler(request: Request, exc: SaleError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
