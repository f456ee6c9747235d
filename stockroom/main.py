import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stockroom.api.routes.inventory import router as inventory_router
from stockroom.api.routes.rooms import router as rooms_router
from stockroom.core.config import settings
from stockroom.core.logging_config import configure_logging
from stockroom.db.immutability import register_ledger_guard
from stockroom.services.errors import InventoryError, Unauthorized

logger = logging.getLogger(__name__)

configure_logging()
register_ledger_guard()

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
        headers=headers,
    )


app.include_router(rooms_router)
app.include_router(inventory_router)


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "ok"}
