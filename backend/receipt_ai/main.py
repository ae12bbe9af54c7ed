import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from receipt_ai.api.v1.expenses import router as expenses_router
from receipt_ai.api.v1.receipts import router as receipts_router
from receipt_ai.core.config import get_settings

settings = get_settings()

logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = "Internal server error"

app = FastAPI(
    title="Receipt AI",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _startup_jobs():
    current = get_settings()
    errors = current.validate_required_config()
    if errors:
        for error in errors:
            logger.warning("Configuration problem: %s", error)
        if current.is_production:
            raise RuntimeError("Configuration validation failed in production environment")
    logger.info(
        "Receipt AI started (environment=%s document_ai_client=%s)",
        current.environment,
        current.document_ai_client,
    )


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(receipts_router, prefix="/api/v1", tags=["receipts"])
app.include_router(expenses_router, prefix="/api/v1", tags=["expenses"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx unless explicitly enabled.
    if exc.status_code >= 500 and not get_settings().expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": INTERNAL_ERROR_DETAIL})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if get_settings().expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": INTERNAL_ERROR_DETAIL})


@app.get("/health")
async def health_check():
    return {"status": "ok"}
