# app/main.py
from __future__ import annotations

# --- ensure project root is on sys.path so `api.*`, `app.*` and `services.*` are importable ---
import sys
from pathlib import Path
THIS_FILE = Path(__file__).resolve()
BACKEND_ROOT = THIS_FILE.parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
# -------------------------------------------------------------------------

from typing import Dict

from fastapi import FastAPI, Response, APIRouter, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# --- Logging & request-id ---
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from app.config import settings
from app.core.logging import configure_logging, logger
from app.core.request_id import normalize_request_id, request_scope
from app.models.news_public import ErrorResponse
from services.db_service import close_db_pool
from services.news_refresh_service import NewsRefreshScheduler

from api.routers.news import router as news_router

configure_logging(service_name="api", level=settings.LOG_LEVEL)

app = FastAPI(
    title="Hermes News - Backend",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _cors_headers() -> Dict[str, str]:
    # Exception handlers run outside CORSMiddleware for 500s; every origin is allowed.
    return {"Access-Control-Allow-Origin": "*"}


@app.on_event("startup")
async def _startup_news_refresh() -> None:
    scheduler = NewsRefreshScheduler()
    app.state.news_refresh = scheduler
    if settings.NEWS_AUTO_REFRESH_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def _shutdown_cleanup() -> None:
    scheduler = getattr(app.state, "news_refresh", None)
    if scheduler is not None:
        await scheduler.stop()
    await close_db_pool()


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = normalize_request_id(request.headers.get("x-request-id"))
        with request_scope(req_id):
            logger.info("request_started", method=request.method, path=str(request.url.path))
            try:
                response: StarletteResponse = await call_next(request)
            except Exception as exc:
                logger.error("request_exception", error=exc.__class__.__name__)
                raise
            logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        return response


# --- CORS ---
# CORS is added first so it is the outermost user middleware.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-request-id"],
    expose_headers=["Content-Length", "X-Request-Id"],
)

app.add_middleware(RequestIdMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    headers = dict(exc.headers or {})
    headers.update(_cors_headers())
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("request_validation_failed", errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid request body").model_dump(),
        headers=_cors_headers(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    headers = _cors_headers()
    logger.exception("unhandled_exception", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal Server Error").model_dump(),
        headers=headers,
    )

# --- Health endpoints ---
@app.get("/")
async def root():
    return {"ok": True, "app": "Hermes News Backend", "message": "Up & running"}

@app.head("/")
async def root_head():
    return Response(status_code=200)

@app.get("/healthz")
async def healthz():
    return {"status": "healthy"}

@app.get("/health")
async def health():
    return {"ok": True}

# --- Universal preflight ---
@app.options("/{rest_of_path:path}")
async def any_preflight(rest_of_path: str) -> Response:
    return Response(status_code=204, headers=_cors_headers())

# --- API v1 router ---
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(news_router)

app.include_router(api_v1_router)

logger.info("routers_registered", routers=["api_v1(news)"])
