import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse, PlainTextResponse

from cookie_gallery.core.config import get_settings
from cookie_gallery.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from cookie_gallery.core.logging import bind_request_id, configure_logging, get_logger
from cookie_gallery.routers import orders, payments, users
from cookie_gallery.services.registry import build_services

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

# Changes on every process start; the storefront signs users out when it changes.
BOOT_ID = str(uuid.uuid4())

app = FastAPI(
    title="Cookie Gallery API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers (paths are fixed by the storefront and the Razorpay dashboard)
app.include_router(payments.router, tags=["payments"])
app.include_router(orders.router, tags=["orders"])
app.include_router(users.router, tags=["users"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    if settings.mongodb_uri:
        from cookie_gallery.db.init import init_db
        await init_db()
        log.info("startup", msg="DB connected")
    app.state.services = build_services(settings)


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Cookie Gallery Backend API is alive and kicking! Ready for payment processing."


@app.get("/health")
async def health():
    """Liveness plus a per-process boot id so clients can detect restarts."""
    return {"ok": True, "boot_id": BOOT_ID}
