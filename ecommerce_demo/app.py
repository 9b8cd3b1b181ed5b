"""FastAPI application for the demo shop.

Each route opens a span, runs a simulated work unit, fabricates a payload
and records metrics on the ``ShopMetrics`` injected through ``create_app``.
"""

import asyncio
import math
import platform
import random
import sys
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from faker import Faker
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from opentelemetry import trace

from .config import Settings
from .logging_setup import get_logger, setup_logging
from .metrics import ShopMetrics
from .otel_setup import setup_otel
from .simulation import (
    HOMEPAGE_MS,
    PRODUCTS_MS,
    RandomSource,
    Sleep,
    WorkUnit,
    active_users_loop,
    fake_customer,
    fake_products,
    first_category,
    order_total,
    refresh_active_users,
    seed_inventory,
)
from .tracing import get_tracer, mark_error, span_scope

if sys.platform != "win32":
    import resource
else:
    resource = None

logger = get_logger(__name__)

WELCOME_MESSAGE = "Welcome to Grafana Demo Ecommerce"
DEFAULT_PAYMENT_METHOD = "credit_card"
# declined payments are reported as 400, not 402
DECLINED_ORDER_STATUS = 400

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
}

_STARTED = time.monotonic()

router = APIRouter()


@dataclass
class Shop:
    settings: Settings
    metrics: ShopMetrics
    tracer: trace.Tracer
    work: WorkUnit
    fake: Faker
    rng: RandomSource


def _shop(request: Request) -> Shop:
    return request.app.state.shop


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _ms(value: float) -> str:
    return f"{value:.2f}ms"


def _internal_error() -> JSONResponse:
    return JSONResponse({"error": "Internal server error"}, status_code=500)


async def _read_json(request: Request) -> Dict[str, Any]:
    if not await request.body():
        return {}
    try:
        body = await request.json()
    except ValueError as exc:
        logger.warning("request_body_unreadable", path=request.url.path, error=str(exc))
        return {}
    if not isinstance(body, dict):
        logger.warning("request_body_not_object", path=request.url.path, body_type=type(body).__name__)
        return {}
    return body


@router.get("/")
async def homepage(request: Request):
    shop = _shop(request)
    with span_scope(shop.tracer, "homepage-load", {
        "page.type": "homepage",
        "user.agent": request.headers.get("user-agent"),
        "request.method": request.method,
    }) as span:
        try:
            load_ms = await shop.work.page_load("homepage", HOMEPAGE_MS)
            span.set_attributes({"page.load_time_ms": load_ms, "page.status": "success"})
            return {
                "message": WELCOME_MESSAGE,
                "loadTime": _ms(load_ms),
                "timestamp": _now_iso(),
            }
        except Exception as exc:
            logger.exception("homepage_failed")
            mark_error(span, exc, **{"page.status": "error"})
            return _internal_error()


@router.get("/products")
async def products(request: Request):
    shop = _shop(request)
    with span_scope(shop.tracer, "products-page-load", {
        "page.type": "products",
        "user.agent": request.headers.get("user-agent"),
    }) as span:
        try:
            load_ms = await shop.work.page_load("products", PRODUCTS_MS)
            catalog = fake_products(shop.fake)
            span.set_attributes({"page.load_time_ms": load_ms, "products.count": len(catalog)})
            return {
                "products": [p.to_json() for p in catalog],
                "loadTime": _ms(load_ms),
                "timestamp": _now_iso(),
            }
        except Exception as exc:
            logger.exception("products_failed")
            mark_error(span, exc, **{"page.status": "error"})
            return _internal_error()


@router.post("/orders")
async def create_order(request: Request):
    shop = _shop(request)
    with span_scope(shop.tracer, "create-order", {
        "order.operation": "create",
        "user.agent": request.headers.get("user-agent"),
    }) as span:
        try:
            body = await _read_json(request)
            items = body.get("items")
            payment_method = body.get("paymentMethod", DEFAULT_PAYMENT_METHOD)

            if not isinstance(items, list) or not items:
                span.set_attributes({"order.status": "error", "error.type": "validation"})
                logger.info("order_rejected", reason="items_required")
                return JSONResponse({"error": "Items are required"}, status_code=400)

            processing_ms = await shop.work.process_order()

            total = order_total(items)
            status = "completed" if shop.work.payment_succeeds() else "failed"

            order = {
                "id": shop.fake.uuid4(),
                "items": items,
                # JSON has no infinity or NaN; such totals go out as null
                "total": round(total, 2) if math.isfinite(total) else None,
                "paymentMethod": payment_method,
                "status": status,
                "customer": fake_customer(shop.fake),
                "timestamp": _now_iso(),
                "processingTime": _ms(processing_ms),
            }
            response = JSONResponse(order, status_code=201 if status == "completed" else DECLINED_ORDER_STATUS)

            shop.metrics.record_order(status, str(payment_method), first_category(items), total)

            span.set_attributes({
                "order.id": order["id"],
                "order.total": total,
                "order.status": status,
                "order.processing_time_ms": processing_ms,
                "order.items_count": len(items),
            })
            logger.info("order_settled", order_id=order["id"], status=status, total=order["total"])

            return response
        except Exception as exc:
            logger.exception("order_failed")
            mark_error(span, exc, **{"order.status": "error"})
            return _internal_error()


@router.get("/metrics")
async def metrics_endpoint(request: Request):
    shop = _shop(request)
    try:
        payload = shop.metrics.render()
    except Exception:
        logger.exception("metrics_render_failed")
        return _internal_error()
    return Response(content=payload, media_type=shop.metrics.content_type)


def _peak_rss() -> float:
    if resource is None:
        return 0.0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # bytes on macOS, kilobytes elsewhere
    return float(peak if sys.platform == "darwin" else peak * 1024)


def _memory(metrics: ShopMetrics) -> Dict[str, float]:
    """Process memory in bytes.

    The process collector reads /proc; where that is missing, ``rss`` falls
    back to the peak resident size from getrusage.
    """
    peak = _peak_rss()
    return {
        "rss": metrics.sample("process_resident_memory_bytes") or peak,
        "virtual": metrics.sample("process_virtual_memory_bytes"),
        "maxRss": peak,
    }


@router.get("/health")
async def health(request: Request):
    shop = _shop(request)
    return {
        "status": "healthy",
        "timestamp": _now_iso(),
        "uptime": max(0.0, time.monotonic() - _STARTED),
        "memory": _memory(shop.metrics),
        "version": platform.python_version(),
        "serviceVersion": shop.settings.service_version,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    shop: Shop = app.state.shop
    seed_inventory(shop.metrics, shop.rng)
    refresh_active_users(shop.metrics, shop.rng)
    refresher = asyncio.create_task(
        active_users_loop(shop.metrics, shop.rng, shop.settings.active_users_interval)
    )

    port = shop.settings.port
    logger.info("ecommerce_app_started", port=port)
    logger.info("metrics_available", url=f"http://localhost:{port}/metrics")
    logger.info("health_check_available", url=f"http://localhost:{port}/health")
    try:
        yield
    finally:
        refresher.cancel()
        try:
            await refresher
        except asyncio.CancelledError:
            pass
        logger.info("ecommerce_app_stopped")
        telemetry = getattr(app.state, "telemetry", None)
        if telemetry is not None:
            telemetry.shutdown()


def create_app(
    settings: Optional[Settings] = None,
    *,
    metrics: Optional[ShopMetrics] = None,
    tracer: Optional[trace.Tracer] = None,
    rng: Optional[RandomSource] = None,
    fake: Optional[Faker] = None,
    sleep: Sleep = asyncio.sleep,
) -> FastAPI:
    if settings is None:
        settings = Settings()
    if metrics is None:
        metrics = ShopMetrics()
    if rng is None:
        rng = random.Random()

    app = FastAPI(title="Grafana Demo Ecommerce", version=settings.service_version, lifespan=lifespan)
    app.state.shop = Shop(
        settings=settings,
        metrics=metrics,
        tracer=tracer if tracer is not None else get_tracer(),
        work=WorkUnit(metrics, rng, sleep),
        fake=fake if fake is not None else Faker(),
        rng=rng,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            user_agent=request.headers.get("user-agent"),
        )
        return response

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_error", path=request.url.path, exc_info=exc)
        return JSONResponse({"error": "Something went wrong!"}, status_code=500)

    app.include_router(router)
    return app


def build_app(settings: Optional[Settings] = None) -> FastAPI:
    """Production wiring: settings from the environment, telemetry, logging."""
    settings = settings or Settings()
    app = create_app(settings)
    telemetry = setup_otel(app, settings)
    setup_logging(settings, telemetry.log_handlers)
    app.state.telemetry = telemetry
    return app
