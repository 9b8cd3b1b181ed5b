"""Drive traffic against a running shop so the dashboards have something to show.

Two modes:
- ``--once``: hit every route a single time and print what came back
- default: mixed traffic at ``--rps`` for ``--seconds``, then a per-route summary

With ``--otlp-endpoint`` the client exports its own spans (gRPC) and the
httpx instrumentation propagates trace context, so client and server spans
land in the same trace.

Usage:
  ecommerce-demo-load --base-url http://localhost:3000 --seconds 60 --rps 5
  ecommerce-demo-load --once
"""

from __future__ import annotations

import argparse
import asyncio
import random
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

import httpx
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

USER_AGENT = "Grafana-Demo-Test/1.0"

CATALOG = (
    ("test-1", "Test Product", 29.99, "electronics"),
    ("test-2", "Reading Lamp", 45.50, "home"),
    ("test-3", "Trail Shoes", 89.00, "sports"),
    ("test-4", "Paperback Novel", 12.75, "books"),
    ("test-5", "Wool Sweater", 64.20, "clothing"),
)
PAYMENT_METHODS = ("credit_card", "paypal", "apple_pay")

# route -> relative weight in mixed traffic
ROUTE_MIX: Tuple[Tuple[str, int], ...] = (
    ("homepage", 4),
    ("products", 4),
    ("orders", 2),
    ("health", 1),
)


def sample_order(rng: random.Random) -> Dict[str, Any]:
    picks = rng.sample(CATALOG, rng.randint(1, 3))
    return {
        "items": [
            {"id": pid, "name": name, "price": price, "quantity": rng.randint(1, 4), "category": category}
            for pid, name, price, category in picks
        ],
        "paymentMethod": rng.choice(PAYMENT_METHODS),
    }


def pick_route(rng: random.Random) -> str:
    routes, weights = zip(*ROUTE_MIX)
    return rng.choices(routes, weights=weights, k=1)[0]


async def hit(client: httpx.AsyncClient, route: str, rng: random.Random) -> httpx.Response:
    if route == "homepage":
        return await client.get("/")
    if route == "products":
        return await client.get("/products")
    if route == "orders":
        return await client.post("/orders", json=sample_order(rng))
    if route == "health":
        return await client.get("/health")
    if route == "metrics":
        return await client.get("/metrics")
    raise ValueError(f"unknown route: {route}")


async def smoke(client: httpx.AsyncClient, rng: random.Random) -> Dict[str, int]:
    statuses: Dict[str, int] = {}

    resp = await hit(client, "health", rng)
    statuses["health"] = resp.status_code
    print(f"health: {resp.status_code} uptime={resp.json().get('uptime')}s")

    resp = await hit(client, "homepage", rng)
    statuses["homepage"] = resp.status_code
    print(f"homepage: {resp.status_code} loadTime={resp.json().get('loadTime')}")

    resp = await hit(client, "products", rng)
    statuses["products"] = resp.status_code
    print(f"products: {resp.status_code} count={len(resp.json().get('products', []))}")

    resp = await hit(client, "orders", rng)
    statuses["orders"] = resp.status_code
    body = resp.json()
    print(f"orders: {resp.status_code} id={body.get('id')} total={body.get('total')} status={body.get('status')}")

    resp = await hit(client, "metrics", rng)
    statuses["metrics"] = resp.status_code
    text = resp.text
    print(
        f"metrics: {resp.status_code} length={len(text)} "
        f"page_loads={text.count('ecommerce_page_loads_total')} orders={text.count('ecommerce_orders_total')}"
    )
    return statuses


async def mixed_traffic(
    client: httpx.AsyncClient,
    rng: random.Random,
    *,
    seconds: float,
    rps: float,
    concurrency: int,
) -> Counter:
    """Fire requests at a steady ``rps`` until ``seconds`` elapse.

    Requests are launched on schedule and capped at ``concurrency`` in flight;
    the result counts (route, status code or exception name) pairs.
    """
    if rps <= 0:
        raise SystemExit("--rps must be > 0")

    results: Counter = Counter()
    in_flight = asyncio.Semaphore(max(1, concurrency))

    async def request(route: str) -> None:
        async with in_flight:
            try:
                resp = await hit(client, route, rng)
            except httpx.HTTPError as exc:
                results[(route, type(exc).__name__)] += 1
                return
        results[(route, str(resp.status_code))] += 1

    loop = asyncio.get_running_loop()
    deadline = loop.time() + seconds
    launch_at = loop.time()
    launched: List[asyncio.Task] = []
    while launch_at < deadline:
        launched.append(asyncio.ensure_future(request(pick_route(rng))))
        launch_at += 1.0 / rps
        await asyncio.sleep(max(0.0, launch_at - loop.time()))

    await asyncio.gather(*launched)
    return results


def _make_tracer(*, service_name: str, endpoint: str) -> None:
    exporter = OTLPSpanExporter(endpoint=endpoint, insecure=True)
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    HTTPXClientInstrumentor().instrument(tracer_provider=provider)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Generate traffic for the demo ecommerce service")
    ap.add_argument("--base-url", default="http://localhost:3000", help="Service base URL")
    ap.add_argument("--once", action="store_true", help="Hit every route once and exit")
    ap.add_argument("--seed", type=int, default=None, help="RNG seed")

    ap.add_argument("--seconds", type=float, default=60, help="How long to generate traffic")
    ap.add_argument("--rps", type=float, default=5.0, help="Requests per second")
    ap.add_argument("--concurrency", type=int, default=20, help="Max concurrent in-flight requests")
    ap.add_argument("--timeout", type=float, default=10.0, help="Per-request timeout in seconds")

    ap.add_argument("--otlp-endpoint", default=None, help="Export client spans to this OTLP gRPC endpoint")
    ap.add_argument("--service-name", default="ecommerce-load-generator", help="Resource service.name")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    rng = random.Random(args.seed)

    if args.otlp_endpoint:
        _make_tracer(service_name=args.service_name, endpoint=args.otlp_endpoint)

    async def go() -> Optional[Counter]:
        async with httpx.AsyncClient(
            base_url=args.base_url,
            headers={"User-Agent": USER_AGENT},
            timeout=args.timeout,
        ) as client:
            if args.once:
                await smoke(client, rng)
                return None
            return await mixed_traffic(
                client, rng, seconds=args.seconds, rps=args.rps, concurrency=args.concurrency
            )

    results = asyncio.run(go())

    if results is not None:
        for (route, status), count in sorted(results.items()):
            print(f"{route:<10} {status:<22} {count}")

    tp = trace.get_tracer_provider()
    if hasattr(tp, "force_flush"):
        tp.force_flush()
    if hasattr(tp, "shutdown"):
        tp.shutdown()

    print("done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
