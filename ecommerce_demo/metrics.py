"""Prometheus emitters for the shop.

Every emitter lives on a ``ShopMetrics`` instance bound to its own
``CollectorRegistry``; one instance is built at startup and handed to the
app, so tests can build as many isolated ones as they like.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

PAGE_LOAD_BUCKETS = (0.1, 0.5, 1, 2, 5, 10)
ORDER_VALUE_BUCKETS = (10, 25, 50, 100, 250, 500, 1000)

INVENTORY_CATEGORIES = ("electronics", "clothing", "books", "home", "sports")


class ShopMetrics:
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry=None, default_collectors: bool = True):
        self.registry = registry if registry is not None else CollectorRegistry()

        if default_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        self.page_loads = Counter(
            "ecommerce_page_loads_total",
            "Total number of page loads",
            labelnames=["page_type", "status"],
            registry=self.registry,
        )
        self.page_load_duration = Histogram(
            "ecommerce_page_load_duration_seconds",
            "Duration of page loads in seconds",
            labelnames=["page_type"],
            buckets=PAGE_LOAD_BUCKETS,
            registry=self.registry,
        )
        self.orders = Counter(
            "ecommerce_orders_total",
            "Total number of orders placed",
            labelnames=["status", "payment_method"],
            registry=self.registry,
        )
        self.order_value = Histogram(
            "ecommerce_order_value_dollars",
            "Value of orders in dollars",
            labelnames=["category"],
            buckets=ORDER_VALUE_BUCKETS,
            registry=self.registry,
        )
        self.active_users = Gauge(
            "ecommerce_active_users",
            "Number of active users",
            registry=self.registry,
        )
        self.inventory_level = Gauge(
            "ecommerce_inventory_level",
            "Current inventory level",
            labelnames=["product_category"],
            registry=self.registry,
        )

    def page_load_timer(self, page_type: str):
        return self.page_load_duration.labels(page_type=page_type).time()

    def record_page_load(self, page_type: str, status: str = "success") -> None:
        self.page_loads.labels(page_type=page_type, status=status).inc()

    def record_order(self, status: str, payment_method: str, category: str, total: float) -> None:
        self.orders.labels(status=status, payment_method=payment_method).inc()
        self.order_value.labels(category=category).observe(total)

    def set_active_users(self, value: int) -> None:
        self.active_users.set(value)

    def set_inventory(self, category: str, level: int) -> None:
        self.inventory_level.labels(product_category=category).set(level)

    def sample(self, name: str, labels=None) -> float:
        """Current value of one sample, 0.0 when it was never emitted."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
