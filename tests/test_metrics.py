"""Tests for the shop's Prometheus registry."""

from prometheus_client.parser import text_string_to_metric_families

from ecommerce_demo.metrics import ShopMetrics


class TestShopMetrics:
    def test_registries_are_isolated(self) -> None:
        a = ShopMetrics(default_collectors=False)
        b = ShopMetrics(default_collectors=False)

        a.record_page_load("homepage")

        assert a.sample("ecommerce_page_loads_total", {"page_type": "homepage", "status": "success"}) == 1
        assert b.sample("ecommerce_page_loads_total", {"page_type": "homepage", "status": "success"}) == 0

    def test_record_order(self) -> None:
        metrics = ShopMetrics(default_collectors=False)

        metrics.record_order("completed", "paypal", "books", 42.0)

        assert metrics.sample("ecommerce_orders_total", {"status": "completed", "payment_method": "paypal"}) == 1
        assert metrics.sample("ecommerce_order_value_dollars_bucket", {"category": "books", "le": "50.0"}) == 1
        assert metrics.sample("ecommerce_order_value_dollars_bucket", {"category": "books", "le": "25.0"}) == 0

    def test_page_load_timer_observes_seconds(self) -> None:
        metrics = ShopMetrics(default_collectors=False)

        with metrics.page_load_timer("homepage"):
            pass

        assert metrics.sample("ecommerce_page_load_duration_seconds_count", {"page_type": "homepage"}) == 1
        assert metrics.sample("ecommerce_page_load_duration_seconds_bucket", {"page_type": "homepage", "le": "0.1"}) == 1

    def test_render_is_parseable_exposition(self) -> None:
        metrics = ShopMetrics()
        metrics.set_active_users(120)
        metrics.set_inventory("books", 300)

        families = {f.name: f for f in text_string_to_metric_families(metrics.render().decode())}

        assert families["ecommerce_active_users"].samples[0].value == 120
        assert families["ecommerce_inventory_level"].samples[0].labels == {"product_category": "books"}
        assert "ecommerce_orders_total" in metrics.render().decode()
        assert "process_cpu_seconds" in families or "python_info" in families

    def test_sample_defaults_to_zero(self) -> None:
        assert ShopMetrics(default_collectors=False).sample("ecommerce_active_users") == 0.0
