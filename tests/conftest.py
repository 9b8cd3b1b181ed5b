"""Shared fixtures: an app wired to an isolated registry, an in-memory span
exporter, a scripted random source and a sleep that returns immediately."""

from typing import Callable, List

import pytest
from faker import Faker
from fastapi import FastAPI
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from ecommerce_demo.app import create_app
from ecommerce_demo.config import Settings
from ecommerce_demo.metrics import ShopMetrics


class ScriptedRandom:
    """Deterministic random source.

    ``random()`` always returns ``draw``; ``uniform`` lands ``fraction`` of the
    way into its range; ``randint`` returns the lower bound.
    """

    def __init__(self, draw: float = 0.5, fraction: float = 0.0):
        self.draw = draw
        self.fraction = fraction

    def random(self) -> float:
        return self.draw

    def uniform(self, a: float, b: float) -> float:
        return a + (b - a) * self.fraction

    def randint(self, a: int, b: int) -> int:
        return a


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        port=3000,
        telemetry_sink="console",
        log_dir=str(tmp_path / "logs"),
        service_version="9.9.9",
    )


@pytest.fixture
def metrics() -> ShopMetrics:
    return ShopMetrics(default_collectors=False)


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("tests")


@pytest.fixture
def rng() -> ScriptedRandom:
    return ScriptedRandom()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake() -> Faker:
    fake = Faker()
    fake.seed_instance(1234)
    return fake


@pytest.fixture
def make_app(settings, metrics, tracer, rng, sleep, fake) -> Callable[..., FastAPI]:
    def _make(**overrides) -> FastAPI:
        kwargs = dict(metrics=metrics, tracer=tracer, rng=rng, fake=fake, sleep=sleep)
        kwargs.update(overrides)
        return create_app(settings, **kwargs)

    return _make


@pytest.fixture
def app(make_app) -> FastAPI:
    return make_app()


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def finished(span_exporter: InMemorySpanExporter, name: str):
    return [s for s in span_exporter.get_finished_spans() if s.name == name]


def orders_counted(metrics: ShopMetrics) -> float:
    return sum(
        sample.value
        for family in metrics.registry.collect()
        if family.name == "ecommerce_orders"
        for sample in family.samples
        if sample.name == "ecommerce_orders_total"
    )
