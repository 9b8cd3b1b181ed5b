"""Tests for the span scope."""

import pytest
from opentelemetry.trace import StatusCode

from ecommerce_demo.tracing import mark_error, span_scope


class TestSpanScope:
    def test_ends_span_on_normal_exit(self, tracer, span_exporter) -> None:
        with span_scope(tracer, "unit", {"a": 1, "skipped": None}) as span:
            span.set_attribute("b", "two")

        (done,) = span_exporter.get_finished_spans()
        assert done.name == "unit"
        assert dict(done.attributes) == {"a": 1, "b": "two"}

    def test_ends_span_and_reraises_on_exception(self, tracer, span_exporter) -> None:
        with pytest.raises(ValueError):
            with span_scope(tracer, "unit"):
                raise ValueError("boom")

        (done,) = span_exporter.get_finished_spans()
        assert done.status.status_code == StatusCode.ERROR

    def test_ends_span_on_early_return(self, tracer, span_exporter) -> None:
        def handler() -> str:
            with span_scope(tracer, "unit"):
                return "early"

        assert handler() == "early"
        assert len(span_exporter.get_finished_spans()) == 1

    def test_span_is_current_inside_scope(self, tracer) -> None:
        from opentelemetry import trace

        with span_scope(tracer, "unit") as span:
            assert trace.get_current_span() is span

    def test_mark_error(self, tracer, span_exporter) -> None:
        with span_scope(tracer, "unit") as span:
            mark_error(span, RuntimeError("bad"), **{"page.status": "error"})

        (done,) = span_exporter.get_finished_spans()
        assert done.status.status_code == StatusCode.ERROR
        assert done.attributes["error.message"] == "bad"
        assert done.attributes["page.status"] == "error"
        assert [e.name for e in done.events] == ["exception"]
