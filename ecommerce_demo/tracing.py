from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

TRACER_NAME = "ecommerce-app"


def get_tracer(provider: Optional[trace.TracerProvider] = None) -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME, tracer_provider=provider)


@contextmanager
def span_scope(tracer: trace.Tracer, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Span]:
    """Open ``name`` as the current span and end it exactly once.

    The span ends however the block exits. An exception escaping the block is
    recorded on the span and re-raised; handlers that answer an error
    themselves call ``mark_error`` instead.
    """
    with tracer.start_as_current_span(
        name,
        kind=SpanKind.INTERNAL,
        attributes=_clean(attributes),
        record_exception=True,
        set_status_on_exception=True,
    ) as span:
        yield span


def mark_error(span: Span, exc: BaseException, **attributes: Any) -> None:
    span.set_attributes(_clean({**attributes, "error.message": str(exc)}))
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, description=str(exc)))


def _clean(attributes: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # OTel drops None values with a warning; skip them up front
    return {k: v for k, v in (attributes or {}).items() if v is not None}
