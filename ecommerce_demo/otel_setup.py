from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, List, Optional

from opentelemetry import trace, metrics
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION, DEPLOYMENT_ENVIRONMENT

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HTTPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GRPCSpanExporter

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter as HTTPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter as GRPCMetricExporter

from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter as HTTPLogExporter
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter as GRPCLogExporter

from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from .config import Settings

SPAN_FILE_NAME = "traces.jsonl"


@dataclass
class Telemetry:
    tracer_provider: TracerProvider
    meter_provider: MeterProvider
    logger_provider: Optional[LoggerProvider] = None
    log_handlers: List[LoggingHandler] = field(default_factory=list)
    span_file: Optional[IO[str]] = None

    def shutdown(self) -> None:
        self.tracer_provider.force_flush()
        self.tracer_provider.shutdown()
        self.meter_provider.shutdown()
        if self.logger_provider is not None:
            self.logger_provider.force_flush()
            self.logger_provider.shutdown()
        if self.span_file is not None:
            self.span_file.close()
            self.span_file = None


def build_resource(settings: Settings) -> Resource:
    return Resource.create({
        SERVICE_NAME: settings.service_name,
        SERVICE_VERSION: settings.service_version,
        DEPLOYMENT_ENVIRONMENT: settings.deployment_environment,
    })


def _span_exporter(settings: Settings, span_file: Optional[IO[str]]) -> SpanExporter:
    if settings.telemetry_sink == "remote":
        if settings.telemetry_protocol == "grpc":
            return GRPCSpanExporter(endpoint=settings.otlp_url("traces"), insecure=True)
        return HTTPSpanExporter(endpoint=settings.otlp_url("traces"))
    if span_file is not None:
        return ConsoleSpanExporter(out=span_file, formatter=lambda span: span.to_json(indent=None) + "\n")
    return ConsoleSpanExporter()


def _metric_readers(settings: Settings) -> List[MetricReader]:
    # Business metrics are scraped from /metrics; only the remote sink also pushes.
    if settings.telemetry_sink != "remote":
        return []
    if settings.telemetry_protocol == "grpc":
        exporter = GRPCMetricExporter(endpoint=settings.otlp_url("metrics"), insecure=True)
    else:
        exporter = HTTPMetricExporter(endpoint=settings.otlp_url("metrics"))
    return [PeriodicExportingMetricReader(exporter, export_interval_millis=settings.metric_export_interval_ms)]


def _logger_provider(settings: Settings, resource: Resource) -> LoggerProvider:
    if settings.telemetry_protocol == "grpc":
        exporter = GRPCLogExporter(endpoint=settings.otlp_url("logs"), insecure=True)
    else:
        exporter = HTTPLogExporter(endpoint=settings.otlp_url("logs"))
    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    return provider


def setup_otel(app, settings: Settings) -> Telemetry:
    resource = build_resource(settings)

    span_file = None
    if settings.telemetry_sink == "file":
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        span_file = open(log_dir / SPAN_FILE_NAME, "a", encoding="utf-8")

    # ===== TRACE =====
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(_span_exporter(settings, span_file))
    )
    trace.set_tracer_provider(tracer_provider)

    # ===== METRICS =====
    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=_metric_readers(settings)
    )
    metrics.set_meter_provider(meter_provider)

    telemetry = Telemetry(
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        span_file=span_file,
    )

    # ===== LOGS =====
    if settings.telemetry_sink == "remote":
        telemetry.logger_provider = _logger_provider(settings, resource)
        telemetry.log_handlers.append(LoggingHandler(logger_provider=telemetry.logger_provider))

    # ===== Instrument =====
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        excluded_urls="metrics,health",
    )
    return telemetry
