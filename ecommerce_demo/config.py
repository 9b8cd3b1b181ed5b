"""Runtime settings, read from environment variables."""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Sink = Literal["console", "file", "remote"]
Protocol = Literal["http", "grpc"]
LogLevel = Literal["debug", "info", "warning", "error", "critical"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=0, le=65535)

    service_name: str = "grafana-demo-ecommerce"
    service_version: str = "1.0.0"
    deployment_environment: str = "development"

    telemetry_sink: Sink = "console"
    telemetry_protocol: Protocol = "http"
    otel_exporter_otlp_endpoint: str = "http://localhost:4318"
    otlp_metric_exporter_url: Optional[str] = None
    metric_export_interval_ms: int = Field(default=60000, gt=0)

    log_level: LogLevel = "info"
    log_dir: str = "./logs"
    log_format: Literal["json", "console"] = "json"

    active_users_interval: float = Field(default=5.0, gt=0)

    @field_validator("telemetry_sink", "telemetry_protocol", "log_level", "log_format", mode="before")
    @classmethod
    def _lowercase(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def otlp_url(self, signal: str) -> str:
        """Collector URL for one signal (traces, metrics, logs).

        gRPC exporters take the bare endpoint; the HTTP ones need the
        per-signal path appended.
        """
        if signal == "metrics" and self.otlp_metric_exporter_url:
            return self.otlp_metric_exporter_url
        base = self.otel_exporter_otlp_endpoint.rstrip("/")
        if self.telemetry_protocol == "grpc":
            return base
        return f"{base}/v1/{signal}"
