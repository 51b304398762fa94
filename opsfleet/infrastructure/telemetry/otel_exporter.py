"""
OpenTelemetry Exporter for opsfleet

Architectural Intent:
- Exports deploy outcomes to OTLP-compatible backends
- Subscribes to deployment domain events; use cases never call it directly
- Disabled unless an endpoint is configured

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Non-localhost http:// endpoints rejected unless insecure=True
- Validation in __post_init__ prevents accidental plaintext export
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Any
from urllib.parse import urlparse
import logging
from datetime import datetime, UTC

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from opsfleet.domain.events.deploy_events import (
    DeploymentFinishedEvent,
    TargetDeployedEvent,
    TargetFailedEvent,
)
from opsfleet.domain.events.event_base import DomainEvent
from opsfleet.domain.ports.event_bus_port import EventBusPort

logger = logging.getLogger(__name__)


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "opsfleet"
    environment: str = "production"
    export_interval: int = 5
    enable_traces: bool = True
    enable_metrics: bool = True
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")
            if parsed.scheme == "http" and not is_localhost and not self.insecure:
                raise ValueError(
                    f"Non-localhost HTTP endpoint '{self.endpoint}' requires "
                    "insecure=True or use https://. "
                    "Set insecure=True to explicitly allow plaintext export."
                )


class OTELExporter:
    """
    OpenTelemetry exporter for deploy runs.

    Records:
    - opsfleet.deploy.targets: counter of per-target outcomes
    - opsfleet.deploy.target_duration_ms: histogram of per-target pipeline time
    - opsfleet.deploy.duration_ms: histogram of whole-run time by status
    """

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        self._metrics_buffer: list[dict[str, Any]] = []
        self._meter: Any = None
        self._meter_provider: Optional[MeterProvider] = None
        self._tracer_provider: Optional[TracerProvider] = None
        self._instruments: dict[str, Any] = {}

    @property
    def enabled(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize OpenTelemetry SDK and exporters."""
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        try:
            resource = Resource(
                attributes={
                    SERVICE_NAME: self.config.service_name,
                    "environment": self.config.environment,
                }
            )

            if self.config.enable_traces:
                self._tracer_provider = TracerProvider(resource=resource)
                self._tracer_provider.add_span_processor(
                    BatchSpanProcessor(
                        OTLPSpanExporter(
                            endpoint=self.config.endpoint, insecure=self.config.insecure
                        )
                    )
                )
                trace.set_tracer_provider(self._tracer_provider)

            if self.config.enable_metrics:
                metric_reader = PeriodicExportingMetricReader(
                    OTLPMetricExporter(
                        endpoint=self.config.endpoint, insecure=self.config.insecure
                    ),
                    export_interval_millis=self.config.export_interval * 1000,
                )
                self._meter_provider = MeterProvider(
                    resource=resource, metric_readers=[metric_reader]
                )
                metrics.set_meter_provider(self._meter_provider)
                self._meter = metrics.get_meter(__name__)

            self._initialized = True

        except Exception as e:
            logger.error("Failed to initialize OTEL: %s", e)
            self._initialized = False

    def _counter(self, name: str) -> Any:
        if name not in self._instruments and self._meter:
            self._instruments[name] = self._meter.create_counter(name)
        return self._instruments.get(name)

    def _histogram(self, name: str, unit: str = "") -> Any:
        if name not in self._instruments and self._meter:
            self._instruments[name] = self._meter.create_histogram(name, unit=unit)
        return self._instruments.get(name)

    def _buffer(self, name: str, value: float, attributes: dict[str, str]) -> None:
        self._metrics_buffer.append(
            {
                "name": name,
                "value": value,
                "attributes": attributes,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def record_target(
        self, app: str, node_id: int, success: bool, duration_ms: float
    ) -> None:
        attributes = {
            "app": app,
            "node_id": str(node_id),
            "outcome": "success" if success else "failed",
        }
        self._buffer("opsfleet.deploy.targets", 1.0, attributes)
        self._buffer("opsfleet.deploy.target_duration_ms", duration_ms, attributes)

        if self._initialized:
            counter = self._counter("opsfleet.deploy.targets")
            if counter:
                counter.add(1, attributes=attributes)
            histogram = self._histogram("opsfleet.deploy.target_duration_ms", "ms")
            if histogram:
                histogram.record(duration_ms, attributes=attributes)

    def record_run(self, app: str, status: str, duration_ms: float) -> None:
        attributes = {"app": app, "status": status}
        self._buffer("opsfleet.deploy.duration_ms", duration_ms, attributes)

        if self._initialized:
            histogram = self._histogram("opsfleet.deploy.duration_ms", "ms")
            if histogram:
                histogram.record(duration_ms, attributes=attributes)

    async def on_event(self, event: DomainEvent) -> None:
        if isinstance(event, TargetDeployedEvent):
            self.record_target(event.aggregate_id, event.node_id, True, event.duration_ms)
        elif isinstance(event, TargetFailedEvent):
            self.record_target(event.aggregate_id, event.node_id, False, event.duration_ms)
        elif isinstance(event, DeploymentFinishedEvent):
            self.record_run(event.aggregate_id, event.status, event.duration_ms)

    def subscribe_to(self, event_bus: EventBusPort) -> None:
        for event_type in (TargetDeployedEvent, TargetFailedEvent, DeploymentFinishedEvent):
            event_bus.subscribe(event_type, self.on_event)

    async def shutdown(self) -> None:
        """Flush pending telemetry; the CLI process exits right after a run."""
        exported_count = len(self._metrics_buffer)
        self._metrics_buffer.clear()
        if not self._initialized:
            return

        if self._meter_provider is not None:
            self._meter_provider.shutdown()
        if self._tracer_provider is not None:
            self._tracer_provider.shutdown()
        if exported_count:
            logger.debug("Flushed %d buffered metrics", exported_count)


async def create_exporter(
    endpoint: Optional[str] = None,
    service_name: str = "opsfleet",
    insecure: bool = False,
) -> OTELExporter:
    """Factory function to create OTEL exporter."""
    config = OTELConfig(
        endpoint=endpoint or "",
        service_name=service_name,
        insecure=insecure,
    )
    exporter = OTELExporter(config)
    await exporter.initialize()
    return exporter
