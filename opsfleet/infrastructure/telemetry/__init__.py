"""
Opsfleet Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry integration for deploy observability
- Metrics and traces exported over OTLP gRPC
"""

from opsfleet.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
]
