"""
OpenTelemetry initialization for the World Signal Tracker.

Exports run spans and log records over OTLP when ENABLE_OTEL is set and an
OTEL_EXPORTER_OTLP_ENDPOINT is configured. Without them the tracer provider
stays the no-op default and spans opened by the run driver cost nothing.
"""

import logging
import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")

# Global logger provider for attaching handlers
_global_logger_provider: Optional[LoggerProvider] = None
_otlp_logging_handler: Optional[LoggingHandler] = None


def _env_enabled(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


def _otlp_headers() -> dict[str, str] | None:
    """Parse OTEL_EXPORTER_OTLP_HEADERS ("key1=value1,key2=value2")"""
    headers_env = os.getenv("OTEL_EXPORTER_OTLP_HEADERS")
    if not headers_env:
        return None
    pairs = [h.split("=", 1) for h in headers_env.split(",") if "=" in h]
    return {k.strip(): v.strip() for k, v in pairs}


def setup_telemetry(
    service_name: str = "signaltracker",
    service_version: Optional[str] = None,
    otlp_endpoint: Optional[str] = None,
    enable_traces: bool = True,
    enable_logs: bool = True,
) -> bool:
    """
    Set up OpenTelemetry tracing and log export.

    Args:
        service_name: Name of the service
        service_version: Version of the service
        otlp_endpoint: OTLP endpoint URL
        enable_traces: Whether to enable traces
        enable_logs: Whether to enable logs

    Returns:
        True when at least one exporter was installed
    """
    if not _env_enabled("ENABLE_OTEL", "false"):
        return False

    service_version = service_version or os.getenv("OTEL_SERVICE_VERSION", "0.1.0")
    otlp_endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not otlp_endpoint:
        logger.warning("ENABLE_OTEL is set but OTEL_EXPORTER_OTLP_ENDPOINT is not")
        return False

    enable_traces = enable_traces and _env_enabled("ENABLE_TRACES", "true")
    enable_logs = enable_logs and _env_enabled("ENABLE_LOGS", "true")

    resource_attributes = {
        "service.name": service_name,
        "service.version": service_version,
        "service.instance.id": os.getenv("HOSTNAME", "unknown"),
        "deployment.environment": os.getenv("ENVIRONMENT", "production"),
    }

    custom_attributes = os.getenv("OTEL_RESOURCE_ATTRIBUTES")
    if custom_attributes:
        for attr in custom_attributes.split(","):
            if "=" in attr:
                key, value = attr.split("=", 1)
                resource_attributes[key.strip()] = value.strip()

    resource = Resource.create(resource_attributes)
    headers = _otlp_headers()
    installed = False

    if enable_traces:
        try:
            tracer_provider = TracerProvider(resource=resource)
            tracer_provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, headers=headers))
            )
            trace.set_tracer_provider(tracer_provider)

            # RPC calls made by web3's HTTP provider
            RequestsInstrumentor().instrument()
            installed = True
            logger.info(f"OpenTelemetry tracing enabled for {service_name}")
        except Exception as e:
            logger.warning(f"Failed to set up OpenTelemetry tracing: {e}")

    if enable_logs:
        global _global_logger_provider
        try:
            # Enrich records with trace context without touching existing handlers
            LoggingInstrumentor().instrument(set_logging_format=False)

            logger_provider = LoggerProvider(resource=resource)
            logger_provider.add_log_record_processor(
                BatchLogRecordProcessor(
                    OTLPLogExporter(endpoint=otlp_endpoint, headers=headers)
                )
            )
            _global_logger_provider = logger_provider
            installed = attach_logging_handler() or installed
        except Exception as e:
            logger.warning(f"Failed to set up OpenTelemetry logging export: {e}")

    return installed


def attach_logging_handler() -> bool:
    """Attach the OTLP handler to the root logger once"""
    global _otlp_logging_handler

    if _global_logger_provider is None:
        return False

    root_logger = logging.getLogger()
    if _otlp_logging_handler is not None and _otlp_logging_handler in root_logger.handlers:
        return True

    _otlp_logging_handler = LoggingHandler(
        level=logging.NOTSET, logger_provider=_global_logger_provider
    )
    root_logger.addHandler(_otlp_logging_handler)
    logger.info("OTLP logging handler attached to root logger")
    return True


def shutdown_telemetry() -> None:
    """Flush pending spans and log records before the process exits"""
    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()
    if _global_logger_provider is not None:
        _global_logger_provider.shutdown()
