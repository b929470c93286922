from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Dict, Iterator

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.semconv.resource import ResourceAttributes
from opentelemetry.trace import Span, Status, StatusCode

_CONFIGURED = False

_tracer = trace.get_tracer("placeclub_api.rewards")


def _parse_headers(raw: str | None) -> Dict[str, str] | None:
    if not raw:
        return None
    headers: Dict[str, str] = {}
    for pair in raw.split(","):
        if "=" not in pair:
            continue
        key, value = pair.split("=", 1)
        headers[key.strip()] = value.strip()
    return headers or None


def _build_exporter() -> SpanExporter:
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        return OTLPSpanExporter(
            endpoint=endpoint,
            headers=_parse_headers(os.getenv("OTEL_EXPORTER_OTLP_HEADERS")),
        )
    return ConsoleSpanExporter()


@contextmanager
def reward_span(operation: str) -> Iterator[Span]:
    """Child span covering one reward unit of work."""

    with _tracer.start_as_current_span(
        f"rewards.{operation}",
        attributes={"reward.operation": operation},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        yield span


def annotate_reward_outcome(outcome: str, *, category: str | None = None) -> None:
    """Tag the active span with an accepted/rejected outcome."""

    span = trace.get_current_span()
    if not span.is_recording():
        return
    span.set_attribute("reward.outcome", outcome)
    if category is not None:
        span.set_attribute("reward.rejection_category", category)


def annotate_store_failure(error: BaseException) -> None:
    span = trace.get_current_span()
    if not span.is_recording():
        return
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, type(error).__name__))


def annotate_member(user_id: object) -> None:
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute("enduser.id", str(user_id))


def configure_tracing(
    app: FastAPI,
    *,
    service_name: str,
    service_version: str,
    environment: str,
) -> None:
    """Install the tracer provider once and instrument ``app``."""

    global _CONFIGURED

    if not _CONFIGURED:
        resource = Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: service_name,
                ResourceAttributes.SERVICE_VERSION: service_version,
                ResourceAttributes.DEPLOYMENT_ENVIRONMENT: environment,
            }
        )
        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(BatchSpanProcessor(_build_exporter()))
        trace.set_tracer_provider(tracer_provider)
        LoggingInstrumentor().instrument(set_logging_format=False)
        _CONFIGURED = True

    FastAPIInstrumentor.instrument_app(app, tracer_provider=trace.get_tracer_provider())


__all__ = [
    "annotate_member",
    "annotate_reward_outcome",
    "annotate_store_failure",
    "configure_tracing",
    "reward_span",
]
