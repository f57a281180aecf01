"""OpenTelemetry spans for suite and test execution.

Spans are streamed to a JSONL file as they finish, one object per line.
"""

import json
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, SpanExporter, SpanExportResult
from opentelemetry.trace import Span, StatusCode


_exporter: "JsonlSpanExporter | None" = None


class JsonlSpanExporter(SpanExporter):
    """Appends finished spans to a JSONL file."""

    def __init__(self, output_path: Path | str) -> None:
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_text("")

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        try:
            with self.output_path.open("a", encoding="utf-8") as f:
                for span in spans:
                    f.write(json.dumps(self._record(span), default=str) + "\n")
        except OSError:
            return SpanExportResult.FAILURE
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        """Nothing to release; the file is reopened per export."""

    def _record(self, span: ReadableSpan) -> dict[str, Any]:
        return {
            "traceId": format(span.context.trace_id, "032x"),
            "spanId": format(span.context.span_id, "016x"),
            "parentSpanId": format(span.parent.span_id, "016x") if span.parent else None,
            "name": span.name,
            "startTimeUnixNano": span.start_time,
            "endTimeUnixNano": span.end_time,
            "attributes": dict(span.attributes or {}),
            "status": span.status.status_code.name if span.status else "UNSET",
        }


def init_tracing(output_path: Path | str = "traces.jsonl", *, service_name: str = "classtest") -> None:
    """Install a tracer provider exporting to ``output_path``.

    Only the first call installs a provider; later calls redirect the output.
    """
    global _exporter
    if _exporter is not None:
        _exporter.output_path = Path(output_path)
        _exporter.output_path.parent.mkdir(parents=True, exist_ok=True)
        _exporter.output_path.write_text("")
        return

    _exporter = JsonlSpanExporter(output_path)
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(SimpleSpanProcessor(_exporter))
    trace.set_tracer_provider(provider)


def get_tracer(name: str = "classtest") -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name)


@dataclass
class ExecutionTracer:
    """Opens spans around suites and tests when enabled."""

    enabled: bool = False
    tracer: trace.Tracer | None = None

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Span | None]:
        if not self.enabled:
            yield None
            return

        tracer = self.tracer or get_tracer()
        with tracer.start_as_current_span(name) as span:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
            yield span

    def record(self, span: Span | None, status: str, duration_ms: float, error: BaseException | None = None) -> None:
        """Record the outcome on ``span``."""
        if span is None:
            return
        span.set_attribute("classtest.status", status)
        span.set_attribute("classtest.duration_ms", duration_ms)
        if error is not None:
            span.set_status(StatusCode.ERROR, str(error))
            span.record_exception(error)
