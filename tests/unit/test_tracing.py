"""Tests for classtest.tracing module."""

import json

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor

from classtest.tracing import ExecutionTracer, JsonlSpanExporter, get_tracer, init_tracing


@pytest.fixture
def trace_file(tmp_path):
    return tmp_path / "traces" / "spans.jsonl"


@pytest.fixture
def local_tracer(trace_file):
    """A tracer on a private provider so the global one stays untouched."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(JsonlSpanExporter(trace_file)))
    yield provider.get_tracer("classtest-tests")
    provider.shutdown()


def read_spans(path):
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestJsonlSpanExporter:
    def test_creates_parent_directory_and_truncates(self, trace_file):
        trace_file.parent.mkdir(parents=True)
        trace_file.write_text("stale\n")

        JsonlSpanExporter(trace_file)

        assert trace_file.read_text() == ""

    def test_writes_one_line_per_span(self, local_tracer, trace_file):
        with local_tracer.start_as_current_span("suite.Checkout"):
            with local_tracer.start_as_current_span("test.pays"):
                pass

        spans = read_spans(trace_file)
        assert [s["name"] for s in spans] == ["test.pays", "suite.Checkout"]
        child, parent = spans
        assert child["parentSpanId"] == parent["spanId"]
        assert parent["parentSpanId"] is None
        assert child["traceId"] == parent["traceId"]


class TestExecutionTracer:
    def test_disabled_tracer_yields_nothing(self, trace_file):
        tracer = ExecutionTracer()
        with tracer.span("suite.Quiet") as span:
            tracer.record(span, "passed", 1.0)
        assert span is None
        assert not trace_file.exists()

    def test_records_status_and_attributes(self, local_tracer, trace_file):
        tracer = ExecutionTracer(enabled=True, tracer=local_tracer)

        with tracer.span("test.pays", **{"classtest.suite": "Checkout", "classtest.skip": None}) as span:
            tracer.record(span, "passed", 12.5)

        (record,) = read_spans(trace_file)
        assert record["attributes"] == {
            "classtest.suite": "Checkout",
            "classtest.status": "passed",
            "classtest.duration_ms": 12.5,
        }
        assert record["status"] == "UNSET"

    def test_errors_mark_span_failed(self, local_tracer, trace_file):
        tracer = ExecutionTracer(enabled=True, tracer=local_tracer)

        with tracer.span("test.breaks") as span:
            tracer.record(span, "failed", 3.0, AssertionError("expected failure"))

        (record,) = read_spans(trace_file)
        assert record["status"] == "ERROR"
        assert record["attributes"]["classtest.status"] == "failed"


class TestInitTracing:
    def test_later_calls_redirect_output(self, tmp_path):
        first = tmp_path / "first.jsonl"
        second = tmp_path / "second.jsonl"

        init_tracing(first)
        init_tracing(second)
        with get_tracer().start_as_current_span("after.redirect"):
            pass

        assert "after.redirect" in second.read_text()
        assert "after.redirect" not in first.read_text()
