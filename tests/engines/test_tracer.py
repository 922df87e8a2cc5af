"""Tests for the @traced_engine decorator."""

from datetime import date
from decimal import Decimal

from spend_engines.tracer import compute_input_fingerprint, traced_engine


class _Engine:
    @traced_engine("demo", "2.1", fingerprint_fields=("start", "amount", "label"))
    def run(self, start, amount, label="x"):
        return amount * 2


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "SPEND_ENGINE_TRACE"]


class TestTracedEngine:
    def test_result_passes_through(self):
        assert _Engine().run(date(2025, 1, 1), Decimal("2")) == Decimal("4")

    def test_trace_record(self, captured_logs):
        _Engine().run(date(2025, 1, 1), Decimal("2"))
        (trace,) = _traces(captured_logs)
        assert trace["engine_name"] == "demo"
        assert trace["engine_version"] == "2.1"
        assert trace["function"] == "_Engine.run"
        assert len(trace["input_fingerprint"]) == 16
        assert trace["duration_ms"] >= 0

    def test_positional_and_keyword_calls_fingerprint_alike(self, captured_logs):
        engine = _Engine()
        engine.run(date(2025, 1, 1), Decimal("2"))
        engine.run(amount=Decimal("2"), start=date(2025, 1, 1), label="x")
        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_fingerprint_changes_with_input(self, captured_logs):
        engine = _Engine()
        engine.run(date(2025, 1, 1), Decimal("2"))
        engine.run(date(2025, 1, 2), Decimal("2"))
        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] != second["input_fingerprint"]


class TestFingerprint:
    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("a",), {}) == compute_input_fingerprint(("a",), {"a": None})

    def test_dict_key_order_irrelevant(self):
        fields = ("m",)
        assert compute_input_fingerprint(fields, {"m": {"x": 1, "y": 2}}) == compute_input_fingerprint(
            fields, {"m": {"y": 2, "x": 1}},
        )
