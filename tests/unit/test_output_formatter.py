"""Unit tests for JSON output formatting."""

import json

import pytest

from dynprov.models.data_models import OperationResult, RequestTrace
from dynprov.pipeline.output import JSONOutputFormatter


@pytest.fixture
def result():
    return OperationResult(
        provider="json-vendor",
        operation="getPrices",
        params={"country": "russia"},
        records=[
            {"country": "russia", "service": "whatsapp", "operator": "virtual21", "cost": 21, "count": 120},
            {"country": "russia", "service": "whatsapp", "operator": "virtual38", "cost": 18.5, "count": 0},
        ],
        trace=RequestTrace(
            method="GET",
            url="http://json-vendor.test/v1/guest/prices?country=russia",
            headers={"Authorization": "Bear***"},
            response_status=200,
            response_body='{"russia": {}}',
            elapsed_ms=12.5,
        ),
        executed_at="2026-01-01T00:00:00+00:00",
    )


class TestJSONOutputFormatter:

    def test_format_structure(self, result):
        output = JSONOutputFormatter().format(result)

        assert output["provider"] == "json-vendor"
        assert output["operation"] == "getPrices"
        assert output["params"] == {"country": "russia"}
        assert output["executed_at"] == "2026-01-01T00:00:00+00:00"
        assert output["record_count"] == 2
        assert output["records"][0]["operator"] == "virtual21"

    def test_trace_without_body(self, result):
        trace = JSONOutputFormatter().format(result)["trace"]

        assert trace == {
            "method": "GET",
            "url": "http://json-vendor.test/v1/guest/prices?country=russia",
            "headers": {"Authorization": "Bear***"},
            "response_status": 200,
            "elapsed_ms": 12.5,
        }

    def test_missing_trace(self, result):
        result.trace = None
        assert JSONOutputFormatter().format(result)["trace"] is None

    def test_save_creates_directories(self, result, tmp_path):
        path = tmp_path / "out" / "nested" / "prices.json"
        JSONOutputFormatter().save(result, str(path))

        saved = json.loads(path.read_text(encoding="utf-8"))
        assert saved["record_count"] == 2
        assert saved["records"][1]["cost"] == 18.5

    def test_save_keeps_unicode(self, result, tmp_path):
        result.records = [{"id": "0", "name": "Россия"}]
        path = tmp_path / "countries.json"
        JSONOutputFormatter().save(result, str(path))

        assert "Россия" in path.read_text(encoding="utf-8")
