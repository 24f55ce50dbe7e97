import json
from pathlib import Path
from typing import Callable

import pytest

from agentmeter.aggregator import aggregate_by_day, fill_gaps
from agentmeter.exporters import (
    default_output_path,
    flat_report,
    provider_report,
    render,
    summary_report,
    write_report,
)
from agentmeter.models import UsageRecord
from agentmeter.statistics import summarize

RecordFactory = Callable[..., UsageRecord]


@pytest.fixture()
def records(make_record: "RecordFactory") -> "list[UsageRecord]":
    return [
        make_record(id="a", date="2024-03-01", provider="anthropic", model="claude-sonnet-4"),
        make_record(id="b", date="2024-03-02", provider="openai", model="gpt-5", cost=0.2),
        make_record(id="c", date="2024-03-02", provider="codex", model="gpt-5", cost=0.3),
    ]


class TestFlatReport:
    def test_camel_case_shape(self, records: "list[UsageRecord]") -> "None":
        data = json.loads(render(flat_report(aggregate_by_day(records))))

        assert list(data) == ["daily", "totals"]
        first = data["daily"][0]
        assert list(first) == [
            "date",
            "inputTokens",
            "outputTokens",
            "cacheCreationTokens",
            "cacheReadTokens",
            "totalTokens",
            "totalCost",
            "modelsUsed",
            "modelBreakdowns",
        ]
        assert first["modelBreakdowns"][0]["modelName"] == "claude-sonnet-4"
        assert list(data["totals"]) == [
            "inputTokens",
            "outputTokens",
            "cacheCreationTokens",
            "cacheReadTokens",
            "totalCost",
            "totalTokens",
        ]
        assert data["totals"]["totalCost"] == pytest.approx(0.51)

    def test_empty(self) -> "None":
        data = json.loads(render(flat_report([])))
        assert data["daily"] == []
        assert data["totals"]["totalTokens"] == 0


class TestProviderReport:
    def test_partitions_by_stored_provider(self, records: "list[UsageRecord]") -> "None":
        data = json.loads(render(provider_report(records)))

        # no alias merging in exports
        assert list(data) == ["anthropic", "openai", "codex"]
        assert data["openai"]["totals"]["totalCost"] == pytest.approx(0.2)
        assert [day["date"] for day in data["codex"]["daily"]] == ["2024-03-02"]


class TestSummaryReport:
    def test_contains_rows_and_averages(self, records: "list[UsageRecord]") -> "None":
        daily = fill_gaps(aggregate_by_day(records), "2024-03-01", "2024-03-04")
        data = json.loads(
            render(summary_report(summarize(records, daily), "2024-03-01", "2024-03-04"))
        )

        assert data["label"] == "March 1 - 4, 2024"
        assert data["totalDays"] == 4
        assert data["activeDays"] == 2
        assert [row["name"] for row in data["providers"]] == ["codex", "anthropic"]
        assert data["providers"][0]["messageCount"] == 2
        assert data["averageDailyCost"] == pytest.approx(0.51 / 4)


class TestWriteReport:
    def test_default_output_path(self) -> "None":
        assert default_output_path("2024-03-01", "2024-03-31") == (
            "usage-export-2024-03-01-to-2024-03-31.json"
        )

    def test_writes_json(self, records: "list[UsageRecord]", tmp_path: "Path") -> "None":
        path = write_report(flat_report(aggregate_by_day(records)), tmp_path / "out.json")
        assert json.loads(path.read_text())["totals"]["inputTokens"] == 300
