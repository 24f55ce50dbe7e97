from typing import Callable

import pytest

from agentmeter.aggregator import aggregate_by_day, fill_gaps
from agentmeter.models import UsageRecord
from agentmeter.statistics import canonical_provider, summarize

RecordFactory = Callable[..., UsageRecord]


class TestCanonicalProvider:
    def test_alias(self) -> "None":
        assert canonical_provider("openai") == "codex"
        assert canonical_provider("OpenAI") == "codex"

    def test_passthrough(self) -> "None":
        assert canonical_provider("anthropic") == "anthropic"


class TestSummarize:
    def test_two_days_of_usage_over_three_days(self, make_record: "RecordFactory") -> "None":
        records = [
            make_record(
                id="r1", model="m1", provider="p1", input_tokens=100, output_tokens=60,
                cost=0.25, date="2024-01-01",
            ),
            make_record(
                id="r2", model="m1", provider="p1", input_tokens=70, output_tokens=40,
                cost=0.25, date="2024-01-02",
            ),
        ]
        daily = fill_gaps(aggregate_by_day(records), "2024-01-01", "2024-01-03")
        summary = summarize(records, daily)

        assert len(daily) == 3
        assert daily[2].total_cost == 0
        assert summary.totals.total_cost == pytest.approx(0.5)
        assert summary.totals.total_tokens == 270
        assert summary.active_days == 2
        assert summary.total_days == 3
        assert summary.message_count == 2
        assert summary.average_daily_cost == pytest.approx(0.1667, abs=1e-4)
        assert summary.average_daily_tokens == pytest.approx(90.0)

        (provider_row,) = summary.provider_rows
        assert provider_row.name == "p1"
        assert provider_row.message_count == 2
        assert provider_row.active_days == 2

    def test_empty_range_has_zero_averages(self) -> "None":
        summary = summarize([], [])
        assert summary.total_days == 0
        assert summary.average_daily_cost == 0.0
        assert summary.average_daily_tokens == 0.0

    def test_aliased_provider_merges_rows(self, make_record: "RecordFactory") -> "None":
        records = [
            make_record(id="a", provider="openai", cost=0.1),
            make_record(id="b", provider="codex", cost=0.2),
            make_record(id="c", provider="anthropic", cost=0.05),
        ]
        summary = summarize(records, aggregate_by_day(records))

        names = [row.name for row in summary.provider_rows]
        assert names == ["codex", "anthropic"]
        assert summary.provider_rows[0].message_count == 2
        assert summary.provider_rows[0].total_cost == pytest.approx(0.3)

    def test_rows_sorted_by_cost_then_tokens(self, make_record: "RecordFactory") -> "None":
        records = [
            make_record(id="a", model="cheap", cost=0.1),
            make_record(id="b", model="small", cost=0.5, input_tokens=10),
            make_record(id="c", model="big", cost=0.5, input_tokens=1000),
        ]
        summary = summarize(records, aggregate_by_day(records))
        assert [row.name for row in summary.model_rows] == ["big", "small", "cheap"]

    def test_active_days_per_row(self, make_record: "RecordFactory") -> "None":
        records = [
            make_record(id="a", model="m1", date="2024-03-01"),
            make_record(id="b", model="m1", date="2024-03-01"),
            make_record(id="c", model="m1", date="2024-03-03"),
            make_record(id="d", model="m2", date="2024-03-02"),
        ]
        summary = summarize(records, aggregate_by_day(records))
        rows = {row.name: row for row in summary.model_rows}
        assert rows["m1"].active_days == 2
        assert rows["m2"].active_days == 1

    def test_days_without_cost_are_not_active(self, make_record: "RecordFactory") -> "None":
        records = [
            make_record(id="a", date="2024-03-01", cost=0.0),
            make_record(id="b", date="2024-03-02", cost=0.3),
        ]
        summary = summarize(records, aggregate_by_day(records))
        assert summary.active_days == 1
        assert summary.total_days == 2
