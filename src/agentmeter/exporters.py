from pathlib import Path
from typing import Iterable

import structlog
from pydantic import BaseModel, ConfigDict, RootModel
from pydantic.alias_generators import to_camel

from agentmeter.aggregator import aggregate_by_day, compute_totals
from agentmeter.date_range import describe_range
from agentmeter.models import (
    AggregatedUsageRow,
    DailyUsage,
    ModelBreakdown,
    UsageRecord,
    UsageSummary,
    UsageTotals,
)

logger = structlog.get_logger()


class _ExportModel(BaseModel):
    # field order is the key order of the written JSON
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )


class ExportModelBreakdown(_ExportModel):
    model_name: "str"
    input_tokens: "int"
    output_tokens: "int"
    cache_creation_tokens: "int"
    cache_read_tokens: "int"
    cost: "float"

    @classmethod
    def from_breakdown(cls, breakdown: "ModelBreakdown") -> "ExportModelBreakdown":
        return cls(
            model_name=breakdown.model_name,
            input_tokens=breakdown.input_tokens,
            output_tokens=breakdown.output_tokens,
            cache_creation_tokens=breakdown.cache_creation_tokens,
            cache_read_tokens=breakdown.cache_read_tokens,
            cost=breakdown.cost,
        )


class ExportDaily(_ExportModel):
    date: "str"
    input_tokens: "int"
    output_tokens: "int"
    cache_creation_tokens: "int"
    cache_read_tokens: "int"
    total_tokens: "int"
    total_cost: "float"
    models_used: "list[str]"
    model_breakdowns: "list[ExportModelBreakdown]"

    @classmethod
    def from_daily(cls, day: "DailyUsage") -> "ExportDaily":
        return cls(
            date=day.date,
            input_tokens=day.input_tokens,
            output_tokens=day.output_tokens,
            cache_creation_tokens=day.cache_creation_tokens,
            cache_read_tokens=day.cache_read_tokens,
            total_tokens=day.total_tokens,
            total_cost=day.total_cost,
            models_used=list(day.models_used),
            model_breakdowns=[
                ExportModelBreakdown.from_breakdown(b) for b in day.model_breakdowns
            ],
        )


class ExportTotals(_ExportModel):
    input_tokens: "int"
    output_tokens: "int"
    cache_creation_tokens: "int"
    cache_read_tokens: "int"
    total_cost: "float"
    total_tokens: "int"

    @classmethod
    def from_totals(cls, totals: "UsageTotals") -> "ExportTotals":
        return cls(
            input_tokens=totals.input_tokens,
            output_tokens=totals.output_tokens,
            cache_creation_tokens=totals.cache_creation_tokens,
            cache_read_tokens=totals.cache_read_tokens,
            total_cost=totals.total_cost,
            total_tokens=totals.total_tokens,
        )


class FlatReport(_ExportModel):
    """
    ccusage-compatible report: the dates that have usage, oldest
    first, plus their totals.
    """

    daily: "list[ExportDaily]"
    totals: "ExportTotals"


class ProviderReport(RootModel[dict[str, FlatReport]]):
    pass


class ExportUsageRow(_ExportModel):
    name: "str"
    message_count: "int"
    input_tokens: "int"
    output_tokens: "int"
    cache_creation_tokens: "int"
    cache_read_tokens: "int"
    total_tokens: "int"
    total_cost: "float"
    active_days: "int"

    @classmethod
    def from_row(cls, row: "AggregatedUsageRow") -> "ExportUsageRow":
        return cls(
            name=row.name,
            message_count=row.message_count,
            input_tokens=row.input_tokens,
            output_tokens=row.output_tokens,
            cache_creation_tokens=row.cache_creation_tokens,
            cache_read_tokens=row.cache_read_tokens,
            total_tokens=row.total_tokens,
            total_cost=row.total_cost,
            active_days=row.active_days,
        )


class SummaryReport(_ExportModel):
    start: "str"
    end: "str"
    # human-readable range, e.g. "March 1 - 4, 2024"
    label: "str"
    totals: "ExportTotals"
    providers: "list[ExportUsageRow]"
    models: "list[ExportUsageRow]"
    message_count: "int"
    active_days: "int"
    total_days: "int"
    average_daily_cost: "float"
    average_daily_tokens: "float"


def flat_report(daily_usage: "Iterable[DailyUsage]") -> "FlatReport":
    days = list(daily_usage)
    return FlatReport(
        daily=[ExportDaily.from_daily(day) for day in days],
        totals=ExportTotals.from_totals(compute_totals(days)),
    )


def provider_report(records: "Iterable[UsageRecord]") -> "ProviderReport":
    """
    one flat report per provider, keyed by the provider name stored
    on the records (no aliasing), in first-seen order.
    """
    by_provider: "dict[str, list[UsageRecord]]" = {}
    for record in records:
        by_provider.setdefault(record.provider, []).append(record)

    return ProviderReport(
        {
            provider: flat_report(aggregate_by_day(provider_records))
            for provider, provider_records in by_provider.items()
        }
    )


def summary_report(summary: "UsageSummary", start: "str", end: "str") -> "SummaryReport":
    return SummaryReport(
        start=start,
        end=end,
        label=describe_range(start, end),
        totals=ExportTotals.from_totals(summary.totals),
        providers=[ExportUsageRow.from_row(row) for row in summary.provider_rows],
        models=[ExportUsageRow.from_row(row) for row in summary.model_rows],
        message_count=summary.message_count,
        active_days=summary.active_days,
        total_days=summary.total_days,
        average_daily_cost=summary.average_daily_cost,
        average_daily_tokens=summary.average_daily_tokens,
    )


def render(report: "BaseModel") -> "str":
    return report.model_dump_json(by_alias=True, indent=2)


def default_output_path(start: "str", end: "str") -> "str":
    return f"usage-export-{start}-to-{end}.json"


def write_report(report: "BaseModel", path: "str | Path") -> "Path":
    target = Path(path).expanduser()
    target.write_text(render(report) + "\n", encoding="utf-8")
    logger.info("report_written", path=str(target))
    return target
