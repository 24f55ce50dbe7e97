from dataclasses import dataclass
from typing import Iterable, Sequence

from agentmeter.date_range import iter_days
from agentmeter.models import DailyUsage, ModelBreakdown, UsageRecord, UsageTotals


@dataclass
class _Bucket:
    """
    running sums of one (date, model) pair.
    """

    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    cost: "float" = 0.0

    def add(self, record: "UsageRecord") -> "None":
        self.input_tokens += record.input_tokens
        self.output_tokens += record.output_tokens
        self.cache_creation_tokens += record.cache_creation_tokens
        self.cache_read_tokens += record.cache_read_tokens
        self.cost += record.cost

    def freeze(self, model: "str") -> "ModelBreakdown":
        return ModelBreakdown(
            model_name=model,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens,
            cost=self.cost,
        )


def aggregate_by_day(records: "Iterable[UsageRecord]") -> "list[DailyUsage]":
    """
    groups records by (date, model) and returns one DailyUsage per
    date, ascending. Each date holds exactly one breakdown per model,
    in first-seen order.
    """
    buckets: "dict[tuple[str, str], _Bucket]" = {}

    for record in records:
        key = (record.date, record.model)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = _Bucket()
            buckets[key] = bucket
        bucket.add(record)

    breakdowns: "dict[str, list[ModelBreakdown]]" = {}
    for (day, model), bucket in buckets.items():
        breakdowns.setdefault(day, []).append(bucket.freeze(model))

    return [DailyUsage.from_breakdowns(day, breakdowns[day]) for day in sorted(breakdowns)]


def compute_totals(daily_usage: "Iterable[DailyUsage]") -> "UsageTotals":
    """
    sums the totals of every day.
    """
    input_tokens = output_tokens = cache_creation_tokens = cache_read_tokens = 0
    total_tokens = 0
    total_cost = 0.0

    for day in daily_usage:
        input_tokens += day.input_tokens
        output_tokens += day.output_tokens
        cache_creation_tokens += day.cache_creation_tokens
        cache_read_tokens += day.cache_read_tokens
        total_tokens += day.total_tokens
        total_cost += day.total_cost

    return UsageTotals(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_creation_tokens=cache_creation_tokens,
        cache_read_tokens=cache_read_tokens,
        total_cost=total_cost,
        total_tokens=total_tokens,
    )


def fill_gaps(
    daily_usage: "Sequence[DailyUsage]",
    start: "str",
    end: "str",
) -> "list[DailyUsage]":
    """
    returns one entry per date in [start, end]. Dates already present
    reuse the given object; missing dates get a zeroed DailyUsage.
    An empty list is returned when start is after end.
    """
    by_date = {day.date: day for day in daily_usage}

    filled: "list[DailyUsage]" = []
    for day in iter_days(start, end):
        existing = by_date.get(day)
        filled.append(existing if existing is not None else DailyUsage(date=day))

    return filled
