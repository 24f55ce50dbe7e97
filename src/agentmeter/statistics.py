from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from agentmeter.aggregator import compute_totals
from agentmeter.models import AggregatedUsageRow, DailyUsage, UsageRecord, UsageSummary

# upstream provider names reported under another provider's row
PROVIDER_ALIASES: "Mapping[str, str]" = MappingProxyType({"openai": "codex"})


def canonical_provider(provider: "str") -> "str":
    return PROVIDER_ALIASES.get(provider.lower(), provider)


@dataclass
class _RowAccumulator:
    message_count: "int" = 0
    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    total_cost: "float" = 0.0
    dates: "set[str]" = field(default_factory=set)

    def add(self, record: "UsageRecord") -> "None":
        self.message_count += 1
        self.input_tokens += record.input_tokens
        self.output_tokens += record.output_tokens
        self.cache_creation_tokens += record.cache_creation_tokens
        self.cache_read_tokens += record.cache_read_tokens
        self.total_cost += record.cost
        if record.date:
            self.dates.add(record.date)

    def freeze(self, name: "str") -> "AggregatedUsageRow":
        return AggregatedUsageRow(
            name=name,
            message_count=self.message_count,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens,
            total_tokens=(
                self.input_tokens
                + self.output_tokens
                + self.cache_creation_tokens
                + self.cache_read_tokens
            ),
            total_cost=self.total_cost,
            active_days=len(self.dates),
        )


def _sorted_rows(groups: "dict[str, _RowAccumulator]") -> "tuple[AggregatedUsageRow, ...]":
    """
    freezes the groups into rows ordered by cost, then tokens, both
    descending.
    """
    rows = [acc.freeze(name) for name, acc in groups.items()]
    rows.sort(key=lambda row: (row.total_cost, row.total_tokens), reverse=True)
    return tuple(rows)


def summarize(
    records: "Iterable[UsageRecord]",
    daily_usage: "Sequence[DailyUsage]",
) -> "UsageSummary":
    """
    builds the usage summary of a range.

    Provider and model rows come from `records`; totals, day counts
    and averages come from `daily_usage`. Both must cover the same
    date range, and daily_usage should already be gap-filled for the
    day counts to mean calendar days.
    """
    providers: "dict[str, _RowAccumulator]" = {}
    models: "dict[str, _RowAccumulator]" = {}
    message_count = 0

    for record in records:
        message_count += 1
        provider = canonical_provider(record.provider)
        providers.setdefault(provider, _RowAccumulator()).add(record)
        models.setdefault(record.model, _RowAccumulator()).add(record)

    totals = compute_totals(daily_usage)
    total_days = len(daily_usage)
    active_days = sum(1 for day in daily_usage if day.total_cost > 0)

    return UsageSummary(
        totals=totals,
        provider_rows=_sorted_rows(providers),
        model_rows=_sorted_rows(models),
        message_count=message_count,
        active_days=active_days,
        total_days=total_days,
        average_daily_cost=totals.total_cost / total_days if total_days else 0.0,
        average_daily_tokens=totals.total_tokens / total_days if total_days else 0.0,
    )
