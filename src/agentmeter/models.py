import dataclasses
from dataclasses import dataclass
from enum import Enum


class Granularity(str, Enum):
    """
    how a provider reports usage: one entry per agent message, or
    pre-summed entries per date and model.
    """

    PER_MESSAGE = "per-message"
    PER_AGGREGATE_ENTRY = "per-aggregate-entry"


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """
    UsageRecord is the canonical shape every provider entry
    is normalized into before storage and aggregation.
    """

    id: "str"
    session_id: "str"
    provider: "str"
    model: "str"
    input_tokens: "int"
    output_tokens: "int"
    reasoning_tokens: "int"
    cache_creation_tokens: "int"
    cache_read_tokens: "int"
    # USD, provider-supplied or resolved through pricing
    cost: "float"
    # epoch milliseconds
    timestamp: "int"
    # YYYY-MM-DD in local time, always derived from timestamp
    date: "str"

    @property
    def total_tokens(self) -> "int":
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    def with_cost(self, cost: "float") -> "UsageRecord":
        return dataclasses.replace(self, cost=cost)


@dataclass(frozen=True, slots=True)
class RawMessage:
    """
    RawMessage is a per-message provider entry after the provider
    validated its own wire shape. Fields a provider could not
    find are None.
    """

    id: "str"
    session_id: "str"
    provider: "str"
    # only "assistant" turns are billable
    role: "str"
    model: "str | None"
    input_tokens: "int | None"
    output_tokens: "int | None"
    reasoning_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    cost: "float | None" = None
    # epoch milliseconds
    created_at: "int | None" = None
    completed_at: "int | None" = None


@dataclass(frozen=True, slots=True)
class RawUsageEntry:
    """
    RawUsageEntry is one pre-summed (date, model) row from an
    aggregate-entry provider.
    """

    # YYYY-MM-DD
    date: "str"
    provider: "str"
    model: "str"
    input_tokens: "int | None"
    output_tokens: "int | None"
    reasoning_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    # cost reported for this model alone
    cost: "float | None" = None
    # one cost reported for every model sharing this date
    shared_cost: "float | None" = None


RawEntry = RawMessage | RawUsageEntry


@dataclass(frozen=True, slots=True)
class ModelBreakdown:
    model_name: "str"
    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    cost: "float" = 0.0

    @property
    def total_tokens(self) -> "int":
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )


@dataclass(frozen=True, slots=True)
class DailyUsage:
    """
    DailyUsage is one calendar date's usage. Its totals are always
    the sums over model_breakdowns.
    """

    date: "str"
    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    total_tokens: "int" = 0
    total_cost: "float" = 0.0
    models_used: "tuple[str, ...]" = ()
    model_breakdowns: "tuple[ModelBreakdown, ...]" = ()

    @classmethod
    def from_breakdowns(
        cls, date: "str", breakdowns: "list[ModelBreakdown]"
    ) -> "DailyUsage":
        return cls(
            date=date,
            input_tokens=sum(b.input_tokens for b in breakdowns),
            output_tokens=sum(b.output_tokens for b in breakdowns),
            cache_creation_tokens=sum(b.cache_creation_tokens for b in breakdowns),
            cache_read_tokens=sum(b.cache_read_tokens for b in breakdowns),
            total_tokens=sum(b.total_tokens for b in breakdowns),
            total_cost=sum(b.cost for b in breakdowns),
            models_used=tuple(b.model_name for b in breakdowns),
            model_breakdowns=tuple(breakdowns),
        )


@dataclass(frozen=True, slots=True)
class UsageTotals:
    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    total_cost: "float" = 0.0
    total_tokens: "int" = 0


@dataclass(frozen=True, slots=True)
class AggregatedUsageRow:
    """
    one ranking-table row, keyed by canonical provider name or by
    model name.
    """

    name: "str"
    message_count: "int"
    input_tokens: "int"
    output_tokens: "int"
    cache_creation_tokens: "int"
    cache_read_tokens: "int"
    total_tokens: "int"
    total_cost: "float"
    active_days: "int"


@dataclass(frozen=True, slots=True)
class UsageSummary:
    totals: "UsageTotals"
    provider_rows: "tuple[AggregatedUsageRow, ...]"
    model_rows: "tuple[AggregatedUsageRow, ...]"
    message_count: "int"
    # dates in range with nonzero cost
    active_days: "int"
    total_days: "int"
    average_daily_cost: "float"
    average_daily_tokens: "float"
