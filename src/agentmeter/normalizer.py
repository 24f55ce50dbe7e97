import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from agentmeter.date_range import is_valid_date, local_date, local_noon_timestamp
from agentmeter.errors import RecordValidationError
from agentmeter.models import Granularity, RawEntry, RawMessage, RawUsageEntry, UsageRecord
from agentmeter.pricing import PricingResolver
from agentmeter.record_tracker import RecordTracker

BILLABLE_ROLES = frozenset({"assistant"})
UNKNOWN_MODEL = "unknown"


class SkipReason(str, Enum):
    NON_BILLABLE_ROLE = "non_billable_role"
    MISSING_ID = "missing_id"
    MISSING_TOKENS = "missing_tokens"
    MISSING_TIMESTAMP = "missing_timestamp"
    INVALID_TOKENS = "invalid_tokens"
    INVALID_DATE = "invalid_date"
    INVALID_TIMESTAMP = "invalid_timestamp"
    WRONG_GRANULARITY = "wrong_granularity"


@dataclass(frozen=True, slots=True)
class NormalizeResult:
    """
    outcome of normalizing one raw entry: a record, or the reason
    the entry was skipped.
    """

    record: "UsageRecord | None" = None
    skip_reason: "str | None" = None

    @property
    def skipped(self) -> "bool":
        return self.record is None


@dataclass
class NormalizedBatch:
    records: "list[UsageRecord]" = field(default_factory=list)
    # skip reason -> number of entries skipped for it
    skipped: "Counter[str]" = field(default_factory=Counter)


class Normalizer:
    """
    Normalizer converts raw provider entries into canonical usage
    records, pricing them through the resolver whenever the source
    did not report a nonzero cost.

    Entries that cannot become a record are skipped, not raised:
    the result carries the reason and the caller decides how to
    surface it.
    """

    def __init__(self, resolver: "PricingResolver") -> "None":
        self._resolver = resolver

    def normalize(
        self,
        entry: "RawEntry",
        granularity: "Granularity",
        *,
        source: "str" = "",
        tracker: "RecordTracker | None" = None,
        shared_by: "int" = 1,
    ) -> "NormalizeResult":
        """
        normalizes a single entry. `source` names the provider
        collaborator and prefixes aggregate-entry identifiers;
        `shared_by` is the number of models splitting a shared cost.
        """
        try:
            if granularity is Granularity.PER_MESSAGE and isinstance(entry, RawMessage):
                record = self._from_message(entry)
            elif granularity is Granularity.PER_AGGREGATE_ENTRY and isinstance(
                entry, RawUsageEntry
            ):
                record = self._from_usage_entry(
                    entry, source or entry.provider, tracker or RecordTracker(), shared_by
                )
            else:
                raise RecordValidationError(SkipReason.WRONG_GRANULARITY.value)
        except RecordValidationError as exc:
            return NormalizeResult(skip_reason=exc.reason)

        return NormalizeResult(record=record)

    def normalize_batch(
        self,
        entries: "Sequence[RawEntry]",
        granularity: "Granularity",
        source: "str" = "",
    ) -> "NormalizedBatch":
        """
        normalizes every entry of one provider fetch. Ordinals are
        allocated per batch, and a shared daily cost is split equally
        between the entries present for that date.
        """
        tracker = RecordTracker()
        sharing = Counter(
            entry.date
            for entry in entries
            if isinstance(entry, RawUsageEntry) and entry.shared_cost is not None
        )

        batch = NormalizedBatch()
        for entry in entries:
            shared_by = sharing[entry.date] if isinstance(entry, RawUsageEntry) else 1
            result = self.normalize(
                entry,
                granularity,
                source=source,
                tracker=tracker,
                shared_by=shared_by or 1,
            )
            if result.record is None:
                batch.skipped[result.skip_reason or "unknown"] += 1
            else:
                batch.records.append(result.record)

        return batch

    def _from_message(self, raw: "RawMessage") -> "UsageRecord":
        if raw.role not in BILLABLE_ROLES:
            raise RecordValidationError(SkipReason.NON_BILLABLE_ROLE.value)
        if not raw.id:
            raise RecordValidationError(SkipReason.MISSING_ID.value)
        if raw.input_tokens is None or raw.output_tokens is None:
            raise RecordValidationError(SkipReason.MISSING_TOKENS.value)

        # completion time wins over creation time
        timestamp = raw.completed_at if raw.completed_at is not None else raw.created_at
        if timestamp is None:
            raise RecordValidationError(SkipReason.MISSING_TIMESTAMP.value)

        _check_tokens(
            raw.input_tokens,
            raw.output_tokens,
            raw.reasoning_tokens,
            raw.cache_creation_tokens,
            raw.cache_read_tokens,
        )
        date = _derive_date(timestamp)

        model = raw.model or UNKNOWN_MODEL
        cost = self._cost(
            raw.cost,
            model,
            raw.input_tokens,
            raw.output_tokens,
            raw.cache_creation_tokens,
            raw.cache_read_tokens,
            raw.provider,
        )

        return UsageRecord(
            id=raw.id,
            session_id=raw.session_id,
            provider=raw.provider,
            model=model,
            input_tokens=raw.input_tokens,
            output_tokens=raw.output_tokens,
            reasoning_tokens=raw.reasoning_tokens,
            cache_creation_tokens=raw.cache_creation_tokens,
            cache_read_tokens=raw.cache_read_tokens,
            cost=cost,
            timestamp=timestamp,
            date=date,
        )

    def _from_usage_entry(
        self,
        raw: "RawUsageEntry",
        source: "str",
        tracker: "RecordTracker",
        shared_by: "int",
    ) -> "UsageRecord":
        if raw.input_tokens is None or raw.output_tokens is None:
            raise RecordValidationError(SkipReason.MISSING_TOKENS.value)
        if not is_valid_date(raw.date):
            raise RecordValidationError(SkipReason.INVALID_DATE.value)

        _check_tokens(
            raw.input_tokens,
            raw.output_tokens,
            raw.reasoning_tokens,
            raw.cache_creation_tokens,
            raw.cache_read_tokens,
        )

        model = raw.model or UNKNOWN_MODEL
        reported = raw.cost
        if not reported and raw.shared_cost is not None:
            # one cost for all models of the date: equal split, an
            # approximation since per-model cost is not reported
            reported = raw.shared_cost / max(shared_by, 1)

        cost = self._cost(
            reported,
            model,
            raw.input_tokens,
            raw.output_tokens,
            raw.cache_creation_tokens,
            raw.cache_read_tokens,
            raw.provider,
        )

        try:
            timestamp = local_noon_timestamp(raw.date)
        except (ValueError, OverflowError, OSError) as exc:
            raise RecordValidationError(SkipReason.INVALID_DATE.value, str(exc)) from exc
        ordinal = tracker.next_ordinal(source, raw.date, model)

        return UsageRecord(
            id=RecordTracker.make_record_id(source, raw.date, model, ordinal),
            session_id=f"{source}-session-{raw.date}",
            provider=raw.provider,
            model=model,
            input_tokens=raw.input_tokens,
            output_tokens=raw.output_tokens,
            reasoning_tokens=raw.reasoning_tokens,
            cache_creation_tokens=raw.cache_creation_tokens,
            cache_read_tokens=raw.cache_read_tokens,
            cost=cost,
            timestamp=timestamp,
            date=_derive_date(timestamp),
        )

    def _cost(
        self,
        reported: "float | None",
        model: "str",
        input_tokens: "int",
        output_tokens: "int",
        cache_creation_tokens: "int",
        cache_read_tokens: "int",
        provider: "str",
    ) -> "float":
        if reported is not None and math.isfinite(reported) and reported > 0:
            return float(reported)

        return self._resolver.resolve_cost(
            model,
            input_tokens,
            output_tokens,
            cache_creation_tokens,
            cache_read_tokens,
            provider,
        )


def _check_tokens(*counts: "int") -> "None":
    for count in counts:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise RecordValidationError(SkipReason.INVALID_TOKENS.value)


def _derive_date(timestamp: "int") -> "str":
    # out-of-range epochs fail in datetime, not in the source schema
    try:
        return local_date(timestamp)
    except (ValueError, OverflowError, OSError) as exc:
        raise RecordValidationError(SkipReason.INVALID_TIMESTAMP.value, str(exc)) from exc
