import pytest

from agentmeter.date_range import local_date, local_noon_timestamp
from agentmeter.models import Granularity, RawMessage, RawUsageEntry
from agentmeter.normalizer import Normalizer, SkipReason
from agentmeter.pricing import PricingResolver
from agentmeter.record_tracker import RecordTracker

PER_MESSAGE = Granularity.PER_MESSAGE
PER_ENTRY = Granularity.PER_AGGREGATE_ENTRY


def _message(**overrides: "object") -> "RawMessage":
    fields: "dict[str, object]" = {
        "id": "msg_1",
        "session_id": "ses_1",
        "provider": "anthropic",
        "role": "assistant",
        "model": "claude-sonnet-4",
        "input_tokens": 1000,
        "output_tokens": 500,
        "created_at": 1_709_280_000_000,
    }
    fields.update(overrides)
    return RawMessage(**fields)  # type: ignore[arg-type]


def _entry(**overrides: "object") -> "RawUsageEntry":
    fields: "dict[str, object]" = {
        "date": "2024-03-01",
        "provider": "anthropic",
        "model": "claude-sonnet-4",
        "input_tokens": 1000,
        "output_tokens": 500,
    }
    fields.update(overrides)
    return RawUsageEntry(**fields)  # type: ignore[arg-type]


@pytest.fixture()
def normalizer(resolver: "PricingResolver") -> "Normalizer":
    return Normalizer(resolver)


class TestNormalizeMessage:
    def test_builds_record(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_message(cost=0.42, reasoning_tokens=7), PER_MESSAGE)

        assert not result.skipped
        record = result.record
        assert record is not None
        assert record.id == "msg_1"
        assert record.session_id == "ses_1"
        assert record.provider == "anthropic"
        assert record.cost == 0.42
        assert record.reasoning_tokens == 7
        assert record.timestamp == 1_709_280_000_000
        assert record.date == local_date(1_709_280_000_000)

    def test_completion_time_wins(self, normalizer: "Normalizer") -> "None":
        completed = 1_709_280_000_000 + 86_400_000
        result = normalizer.normalize(_message(completed_at=completed), PER_MESSAGE)

        assert result.record is not None
        assert result.record.timestamp == completed
        assert result.record.date == local_date(completed)

    def test_missing_cost_is_priced(self, normalizer: "Normalizer", primary) -> "None":
        result = normalizer.normalize(_message(cost=None), PER_MESSAGE)

        assert result.record is not None
        assert result.record.cost == pytest.approx(1000 / 1e6 * 3.0 + 500 / 1e6 * 15.0)
        assert primary.calls[-1][3] == "anthropic"

    def test_zero_cost_is_priced(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_message(cost=0.0), PER_MESSAGE)
        assert result.record is not None
        assert result.record.cost > 0

    def test_missing_model_becomes_unknown(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_message(model=None, cost=None), PER_MESSAGE)
        assert result.record is not None
        assert result.record.model == "unknown"
        assert result.record.cost == 0.0

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"role": "user"}, SkipReason.NON_BILLABLE_ROLE),
            ({"id": ""}, SkipReason.MISSING_ID),
            ({"input_tokens": None}, SkipReason.MISSING_TOKENS),
            ({"output_tokens": None}, SkipReason.MISSING_TOKENS),
            ({"created_at": None}, SkipReason.MISSING_TIMESTAMP),
            ({"cache_read_tokens": -1}, SkipReason.INVALID_TOKENS),
        ],
    )
    def test_skips(
        self,
        normalizer: "Normalizer",
        overrides: "dict[str, object]",
        reason: "SkipReason",
    ) -> "None":
        result = normalizer.normalize(_message(**overrides), PER_MESSAGE)
        assert result.skipped
        assert result.skip_reason == reason.value

    def test_out_of_range_timestamp_is_skipped(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_message(created_at=10**17), PER_MESSAGE)
        assert result.skipped
        assert result.skip_reason == SkipReason.INVALID_TIMESTAMP.value

    def test_granularity_mismatch_is_skipped(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_message(), PER_ENTRY)
        assert result.skip_reason == SkipReason.WRONG_GRANULARITY.value

    def test_same_message_same_id(self, normalizer: "Normalizer") -> "None":
        first = normalizer.normalize(_message(), PER_MESSAGE).record
        second = normalizer.normalize(_message(), PER_MESSAGE).record
        assert first == second


class TestNormalizeUsageEntry:
    def test_builds_record(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_entry(cost=1.5), PER_ENTRY, source="ccusage")

        record = result.record
        assert record is not None
        assert record.id == "ccusage-2024-03-01-claude-sonnet-4-0"
        assert record.session_id == "ccusage-session-2024-03-01"
        assert record.provider == "anthropic"
        assert record.cost == 1.5
        assert record.timestamp == local_noon_timestamp("2024-03-01")
        assert record.date == "2024-03-01"

    def test_ordinals_within_group(self, normalizer: "Normalizer") -> "None":
        tracker = RecordTracker()
        ids = [
            normalizer.normalize(_entry(), PER_ENTRY, source="ccusage", tracker=tracker).record.id
            for _ in range(3)
        ]
        assert ids == [
            "ccusage-2024-03-01-claude-sonnet-4-0",
            "ccusage-2024-03-01-claude-sonnet-4-1",
            "ccusage-2024-03-01-claude-sonnet-4-2",
        ]

    def test_invalid_date_is_skipped(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_entry(date="2024-02-30"), PER_ENTRY, source="x")
        assert result.skip_reason == SkipReason.INVALID_DATE.value

    def test_missing_tokens_is_skipped(self, normalizer: "Normalizer") -> "None":
        result = normalizer.normalize(_entry(output_tokens=None), PER_ENTRY, source="x")
        assert result.skip_reason == SkipReason.MISSING_TOKENS.value


class TestNormalizeBatch:
    def test_equal_split_of_shared_cost(self, normalizer: "Normalizer") -> "None":
        entries = [
            _entry(provider="codex", model="gpt-5", shared_cost=3.0),
            _entry(provider="codex", model="gpt-5-codex", shared_cost=3.0),
            _entry(provider="codex", model="gpt-5-mini", shared_cost=3.0),
            _entry(date="2024-03-02", provider="codex", model="gpt-5", shared_cost=2.0),
        ]
        batch = normalizer.normalize_batch(entries, PER_ENTRY, source="codex")

        costs = [record.cost for record in batch.records]
        assert costs == pytest.approx([1.0, 1.0, 1.0, 2.0])
        assert sum(costs[:3]) == pytest.approx(3.0)

    def test_zero_shared_cost_falls_back_to_pricing(self, normalizer: "Normalizer") -> "None":
        entries = [_entry(provider="codex", model="gpt-4o", shared_cost=0.0)]
        batch = normalizer.normalize_batch(entries, PER_ENTRY, source="codex")
        assert batch.records[0].cost == pytest.approx(1000 / 1e6 * 2.5 + 500 / 1e6 * 10.0)

    def test_counts_skips(self, normalizer: "Normalizer") -> "None":
        entries = [
            _message(),
            _message(id="msg_2", role="user"),
            _message(id="msg_3", role="user"),
            _message(id="msg_4", input_tokens=None),
        ]
        batch = normalizer.normalize_batch(entries, PER_MESSAGE)

        assert [record.id for record in batch.records] == ["msg_1"]
        assert batch.skipped == {"non_billable_role": 2, "missing_tokens": 1}

    def test_batches_are_deterministic(self, normalizer: "Normalizer") -> "None":
        entries = [_entry(), _entry(), _entry(model="gpt-4o")]
        first = normalizer.normalize_batch(entries, PER_ENTRY, source="ccusage")
        second = normalizer.normalize_batch(entries, PER_ENTRY, source="ccusage")
        assert [r.id for r in first.records] == [r.id for r in second.records]
