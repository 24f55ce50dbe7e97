from typing import Any, Callable, Iterator

import pytest
from prometheus_client import CollectorRegistry

from agentmeter.date_range import local_noon_timestamp
from agentmeter.models import UsageRecord
from agentmeter.price_table import FALLBACK_PRICES, FallbackPriceTable
from agentmeter.pricing import PricingResolver, PrimaryQuote
from agentmeter.storage import UsageStore


class FakePrimarySource:
    """
    in-memory primary price source. `prices` maps a model to its
    per-million rates, keyed like the genai-prices rate fields.
    """

    def __init__(self, prices: "dict[str, dict[str, Any]] | None" = None) -> "None":
        self.prices = prices or {}
        self.calls: "list[tuple[str, int, int, str | None]]" = []

    def quote(
        self,
        model: "str",
        input_tokens: "int",
        output_tokens: "int",
        provider_hint: "str | None" = None,
    ) -> "PrimaryQuote | None":
        self.calls.append((model, input_tokens, output_tokens, provider_hint))
        rates = self.prices.get(model)
        if rates is None:
            return None

        input_cost = input_tokens / 1_000_000 * float(rates.get("input_mtok", 0))
        output_cost = output_tokens / 1_000_000 * float(rates.get("output_mtok", 0))
        return PrimaryQuote(
            total_cost=input_cost + output_cost,
            input_cost=input_cost,
            output_cost=output_cost,
            rates=rates,
            provider_name="Fake",
            model_name=model,
        )


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def store() -> "Iterator[UsageStore]":
    usage_store = UsageStore()
    yield usage_store
    usage_store.close()


@pytest.fixture()
def primary() -> "FakePrimarySource":
    return FakePrimarySource(
        {
            "claude-sonnet-4": {
                "input_mtok": 3.0,
                "output_mtok": 15.0,
                "cache_write_mtok": 3.75,
                "cache_read_mtok": 0.3,
            },
            "gpt-4o": {"input_mtok": 2.5, "output_mtok": 10.0},
        }
    )


@pytest.fixture()
def resolver(primary: "FakePrimarySource") -> "PricingResolver":
    return PricingResolver(primary=primary, fallback=FallbackPriceTable(FALLBACK_PRICES))


@pytest.fixture()
def make_record() -> "Callable[..., UsageRecord]":
    """
    factory for stored records; `date` drives the timestamp unless
    one is given.
    """

    def _make(
        id: "str" = "msg_1",
        date: "str" = "2024-03-01",
        provider: "str" = "opencode",
        model: "str" = "claude-sonnet-4",
        input_tokens: "int" = 100,
        output_tokens: "int" = 50,
        cost: "float" = 0.01,
        **overrides: "Any",
    ) -> "UsageRecord":
        fields: "dict[str, Any]" = {
            "id": id,
            "session_id": "ses_1",
            "provider": provider,
            "model": model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "reasoning_tokens": 0,
            "cache_creation_tokens": 0,
            "cache_read_tokens": 0,
            "cost": cost,
            "timestamp": local_noon_timestamp(date),
            "date": date,
        }
        fields.update(overrides)
        return UsageRecord(**fields)

    return _make
