import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Protocol

import structlog
from genai_prices import Usage, calc_price

from agentmeter.price_table import FALLBACK_PRICES, FallbackPrice, FallbackPriceTable

logger = structlog.get_logger()

_PER_MILLION = 1_000_000

# per-million rate fields of a primary price record
_RATE_FIELDS: "tuple[str, ...]" = (
    "input_mtok",
    "output_mtok",
    "cache_write_mtok",
    "cache_read_mtok",
)


class PriceSource(str, Enum):
    """
    which pricing tier produced a cost.
    """

    PRIMARY = "primary"
    FALLBACK = "fallback"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class ModelPricing:
    input_per_1m: "float"
    output_per_1m: "float"
    cache_write_per_1m: "float"
    cache_read_per_1m: "float"


@dataclass(frozen=True, slots=True)
class CostBreakdown:
    """
    CostBreakdown itemizes a resolved cost and records which tier
    answered, so callers can audit a price without re-running it.
    """

    total_cost: "float"
    input_cost: "float"
    output_cost: "float"
    cache_write_cost: "float"
    cache_read_cost: "float"
    source: "PriceSource"
    provider_name: "str | None" = None
    model_name: "str | None" = None

    @classmethod
    def none(cls) -> "CostBreakdown":
        return cls(0.0, 0.0, 0.0, 0.0, 0.0, PriceSource.NONE)


@dataclass(frozen=True, slots=True)
class PrimaryQuote:
    """
    PrimaryQuote is what the primary pricing source answers for the
    input/output part of a usage. Cache tokens are never sent to
    the source, so its totals exclude them.
    """

    total_cost: "float"
    input_cost: "float"
    output_cost: "float"
    # per-million rates keyed by _RATE_FIELDS, encoded however the
    # source encodes them; only fields the model defines are present
    rates: "Mapping[str, Any]"
    provider_name: "str | None" = None
    model_name: "str | None" = None


class PrimaryPriceSource(Protocol):
    """
    the authoritative price lookup. Returns None when it does not
    know the model.
    """

    def quote(
        self,
        model: "str",
        input_tokens: "int",
        output_tokens: "int",
        provider_hint: "str | None" = None,
    ) -> "PrimaryQuote | None": ...


def extract_rate(value: "object") -> "float":
    """
    reduces a per-million rate to a plain float. Accepts numbers,
    numeric strings and tiered prices carrying a numeric `base`
    (mapping key or attribute); anything else is 0.
    """
    if isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float, Decimal)):
        rate = float(value)
        return rate if math.isfinite(rate) else 0.0

    if isinstance(value, str):
        try:
            rate = float(value)
        except ValueError:
            return 0.0
        return rate if math.isfinite(rate) else 0.0

    if isinstance(value, Mapping):
        base = value.get("base")
    else:
        base = getattr(value, "base", None)

    if isinstance(base, (int, float, Decimal)) and not isinstance(base, bool):
        return extract_rate(base)

    return 0.0


class GenaiPricesSource:
    """
    GenaiPricesSource adapts the genai-prices package to the
    PrimaryPriceSource protocol. A provider hint the package does
    not recognise is dropped and the lookup retried on the model
    alone.
    """

    def quote(
        self,
        model: "str",
        input_tokens: "int",
        output_tokens: "int",
        provider_hint: "str | None" = None,
    ) -> "PrimaryQuote | None":
        try:
            try:
                return self._calc(model, input_tokens, output_tokens, provider_hint)
            except LookupError:
                if provider_hint is None:
                    return None

            return self._calc(model, input_tokens, output_tokens, None)
        except LookupError:
            return None
        except Exception:
            logger.warning("primary_pricing_failed", model=model, exc_info=True)
            return None

    @staticmethod
    def _calc(
        model: "str",
        input_tokens: "int",
        output_tokens: "int",
        provider_hint: "str | None",
    ) -> "PrimaryQuote":
        result = calc_price(
            Usage(input_tokens=input_tokens, output_tokens=output_tokens),
            model,
            provider_id=provider_hint,
        )

        rates: "dict[str, Any]" = {}
        price = getattr(result, "model_price", None)
        if price is not None:
            for name in _RATE_FIELDS:
                value = getattr(price, name, None)
                if value is not None:
                    rates[name] = value

        return PrimaryQuote(
            total_cost=float(result.total_price),
            input_cost=float(result.input_price),
            output_cost=float(result.output_price),
            rates=rates,
            provider_name=getattr(result.provider, "name", None),
            model_name=getattr(result.model, "name", None),
        )


class PricingResolver:
    """
    PricingResolver resolves the USD cost of a usage through tiers:
    the primary source, then the fallback table, then zero. It
    never raises; a model nobody knows costs 0 and reports
    source NONE.
    """

    def __init__(
        self,
        primary: "PrimaryPriceSource | None" = None,
        fallback: "FallbackPriceTable | None" = None,
    ) -> "None":
        self._primary: "PrimaryPriceSource" = (
            primary if primary is not None else GenaiPricesSource()
        )
        self._fallback: "FallbackPriceTable" = (
            fallback if fallback is not None else FallbackPriceTable(FALLBACK_PRICES)
        )

    @property
    def fallback(self) -> "FallbackPriceTable":
        return self._fallback

    def resolve_cost(
        self,
        model: "str",
        input_tokens: "int",
        output_tokens: "int",
        cache_write_tokens: "int",
        cache_read_tokens: "int",
        provider_hint: "str | None" = None,
    ) -> "float":
        return self.detailed_cost(
            model,
            input_tokens,
            output_tokens,
            cache_write_tokens,
            cache_read_tokens,
            provider_hint,
        ).total_cost

    def detailed_cost(
        self,
        model: "str",
        input_tokens: "int",
        output_tokens: "int",
        cache_write_tokens: "int",
        cache_read_tokens: "int",
        provider_hint: "str | None" = None,
    ) -> "CostBreakdown":
        if not model or not model.strip():
            return CostBreakdown.none()

        quote = self._primary.quote(model, input_tokens, output_tokens, provider_hint)
        if quote is not None:
            return self._from_quote(quote, cache_write_tokens, cache_read_tokens)

        entry = self._fallback.find(model, provider_hint)
        if entry is not None:
            return _from_fallback(
                entry, input_tokens, output_tokens, cache_write_tokens, cache_read_tokens
            )

        return CostBreakdown.none()

    def model_pricing(
        self,
        model: "str",
        provider_hint: "str | None" = None,
    ) -> "ModelPricing | None":
        """
        returns the four per-million rates for a model without pricing
        any usage, or None when neither tier knows it.
        """
        if not model or not model.strip():
            return None

        quote = self._primary.quote(model, _PER_MILLION, _PER_MILLION, provider_hint)
        if quote is not None and "input_mtok" in quote.rates:
            return ModelPricing(
                input_per_1m=extract_rate(quote.rates.get("input_mtok")),
                output_per_1m=extract_rate(quote.rates.get("output_mtok")),
                cache_write_per_1m=extract_rate(quote.rates.get("cache_write_mtok")),
                cache_read_per_1m=extract_rate(quote.rates.get("cache_read_mtok")),
            )

        entry = self._fallback.find(model, provider_hint)
        if entry is not None:
            return ModelPricing(
                input_per_1m=entry.input_per_1m,
                output_per_1m=entry.output_per_1m,
                cache_write_per_1m=entry.cache_write_per_1m,
                cache_read_per_1m=entry.cache_read_per_1m,
            )

        return None

    @staticmethod
    def _from_quote(
        quote: "PrimaryQuote",
        cache_write_tokens: "int",
        cache_read_tokens: "int",
    ) -> "CostBreakdown":
        cache_write_cost = 0.0
        cache_read_cost = 0.0

        # the quote only covers input/output; add cache tokens when the
        # model's price record defines cache rates
        if "cache_write_mtok" in quote.rates or "cache_read_mtok" in quote.rates:
            cache_write_cost = (cache_write_tokens / _PER_MILLION) * extract_rate(
                quote.rates.get("cache_write_mtok")
            )
            cache_read_cost = (cache_read_tokens / _PER_MILLION) * extract_rate(
                quote.rates.get("cache_read_mtok")
            )

        return CostBreakdown(
            total_cost=quote.total_cost + cache_write_cost + cache_read_cost,
            input_cost=quote.input_cost,
            output_cost=quote.output_cost,
            cache_write_cost=cache_write_cost,
            cache_read_cost=cache_read_cost,
            source=PriceSource.PRIMARY,
            provider_name=quote.provider_name,
            model_name=quote.model_name,
        )


def _from_fallback(
    entry: "FallbackPrice",
    input_tokens: "int",
    output_tokens: "int",
    cache_write_tokens: "int",
    cache_read_tokens: "int",
) -> "CostBreakdown":
    input_cost = (input_tokens / _PER_MILLION) * entry.input_per_1m
    output_cost = (output_tokens / _PER_MILLION) * entry.output_per_1m
    cache_write_cost = (cache_write_tokens / _PER_MILLION) * entry.cache_write_per_1m
    cache_read_cost = (cache_read_tokens / _PER_MILLION) * entry.cache_read_per_1m

    return CostBreakdown(
        total_cost=input_cost + output_cost + cache_write_cost + cache_read_cost,
        input_cost=input_cost,
        output_cost=output_cost,
        cache_write_cost=cache_write_cost,
        cache_read_cost=cache_read_cost,
        source=PriceSource.FALLBACK,
        provider_name=entry.provider,
        model_name=entry.model,
    )
