from dataclasses import dataclass
from typing import Iterable

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

logger = structlog.get_logger()

_PER_MILLION = 1_000_000


@dataclass(frozen=True, slots=True)
class FallbackPrice:
    """
    FallbackPrice is a curated per-million-token price for a model
    the primary pricing source does not know.
    """

    model: "str"
    input_per_1m: "float"
    output_per_1m: "float"
    cache_write_per_1m: "float" = 0.0
    cache_read_per_1m: "float" = 0.0
    # narrows an exact match to one provider when set
    provider: "str | None" = None
    notes: "str" = ""


FALLBACK_PRICES: "tuple[FallbackPrice, ...]" = (
    # GLM (ZhipuAI)
    FallbackPrice("glm-4.5", 0.35, 1.55, notes="free tier or custom pricing"),
    FallbackPrice("glm-4.5-air", 0.13, 0.85, notes="free tier or custom pricing"),
    # Qwen (Alibaba Cloud)
    FallbackPrice("qwen/qwen3-coder-30b", 0.06, 0.25),
    FallbackPrice("coder-model", 1.0, 5.0),
    # Gemini (Google)
    FallbackPrice("gemini-2.5-pro", 1.25, 5.0, cache_read_per_1m=0.3125),
    FallbackPrice("gemini-2.0-flash-exp", 0.0, 0.0, notes="free tier"),
    FallbackPrice("gemini-2.0-flash-thinking-exp", 0.0, 0.0, notes="free tier"),
    FallbackPrice("gemini-1.5-pro", 1.25, 5.0, cache_read_per_1m=0.3125),
    FallbackPrice("gemini-1.5-flash", 0.075, 0.3, cache_read_per_1m=0.01875),
)


class FallbackPriceTable:
    """
    FallbackPriceTable is an immutable lookup over fallback prices.

    Lookup order: exact (model, provider), exact model, then a
    case-insensitive substring match in either direction. Earlier
    entries win every tie, so the same query always resolves to
    the same entry.
    """

    def __init__(self, entries: "Iterable[FallbackPrice]") -> "None":
        self._entries: "tuple[FallbackPrice, ...]" = tuple(entries)
        self._by_model_provider: "dict[tuple[str, str], FallbackPrice]" = {}
        self._by_model: "dict[str, FallbackPrice]" = {}

        for entry in self._entries:
            if entry.provider is not None:
                self._by_model_provider.setdefault((entry.model, entry.provider), entry)
            self._by_model.setdefault(entry.model, entry)

        self._lowered: "tuple[tuple[str, FallbackPrice], ...]" = tuple(
            (entry.model.lower(), entry) for entry in self._entries
        )

    def __len__(self) -> "int":
        return len(self._entries)

    @property
    def entries(self) -> "tuple[FallbackPrice, ...]":
        return self._entries

    def find(self, model: "str", provider: "str | None" = None) -> "FallbackPrice | None":
        if not model:
            return None

        if provider:
            match = self._by_model_provider.get((model, provider))
            if match is not None:
                return match

        match = self._by_model.get(model)
        if match is not None:
            return match

        query = model.lower()
        for lowered, entry in self._lowered:
            if query in lowered or lowered in query:
                return entry

        return None

    def models(self) -> "list[str]":
        return [entry.model for entry in self._entries]

    def models_for_provider(self, provider: "str") -> "list[str]":
        return [entry.model for entry in self._entries if entry.provider == provider]

    def with_overrides(self, overrides: "Iterable[FallbackPrice]") -> "FallbackPriceTable":
        """
        returns a new table where the given entries take precedence
        over the current ones.
        """
        return FallbackPriceTable([*overrides, *self._entries])


class LiteLLMPrice(BaseModel):
    """
    one model entry of a LiteLLM-style price map (per-token USD).
    """

    # Infinity and NaN are valid JSON to json.loads but not valid prices
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    input_cost_per_token: "float | None" = None
    output_cost_per_token: "float | None" = None
    cache_creation_input_token_cost: "float | None" = None
    cache_read_input_token_cost: "float | None" = None
    litellm_provider: "str | None" = None


def parse_price_map(data: "object") -> "list[FallbackPrice]":
    """
    converts a LiteLLM-style price map into fallback entries. Entries
    without both input and output rates are ignored.
    """
    if not isinstance(data, dict):
        raise ValueError("price map must be a JSON object")

    entries: "list[FallbackPrice]" = []
    for model, raw in data.items():
        if not isinstance(raw, dict):
            continue

        try:
            price = LiteLLMPrice.model_validate(raw)
        except ValidationError:
            logger.debug("price_map_entry_invalid", model=model)
            continue

        if price.input_cost_per_token is None or price.output_cost_per_token is None:
            continue

        entries.append(
            FallbackPrice(
                model=model,
                provider=price.litellm_provider,
                input_per_1m=price.input_cost_per_token * _PER_MILLION,
                output_per_1m=price.output_cost_per_token * _PER_MILLION,
                cache_write_per_1m=(price.cache_creation_input_token_cost or 0.0)
                * _PER_MILLION,
                cache_read_per_1m=(price.cache_read_input_token_cost or 0.0)
                * _PER_MILLION,
            )
        )

    return entries


async def fetch_price_overrides(
    url: "str",
    client: "httpx.AsyncClient | None" = None,
) -> "list[FallbackPrice]":
    """
    fetches a remote price map and converts it into fallback entries.
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=10.0)
    try:
        logger.debug("price_overrides_fetch", url=url)
        resp = await http.get(url)
        resp.raise_for_status()
        data = resp.json()
    finally:
        if owns_client:
            await http.aclose()

    return parse_price_map(data)


async def load_price_table(
    url: "str" = "",
    client: "httpx.AsyncClient | None" = None,
) -> "FallbackPriceTable":
    """
    builds the process-wide fallback table: bundled prices, with
    remote overrides in front when a url is configured. A failed
    fetch leaves the bundled table in place.
    """
    table = FallbackPriceTable(FALLBACK_PRICES)
    if not url:
        return table

    try:
        overrides = await fetch_price_overrides(url, client)
    except (httpx.HTTPError, ValueError):
        logger.warning("price_overrides_fetch_failed", url=url, exc_info=True)
        return table

    logger.info("price_overrides_loaded", url=url, count=len(overrides))
    return table.with_overrides(overrides)
