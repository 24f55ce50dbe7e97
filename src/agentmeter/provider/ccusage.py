from pathlib import Path
from typing import Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentmeter.errors import SourceUnavailableError
from agentmeter.models import Granularity, RawUsageEntry
from agentmeter.provider.command import CommandRunner, fetch_json, run_command

logger = structlog.get_logger()

DEFAULT_COMMAND = ("ccusage", "daily", "--json")

# checked in order, first substring match wins
_PROVIDER_HINTS: "tuple[tuple[tuple[str, ...], str], ...]" = (
    (("claude",), "anthropic"),
    (("gpt", "openai"), "openai"),
    (("gemini",), "google"),
    (("qwen",), "qwen"),
    (("opus", "sonnet", "haiku"), "anthropic"),
    (("glm",), "zhipu"),
    (("mistral",), "mistral"),
    (("llama",), "meta"),
    (("cohere",), "cohere"),
)


class CCUsageModelBreakdown(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model_name: "str" = Field(alias="modelName")
    input_tokens: "int" = Field(alias="inputTokens")
    output_tokens: "int" = Field(alias="outputTokens")
    cache_creation_tokens: "int" = Field(alias="cacheCreationTokens")
    cache_read_tokens: "int" = Field(alias="cacheReadTokens")
    cost: "float"


class CCUsageDaily(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    date: "str"
    input_tokens: "int" = Field(alias="inputTokens")
    output_tokens: "int" = Field(alias="outputTokens")
    cache_creation_tokens: "int" = Field(alias="cacheCreationTokens")
    cache_read_tokens: "int" = Field(alias="cacheReadTokens")
    total_tokens: "int" = Field(alias="totalTokens")
    total_cost: "float" = Field(alias="totalCost")
    models_used: "list[str]" = Field(alias="modelsUsed")
    model_breakdowns: "list[CCUsageModelBreakdown]" = Field(alias="modelBreakdowns")


class CCUsageTotals(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_tokens: "int" = Field(alias="inputTokens")
    output_tokens: "int" = Field(alias="outputTokens")
    cache_creation_tokens: "int" = Field(alias="cacheCreationTokens")
    cache_read_tokens: "int" = Field(alias="cacheReadTokens")
    total_cost: "float" = Field(alias="totalCost")
    total_tokens: "int" = Field(alias="totalTokens")


class CCUsageSection(BaseModel):
    daily: "list[CCUsageDaily] | None" = None
    totals: "CCUsageTotals | None" = None


class CCUsageExport(BaseModel):
    """
    output of `ccusage daily --json`. Besides the top-level daily
    list an export may carry named sections (one per project or
    account), each shaped like the top level; they land in
    model_extra.
    """

    model_config = ConfigDict(extra="allow")

    daily: "list[CCUsageDaily] | None" = None
    totals: "CCUsageTotals | None" = None

    def sections(self) -> "list[CCUsageSection]":
        sections: "list[CCUsageSection]" = []
        for key, value in (self.model_extra or {}).items():
            try:
                sections.append(CCUsageSection.model_validate(value))
            except ValidationError:
                logger.debug("ccusage_section_ignored", section=key)
        return sections

    def daily_entries(self) -> "list[CCUsageDaily]":
        entries = list(self.daily or [])
        for section in self.sections():
            entries.extend(section.daily or [])
        return entries


def detect_provider(model_name: "str") -> "str":
    """
    guesses the upstream provider from a model name, `ccusage` when
    nothing matches.
    """
    lower = model_name.lower()
    for needles, provider in _PROVIDER_HINTS:
        if any(needle in lower for needle in needles):
            return provider
    return "ccusage"


def convert_export(export: "CCUsageExport") -> "list[RawUsageEntry]":
    """
    flattens an export into one raw entry per (date, model) breakdown.
    """
    entries: "list[RawUsageEntry]" = []
    for daily in export.daily_entries():
        for breakdown in daily.model_breakdowns:
            entries.append(
                RawUsageEntry(
                    date=daily.date,
                    provider=detect_provider(breakdown.model_name),
                    model=breakdown.model_name,
                    input_tokens=breakdown.input_tokens,
                    output_tokens=breakdown.output_tokens,
                    cache_creation_tokens=breakdown.cache_creation_tokens,
                    cache_read_tokens=breakdown.cache_read_tokens,
                    cost=breakdown.cost,
                )
            )
    return entries


def load_export_file(path: "str | Path") -> "list[RawUsageEntry]":
    """
    reads a saved ccusage export, as used by `agentmeter ingest`.
    """
    try:
        content = Path(path).expanduser().read_bytes()
    except OSError as exc:
        raise SourceUnavailableError("ccusage", f"cannot read {path}: {exc}") from exc

    try:
        export = CCUsageExport.model_validate_json(content)
    except ValidationError as exc:
        raise SourceUnavailableError(
            "ccusage", f"{path} is not a ccusage export: {exc.error_count()} validation errors"
        ) from exc

    return convert_export(export)


class CCUsageProvider:
    """
    CCUsageProvider runs the ccusage CLI and turns its daily report
    into pre-summed usage entries.
    """

    def __init__(
        self,
        runner: "CommandRunner" = run_command,
        command: "Sequence[str]" = DEFAULT_COMMAND,
    ) -> "None":
        self._runner = runner
        self._command = tuple(command)

    @property
    def name(self) -> "str":
        return "ccusage"

    @property
    def granularity(self) -> "Granularity":
        return Granularity.PER_AGGREGATE_ENTRY

    async def fetch(self) -> "list[RawUsageEntry]":
        export = await fetch_json(self.name, self._command, CCUsageExport, self._runner)
        entries = convert_export(export)
        logger.debug("ccusage_fetch_done", entries=len(entries))
        return entries


class CCUsageFileProvider:
    """
    CCUsageFileProvider serves a saved `ccusage daily --json` export
    instead of running the CLI. Entries get the same identifiers as a
    live ccusage sync, so ingesting and syncing the same days does not
    double count them.
    """

    def __init__(self, path: "str | Path") -> "None":
        self._path = Path(path)

    @property
    def name(self) -> "str":
        return "ccusage"

    @property
    def granularity(self) -> "Granularity":
        return Granularity.PER_AGGREGATE_ENTRY

    async def fetch(self) -> "list[RawUsageEntry]":
        entries = load_export_file(self._path)
        logger.debug("ccusage_file_loaded", path=str(self._path), entries=len(entries))
        return entries
