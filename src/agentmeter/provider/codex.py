from datetime import datetime
from typing import Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field

from agentmeter.date_range import DATE_FORMAT
from agentmeter.models import Granularity, RawUsageEntry
from agentmeter.provider.command import CommandRunner, fetch_json, run_command

logger = structlog.get_logger()

DEFAULT_COMMAND = ("npx", "@ccusage/codex@latest", "--json")

# "Oct 05, 2025"
_CODEX_DATE_FORMAT = "%b %d, %Y"


class CodexModelUsage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_tokens: "int" = Field(alias="inputTokens")
    cached_input_tokens: "int" = Field(alias="cachedInputTokens")
    output_tokens: "int" = Field(alias="outputTokens")
    reasoning_output_tokens: "int" = Field(alias="reasoningOutputTokens")
    total_tokens: "int" = Field(alias="totalTokens")
    is_fallback: "bool" = Field(default=False, alias="isFallback")


class CodexDaily(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: "str"
    input_tokens: "int" = Field(alias="inputTokens")
    cached_input_tokens: "int" = Field(alias="cachedInputTokens")
    output_tokens: "int" = Field(alias="outputTokens")
    reasoning_output_tokens: "int" = Field(alias="reasoningOutputTokens")
    total_tokens: "int" = Field(alias="totalTokens")
    # one cost for the whole day, not broken down by model
    cost_usd: "float" = Field(alias="costUSD")
    models: "dict[str, CodexModelUsage]"


class CodexTotals(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_tokens: "int" = Field(alias="inputTokens")
    cached_input_tokens: "int" = Field(alias="cachedInputTokens")
    output_tokens: "int" = Field(alias="outputTokens")
    reasoning_output_tokens: "int" = Field(alias="reasoningOutputTokens")
    total_tokens: "int" = Field(alias="totalTokens")
    cost_usd: "float" = Field(alias="costUSD")


class CodexExport(BaseModel):
    daily: "list[CodexDaily]"
    totals: "CodexTotals"


def parse_codex_date(value: "str") -> "str":
    """
    converts the report's "Oct 05, 2025" dates to YYYY-MM-DD. ISO
    dates pass through; anything else is returned unchanged and left
    for normalization to reject.
    """
    for fmt in (_CODEX_DATE_FORMAT, DATE_FORMAT):
        try:
            return datetime.strptime(value.strip(), fmt).strftime(DATE_FORMAT)
        except ValueError:
            continue
    return value


def convert_export(export: "CodexExport") -> "list[RawUsageEntry]":
    entries: "list[RawUsageEntry]" = []
    for daily in export.daily:
        date = parse_codex_date(daily.date)
        for model_name, usage in daily.models.items():
            entries.append(
                RawUsageEntry(
                    date=date,
                    provider="codex",
                    model=model_name,
                    # cached input is reported inside inputTokens
                    input_tokens=usage.input_tokens - usage.cached_input_tokens,
                    output_tokens=usage.output_tokens,
                    reasoning_tokens=usage.reasoning_output_tokens,
                    cache_creation_tokens=0,
                    cache_read_tokens=usage.cached_input_tokens,
                    shared_cost=daily.cost_usd,
                )
            )
    return entries


class CodexProvider:
    """
    CodexProvider runs the Codex usage reporter. Its daily rows carry
    per-model tokens but a single cost, which normalization splits
    equally between the models of that day.
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
        return "codex"

    @property
    def granularity(self) -> "Granularity":
        return Granularity.PER_AGGREGATE_ENTRY

    async def fetch(self) -> "list[RawUsageEntry]":
        export = await fetch_json(self.name, self._command, CodexExport, self._runner)
        entries = convert_export(export)
        logger.debug("codex_fetch_done", days=len(export.daily), entries=len(entries))
        return entries
