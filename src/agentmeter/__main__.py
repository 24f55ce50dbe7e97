import argparse
import asyncio
import json

import structlog
from prometheus_client import CollectorRegistry

from agentmeter.aggregator import aggregate_by_day, fill_gaps
from agentmeter.cli import parse_args, resolve_range
from agentmeter.collector import Collector, SyncReport
from agentmeter.config import Config
from agentmeter.errors import AgentMeterError
from agentmeter.exporters import (
    default_output_path,
    flat_report,
    provider_report,
    render,
    summary_report,
    write_report,
)
from agentmeter.logging import setup_logging
from agentmeter.metrics import MetricsUpdater
from agentmeter.normalizer import Normalizer
from agentmeter.price_table import load_price_table
from agentmeter.pricing import PricingResolver
from agentmeter.provider.base import UsageProvider
from agentmeter.provider.ccusage import CCUsageFileProvider, CCUsageProvider
from agentmeter.provider.chat_session import GeminiProvider, QwenProvider
from agentmeter.provider.codex import CodexProvider
from agentmeter.provider.opencode import OpenCodeProvider
from agentmeter.recalculate import recalculate_costs
from agentmeter.statistics import summarize
from agentmeter.storage import UsageStore

logger = structlog.get_logger()


def build_providers(config: "Config", selected: "str" = "all") -> "list[UsageProvider]":
    """
    providers for `sync --provider`, in sync order.
    """
    providers: "dict[str, UsageProvider]" = {
        "opencode": OpenCodeProvider(config.opencode_messages_path),
        "qwen": QwenProvider(config.qwen_tmp_path),
        "gemini": GeminiProvider(config.gemini_tmp_path),
        "ccusage": CCUsageProvider(),
        "codex": CodexProvider(),
    }
    if selected == "all":
        return list(providers.values())
    return [providers[selected]]


async def _build_resolver(config: "Config") -> "PricingResolver":
    table = await load_price_table(config.prices_url)
    return PricingResolver(fallback=table)


async def _sync(
    config: "Config",
    providers: "list[UsageProvider]",
    force_recalculate: "bool",
) -> "SyncReport":
    resolver = await _build_resolver(config)
    # textfile carries agentmeter series only
    metrics_updater = MetricsUpdater(CollectorRegistry())

    with UsageStore(config.db_path) as store:
        collector = Collector(providers, Normalizer(resolver), store, metrics_updater)
        report = await collector.run()
        recalculate_costs(store, resolver, force=force_recalculate, metrics=metrics_updater)

    for result in report.results:
        if not result.ok:
            logger.warning("provider_sync_failed", provider=result.provider, error=result.error)

    if config.metrics_textfile:
        metrics_updater.write_textfile(config.metrics_textfile)
        logger.info("metrics_textfile_written", path=config.metrics_textfile)

    return report


def _cmd_sync(config: "Config", args: "argparse.Namespace") -> "int":
    providers = build_providers(config, args.provider)
    report = asyncio.run(_sync(config, providers, args.recalculate_costs))
    print(f"Synced {report.synced} records from {len(report.results)} providers")
    return 0


def _cmd_ingest(config: "Config", args: "argparse.Namespace") -> "int":
    report = asyncio.run(_sync(config, [CCUsageFileProvider(args.file)], False))
    if not report.ok:
        return 1
    print(f"Ingested {report.synced} records from {args.file}")
    return 0


def _cmd_export(config: "Config", args: "argparse.Namespace") -> "int":
    date_range = resolve_range(args)
    with UsageStore(config.db_path) as store:
        records = store.query_by_date_range(date_range.start, date_range.end)

    report = flat_report(aggregate_by_day(records))
    output = args.output or default_output_path(date_range.start, date_range.end)
    path = write_report(report, output)
    print(f"Exported usage to {path}")
    return 0


def _cmd_json(config: "Config", args: "argparse.Namespace") -> "int":
    date_range = resolve_range(args)
    with UsageStore(config.db_path) as store:
        records = store.query_by_date_range(date_range.start, date_range.end)

    report = provider_report(records)
    if args.output:
        write_report(report, args.output)
    else:
        print(render(report))
    return 0


def _cmd_stats(config: "Config", args: "argparse.Namespace") -> "int":
    date_range = resolve_range(args)
    with UsageStore(config.db_path) as store:
        records = store.query_by_date_range(date_range.start, date_range.end)

    daily_usage = fill_gaps(aggregate_by_day(records), date_range.start, date_range.end)
    summary = summarize(records, daily_usage)
    print(render(summary_report(summary, date_range.start, date_range.end)))
    return 0


def _cmd_prices(config: "Config", args: "argparse.Namespace") -> "int":
    resolver = asyncio.run(_build_resolver(config))
    if args.model is None:
        if args.provider:
            models = resolver.fallback.models_for_provider(args.provider)
        else:
            models = resolver.fallback.models()
        print(json.dumps(models, indent=2))
        return 0

    pricing = resolver.model_pricing(args.model, args.provider)
    if pricing is None:
        logger.error("model_price_unknown", model=args.model, provider=args.provider)
        return 1

    print(
        json.dumps(
            {
                "model": args.model,
                "inputPer1M": pricing.input_per_1m,
                "outputPer1M": pricing.output_per_1m,
                "cacheWritePer1M": pricing.cache_write_per_1m,
                "cacheReadPer1M": pricing.cache_read_per_1m,
            },
            indent=2,
        )
    )
    return 0


_COMMANDS = {
    "sync": _cmd_sync,
    "ingest": _cmd_ingest,
    "export": _cmd_export,
    "json": _cmd_json,
    "stats": _cmd_stats,
    "prices": _cmd_prices,
}


def run(argv: "list[str] | None" = None) -> "int":
    config, args = parse_args(argv)
    setup_logging(config.log_level)

    try:
        return _COMMANDS[args.command](config, args)
    except AgentMeterError as exc:
        logger.error("command_failed", command=args.command, error=str(exc))
        return 1
    except Exception:
        logger.exception("command_failed", command=args.command)
        return 1


def main() -> "None":
    raise SystemExit(run())


if __name__ == "__main__":
    main()
