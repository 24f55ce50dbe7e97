import argparse

from agentmeter.config import Config
from agentmeter.date_range import PERIODS, DateRange, default_range, is_valid_date, period_range

PROVIDER_CHOICES = ("opencode", "qwen", "gemini", "ccusage", "codex", "all")


def _date_arg(value: "str") -> "str":
    if not is_valid_date(value):
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD")
    return value


def _add_range_args(parser: "argparse.ArgumentParser") -> "None":
    parser.add_argument("--start", type=_date_arg, help="First date, YYYY-MM-DD")
    parser.add_argument("--end", type=_date_arg, help="Last date, YYYY-MM-DD")
    parser.add_argument(
        "--period",
        choices=PERIODS,
        help="Current day, week, month or year; overrides --start/--end",
    )


def build_parser() -> "argparse.ArgumentParser":
    parser = argparse.ArgumentParser(
        prog="agentmeter",
        description="Token usage and cost tracker for AI coding agents",
    )
    parser.add_argument(
        "--db.path",
        dest="db_path",
        default=None,
        help="SQLite database path (default: $AGENTMETER_DB or ~/.agentmeter.db)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--prices.url",
        dest="prices_url",
        default=None,
        help="LiteLLM-format price map URL used ahead of the bundled prices",
    )
    parser.add_argument(
        "--metrics.textfile",
        dest="metrics_textfile",
        default=None,
        help="Write Prometheus metrics to this file after a sync",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Collect usage from agent providers")
    sync.add_argument(
        "--provider",
        choices=PROVIDER_CHOICES,
        default="all",
        help="Provider to sync (default: all)",
    )
    sync.add_argument(
        "--recalculate-costs",
        dest="recalculate_costs",
        action="store_true",
        help="Re-price every stored record, not only zero-cost ones",
    )

    ingest = commands.add_parser("ingest", help="Import a saved `ccusage daily --json` file")
    ingest.add_argument("file", help="Path to the ccusage JSON export")

    export = commands.add_parser("export", help="Write a report file")
    export.add_argument("format", choices=["ccusage"], help="Report format")
    _add_range_args(export)
    export.add_argument(
        "--output",
        default=None,
        help="Output file (default: usage-export-<start>-to-<end>.json)",
    )

    json_report = commands.add_parser("json", help="Per-provider report as JSON")
    _add_range_args(json_report)
    json_report.add_argument("--output", default=None, help="Output file (default: stdout)")

    stats = commands.add_parser("stats", help="Usage summary of a date range")
    _add_range_args(stats)

    prices = commands.add_parser(
        "prices",
        help="Show per-million token rates of a model, or list fallback models",
    )
    prices.add_argument("model", nargs="?", default=None, help="Model name")
    prices.add_argument(
        "--provider",
        default=None,
        help="Provider hint; without a model, lists only that provider's models",
    )

    return parser


def parse_args(argv: "list[str] | None" = None) -> "tuple[Config, argparse.Namespace]":
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.from_env()
    config.log_level = args.log_level
    if args.db_path:
        config.db_path = args.db_path
    if args.prices_url:
        config.prices_url = args.prices_url
    if args.metrics_textfile:
        config.metrics_textfile = args.metrics_textfile

    if getattr(args, "start", None) and getattr(args, "end", None) and args.start > args.end:
        parser.error(f"--start {args.start} is after --end {args.end}")

    return config, args


def resolve_range(args: "argparse.Namespace") -> "DateRange":
    """
    date range selected by --period, or by --start/--end with the
    last 30 days as default.
    """
    if args.period:
        return period_range(args.period)
    return default_range(args.start, args.end)
