from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    write_to_textfile,
)


class MetricsUpdater:
    """
    records sync and recalculation outcomes as Prometheus metrics.

    agentmeter runs as a batch job, so nothing scrapes it directly:
    write_textfile() dumps the registry in the textfile-collector
    format at the end of a run.
     - records_synced_total: records upserted, by provider.
     - records_skipped_total: raw entries dropped, by provider and
     skip reason.
     - sync_errors_total: failed provider syncs, by provider and stage.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._registry: "CollectorRegistry" = registry
        self._records_synced: "Counter" = Counter(
            "agentmeter_records_synced_total",
            "Total usage records written to the store",
            ["provider"],
            registry=registry,
        )
        self._records_skipped: "Counter" = Counter(
            "agentmeter_records_skipped_total",
            "Total raw provider entries skipped during normalization",
            ["provider", "reason"],
            registry=registry,
        )
        self._sync_errors: "Counter" = Counter(
            "agentmeter_sync_errors_total",
            "Total number of sync errors by provider and stage",
            ["provider", "stage"],
            registry=registry,
        )
        self._sync_duration: "Histogram" = Histogram(
            "agentmeter_sync_duration_seconds",
            "Duration of provider syncs",
            ["provider"],
            registry=registry,
        )
        self._last_sync_success: "Gauge" = Gauge(
            "agentmeter_last_sync_success_timestamp_seconds",
            "Unix timestamp of last successful sync per provider",
            ["provider"],
            registry=registry,
        )
        self._costs_recalculated: "Counter" = Counter(
            "agentmeter_costs_recalculated_total",
            "Total stored records re-priced by cost recalculation",
            registry=registry,
        )

    def inc_records_synced(self, provider: "str", count: "int") -> "None":
        self._records_synced.labels(provider=provider).inc(count)

    def inc_records_skipped(self, provider: "str", reason: "str", count: "int") -> "None":
        self._records_skipped.labels(provider=provider, reason=reason).inc(count)

    def inc_sync_error(self, provider: "str", stage: "str") -> "None":
        self._sync_errors.labels(provider=provider, stage=stage).inc()

    def observe_sync_duration(self, provider: "str", duration_seconds: "float") -> "None":
        self._sync_duration.labels(provider=provider).observe(duration_seconds)

    def set_last_sync_success(self, provider: "str", timestamp: "float") -> "None":
        self._last_sync_success.labels(provider=provider).set(timestamp)

    def inc_costs_recalculated(self, count: "int") -> "None":
        self._costs_recalculated.inc(count)

    def write_textfile(self, path: "str") -> "None":
        write_to_textfile(path, self._registry)
