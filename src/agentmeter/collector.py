import time
from dataclasses import dataclass, field
from typing import Sequence

import structlog

from agentmeter.errors import SourceUnavailableError
from agentmeter.metrics import MetricsUpdater
from agentmeter.normalizer import Normalizer
from agentmeter.provider.base import UsageProvider
from agentmeter.storage import UsageStore

logger = structlog.get_logger()


@dataclass
class ProviderSyncResult:
    provider: "str"
    fetched: "int" = 0
    synced: "int" = 0
    # skip reason -> count
    skipped: "dict[str, int]" = field(default_factory=dict)
    error: "str | None" = None
    duration_seconds: "float" = 0.0

    @property
    def ok(self) -> "bool":
        return self.error is None


@dataclass
class SyncReport:
    results: "list[ProviderSyncResult]" = field(default_factory=list)

    @property
    def ok(self) -> "bool":
        return all(result.ok for result in self.results)

    @property
    def synced(self) -> "int":
        return sum(result.synced for result in self.results)

    def failed(self) -> "list[str]":
        return [result.provider for result in self.results if not result.ok]


class Collector:
    """
    Collector is responsible for orchestrating one sync run: every
    provider is fetched, its entries normalized and the resulting
    records upserted into the store together with the provider's
    sync state.

    A provider that fails to fetch or normalize is logged and
    counted, and the run moves on to the next one. Storage failures are not provider
    failures and abort the run.
    """

    def __init__(
        self,
        providers: "Sequence[UsageProvider]",
        normalizer: "Normalizer",
        store: "UsageStore",
        metrics_updater: "MetricsUpdater",
    ) -> "None":
        self._providers = list(providers)
        self._normalizer = normalizer
        self._store = store
        self._metrics = metrics_updater

    async def run(self) -> "SyncReport":
        """
        syncs every provider in turn. They share one SQLite
        connection, so there is no gathering here.
        """
        logger.info("sync_start", providers=[p.name for p in self._providers])

        report = SyncReport()
        for provider in self._providers:
            report.results.append(await self._sync_provider(provider))

        logger.info("sync_end", synced=report.synced, failed=report.failed())
        return report

    async def _sync_provider(self, provider: "UsageProvider") -> "ProviderSyncResult":
        result = ProviderSyncResult(provider=provider.name)
        cycle_start = time.monotonic()

        try:
            entries = await provider.fetch()
        except SourceUnavailableError as exc:
            logger.warning("provider_unavailable", provider=provider.name, error=str(exc))
            self._metrics.inc_sync_error(provider.name, "fetch")
            result.error = str(exc)
            return result
        except Exception as exc:
            logger.exception("provider_fetch_error", provider=provider.name)
            self._metrics.inc_sync_error(provider.name, "fetch")
            result.error = str(exc) or type(exc).__name__
            return result

        result.fetched = len(entries)
        try:
            batch = self._normalizer.normalize_batch(
                entries, provider.granularity, source=provider.name
            )
        except Exception as exc:
            logger.exception("provider_normalize_error", provider=provider.name)
            self._metrics.inc_sync_error(provider.name, "normalize")
            result.error = str(exc) or type(exc).__name__
            return result

        result.skipped = dict(batch.skipped)
        for reason, count in batch.skipped.items():
            self._metrics.inc_records_skipped(provider.name, reason, count)
        if batch.skipped:
            logger.debug("entries_skipped", provider=provider.name, skipped=result.skipped)

        now_ms = int(time.time() * 1000)
        last_record_id = batch.records[-1].id if batch.records else None
        with self._store.transaction():
            result.synced = self._store.upsert(batch.records)
            self._store.update_sync_state(provider.name, now_ms, last_record_id)

        result.duration_seconds = time.monotonic() - cycle_start
        self._metrics.inc_records_synced(provider.name, result.synced)
        self._metrics.observe_sync_duration(provider.name, result.duration_seconds)
        self._metrics.set_last_sync_success(provider.name, time.time())

        logger.info(
            "provider_synced",
            provider=provider.name,
            fetched=result.fetched,
            synced=result.synced,
        )
        return result
