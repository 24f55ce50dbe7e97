import structlog

from agentmeter.metrics import MetricsUpdater
from agentmeter.pricing import PricingResolver
from agentmeter.storage import UsageStore

logger = structlog.get_logger()


def recalculate_costs(
    store: "UsageStore",
    resolver: "PricingResolver",
    force: "bool" = False,
    metrics: "MetricsUpdater | None" = None,
) -> "int":
    """
    re-prices stored records with the current resolver and returns
    how many were updated. Only records without a positive cost are
    touched unless `force` is set. The whole pass is one transaction:
    a failure leaves every stored cost as it was.
    """
    updated = 0

    with store.transaction():
        for record in store.all_records():
            if not force and record.cost > 0:
                continue

            cost = resolver.resolve_cost(
                record.model,
                record.input_tokens,
                record.output_tokens,
                record.cache_creation_tokens,
                record.cache_read_tokens,
                record.provider,
            )
            store.update_cost(record.id, cost)
            updated += 1

    logger.info("costs_recalculated", updated=updated, force=force)
    if metrics is not None:
        metrics.inc_costs_recalculated(updated)

    return updated
