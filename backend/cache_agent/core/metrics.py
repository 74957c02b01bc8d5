from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

CACHE_EVENTS = Counter(
    "cache_agent_cache_events_total",
    "Cache operations recorded by the cache agent.",
    labelnames=("cache", "event"),
)
ORIGIN_REQUESTS = Counter(
    "cache_agent_origin_requests_total",
    "Outbound origin fetches.",
    labelnames=("category", "result"),
)
ORIGIN_REQUEST_LATENCY = Histogram(
    "cache_agent_origin_request_seconds",
    "Latency of outbound origin fetches.",
    labelnames=("category",),
)
REVALIDATIONS = Counter(
    "cache_agent_revalidations_total",
    "Background revalidation outcomes.",
    labelnames=("cache", "result"),
)
NOTIFICATION_EVENTS = Counter(
    "cache_agent_notification_events_total",
    "Push notifications shown, dropped or clicked.",
    labelnames=("notification_type", "event"),
)
PARTITIONS_COLLECTED = Counter(
    "cache_agent_partitions_collected_total",
    "Cache partitions deleted by version cutover, sync or purge.",
    labelnames=("reason",),
)
PARTITION_ENTRIES = Gauge(
    "cache_agent_partition_entries",
    "Entries currently stored per partition.",
    labelnames=("partition",),
)


def record_cache_event(cache: str, event: str) -> None:
    """Increment a cache event counter."""
    CACHE_EVENTS.labels(cache=cache, event=event).inc()


def observe_origin_request(
    category: str, result: str, duration_seconds: float
) -> None:
    """Record origin fetch result and latency."""
    ORIGIN_REQUESTS.labels(category=category, result=result).inc()
    ORIGIN_REQUEST_LATENCY.labels(category=category).observe(duration_seconds)


def record_revalidation(cache: str, result: str) -> None:
    """Record the outcome of a detached revalidation."""
    REVALIDATIONS.labels(cache=cache, result=result).inc()


def record_notification_event(notification_type: str, event: str) -> None:
    NOTIFICATION_EVENTS.labels(notification_type=notification_type, event=event).inc()


def record_partitions_collected(reason: str, count: int = 1) -> None:
    if count > 0:
        PARTITIONS_COLLECTED.labels(reason=reason).inc(count)


def set_partition_entries(counts: dict[str, int]) -> None:
    """Replace the per-partition entry gauge with a fresh snapshot."""
    PARTITION_ENTRIES.clear()
    for partition, count in counts.items():
        PARTITION_ENTRIES.labels(partition=partition).set(count)
