"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Coordinator metrics
reservation_operations = Counter(
    'reservation_operations_total',
    'Coordinator operations by outcome',
    ['operation', 'outcome']  # outcome: committed, rejected, rolled_back
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Coordinator operation latency',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Ledger metrics
ledger_operations = Counter(
    'ledger_operations_total',
    'Inventory ledger operations',
    ['operation', 'result']  # reserve/release, ok/insufficient/unavailable/missing
)

ledger_release_anomalies = Counter(
    'ledger_release_anomalies_total',
    'Releases that exceeded the rented count (double release)'
)

# Capacity metrics
registration_decisions = Counter(
    'registration_decisions_total',
    'Capacity tracker decisions',
    ['decision']  # confirmed, waitlisted, rejected
)

waitlist_promotions = Counter(
    'waitlist_promotions_total',
    'Waitlisted registrations promoted to confirmed'
)

capacity_retries = Counter(
    'capacity_retry_attempts_total',
    'Capacity decisions retried because a slot changed mid-decision'
)

ticket_collisions = Counter(
    'ticket_collisions_total',
    'Ticket numbers regenerated after a uniqueness collision'
)

# Post-commit side effects
notification_failures = Counter(
    'notification_failures_total',
    'Notifications that failed after a committed reservation',
    ['backend']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# HTTP metrics
http_requests = Counter(
    'http_requests_total',
    'HTTP requests by route template and status class',
    ['method', 'route', 'status']  # status: 2xx, 4xx, 5xx
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_operation(operation: str, outcome: str):
    """Record coordinator outcome. Outcome: committed, rejected, rolled_back"""
    reservation_operations.labels(operation=operation, outcome=outcome).inc()


def record_ledger(operation: str, result: str):
    """Record ledger operation. Result: ok, insufficient, unavailable, missing"""
    ledger_operations.labels(operation=operation, result=result).inc()


def record_decision(decision: str):
    """Record capacity decision."""
    registration_decisions.labels(decision=decision).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
