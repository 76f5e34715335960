"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Lifecycle metrics
transition_attempts = Counter(
    'booking_transition_attempts_total',
    'Booking status transition attempts',
    ['target', 'result']  # committed, rejected
)

transition_latency = Histogram(
    'booking_transition_latency_seconds',
    'End-to-end latency of a status transition including side effects',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

side_effect_outcomes = Counter(
    'booking_side_effect_outcomes_total',
    'Side effect outcomes per lifecycle step',
    ['step', 'outcome']  # ok, failed, skipped
)

# Cancellation metrics
cancellation_fees = Histogram(
    'booking_cancellation_fee_percent',
    'Applied cancellation fee percentage',
    buckets=[0, 25, 50, 70, 90, 100]
)

# Concurrency metrics
booking_lock_contention = Counter(
    'booking_lock_contention_total',
    'Transitions refused because another transition held the booking lock'
)

booking_version_conflicts = Counter(
    'booking_version_conflicts_total',
    'Status writes that lost the optimistic version check'
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
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
def record_transition(target: str, committed: bool):
    """Record a transition attempt for the requested target status."""
    result = "committed" if committed else "rejected"
    transition_attempts.labels(target=target, result=result).inc()


def record_side_effect(step: str, outcome: str):
    """Record side effect outcome. Outcome: ok, failed, skipped"""
    side_effect_outcomes.labels(step=step, outcome=outcome).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
