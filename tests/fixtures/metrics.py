"""Prometheus sample lookups for tests.

Collectors are process-global, so tests compare values before and after
the action under test instead of asserting absolute counts.
"""

from prometheus_client import REGISTRY


def metric_value(name: str, **labels: str) -> float:
    """Current value of one sample, 0.0 when it has not been recorded yet."""
    value = REGISTRY.get_sample_value(name, labels)
    return value if value is not None else 0.0
