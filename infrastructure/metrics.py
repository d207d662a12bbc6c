"""Simple metrics tracking for Prometheus-compatible /metrics endpoint."""

from typing import Dict

_HELP = {
    "normalizations_total": "Total number of normalization requests sent to the model",
    "normalizations_failed_total": "Total number of normalization requests that failed",
    "normalizations_discarded_total": "Total number of normalization replies discarded as stale",
    "orders_saved_total": "Total number of orders saved",
    "state_flushes_total": "Total number of state snapshots written",
}


class MetricsCollector:
    """Simple in-memory metrics collector."""

    def __init__(self):
        self._counters: Dict[str, int] = {name: 0 for name in _HELP}

    def increment(self, metric_name: str, value: int = 1) -> None:
        """Increment a counter metric."""
        if metric_name in self._counters:
            self._counters[metric_name] += value

    def get(self, metric_name: str) -> int:
        return self._counters.get(metric_name, 0)

    def reset(self) -> None:
        for name in self._counters:
            self._counters[name] = 0

    def get_prometheus_text(self) -> str:
        """Generate Prometheus-compatible text format."""
        lines = []
        for name, help_text in _HELP.items():
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {self._counters[name]}")
            lines.append("")
        return "\n".join(lines)


# Global metrics instance
metrics = MetricsCollector()
