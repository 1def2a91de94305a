"""Prometheus metrics for the summons section workflow."""

from prometheus_client import Counter, Histogram

section_transitions_total = Counter(
    "section_transitions_total",
    "Total applied section commands",
    ["section_key", "command"],
)

section_generations_total = Counter(
    "section_generations_total",
    "Total finished section generations",
    ["section_key", "outcome"],
)

section_generation_latency_seconds = Histogram(
    "section_generation_latency_seconds",
    "Section generation latency in seconds",
    ["section_key", "outcome"],
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120, 300],
)

summons_assemblies_total = Counter(
    "summons_assemblies_total",
    "Total summons assembly attempts",
    ["outcome"],
)


class PrometheusWorkflowMetrics:
    """Prometheus-based workflow metrics implementation."""

    def inc_transition(self, section_key: str, command: str) -> None:
        """Increment applied-command counter."""
        section_transitions_total.labels(section_key=section_key, command=command).inc()

    def record_generation(self, section_key: str, outcome: str, latency_seconds: float) -> None:
        """Record a finished generation and its latency."""
        section_generations_total.labels(section_key=section_key, outcome=outcome).inc()
        section_generation_latency_seconds.labels(
            section_key=section_key, outcome=outcome
        ).observe(latency_seconds)

    def inc_assembly(self, outcome: str) -> None:
        """Increment assembly counter."""
        summons_assemblies_total.labels(outcome=outcome).inc()
