"""
Prometheus Metrics for the Pacing Engine.

Metrics Exposed:
    narrapace_rate_samples_total       - Rate samples by path and outcome
    narrapace_seeks_total              - Seeks by kind (relative, slider, page)
    narrapace_pages_completed_total    - Pages narrated to natural completion
    narrapace_store_failures_total     - Swallowed persistence failures by op
    narrapace_narration_failures_total - Narrator start failures
    narrapace_rate_estimate            - Last rate estimate (chars/sec at 1.0x)
    narrapace_active_sessions          - Open playback sessions

Usage:
    from narrapace.core.metrics import metrics

    metrics.record_rate_sample("live", accepted=True, rate=16.4)
    metrics.record_seek("relative")
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)


class PacerMetrics:
    """
    Metric collection for playback sessions.

    Uses a private CollectorRegistry so that several instances (tests,
    embedded use) never collide in the default registry.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._rate_samples = Counter(
            "narrapace_rate_samples_total",
            "Rate samples offered to the estimator",
            ["path", "outcome"],
            registry=self._registry,
        )
        self._seeks = Counter(
            "narrapace_seeks_total",
            "Seek operations",
            ["kind"],
            registry=self._registry,
        )
        self._pages_completed = Counter(
            "narrapace_pages_completed_total",
            "Pages narrated to natural completion",
            registry=self._registry,
        )
        self._store_failures = Counter(
            "narrapace_store_failures_total",
            "Persistence failures that were logged and swallowed",
            ["op"],
            registry=self._registry,
        )
        self._narration_failures = Counter(
            "narrapace_narration_failures_total",
            "Narrator failures to start speaking",
            registry=self._registry,
        )
        self._rate_estimate = Gauge(
            "narrapace_rate_estimate",
            "Most recent rate estimate in chars/sec at 1.0x",
            registry=self._registry,
        )
        self._active_sessions = Gauge(
            "narrapace_active_sessions",
            "Open playback sessions",
            registry=self._registry,
        )

    def record_rate_sample(self, path: str, accepted: bool, rate: float | None = None) -> None:
        """
        Record a rate sample.

        Args:
            path: "live", "segment" or "history"
            accepted: Whether the sample changed the estimate
            rate: Resulting estimate, updates the gauge when given
        """
        self._rate_samples.labels(path=path, outcome="accepted" if accepted else "rejected").inc()
        if rate is not None:
            self._rate_estimate.set(rate)

    def record_seek(self, kind: str) -> None:
        self._seeks.labels(kind=kind).inc()

    def inc_pages_completed(self) -> None:
        self._pages_completed.inc()

    def record_store_failure(self, op: str) -> None:
        self._store_failures.labels(op=op).inc()

    def inc_narration_failures(self) -> None:
        self._narration_failures.inc()

    def set_active_sessions(self, count: int) -> None:
        self._active_sessions.set(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Return (body, content_type) in Prometheus text format."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide instance
metrics = PacerMetrics()
