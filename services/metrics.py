"""
Prometheus metrics for the worker.

Scraped from the worker's observability app at GET /metrics.

Usage:
    from services.metrics import METRICS

    METRICS.observe_job("generate_reply", "DONE", 0.42)
"""
from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

registry = REGISTRY


class WorkerMetrics:
    """All worker metrics in one place."""

    def __init__(self, reg: CollectorRegistry = registry):
        self.registry = reg

        self.jobs_processed_total = Counter(
            "persona_worker_jobs_processed_total",
            "Jobs finalized by this worker",
            ["job_type", "status"],
            registry=reg,
        )

        self.job_duration = Histogram(
            "persona_worker_job_duration_seconds",
            "Executor wall time per job",
            ["job_type"],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0],
            registry=reg,
        )

        self.job_retries_total = Counter(
            "persona_worker_job_retries_total",
            "Jobs released back to PENDING after a transient failure",
            ["job_type"],
            registry=reg,
        )

        self.queue_depth = Gauge(
            "persona_worker_queue_depth",
            "Jobs per type and status",
            ["job_type", "status"],
            registry=reg,
        )

        self.task_failures_total = Counter(
            "persona_worker_task_failures_total",
            "Scheduler tasks that raised or overran their deadline",
            ["task"],
            registry=reg,
        )

    def observe_job(self, job_type: str, status: str, duration_seconds: float) -> None:
        self.jobs_processed_total.labels(job_type=job_type, status=status).inc()
        self.job_duration.labels(job_type=job_type).observe(max(duration_seconds, 0.0))

    def record_retry(self, job_type: str) -> None:
        self.job_retries_total.labels(job_type=job_type).inc()

    def record_task_failure(self, task: str) -> None:
        self.task_failures_total.labels(task=task).inc()

    def set_queue_depth(self, depth: dict[tuple[str, str], int]) -> None:
        # drained (job_type, status) pairs disappear rather than keep their last value
        self.queue_depth.clear()
        for (job_type, status), count in depth.items():
            self.queue_depth.labels(job_type=job_type, status=status).set(count)


# Singleton
METRICS = WorkerMetrics()
