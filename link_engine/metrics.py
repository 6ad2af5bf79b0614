"""Prometheus metrics for the link resolution engine."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("link_engine", "Link resolution engine application info")
app_info.info({"version": "0.1.0", "name": "link-engine"})

# Resolution metrics
resolutions_total = Counter(
    "link_resolutions_total",
    "Total number of resolution requests by outcome source",
    ["source"],
)

resolution_duration_seconds = Histogram(
    "link_resolution_duration_seconds",
    "Time spent resolving a slice to a link",
    ["strategy"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

collaborator_errors_total = Counter(
    "link_collaborator_errors_total",
    "External collaborator calls that failed and were degraded",
    ["collaborator", "error_type"],
)

navigation_matches_total = Counter(
    "link_navigation_matches_total",
    "Navigation label scoring attempts",
    ["status"],
)

# Health verification metrics
health_checks_total = Counter(
    "link_health_checks_total",
    "Health verifications by outcome",
    ["outcome"],
)

# Usage tracking
usage_record_failures_total = Counter(
    "link_usage_record_failures_total",
    "Background usage recordings that failed",
)

# Refresh / ingestion metrics
refresh_dispatches_total = Counter(
    "link_refresh_dispatches_total",
    "Stale catalog re-ingestion dispatches",
    ["status"],
)

ingested_links_total = Counter(
    "link_ingested_links_total",
    "Links written to the index during ingestion",
    ["link_type"],
)

# Scheduler metrics
scheduler_runs_total = Counter(
    "link_scheduler_runs_total",
    "Total number of scheduler runs",
    ["job_type", "status"],
)

scheduler_last_run_timestamp = Gauge(
    "link_scheduler_last_run_timestamp",
    "Timestamp of last scheduler run",
    ["job_type"],
)


def record_resolution(source: str, strategy: str, duration: float):
    """Record a finished resolution."""
    resolutions_total.labels(source=source).inc()
    resolution_duration_seconds.labels(strategy=strategy).observe(duration)


def record_collaborator_error(collaborator: str, error: BaseException):
    """Record a degraded collaborator call."""
    collaborator_errors_total.labels(
        collaborator=collaborator, error_type=type(error).__name__
    ).inc()


def record_navigation_match(found: bool):
    """Record a navigation scoring attempt."""
    navigation_matches_total.labels(status="matched" if found else "unmatched").inc()


def record_health_check(outcome: str):
    """Record a health verification outcome."""
    health_checks_total.labels(outcome=outcome).inc()


def record_refresh_dispatch(status: str):
    """Record an import dispatch outcome (triggered, skipped, failed)."""
    refresh_dispatches_total.labels(status=status).inc()


def record_ingested_links(type_counts: dict[str, int]):
    """Record links written during ingestion."""
    for link_type, count in type_counts.items():
        ingested_links_total.labels(link_type=link_type).inc(count)


def record_scheduler_run(job_type: str, success: bool):
    """Record a scheduler job run."""
    status = "success" if success else "error"
    scheduler_runs_total.labels(job_type=job_type, status=status).inc()
    scheduler_last_run_timestamp.labels(job_type=job_type).set(time.time())
