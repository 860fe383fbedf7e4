"""Application metrics using the Prometheus client library.

All metrics are defined here so there is one inventory of everything the
service measures.  Other modules import specific metrics and increment
them at the point of action.

Counters only go up; dashboards use rate() over them.  The domain
counters below are labelled by outcome so a spike in rejected updates
(e.g. a client release that reports duration=0) or in merged records
(a class onboarding day) is visible without grepping logs.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain metrics
# ---------------------------------------------------------------------------

PROGRESS_UPDATES = Counter(
    "progress_updates_total",
    "Video progress updates by result",
    ["result"],  # "accepted", "completed", "rejected"
)

DEVICE_REGISTRATIONS = Counter(
    "device_registrations_total",
    "Device register calls by outcome",
    ["outcome"],  # "created" or "refreshed"
)

CLASS_JOINS = Counter(
    "class_joins_total",
    "Class join attempts by outcome",
    ["outcome"],  # "created", "merged", "rebound", "class_not_found"
)

MERGED_RECORDS = Counter(
    "merged_orphan_records_total",
    "Orphaned device records re-tagged to a student",
    ["kind"],  # "video_progress" or "daily_activity"
)

CERTIFICATE_TRANSITIONS = Counter(
    "certificate_transitions_total",
    "Certificate state transitions",
    ["to_status"],  # "pending", "approved", "rejected"
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache operations by result",
    ["operation"],  # "hit", "miss" or "invalidate_failed"
)
