"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_appends = Counter(
    "climarisk_ledger_appends_total",
    "Total ledger events appended",
    ["event_type"],
)

ledger_append_conflicts = Counter(
    "climarisk_ledger_append_conflicts_total",
    "Ledger appends rejected because another append claimed the same predecessor",
    ["event_type"],
)

# Rule engine metrics
decisions = Counter(
    "climarisk_decisions_total",
    "Total weather risk decisions recorded",
    ["decision"],
)

# Audit metrics
audit_verifications = Counter(
    "climarisk_audit_verifications_total",
    "Total full-chain audit verifications",
    ["ok"],
)

# Sensor metrics
sensor_fetch_duration = Histogram(
    "climarisk_sensor_fetch_duration_seconds",
    "Sensor (OpenWeather) fetch duration",
)

sensor_fetch_failures = Counter(
    "climarisk_sensor_fetch_failures_total",
    "Sensor fetches that raised UpstreamUnavailable",
)

# HTTP metrics
http_requests = Counter(
    "climarisk_http_requests_total",
    "Total HTTP requests served",
    ["method", "route", "status"],
)

# Worker metrics
jobs_processed = Counter(
    "climarisk_jobs_processed_total",
    "Refresh jobs finished by the worker",
    ["status"],
)
