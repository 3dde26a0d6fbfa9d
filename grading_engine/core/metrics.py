"""
Prometheus metrics

Module-level collectors registered once on the default registry and
exported by ``GET /metrics`` (api/routers/metrics.py).
"""
from prometheus_client import Counter, Histogram

grades_submitted_total = Counter(
    "grading_engine_grades_submitted_total",
    "Grades persisted by first-time grading",
)

grade_edits_total = Counter(
    "grading_engine_grade_edits_total",
    "Grade edit transitions",
    ["outcome"],  # begun, saved, cancelled, conflict
)

grading_conflicts_total = Counter(
    "grading_engine_grading_conflicts_total",
    "Grading calls rejected with a conflict",
    ["reason"],
)

credentials_issued_total = Counter(
    "grading_engine_credentials_issued_total",
    "Credentials issued",
    ["credential_type"],
)

credential_integrity_warnings_total = Counter(
    "grading_engine_credential_integrity_warnings_total",
    "Credential scans skipped because of a malformed skill hierarchy",
)

safety_incidents_total = Counter(
    "grading_engine_safety_incidents_total",
    "Safety incidents raised",
    ["incident_type", "severity"],
)

screening_failures_total = Counter(
    "grading_engine_screening_failures_total",
    "Safety classifier calls that failed open",
    ["reason"],  # timeout, error, malformed
)

screening_duration_seconds = Histogram(
    "grading_engine_screening_duration_seconds",
    "Safety classifier latency",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

aggregate_recomputes_total = Counter(
    "grading_engine_aggregate_recomputes_total",
    "Aggregate statistic recomputations",
    ["scope_kind"],
)

aggregate_cache_hits_total = Counter(
    "grading_engine_aggregate_cache_hits_total",
    "Aggregate statistic reads served from cache",
)

aggregate_cache_misses_total = Counter(
    "grading_engine_aggregate_cache_misses_total",
    "Aggregate statistic reads that required a recompute",
)

llm_requests_total = Counter(
    "grading_engine_llm_requests_total",
    "Text generation requests",
    ["provider", "status"],
)
