"""
Shared constants and small helpers

Values that operators may tune are read from the environment once, at import.
"""
import os
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware current timestamp"""
    return datetime.now(timezone.utc)


# Aggregation
DEFAULT_AGGREGATE_CACHE_MAX_SIZE = int(os.getenv("AGGREGATE_CACHE_MAX_SIZE", "1000"))
SCORE_DECIMALS = 2
# Dashboard thresholds on skill averages (school summary)
NEEDS_ATTENTION_AVERAGE = 2.5
EXCELLENT_AVERAGE = 3.5
# Minimum change between older and newer halves of grades to report a trend
TREND_DELTA = 0.5

# Safety screening
DEFAULT_CLASSIFIER_TIMEOUT_SECONDS = float(os.getenv("SAFETY_CLASSIFIER_TIMEOUT_SECONDS", "10"))
SCREENING_UNAVAILABLE_INCIDENT = "screening-unavailable"
SCREENING_UNAVAILABLE_SEVERITY = "low"
INCIDENT_SEVERITIES = ("low", "medium", "high", "critical")
INCIDENT_STATUSES = ("open", "investigating", "resolved", "closed")

# Credentials
BADGE_ICON = "gold"
PLAQUE_ICON = "platinum"

# AI feedback
AI_FEEDBACK_FALLBACK = "AI feedback generation failed. Please provide manual feedback."
