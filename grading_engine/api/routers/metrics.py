"""
Prometheus metrics endpoint

Endpoint:
- GET /metrics - metrics in the Prometheus text exposition format
"""
import logging

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Monitoring"])


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="""
    Engine metrics for Prometheus scraping (every 15-30 seconds).

    **Available metrics**:
    - `grading_engine_grades_submitted_total` - Grade sets submitted and locked
    - `grading_engine_grade_edits_total` - Edit workflow transitions by outcome
    - `grading_engine_grading_conflicts_total` - Rejected grading actions by reason
    - `grading_engine_credentials_issued_total` - Stickers, badges and plaques issued
    - `grading_engine_safety_incidents_total` - Incidents by type and severity
    - `grading_engine_screening_failures_total` - Fail-open screenings by reason
    - `grading_engine_aggregate_recomputes_total` - Statistic recomputations by scope
    """,
    response_class=Response,
)
async def get_metrics() -> Response:
    try:
        metrics_output = generate_latest()
        logger.debug("Exported Prometheus metrics", extra={"size_bytes": len(metrics_output)})
        return Response(content=metrics_output, media_type=CONTENT_TYPE_LATEST)
    except Exception as e:
        logger.error(f"Error exporting metrics: {e}", exc_info=True)
        return Response(content="# Error exporting metrics\n", media_type="text/plain", status_code=500)
