"""Prometheus scrape endpoint.

Plain-text exposition format, not the JSON envelope, e.g.

  progression_transitions_total{entity="subject",status="FINISHED"} 12.0
  http_requests_total{method="POST",endpoint="/v1/tasks/{task_id}/complete",status_code="200"} 318.0

Keep /metrics off the public ingress: label values reveal route layout
and traffic patterns.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
