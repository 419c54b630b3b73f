"""GET /metrics: HTTP and complaint workflow counters in Prometheus text format."""

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    # Unauthenticated; scrapers are expected to sit on the internal network
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
