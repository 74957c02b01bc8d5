from __future__ import annotations

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from cache_agent.core.metrics import set_partition_entries

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics(request: Request) -> Response:
    """Expose Prometheus metrics for scraping.

    Partition entry counts are sampled from the store on every scrape.
    """
    agent = getattr(request.app.state, "agent", None)
    if agent is not None:
        names = await agent.store.list_partitions()
        set_partition_entries({name: await agent.store.count(name) for name in names})
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
