from fastapi import APIRouter, Depends

from cache_agent.api.v1.shared.dependencies import get_agent
from cache_agent.models.agent import HealthResponse
from cache_agent.services.agent import AgentHost

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def healthcheck(agent: AgentHost = Depends(get_agent)) -> HealthResponse:
    """Lightweight readiness probe."""
    state = agent.lifecycle.state
    return HealthResponse(
        status="ok" if agent.lifecycle.active is not None else "installing",
        environment=agent.settings.environment,
        version=agent.lifecycle.version,
        lifecycle_state=state.value if state else None,
        storage_backend=agent.settings.cache_storage_backend,
        uptime_seconds=round(agent.uptime_seconds, 3),
        revalidations_pending=agent.revalidator.pending,
        connected_clients=agent.clients.connected_count,
    )
