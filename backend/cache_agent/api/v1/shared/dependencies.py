"""
Shared dependency injection functions for API endpoints.
"""

from fastapi import HTTPException, Request, WebSocket, status

from cache_agent.services.agent import AgentHost


def _agent_from_state(state) -> AgentHost:
    agent = getattr(state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Agent is not running.",
        )
    return agent


async def get_agent(request: Request) -> AgentHost:
    """Return the agent host started by the application lifespan."""
    return _agent_from_state(request.app.state)


async def get_ws_agent(websocket: WebSocket) -> AgentHost:
    return _agent_from_state(websocket.app.state)
