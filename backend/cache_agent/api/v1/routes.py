from fastapi import APIRouter

from cache_agent.api.v1.endpoints.clients import router as clients_router
from cache_agent.api.v1.endpoints.control import router as control_router
from cache_agent.api.v1.endpoints.fetch import router as fetch_router
from cache_agent.api.v1.endpoints.health import router as health_router

router = APIRouter()
router.include_router(health_router, tags=["meta"])
router.include_router(control_router, tags=["control"])
router.include_router(fetch_router, tags=["fetch"])
router.include_router(clients_router, tags=["clients"])
