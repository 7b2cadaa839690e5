"""Health check endpoint with Neo4j connectivity check."""

from typing import Annotated

from fastapi import APIRouter, Depends

from vulngraph.core.config import settings
from vulngraph.core.graph_store import GraphStore, get_graph_store
from vulngraph.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
async def get_health(store: Annotated[GraphStore, Depends(get_graph_store)]) -> HealthResponse:
    """
    Return service health status and graph store connectivity.
    Used by load balancers and monitoring.
    """
    connected = await store.verify_connectivity()
    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        graph_store="connected" if connected else "disconnected",
        graph_database=store.database,
    )
