"""API v1 routes."""

from fastapi import APIRouter

from vulngraph.api.v1 import chat, graph, health

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(graph.router, prefix="/graph", tags=["graph"])
router.include_router(chat.router, prefix="/chat", tags=["chat"])
