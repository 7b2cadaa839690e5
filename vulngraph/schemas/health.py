"""Pydantic schemas for health check responses."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response body for the health check endpoint."""

    status: Literal["ok"] = Field(default="ok", description="Service status")
    environment: str = Field(description="Current app environment (e.g. dev, prod)")
    graph_store: Literal["connected", "disconnected"] = Field(
        description="Neo4j graph store connectivity at the time of the check",
    )
    graph_database: str = Field(description="Neo4j database the service reads and writes")
