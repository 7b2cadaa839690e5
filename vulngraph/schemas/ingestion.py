"""Pydantic schemas for ingestion results."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vulngraph.schemas.agent import AgentExecutedStep
from vulngraph.schemas.graph import NodeRef


class AppliedAgentRelationship(BaseModel):
    """An agent-suggested edge that survived resolution and dedup."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    from_: NodeRef = Field(..., alias="from")
    to: NodeRef
    properties: dict[str, Any] = Field(default_factory=dict)
    rationale: str | None = None


class SourceCounts(BaseModel):
    nodes: int = Field(default=0, ge=0)
    relationships: int = Field(default=0, ge=0)


class ProvenanceCounts(BaseModel):
    base: SourceCounts = Field(default_factory=SourceCounts)
    agent: SourceCounts = Field(default_factory=SourceCounts)


class IngestionResult(BaseModel):
    """Outcome of one ingestion call; ``skipped`` means an identical batch was already ingested."""

    findings: int = Field(..., ge=0, description="Number of findings in the batch.")
    nodes_created: int = Field(default=0, ge=0, description="Nodes upserted.")
    relationships_created: int = Field(default=0, ge=0, description="Relationships upserted.")
    agent_suggestions_applied: int = Field(default=0, ge=0)
    agent_suggestions_dropped: int = Field(
        default=0,
        ge=0,
        description="Agent suggestions referencing nodes that were never modeled.",
    )
    agent_relationships: list[AppliedAgentRelationship] = Field(default_factory=list)
    provenance: ProvenanceCounts = Field(default_factory=ProvenanceCounts)
    skipped: bool = False
    fingerprint: str | None = Field(
        default=None,
        description="SHA-256 of the batch when fingerprinting is enabled.",
    )
    agent_steps: list[AgentExecutedStep] = Field(default_factory=list)
