"""Pydantic request/response schemas."""

from vulngraph.schemas.agent import AgentExecutedStep
from vulngraph.schemas.chat import ChatAgentFinding, ChatAgentInsight, ChatAgentResult, ChatRequest
from vulngraph.schemas.findings import (
    AssetDescriptor,
    FindingRecord,
    PackageDescriptor,
    VulnerabilityDescriptor,
)
from vulngraph.schemas.graph import (
    AgentEdgeSuggestion,
    GraphEdge,
    GraphNode,
    GraphPayload,
    NodeRef,
    RejectedSuggestion,
    ResolvedSuggestion,
)
from vulngraph.schemas.health import HealthResponse
from vulngraph.schemas.ingestion import IngestionResult
from vulngraph.schemas.overview import AgentEdgeRow, FindingRow, OverviewMetrics

__all__ = [
    "AgentEdgeRow",
    "AgentEdgeSuggestion",
    "AgentExecutedStep",
    "AssetDescriptor",
    "ChatAgentFinding",
    "ChatAgentInsight",
    "ChatAgentResult",
    "ChatRequest",
    "FindingRecord",
    "FindingRow",
    "GraphEdge",
    "GraphNode",
    "GraphPayload",
    "HealthResponse",
    "IngestionResult",
    "NodeRef",
    "OverviewMetrics",
    "PackageDescriptor",
    "RejectedSuggestion",
    "ResolvedSuggestion",
    "VulnerabilityDescriptor",
]
