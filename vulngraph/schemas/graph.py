"""Pydantic schemas for the property graph: nodes, edges, and agent edge suggestions."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

NodeLabel = Literal[
    "Finding",
    "Scan",
    "Scanner",
    "Vulnerability",
    "Asset",
    "Service",
    "Cluster",
    "Registry",
    "Repository",
    "SourceFile",
    "Package",
]

NODE_LABELS: tuple[str, ...] = (
    "Finding",
    "Scan",
    "Scanner",
    "Vulnerability",
    "Asset",
    "Service",
    "Cluster",
    "Registry",
    "Repository",
    "SourceFile",
    "Package",
)

EdgeSource = Literal["base", "agent"]


class NodeRef(BaseModel):
    """Reference to a node by (label, id)."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., min_length=1)
    id: str = Field(..., min_length=1)


class GraphNode(BaseModel):
    """A node in the graph; identity is (label, id)."""

    label: NodeLabel
    id: str = Field(..., min_length=1)
    properties: dict[str, Any] = Field(default_factory=dict)

    @property
    def ref(self) -> NodeRef:
        return NodeRef(label=self.label, id=self.id)


class GraphEdge(BaseModel):
    """Directed, typed relationship between two node references."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., min_length=1)
    from_: NodeRef = Field(..., alias="from")
    to: NodeRef
    properties: dict[str, Any] = Field(default_factory=dict)
    rationale: str | None = None

    @property
    def key(self) -> tuple[str, str, str, str, str]:
        """Dedup identity: (type, from.label, from.id, to.label, to.id), case-sensitive."""
        return (self.type, self.from_.label, self.from_.id, self.to.label, self.to.id)


def _coerce_text(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class SuggestedEndpoint(BaseModel):
    """Loosely specified endpoint: any label casing, or no label at all."""

    model_config = ConfigDict(extra="ignore")

    label: str = ""
    id: str = Field(..., min_length=1)

    @field_validator("label", "id", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> object:
        return _coerce_text(v)


class AgentEdgeSuggestion(BaseModel):
    """Edge proposed by the heuristic or LLM tool; endpoints are not yet resolved."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = Field(..., min_length=1)
    from_: SuggestedEndpoint = Field(..., alias="from")
    to: SuggestedEndpoint
    properties: dict[str, Any] = Field(default_factory=dict)
    rationale: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: object) -> object:
        return _coerce_text(v)

    @field_validator("properties", mode="before")
    @classmethod
    def default_properties(cls, v: object) -> object:
        return {} if v is None else v

    @field_validator("rationale", mode="before")
    @classmethod
    def blank_rationale(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ResolvedSuggestion(BaseModel):
    """A suggestion whose endpoints matched built nodes."""

    kind: Literal["resolved"] = "resolved"
    edge: GraphEdge


class RejectedSuggestion(BaseModel):
    """A suggestion that could not be applied, with the reason."""

    kind: Literal["rejected"] = "rejected"
    suggestion: AgentEdgeSuggestion
    reason: str


SuggestionResolution = ResolvedSuggestion | RejectedSuggestion


class GraphPayload(BaseModel):
    """Nodes and base edges built from one findings batch."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
