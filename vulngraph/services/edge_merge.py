"""Resolve agent edge suggestions against built nodes, then merge with base edges.

Resolution order per endpoint: exact (label, id), then case-insensitive label with
exact id, then id alone (first node seen with that id). Merge dedups on
(type, from.label, from.id, to.label, to.id); the first writer wins and agent
metadata is only ever added to a surviving base edge, never written over it.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from vulngraph.schemas.graph import (
    AgentEdgeSuggestion,
    EdgeSource,
    GraphEdge,
    GraphNode,
    NodeRef,
    RejectedSuggestion,
    ResolvedSuggestion,
    SuggestedEndpoint,
    SuggestionResolution,
)

BASE_PROVENANCE = "base"
AGENT_PROVENANCE = "agent"

_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]+")


def normalize_edge_type(raw: str) -> str:
    """UPPER_SNAKE relationship type; characters Cypher cannot take unquoted become '_'."""
    collapsed = _NON_IDENTIFIER.sub("_", raw.strip()).strip("_")
    if collapsed and collapsed[0].isdigit():
        collapsed = f"_{collapsed}"
    return collapsed.upper()


@dataclass
class NodeIndex:
    """Lookup tables for endpoint resolution."""

    by_label_and_id: dict[tuple[str, str], NodeRef] = field(default_factory=dict)
    by_lower_label: dict[tuple[str, str], NodeRef] = field(default_factory=dict)
    by_id: dict[str, NodeRef] = field(default_factory=dict)

    def resolve(self, endpoint: SuggestedEndpoint) -> NodeRef | None:
        exact = self.by_label_and_id.get((endpoint.label, endpoint.id))
        if exact is not None:
            return exact
        lower = self.by_lower_label.get((endpoint.label.lower(), endpoint.id))
        if lower is not None:
            return lower
        return self.by_id.get(endpoint.id)


def build_node_index(nodes: list[GraphNode]) -> NodeIndex:
    index = NodeIndex()
    for node in nodes:
        ref = node.ref
        index.by_label_and_id[(node.label, node.id)] = ref
        index.by_lower_label.setdefault((node.label.lower(), node.id), ref)
        index.by_id.setdefault(node.id, ref)
    return index


def resolve_suggestion(suggestion: AgentEdgeSuggestion, index: NodeIndex) -> SuggestionResolution:
    """Total: every suggestion comes back either resolved to known nodes or rejected with a reason."""
    edge_type = normalize_edge_type(suggestion.type)
    if not edge_type:
        return RejectedSuggestion(
            suggestion=suggestion,
            reason=f"relationship type {suggestion.type!r} is not usable",
        )
    from_ref = index.resolve(suggestion.from_)
    if from_ref is None:
        return RejectedSuggestion(
            suggestion=suggestion,
            reason=f"unknown source node {suggestion.from_.label or '?'}:{suggestion.from_.id}",
        )
    to_ref = index.resolve(suggestion.to)
    if to_ref is None:
        return RejectedSuggestion(
            suggestion=suggestion,
            reason=f"unknown target node {suggestion.to.label or '?'}:{suggestion.to.id}",
        )
    return ResolvedSuggestion(
        edge=GraphEdge(
            type=edge_type,
            from_=from_ref,
            to=to_ref,
            properties=dict(suggestion.properties),
            rationale=suggestion.rationale,
        )
    )


def normalize_agent_edges(
    suggestions: list[AgentEdgeSuggestion],
    nodes: list[GraphNode],
) -> tuple[list[GraphEdge], list[RejectedSuggestion]]:
    """Resolve every suggestion; returns (resolved edges, rejections)."""
    if not suggestions:
        return [], []
    index = build_node_index(nodes)
    resolved: list[GraphEdge] = []
    rejected: list[RejectedSuggestion] = []
    for suggestion in suggestions:
        outcome = resolve_suggestion(suggestion, index)
        if isinstance(outcome, ResolvedSuggestion):
            resolved.append(outcome.edge)
        else:
            rejected.append(outcome)
    return resolved, rejected


def _agent_provenance(properties: dict[str, Any]) -> str:
    value = properties.get("provenance")
    if isinstance(value, str) and value.startswith(AGENT_PROVENANCE):
        return value
    return AGENT_PROVENANCE


@dataclass
class MergeOutcome:
    edges: list[GraphEdge]
    base_count: int
    agent_count: int
    agent_applied: list[GraphEdge]


def merge_edges(base_edges: list[GraphEdge], agent_edges: list[GraphEdge]) -> MergeOutcome:
    """
    Deduplicate base then agent edges and tag provenance.

    Every surviving edge ends with a string ``provenance`` and a boolean ``enriched``.
    """
    survivors: dict[tuple[str, str, str, str, str], GraphEdge] = {}
    sources: dict[tuple[str, str, str, str, str], EdgeSource] = {}
    agent_applied: list[GraphEdge] = []
    base_count = 0
    agent_count = 0

    def add(edge: GraphEdge, source: EdgeSource) -> None:
        nonlocal base_count, agent_count
        key = edge.key
        existing = survivors.get(key)
        if existing is not None:
            if source == "agent" and sources[key] == "base":
                props = existing.properties
                if edge.rationale and "rationale" not in props:
                    props["rationale"] = edge.rationale
                    existing.rationale = edge.rationale
                props.setdefault("agent_provenance", _agent_provenance(edge.properties))
                props["enriched"] = True
            return

        props = dict(edge.properties)
        if source == "agent":
            if edge.rationale:
                props["rationale"] = edge.rationale
            props["provenance"] = _agent_provenance(props)
            props["enriched"] = True
        else:
            if not isinstance(props.get("provenance"), str):
                props["provenance"] = BASE_PROVENANCE
            props["enriched"] = bool(props.get("enriched", False))

        record = edge.model_copy(update={"properties": props})
        survivors[key] = record
        sources[key] = source
        if source == "agent":
            agent_count += 1
            agent_applied.append(record)
        else:
            base_count += 1

    for edge in base_edges:
        add(edge, "base")
    for edge in agent_edges:
        add(edge, "agent")

    return MergeOutcome(
        edges=list(survivors.values()),
        base_count=base_count,
        agent_count=agent_count,
        agent_applied=agent_applied,
    )


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def sanitize_properties(properties: dict[str, Any] | None) -> dict[str, Any]:
    """
    Property map safe for the store: drops None values, keeps scalars and lists of scalars.

    Nested maps and mixed/nested lists are stored as JSON strings.
    """
    clean: dict[str, Any] = {}
    for key, value in (properties or {}).items():
        if value is None:
            continue
        if _is_scalar(value):
            clean[key] = value
        elif isinstance(value, (list, tuple)):
            items = [item for item in value if item is not None]
            if all(_is_scalar(item) for item in items) and len({type(i) for i in items}) <= 1:
                clean[key] = list(items)
            else:
                clean[key] = json.dumps(items, sort_keys=True, default=str)
        else:
            clean[key] = json.dumps(value, sort_keys=True, default=str)
    return clean
