"""LLM relationship inference: ask the model for novel edges between modeled findings and assets."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from vulngraph.schemas.findings import FindingRecord
from vulngraph.schemas.graph import AgentEdgeSuggestion
from vulngraph.services.llm_client import (
    LLMServiceError,
    chat_completion_json,
    llm_is_configured,
)

if TYPE_CHECKING:
    from vulngraph.core.config import Settings

logger = logging.getLogger(__name__)

LLM_AGENT_SOURCE = "llm"
LLM_PROVENANCE = "agent_llm"

SYSTEM_PROMPT = (
    "You are a security knowledge-graph analyst. Given vulnerability findings, infer "
    'insightful relationships. Reply as JSON {"edges": [...]} where each edge includes '
    "type, from {label,id}, to {label,id}, optional properties (confidence, rationale), "
    "and a rationale string. Use node labels Finding, Vulnerability, Asset, Service, "
    "Package, Scan and the ids given in the findings."
)

INSTRUCTIONS = (
    "Propose novel relationships such as shared root causes, dependency propagation, "
    "co-occurrence windows, or ownership overlaps. Each edge should include type, "
    "from {label,id}, to {label,id}, optional properties (like confidence) and a rationale."
)


def build_prompt(findings: list[FindingRecord]) -> str:
    """Compact JSON user payload: instructions plus one entry per finding."""
    compact = [
        {
            "id": f.finding_id,
            "vulnerability": f.vulnerability.model_dump(exclude_none=True),
            "asset": f.asset.model_dump(exclude_none=True),
            "package": f.package.model_dump() if f.package else None,
            "service": f.asset.service,
            "timestamp": f.timestamp,
        }
        for f in findings
    ]
    return json.dumps(
        {"instructions": INSTRUCTIONS, "findings": compact},
        separators=(",", ":"),
    )


def _stamp(properties: dict[str, Any]) -> dict[str, Any]:
    """Default agent_source/provenance unless the model supplied string values."""
    stamped = dict(properties)
    if not isinstance(stamped.get("agent_source"), str):
        stamped["agent_source"] = LLM_AGENT_SOURCE
    if not isinstance(stamped.get("provenance"), str):
        stamped["provenance"] = LLM_PROVENANCE
    return stamped


def parse_edges(parsed: dict[str, Any]) -> tuple[list[AgentEdgeSuggestion], int]:
    """
    Validate the model's {"edges": [...]} object.

    Raises LLMServiceError when "edges" is missing or not a list. Individual entries that
    do not validate (no type, no endpoint ids) are discarded and counted.
    """
    raw_edges = parsed.get("edges")
    if not isinstance(raw_edges, list):
        raise LLMServiceError('Model output does not match expected shape {"edges": [...]}.')

    edges: list[AgentEdgeSuggestion] = []
    discarded = 0
    for raw in raw_edges:
        if not isinstance(raw, dict):
            discarded += 1
            continue
        try:
            suggestion = AgentEdgeSuggestion.model_validate(raw)
        except ValidationError:
            discarded += 1
            continue
        edges.append(suggestion.model_copy(update={"properties": _stamp(suggestion.properties)}))
    return edges, discarded


async def infer_llm_relationships(
    findings: list[FindingRecord],
    settings: Settings,
) -> tuple[list[AgentEdgeSuggestion], str]:
    """
    Ask the LLM for relationship suggestions. Returns (edges, summary).

    Not configured: returns no edges (enrichment falls back to heuristics only).
    Raises LLMServiceError on HTTP failure or unparseable output.
    """
    if not llm_is_configured(settings):
        return [], "LiteLLM not configured; skipped LLM enrichment step."

    parsed = await chat_completion_json(
        settings,
        model=settings.GRAPH_AGENT_MODEL,
        temperature=settings.GRAPH_AGENT_TEMPERATURE,
        system_prompt=SYSTEM_PROMPT,
        user_content=build_prompt(findings),
        purpose="relationship",
    )
    if parsed is None:
        return [], "LLM returned no content for relationships."

    edges, discarded = parse_edges(parsed)
    if discarded:
        logger.warning("Discarded %s malformed LLM edge suggestion(s)", discarded)
        return edges, (
            f"LLM suggested {len(edges)} enriched relationship(s); "
            f"discarded {discarded} malformed."
        )
    return edges, f"LLM suggested {len(edges)} enriched relationship(s)."
