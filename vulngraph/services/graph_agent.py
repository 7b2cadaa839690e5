"""Graph enrichment plan: heuristic tool, then LLM tool, folded into one suggestion list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vulngraph.schemas.agent import AgentExecutedStep
from vulngraph.schemas.findings import FindingRecord
from vulngraph.schemas.graph import AgentEdgeSuggestion
from vulngraph.services.agent_runtime import (
    AgentPlanStep,
    AgentTool,
    AgentToolCall,
    AgentToolResult,
    execute_agent,
)
from vulngraph.services.edge_merge import normalize_edge_type
from vulngraph.services.heuristics import heuristic_suggestions
from vulngraph.services.llm_relationships import infer_llm_relationships

if TYPE_CHECKING:
    from vulngraph.core.config import Settings

ENRICHMENT_PLAN_LABEL = "graph-enrichment"
HEURISTIC_TOOL_NAME = "heuristic-relationships"
LLM_TOOL_NAME = "llm-relationship-inference"


@dataclass(frozen=True)
class EnrichmentState:
    """Accumulated edge suggestions across enrichment steps, in first-seen order."""

    edges: tuple[AgentEdgeSuggestion, ...] = ()


@dataclass
class AgentRelationshipInference:
    edges: list[AgentEdgeSuggestion]
    steps: list[AgentExecutedStep] = field(default_factory=list)


def _suggestion_key(edge: AgentEdgeSuggestion) -> tuple[str, str, str, str, str]:
    """Loose identity used before resolution: labels compare case-insensitively."""
    return (
        normalize_edge_type(edge.type),
        edge.from_.label.lower(),
        edge.from_.id,
        edge.to.label.lower(),
        edge.to.id,
    )


def fold_suggestions(state: EnrichmentState, incoming: list[AgentEdgeSuggestion]) -> EnrichmentState:
    """Append suggestions not already present; earlier steps win on duplicates."""
    if not incoming:
        return state
    seen = {_suggestion_key(edge) for edge in state.edges}
    merged = list(state.edges)
    for edge in incoming:
        key = _suggestion_key(edge)
        if key in seen:
            continue
        seen.add(key)
        merged.append(edge)
    return EnrichmentState(edges=tuple(merged))


def _reduce(state: EnrichmentState, step: AgentExecutedStep) -> EnrichmentState:
    # Both enrichment tools return a list of suggestions.
    if step.tool in (HEURISTIC_TOOL_NAME, LLM_TOOL_NAME) and isinstance(step.data, list):
        return fold_suggestions(state, step.data)
    return state


def build_enrichment_tools(settings: Settings) -> list[AgentTool]:
    async def run_heuristics(call: AgentToolCall[EnrichmentState]) -> AgentToolResult:
        findings: list[FindingRecord] = list(call.context.get("findings", []))
        edges = heuristic_suggestions(findings, max_group=settings.HEURISTIC_MAX_PAIRWISE_GROUP)
        return AgentToolResult(summary=f"Generated {len(edges)} heuristic edge(s).", data=edges)

    async def run_llm(call: AgentToolCall[EnrichmentState]) -> AgentToolResult:
        findings: list[FindingRecord] = list(call.context.get("findings", []))
        edges, summary = await infer_llm_relationships(findings, settings)
        return AgentToolResult(summary=summary, data=edges)

    return [
        AgentTool(
            name=HEURISTIC_TOOL_NAME,
            description=(
                "Generates deterministic relationship suggestions using analytical heuristics "
                "(shared service, CVE, scan window)."
            ),
            run=run_heuristics,
        ),
        AgentTool(
            name=LLM_TOOL_NAME,
            description=(
                "Calls LiteLLM to infer novel relationships such as shared root causes, "
                "propagation, or ownership overlaps."
            ),
            run=run_llm,
        ),
    ]


ENRICHMENT_PLAN: tuple[AgentPlanStep, ...] = (
    AgentPlanStep(tool=HEURISTIC_TOOL_NAME, input={"reason": "baseline heuristics"}),
    AgentPlanStep(
        tool=LLM_TOOL_NAME,
        input={"reason": "LiteLLM relationship inference"},
        continue_on_error=True,
    ),
)


async def infer_agent_relationships(
    findings: list[FindingRecord],
    settings: Settings,
) -> AgentRelationshipInference:
    """Run the enrichment plan. The LLM step never aborts the plan; heuristics always apply."""
    run = await execute_agent(
        label=ENRICHMENT_PLAN_LABEL,
        tools=build_enrichment_tools(settings),
        plan=list(ENRICHMENT_PLAN),
        initial_result=EnrichmentState(),
        reducer=_reduce,
        context={"findings": findings},
    )
    return AgentRelationshipInference(edges=list(run.result.edges), steps=run.steps)
