"""Chat analysis plan over the findings graph: retrieval, risk ranking, relationship digest, synthesis.

Read-only. Every step is non-fatal; when no answer is synthesized a template answer
is built from the retrieved findings.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from vulngraph.schemas.chat import ChatAgentFinding, ChatAgentInsight, ChatAgentResult
from vulngraph.schemas.findings import parse_timestamp
from vulngraph.services.agent_runtime import (
    AgentPlanStep,
    AgentTool,
    AgentToolCall,
    AgentToolResult,
    execute_agent,
)
from vulngraph.services.llm_client import chat_completion_json, llm_is_configured

if TYPE_CHECKING:
    from vulngraph.core.config import Settings
    from vulngraph.core.graph_store import GraphStore
    from vulngraph.schemas.agent import AgentExecutedStep

CHAT_PLAN_LABEL = "chat-agent"
RETRIEVAL_TOOL_NAME = "graph-retrieval"
RANKING_TOOL_NAME = "risk-ranking"
DIGEST_TOOL_NAME = "relationship-digest"
SYNTHESIS_TOOL_NAME = "answer-synthesis"

DEFAULT_FINDING_LIMIT = 6
DEFAULT_DIGEST_LIMIT = 10
SYNTHESIS_CONTEXT_LIMIT = 8

SYNTHESIS_SYSTEM_PROMPT = (
    "You are an IR analyst grounded in a vulnerability knowledge graph. Provide concise, "
    'evidence-backed answers. Respond as JSON {"answer": string, "citations": string[]} '
    "where citations references finding IDs or services."
)

_SEVERITY_ORDER_CYPHER = """
CASE upper(coalesce(f.severity, 'LOW'))
  WHEN 'CRITICAL' THEN 0
  WHEN 'HIGH' THEN 1
  WHEN 'MEDIUM' THEN 2
  WHEN 'LOW' THEN 3
  ELSE 4
END
"""

TOP_FINDINGS_QUERY = f"""
MATCH (f:Finding)
OPTIONAL MATCH (f)-[:FOUND_ON]->(a:Asset)
RETURN f.id AS id,
       coalesce(f.title, f.id) AS title,
       coalesce(f.severity, 'UNKNOWN') AS severity,
       a.service AS service,
       f.timestamp AS timestamp
ORDER BY {_SEVERITY_ORDER_CYPHER}, timestamp DESC
LIMIT $limit
"""

KEYWORD_FINDINGS_QUERY = """
MATCH (f:Finding)
OPTIONAL MATCH (f)-[:FOUND_ON]->(a:Asset)
WITH f, a,
     [keyword IN $keywords WHERE keyword <> '' AND (
        toLower(coalesce(f.title, '')) CONTAINS keyword
        OR toLower(coalesce(f.severity, '')) = keyword
        OR toLower(coalesce(a.service, '')) = keyword)] AS matched
WHERE size(matched) > 0
RETURN f.id AS id,
       coalesce(f.title, f.id) AS title,
       coalesce(f.severity, 'UNKNOWN') AS severity,
       a.service AS service,
       f.timestamp AS timestamp,
       size(matched) AS score
ORDER BY score DESC, timestamp DESC
LIMIT $limit
"""

ENRICHED_RELATIONSHIPS_QUERY = """
MATCH (f:Finding)-[r]->(other)
WHERE f.id IN $ids
  AND (coalesce(r.provenance, 'base') STARTS WITH 'agent' OR r.enriched = true)
RETURN f.id AS fromId,
       type(r) AS type,
       coalesce(r.agent_source, r.provenance, 'agent') AS source,
       coalesce(r.rationale, '') AS rationale,
       coalesce(other.id, elementId(other)) AS toId,
       coalesce(other.title, other.id, labels(other)[0]) AS toTitle
ORDER BY CASE coalesce(r.agent_source, r.provenance)
  WHEN 'llm' THEN 0
  WHEN 'agent_llm' THEN 0
  WHEN 'heuristic' THEN 1
  WHEN 'agent_heuristic' THEN 1
  ELSE 2
END, f.id, type(r)
LIMIT $limit
"""

_SEVERITY_WEIGHT = {"CRITICAL": 400, "HIGH": 300, "MEDIUM": 200, "LOW": 100}


@dataclass(frozen=True)
class ChatState:
    findings: tuple[ChatAgentFinding, ...] = ()
    answer: str = ""
    citations: tuple[str, ...] = ()
    insights: tuple[ChatAgentInsight, ...] = ()


@dataclass
class InsightBundle:
    insights: list[ChatAgentInsight] = field(default_factory=list)
    citations: list[str] = field(default_factory=list)


@dataclass
class SynthesizedAnswer:
    answer: str
    citations: list[str] = field(default_factory=list)


def extract_keywords(question: str) -> list[str]:
    """Lower-cased tokens of 4+ characters, minus the word 'findings', at most six."""
    tokens = re.split(r"[^a-z0-9]+", question.lower())
    return [t for t in tokens if len(t) >= 4 and t != "findings"][:6]


def severity_weight(severity: str | None) -> int:
    return _SEVERITY_WEIGHT.get((severity or "").upper(), 0)


def _timestamp_weight(timestamp: str | None) -> float:
    if not timestamp:
        return 0.0
    try:
        return parse_timestamp(timestamp).timestamp()
    except ValueError:
        return 0.0


def merge_citations(existing: list[str] | tuple[str, ...], incoming: list[str]) -> list[str]:
    """Order-preserving union; blank ids are ignored."""
    merged = list(dict.fromkeys(c for c in existing if c and c.strip()))
    for citation in incoming:
        if citation and citation.strip() and citation not in merged:
            merged.append(citation)
    return merged


def merge_insights(
    existing: list[ChatAgentInsight] | tuple[ChatAgentInsight, ...],
    incoming: list[ChatAgentInsight],
) -> list[ChatAgentInsight]:
    """Insights merge by title: newer non-blank detail wins, citations accumulate."""
    by_title: dict[str, ChatAgentInsight] = {i.title: i for i in existing}
    for insight in incoming:
        if not insight.title:
            continue
        current = by_title.get(insight.title)
        if current is None:
            by_title[insight.title] = insight.model_copy(
                update={"citations": merge_citations([], insight.citations)}
            )
            continue
        detail = insight.detail if insight.detail.strip() else current.detail
        by_title[insight.title] = current.model_copy(
            update={
                "detail": detail,
                "citations": merge_citations(current.citations, insight.citations),
            }
        )
    return list(by_title.values())


def rank_findings(findings: list[ChatAgentFinding], limit: int) -> list[ChatAgentFinding]:
    """Severity first, then most recent, then id for a stable order."""
    ordered = sorted(findings, key=lambda f: f.id)
    ordered.sort(key=lambda f: (severity_weight(f.severity), _timestamp_weight(f.timestamp)), reverse=True)
    return ordered[:limit]


def _ranking_detail(finding: ChatAgentFinding) -> str:
    parts: list[str] = []
    if finding.severity:
        parts.append(f"Severity {finding.severity}")
    if finding.service:
        parts.append(f"Service {finding.service}")
    if finding.timestamp:
        try:
            seen = parse_timestamp(finding.timestamp).strftime("%Y-%m-%d %H:%M UTC")
        except ValueError:
            seen = finding.timestamp
        parts.append(f"Seen {seen}")
    return " · ".join(parts) if parts else f"Reported as {finding.id}."


def build_fallback_answer(question: str, findings: list[ChatAgentFinding]) -> tuple[str, list[str]]:
    if not findings:
        return f'I could not locate findings related to "{question}".', []
    top = rank_findings(findings, 1)[0]
    headline = top.title or top.id
    service = f" on {top.service}" if top.service else ""
    text = (
        f'I found {len(findings)} finding(s) relevant to "{question}". '
        f"Highest priority appears to be {headline}{service}. "
        "Configure LiteLLM for richer analysis."
    )
    return text, [f.id for f in findings]


def _rows_to_findings(rows: list[dict[str, Any]]) -> list[ChatAgentFinding]:
    return [
        ChatAgentFinding(
            id=str(row["id"]),
            title=row.get("title"),
            severity=row.get("severity"),
            service=row.get("service"),
            timestamp=row.get("timestamp"),
        )
        for row in rows
    ]


def _limit(value: Any, default: int) -> int:
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return default


def build_chat_tools(settings: Settings, store: GraphStore) -> list[AgentTool]:
    async def fetch_top_findings(limit: int) -> list[ChatAgentFinding]:
        async with store.session() as session:
            rows = await session.run(TOP_FINDINGS_QUERY, limit=limit)
        return _rows_to_findings(rows)

    async def run_retrieval(call: AgentToolCall[ChatState]) -> AgentToolResult:
        question = call.input.get("question", "")
        limit = _limit(call.input.get("limit"), DEFAULT_FINDING_LIMIT)
        keywords = extract_keywords(question)
        findings: list[ChatAgentFinding] = []
        if keywords:
            async with store.session() as session:
                rows = await session.run(KEYWORD_FINDINGS_QUERY, keywords=keywords, limit=limit)
            findings = _rows_to_findings(rows)
        if not findings:
            findings = await fetch_top_findings(limit)
        return AgentToolResult(
            summary=f"Retrieved {len(findings)} finding(s) from the knowledge graph.",
            data=findings,
        )

    async def run_ranking(call: AgentToolCall[ChatState]) -> AgentToolResult:
        limit = _limit(call.input.get("limit"), DEFAULT_FINDING_LIMIT)
        source = list(call.state.findings) or await fetch_top_findings(limit * 2)
        if not source:
            return AgentToolResult(summary="No findings available for ranking.", data=InsightBundle())
        ranked = rank_findings(source, limit)
        insights = [
            ChatAgentInsight(
                title=f"Priority {i + 1}: {f.title or f.id}",
                detail=_ranking_detail(f),
                citations=[f.id],
            )
            for i, f in enumerate(ranked)
        ]
        return AgentToolResult(
            summary=f"Ranked {len(ranked)} high-priority finding(s).",
            data=InsightBundle(insights=insights, citations=[f.id for f in ranked]),
        )

    async def run_digest(call: AgentToolCall[ChatState]) -> AgentToolResult:
        if not call.state.findings:
            return AgentToolResult(
                summary="No findings available to summarize relationships.",
                data=InsightBundle(),
            )
        ids = [f.id for f in call.state.findings]
        limit = _limit(call.input.get("limit"), DEFAULT_DIGEST_LIMIT)
        async with store.session() as session:
            rows = await session.run(ENRICHED_RELATIONSHIPS_QUERY, ids=ids, limit=limit)
        if not rows:
            return AgentToolResult(
                summary="No enriched relationships found for the selected findings.",
                data=InsightBundle(),
            )
        insights: list[ChatAgentInsight] = []
        for row in rows:
            to_id = str(row.get("toId"))
            target = row.get("toTitle") or to_id
            rationale = (row.get("rationale") or "").strip()
            insights.append(
                ChatAgentInsight(
                    title=f"{row['type']} between {row['fromId']} and {target}",
                    detail=rationale or f"Relationship {row['type']} links {row['fromId']} to {target}.",
                    citations=[c for c in (row["fromId"], to_id) if c],
                )
            )
        citations = merge_citations([], [c for i in insights for c in i.citations])
        return AgentToolResult(
            summary=f"Highlighted {len(insights)} enriched relationship(s).",
            data=InsightBundle(insights=insights, citations=citations),
        )

    async def run_synthesis(call: AgentToolCall[ChatState]) -> AgentToolResult:
        if not llm_is_configured(settings):
            return AgentToolResult(summary="LiteLLM not configured; falling back to template answer.")
        findings = list(call.state.findings)
        user_payload = {
            "question": call.input.get("question", ""),
            "findings": [f.model_dump() for f in findings[:SYNTHESIS_CONTEXT_LIMIT]],
            "insights": [i.model_dump() for i in call.state.insights[:SYNTHESIS_CONTEXT_LIMIT]],
        }
        parsed = await chat_completion_json(
            settings,
            model=call.input.get("model") or settings.CHAT_AGENT_MODEL,
            temperature=settings.CHAT_AGENT_TEMPERATURE,
            system_prompt=SYNTHESIS_SYSTEM_PROMPT,
            user_content=json.dumps(user_payload),
            purpose="chat answer",
        )
        if parsed is None:
            return AgentToolResult(
                summary="Chat model returned no content.",
                data=SynthesizedAnswer(answer="No conversational response produced."),
            )
        answer = parsed.get("answer")
        citations = parsed.get("citations")
        if isinstance(citations, list):
            citations = [str(c) for c in citations]
        else:
            citations = merge_citations([], [f.id for f in findings])
        return AgentToolResult(
            summary="Generated response using LiteLLM agent.",
            data=SynthesizedAnswer(
                answer=answer if isinstance(answer, str) and answer else "No answer produced.",
                citations=citations,
            ),
        )

    return [
        AgentTool(
            name=RETRIEVAL_TOOL_NAME,
            description=(
                "Searches the knowledge graph for findings related to the question using "
                "keyword matching and severity weighting."
            ),
            run=run_retrieval,
        ),
        AgentTool(
            name=RANKING_TOOL_NAME,
            description="Prioritizes findings by severity and recency to suggest remediation order.",
            run=run_ranking,
        ),
        AgentTool(
            name=DIGEST_TOOL_NAME,
            description=(
                "Summarizes enriched relationships between the retrieved findings and other "
                "assets or services."
            ),
            run=run_digest,
        ),
        AgentTool(
            name=SYNTHESIS_TOOL_NAME,
            description="Synthesizes a natural-language answer using LiteLLM and the retrieved findings.",
            run=run_synthesis,
        ),
    ]


def fold_retrieval(state: ChatState, findings: list[ChatAgentFinding]) -> ChatState:
    return replace(state, findings=tuple(findings))


def fold_insights(state: ChatState, bundle: InsightBundle) -> ChatState:
    return replace(
        state,
        insights=tuple(merge_insights(state.insights, bundle.insights)),
        citations=tuple(merge_citations(state.citations, bundle.citations)),
    )


def fold_answer(state: ChatState, synthesized: SynthesizedAnswer) -> ChatState:
    return replace(
        state,
        answer=synthesized.answer,
        citations=tuple(merge_citations(state.citations, synthesized.citations)),
    )


_FOLDS: dict[str, Callable[[ChatState, Any], ChatState]] = {
    RETRIEVAL_TOOL_NAME: fold_retrieval,
    RANKING_TOOL_NAME: fold_insights,
    DIGEST_TOOL_NAME: fold_insights,
    SYNTHESIS_TOOL_NAME: fold_answer,
}


def _reduce(state: ChatState, step: AgentExecutedStep) -> ChatState:
    fold = _FOLDS.get(step.tool)
    if fold is None or step.data is None:
        return state
    return fold(state, step.data)


async def run_chat_agent(
    question: str,
    *,
    store: GraphStore,
    settings: Settings,
    model: str | None = None,
    limit: int | None = None,
) -> ChatAgentResult:
    """Answer a question about the findings graph. Store and LLM failures surface as failed steps."""
    question = question.strip()
    if not question:
        return ChatAgentResult(answer="I need a question to analyze the knowledge graph.")

    plan = [
        AgentPlanStep(
            tool=RETRIEVAL_TOOL_NAME,
            input={"question": question, "limit": limit or DEFAULT_FINDING_LIMIT},
            continue_on_error=True,
        ),
        AgentPlanStep(
            tool=RANKING_TOOL_NAME,
            input={"limit": limit or DEFAULT_FINDING_LIMIT},
            continue_on_error=True,
        ),
        AgentPlanStep(
            tool=DIGEST_TOOL_NAME,
            input={"limit": limit or DEFAULT_DIGEST_LIMIT},
            continue_on_error=True,
        ),
        AgentPlanStep(
            tool=SYNTHESIS_TOOL_NAME,
            input={"question": question, "model": model or settings.CHAT_AGENT_MODEL},
            continue_on_error=True,
        ),
    ]

    run = await execute_agent(
        label=CHAT_PLAN_LABEL,
        tools=build_chat_tools(settings, store),
        plan=plan,
        initial_result=ChatState(),
        reducer=_reduce,
    )
    state = run.result
    if not state.answer:
        answer, citations = build_fallback_answer(question, list(state.findings))
        return ChatAgentResult(
            answer=answer,
            citations=citations,
            findings=list(state.findings),
            insights=list(state.insights),
            steps=run.steps,
        )
    return ChatAgentResult(
        answer=state.answer,
        citations=list(state.citations),
        findings=list(state.findings),
        insights=list(state.insights),
        steps=run.steps,
    )
