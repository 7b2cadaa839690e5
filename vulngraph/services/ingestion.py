"""Ingestion coordinator: findings -> base graph + agent enrichment -> merged edges -> Neo4j.

Writes are grouped: one UNWIND/MERGE per node label, one per (type, from label, to label)
edge group. Each write is its own transaction; a failing write aborts the remaining
ones and leaves earlier writes in place.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from vulngraph.core.config import get_settings
from vulngraph.core.graph_store import GraphSession, GraphStore
from vulngraph.schemas.findings import FindingRecord
from vulngraph.schemas.graph import GraphEdge, GraphNode
from vulngraph.schemas.ingestion import (
    AppliedAgentRelationship,
    IngestionResult,
    ProvenanceCounts,
    SourceCounts,
)
from vulngraph.services.edge_merge import merge_edges, normalize_agent_edges, sanitize_properties
from vulngraph.services.graph_agent import infer_agent_relationships
from vulngraph.services.graph_builder import build_graph_payload

if TYPE_CHECKING:
    from vulngraph.core.config import Settings

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

FIND_RUN_QUERY = """
MATCH (run:IngestionRun {fingerprint: $fingerprint})
RETURN run.fingerprint AS fingerprint
LIMIT 1
"""

RECORD_RUN_QUERY = """
MERGE (run:IngestionRun {fingerprint: $fingerprint})
ON CREATE SET run.created_at = datetime()
SET run.findings = $findings,
    run.last_ingested_at = datetime()
"""

RESET_GRAPH_QUERY = "MATCH (n) DETACH DELETE n"


class IngestionInputError(ValueError):
    """Raised when the findings batch cannot be ingested as given."""

    def __init__(self, message: str, errors: list[Any] | None = None) -> None:
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class EmptyInputError(IngestionInputError):
    """Raised when the findings batch is empty."""


class InvalidFindingsError(IngestionInputError):
    """Raised when the payload is not a findings array or an entry fails validation."""


def parse_findings(data: Any, max_findings: int | None = None) -> list[FindingRecord]:
    """Validate decoded JSON (array of findings, or a single finding object) into FindingRecords."""
    if isinstance(data, dict):
        items = [data]
    elif isinstance(data, list):
        items = data
    else:
        raise InvalidFindingsError("Expected findings JSON array.")
    if max_findings is not None and len(items) > max_findings:
        raise InvalidFindingsError(f"At most {max_findings} findings per request.")

    findings: list[FindingRecord] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidFindingsError(f"Finding at index {i} must be an object.")
        try:
            findings.append(FindingRecord.model_validate(item))
        except ValidationError as e:
            raise InvalidFindingsError(
                f"Finding at index {i} is invalid.",
                errors=e.errors(include_url=False, include_context=False),
            ) from e
    return findings


def compute_fingerprint(findings: list[FindingRecord]) -> str:
    """SHA-256 over the canonical JSON of the validated batch (order-sensitive)."""
    canonical = json.dumps(
        [f.model_dump(mode="json") for f in findings],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _quote(identifier: str) -> str:
    """Backtick-quote a label or relationship type; only plain identifiers are accepted."""
    if not _IDENTIFIER.match(identifier):
        raise ValueError(f"Refusing to interpolate non-identifier {identifier!r} into Cypher")
    return f"`{identifier}`"


def group_nodes_by_label(nodes: list[GraphNode]) -> dict[str, list[GraphNode]]:
    grouped: dict[str, list[GraphNode]] = {}
    for node in nodes:
        grouped.setdefault(node.label, []).append(node)
    return grouped


def group_edges(edges: list[GraphEdge]) -> dict[tuple[str, str, str], list[GraphEdge]]:
    """Group by (type, from label, to label): one MERGE statement per group."""
    grouped: dict[tuple[str, str, str], list[GraphEdge]] = {}
    for edge in edges:
        grouped.setdefault((edge.type, edge.from_.label, edge.to.label), []).append(edge)
    return grouped


async def _write_nodes(session: GraphSession, nodes: list[GraphNode]) -> None:
    for label, group in group_nodes_by_label(nodes).items():
        query = f"""
        UNWIND $rows AS row
        MERGE (n:{_quote(label)} {{id: row.id}})
        SET n += row.props
        """
        rows = [{"id": n.id, "props": sanitize_properties(n.properties)} for n in group]
        await session.write(query, rows=rows)
        logger.debug("Upserted %s %s node(s)", len(rows), label)


async def _write_edges(session: GraphSession, edges: list[GraphEdge]) -> None:
    for (edge_type, from_label, to_label), group in group_edges(edges).items():
        query = f"""
        UNWIND $rows AS row
        MATCH (a:{_quote(from_label)} {{id: row.from_id}})
        MATCH (b:{_quote(to_label)} {{id: row.to_id}})
        MERGE (a)-[r:{_quote(edge_type)}]->(b)
        SET r += row.props
        """
        rows = [
            {
                "from_id": e.from_.id,
                "to_id": e.to.id,
                "props": sanitize_properties(e.properties),
            }
            for e in group
        ]
        await session.write(query, rows=rows)
        logger.debug(
            "Upserted %s %s relationship(s) %s->%s", len(rows), edge_type, from_label, to_label
        )


async def _ingest(
    findings: list[FindingRecord],
    store: GraphStore,
    settings: Settings,
    use_fingerprint: bool,
    force: bool,
) -> IngestionResult:
    fingerprint = compute_fingerprint(findings) if use_fingerprint else None

    async with store.session() as session:
        if fingerprint is not None and not force:
            existing = await session.run(FIND_RUN_QUERY, fingerprint=fingerprint)
            if existing:
                logger.info(
                    "Findings batch already ingested (fingerprint=%s); skipping", fingerprint
                )
                return IngestionResult(
                    findings=len(findings),
                    skipped=True,
                    fingerprint=fingerprint,
                )

        payload = build_graph_payload(findings)
        inference = await infer_agent_relationships(findings, settings)
        agent_edges, rejected = normalize_agent_edges(inference.edges, payload.nodes)
        if rejected:
            logger.warning(
                "Graph agent produced %s relationship(s) referencing unknown nodes. "
                "Suggestions were skipped.",
                len(rejected),
            )
            for rejection in rejected:
                logger.debug("Dropped agent suggestion: %s", rejection.reason)

        merged = merge_edges(payload.edges, agent_edges)

        if settings.INGEST_RESET_GRAPH:
            logger.info("INGEST_RESET_GRAPH is set; deleting existing graph before write")
            await session.write(RESET_GRAPH_QUERY)

        await _write_nodes(session, payload.nodes)
        await _write_edges(session, merged.edges)

        if fingerprint is not None:
            await session.write(RECORD_RUN_QUERY, fingerprint=fingerprint, findings=len(findings))

    logger.info(
        "Ingested %s findings: %s nodes, %s relationships (base %s, agent %s, dropped %s)",
        len(findings),
        len(payload.nodes),
        len(merged.edges),
        merged.base_count,
        merged.agent_count,
        len(rejected),
    )

    return IngestionResult(
        findings=len(findings),
        nodes_created=len(payload.nodes),
        relationships_created=len(merged.edges),
        agent_suggestions_applied=merged.agent_count,
        agent_suggestions_dropped=len(rejected),
        agent_relationships=[
            AppliedAgentRelationship(
                type=e.type,
                from_=e.from_,
                to=e.to,
                properties=e.properties,
                rationale=e.rationale,
            )
            for e in merged.agent_applied
        ],
        provenance=ProvenanceCounts(
            base=SourceCounts(nodes=len(payload.nodes), relationships=merged.base_count),
            agent=SourceCounts(nodes=0, relationships=merged.agent_count),
        ),
        skipped=False,
        fingerprint=fingerprint,
        agent_steps=inference.steps,
    )


async def ingest_findings(
    findings: list[FindingRecord],
    *,
    store: GraphStore | None = None,
    settings: Settings | None = None,
    use_fingerprint: bool | None = None,
    force: bool = False,
) -> IngestionResult:
    """
    Build, enrich, and persist a findings batch.

    - store: caller-owned GraphStore; when omitted one is created and always closed here.
    - use_fingerprint: check/record an IngestionRun; defaults to INGEST_FINGERPRINT_ENABLED.
    - force: ingest even if the fingerprint was seen (the run record is still updated).

    Raises EmptyInputError for an empty batch and GraphStoreError on any store failure.
    """
    if not findings:
        raise EmptyInputError("No findings provided for ingestion")

    settings = settings or get_settings()
    if use_fingerprint is None:
        use_fingerprint = settings.INGEST_FINGERPRINT_ENABLED

    owns_store = store is None
    active_store = store if store is not None else GraphStore(settings)
    try:
        return await _ingest(findings, active_store, settings, use_fingerprint, force)
    finally:
        if owns_store:
            await active_store.close()


async def ingest_findings_from_file(
    file_path: str | Path,
    *,
    store: GraphStore | None = None,
    settings: Settings | None = None,
    use_fingerprint: bool | None = None,
    force: bool = False,
) -> IngestionResult:
    """Read a JSON findings file (relative paths resolve against the working directory) and ingest it."""
    path = Path(file_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidFindingsError(f"Findings file is not valid JSON: {e!s}") from e
    if not isinstance(data, list):
        raise InvalidFindingsError("Expected findings JSON array.")
    findings = parse_findings(data)
    return await ingest_findings(
        findings,
        store=store,
        settings=settings,
        use_fingerprint=use_fingerprint,
        force=force,
    )
