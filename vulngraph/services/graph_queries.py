"""Read-only queries backing the overview, findings, and agent-edges endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from vulngraph.schemas.overview import (
    AgentEdgeRow,
    BlastRadius,
    FindingRow,
    IngestionRunSummary,
    OverviewMetrics,
    OverviewTotals,
    PatchStatus,
    ScannerCount,
    SeverityCounts,
    TimeRange,
    WeaknessCount,
)

if TYPE_CHECKING:
    from vulngraph.core.graph_store import GraphStore

TOTALS_QUERY = """
MATCH (f:Finding)
OPTIONAL MATCH (f)-[:FOUND_ON]->(a:Asset)
OPTIONAL MATCH (a)-[:BELONGS_TO_SERVICE]->(svc:Service)
RETURN count(DISTINCT f) AS findings,
       count(DISTINCT a) AS assets,
       count(DISTINCT svc) AS services
"""

SEVERITY_QUERY = """
MATCH (f:Finding)
RETURN coalesce(f.severity, 'UNKNOWN') AS severity, count(*) AS count
"""

TOP_CWE_QUERY = """
MATCH (v:Vulnerability)
WHERE v.cwe_id IS NOT NULL AND trim(v.cwe_id) <> ''
RETURN v.cwe_id AS id, count(*) AS count
ORDER BY count DESC, id
LIMIT 3
"""

TOP_OWASP_QUERY = """
MATCH (v:Vulnerability)
WHERE v.owasp_id IS NOT NULL AND trim(v.owasp_id) <> ''
RETURN v.owasp_id AS id, count(*) AS count
ORDER BY count DESC, id
LIMIT 3
"""

SCANNERS_QUERY = """
MATCH (f:Finding)-[:GENERATED_BY]->(s:Scanner)
RETURN s.name AS name, count(*) AS findings
ORDER BY findings DESC, name
LIMIT 5
"""

BLAST_RADIUS_QUERY = """
MATCH (v:Vulnerability)-[:AFFECTS]->(a:Asset)
WITH v, count(DISTINCT a) AS affected
ORDER BY affected DESC
RETURN affected AS max,
       coalesce(v.cve_id, v.cwe_id, v.owasp_id, v.id) AS vulnerability_id,
       v.title AS title
LIMIT 1
"""

PATCH_STATUS_QUERY = """
MATCH (f:Finding)
OPTIONAL MATCH (f)-[:FOUND_ON]->(:Asset)-[:USES_PACKAGE]->(pkg:Package)
WITH f, collect(DISTINCT pkg) AS pkgs
RETURN sum(CASE WHEN size(pkgs) > 0 THEN 1 ELSE 0 END) AS patchable,
       sum(CASE WHEN size(pkgs) = 0 THEN 1 ELSE 0 END) AS without_patch
"""

TIME_RANGE_QUERY = """
MATCH (f:Finding)
WHERE f.timestamp IS NOT NULL
WITH min(datetime(f.timestamp)) AS first, max(datetime(f.timestamp)) AS last
RETURN toString(first) AS first_seen,
       toString(last) AS last_seen,
       CASE WHEN first IS NULL THEN null ELSE duration.inDays(first, last).days END AS days
"""

INGESTION_RUNS_QUERY = """
MATCH (run:IngestionRun)
RETURN run.fingerprint AS fingerprint,
       run.findings AS findings,
       toString(run.created_at) AS created_at,
       toString(run.last_ingested_at) AS last_ingested_at
ORDER BY run.last_ingested_at DESC
LIMIT 5
"""

FINDINGS_QUERY = """
MATCH (f:Finding)-[:FOUND_ON]->(asset:Asset)
OPTIONAL MATCH (f)-[:REPORTS]->(v:Vulnerability)
OPTIONAL MATCH (f)-[:GENERATED_BY]->(scanner:Scanner)
OPTIONAL MATCH (asset)-[:BELONGS_TO_SERVICE]->(service:Service)
OPTIONAL MATCH (v)-[:AFFECTS]->(affected:Asset)
OPTIONAL MATCH (asset)-[:USES_PACKAGE]->(pkg:Package)
WITH f, asset, v, scanner, service,
     count(DISTINCT affected) AS blast_radius,
     size(collect(DISTINCT pkg)) AS package_count
RETURN f.finding_id AS id,
       f.severity AS severity,
       coalesce(v.title, f.title) AS title,
       asset.id AS asset_id,
       asset.type AS asset_type,
       asset.url AS asset_url,
       service.name AS service,
       scanner.name AS scanner,
       v.cve_id AS cve_id,
       v.cwe_id AS cwe_id,
       v.owasp_id AS owasp_id,
       v.vector AS vector,
       f.scan_id AS scan_id,
       f.timestamp AS timestamp,
       blast_radius,
       package_count > 0 AS has_patch
ORDER BY
  CASE f.severity
    WHEN 'CRITICAL' THEN 0
    WHEN 'HIGH' THEN 1
    WHEN 'MEDIUM' THEN 2
    WHEN 'LOW' THEN 3
    ELSE 4
  END,
  datetime(f.timestamp) DESC
LIMIT $limit
"""

AGENT_EDGES_QUERY = """
MATCH (a)-[r]->(b)
WHERE coalesce(r.provenance, 'base') STARTS WITH 'agent' OR r.enriched = true
RETURN type(r) AS type,
       labels(a)[0] AS from_label,
       a.id AS from_id,
       labels(b)[0] AS to_label,
       b.id AS to_id,
       coalesce(r.provenance, 'base') AS provenance,
       r.agent_source AS agent_source,
       r.agent_provenance AS agent_provenance,
       coalesce(r.enriched, false) AS enriched,
       r.rationale AS rationale
ORDER BY type, from_id, to_id
LIMIT $limit
"""

DEFAULT_ROW_LIMIT = 500


def _first(rows: list[dict[str, Any]]) -> dict[str, Any]:
    return rows[0] if rows else {}


def _int(value: Any) -> int:
    return int(value) if value is not None else 0


async def fetch_overview_metrics(store: GraphStore) -> OverviewMetrics:
    """Dashboard counters in one session. Raises GraphStoreError when the store fails."""
    async with store.session() as session:
        totals = _first(await session.run(TOTALS_QUERY))
        severity_rows = await session.run(SEVERITY_QUERY)
        cwe_rows = await session.run(TOP_CWE_QUERY)
        owasp_rows = await session.run(TOP_OWASP_QUERY)
        scanner_rows = await session.run(SCANNERS_QUERY)
        blast = _first(await session.run(BLAST_RADIUS_QUERY))
        patch = _first(await session.run(PATCH_STATUS_QUERY))
        time_range = _first(await session.run(TIME_RANGE_QUERY))
        run_rows = await session.run(INGESTION_RUNS_QUERY)

    severity = SeverityCounts()
    for row in severity_rows:
        key = str(row.get("severity", "")).lower()
        if key in SeverityCounts.model_fields:
            setattr(severity, key, getattr(severity, key) + _int(row.get("count")))

    days = time_range.get("days")
    return OverviewMetrics(
        totals=OverviewTotals(
            findings=_int(totals.get("findings")),
            assets=_int(totals.get("assets")),
            services=_int(totals.get("services")),
        ),
        severity=severity,
        top_cwes=[WeaknessCount(id=r["id"], count=_int(r["count"])) for r in cwe_rows],
        top_owasp=[WeaknessCount(id=r["id"], count=_int(r["count"])) for r in owasp_rows],
        scanners=[
            ScannerCount(name=r["name"], findings=_int(r["findings"]))
            for r in scanner_rows
            if r.get("name")
        ],
        blast_radius=BlastRadius(
            max=_int(blast.get("max")),
            vulnerability_id=blast.get("vulnerability_id"),
            vulnerability_title=blast.get("title"),
        ),
        patch_status=PatchStatus(
            patchable=_int(patch.get("patchable")),
            without_patch=_int(patch.get("without_patch")),
        ),
        time_range=TimeRange(
            first_seen=time_range.get("first_seen"),
            last_seen=time_range.get("last_seen"),
            days=max(0, int(days)) if days is not None else None,
        ),
        ingestion_runs=[
            IngestionRunSummary(
                fingerprint=r.get("fingerprint") or "",
                findings=_int(r.get("findings")),
                created_at=r.get("created_at"),
                last_ingested_at=r.get("last_ingested_at"),
            )
            for r in run_rows
        ],
    )


async def fetch_findings(store: GraphStore, limit: int = DEFAULT_ROW_LIMIT) -> list[FindingRow]:
    async with store.session() as session:
        rows = await session.run(FINDINGS_QUERY, limit=limit)
    return [
        FindingRow(
            **{
                **row,
                "severity": row.get("severity") or "UNKNOWN",
                "blast_radius": _int(row.get("blast_radius")),
                "has_patch": bool(row.get("has_patch")),
            }
        )
        for row in rows
    ]


async def fetch_agent_edges(store: GraphStore, limit: int = DEFAULT_ROW_LIMIT) -> list[AgentEdgeRow]:
    """Relationships the graph agent added or enriched, with their provenance."""
    async with store.session() as session:
        rows = await session.run(AGENT_EDGES_QUERY, limit=limit)
    return [AgentEdgeRow.model_validate(row) for row in rows]
