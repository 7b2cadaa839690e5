"""Pydantic schemas for the read-only graph endpoints (overview, findings, agent edges)."""

from pydantic import BaseModel, Field


class OverviewTotals(BaseModel):
    findings: int = 0
    assets: int = 0
    services: int = 0


class SeverityCounts(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class WeaknessCount(BaseModel):
    id: str
    count: int


class ScannerCount(BaseModel):
    name: str
    findings: int


class BlastRadius(BaseModel):
    """Vulnerability that affects the most distinct assets."""

    max: int = 0
    vulnerability_id: str | None = None
    vulnerability_title: str | None = None


class PatchStatus(BaseModel):
    patchable: int = 0
    without_patch: int = 0


class TimeRange(BaseModel):
    first_seen: str | None = None
    last_seen: str | None = None
    days: int | None = None


class IngestionRunSummary(BaseModel):
    fingerprint: str
    findings: int = 0
    created_at: str | None = None
    last_ingested_at: str | None = None


class OverviewMetrics(BaseModel):
    totals: OverviewTotals = Field(default_factory=OverviewTotals)
    severity: SeverityCounts = Field(default_factory=SeverityCounts)
    top_cwes: list[WeaknessCount] = Field(default_factory=list)
    top_owasp: list[WeaknessCount] = Field(default_factory=list)
    scanners: list[ScannerCount] = Field(default_factory=list)
    blast_radius: BlastRadius = Field(default_factory=BlastRadius)
    patch_status: PatchStatus = Field(default_factory=PatchStatus)
    time_range: TimeRange = Field(default_factory=TimeRange)
    ingestion_runs: list[IngestionRunSummary] = Field(default_factory=list)


class FindingRow(BaseModel):
    id: str
    severity: str = "UNKNOWN"
    title: str | None = None
    asset_id: str | None = None
    asset_type: str | None = None
    asset_url: str | None = None
    service: str | None = None
    scanner: str | None = None
    cve_id: str | None = None
    cwe_id: str | None = None
    owasp_id: str | None = None
    vector: str | None = None
    scan_id: str | None = None
    timestamp: str | None = None
    blast_radius: int = 0
    has_patch: bool = False


class AgentEdgeRow(BaseModel):
    """A persisted relationship that came from, or was enriched by, the graph agent."""

    type: str
    from_label: str
    from_id: str
    to_label: str
    to_id: str
    provenance: str
    agent_source: str | None = None
    agent_provenance: str | None = None
    enriched: bool = False
    rationale: str | None = None
