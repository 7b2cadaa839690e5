"""Graph endpoints: ingest findings (JSON body or file) and read the resulting graph."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, UploadFile

from vulngraph.core.config import get_settings
from vulngraph.core.graph_store import GraphStore, GraphStoreConfigError, GraphStoreError, get_graph_store
from vulngraph.schemas.findings import FindingRecord
from vulngraph.schemas.ingestion import IngestionResult
from vulngraph.schemas.overview import AgentEdgeRow, FindingRow, OverviewMetrics
from vulngraph.services.graph_queries import fetch_agent_edges, fetch_findings, fetch_overview_metrics
from vulngraph.services.ingestion import IngestionInputError, ingest_findings, parse_findings

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_UPLOAD_FILE_BYTES = 50 * 1024 * 1024  # 50 MB


def _is_upload_file(obj: object) -> bool:
    """True if obj is an uploaded file (UploadFile or file-like with filename and read)."""
    if isinstance(obj, UploadFile):
        return True
    return (
        hasattr(obj, "read")
        and callable(getattr(obj, "read", None))
        and hasattr(obj, "filename")
    )


def _parse(data: object) -> list[FindingRecord]:
    try:
        return parse_findings(data, max_findings=get_settings().MAX_FINDINGS_PER_REQUEST)
    except IngestionInputError as e:
        detail = e.errors or e.message
        raise HTTPException(status_code=422, detail=detail) from e


def _store_unavailable(e: GraphStoreError) -> HTTPException:
    if isinstance(e, GraphStoreConfigError):
        return HTTPException(status_code=503, detail=e.message)
    logger.error("Graph store request failed: %s", e.message)
    return HTTPException(status_code=503, detail="Graph store unavailable.")


async def _get_findings_from_request(request: Request) -> list[FindingRecord]:
    """Read request body or uploaded file and return validated findings."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == "application/json":
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HTTPException(status_code=422, detail=f"Invalid JSON: {e!s}") from e
        return _parse(body)
    if content_type == "multipart/form-data":
        form = await request.form()
        file = form.get("file")
        if file is None or not _is_upload_file(file):
            file = next(
                (v for v in form.values() if _is_upload_file(v)),
                None,
            )
        if file is None or not _is_upload_file(file):
            raise HTTPException(
                status_code=422,
                detail="Missing findings upload. Expecting a file field named 'file'.",
            )
        content = await file.read()
        if len(content) > MAX_UPLOAD_FILE_BYTES:
            raise HTTPException(
                status_code=422,
                detail=f"File size must not exceed {MAX_UPLOAD_FILE_BYTES // (1024*1024)} MB.",
            )
        try:
            data = json.loads(content.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HTTPException(
                status_code=422, detail="Uploaded file is not valid JSON."
            ) from e
        if not isinstance(data, list):
            raise HTTPException(status_code=422, detail="Expected findings JSON array.")
        return _parse(data)
    raise HTTPException(
        status_code=415,
        detail="Content-Type must be application/json or multipart/form-data.",
    )


@router.post("/ingest", response_model=IngestionResult)
async def post_ingest(
    request: Request,
    store: Annotated[GraphStore, Depends(get_graph_store)],
    force: bool = Query(default=False, description="Ingest even if this exact batch was seen."),
) -> IngestionResult:
    """
    Build the findings graph, enrich it with agent relationships, and write it to Neo4j.

    - **JSON body**: `Content-Type: application/json` with a findings array or a single finding.
    - **File upload**: `multipart/form-data` with a `file` field holding a findings JSON array.

    A batch identical to one already ingested returns `skipped=true` without writing.
    """
    findings = await _get_findings_from_request(request)
    try:
        return await ingest_findings(findings, store=store, settings=get_settings(), force=force)
    except IngestionInputError as e:
        raise HTTPException(status_code=422, detail=e.message) from e
    except GraphStoreError as e:
        raise _store_unavailable(e) from e


@router.get("/overview", response_model=OverviewMetrics)
async def get_overview(
    store: Annotated[GraphStore, Depends(get_graph_store)],
) -> OverviewMetrics:
    """Totals, severity split, top weaknesses, scanners, blast radius, and recent ingestion runs."""
    try:
        return await fetch_overview_metrics(store)
    except GraphStoreError as e:
        raise _store_unavailable(e) from e


@router.get("/findings", response_model=list[FindingRow])
async def get_findings(
    store: Annotated[GraphStore, Depends(get_graph_store)],
    limit: int = Query(default=500, ge=1, le=5000),
) -> list[FindingRow]:
    """Findings ordered by severity then most recent first."""
    try:
        return await fetch_findings(store, limit=limit)
    except GraphStoreError as e:
        raise _store_unavailable(e) from e


@router.get("/agent-edges", response_model=list[AgentEdgeRow])
async def get_agent_edges(
    store: Annotated[GraphStore, Depends(get_graph_store)],
    limit: int = Query(default=500, ge=1, le=5000),
) -> list[AgentEdgeRow]:
    try:
        return await fetch_agent_edges(store, limit=limit)
    except GraphStoreError as e:
        raise _store_unavailable(e) from e
