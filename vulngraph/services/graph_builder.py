"""Build the base graph payload (nodes + edges) from a findings batch. Pure; no I/O."""

from typing import Any

from vulngraph.schemas.findings import FindingRecord
from vulngraph.schemas.graph import GraphEdge, GraphNode, GraphPayload, NodeRef

UNKNOWN_SERVICE = "unknown"
SOURCE_FILE_ASSET_TYPE = "source_file"


def derive_asset_id(finding: FindingRecord) -> str:
    """
    Stable asset key by priority: image, URL, path, then type + service.

    Two findings on the same image resolve to the same asset even when their URLs differ.
    """
    asset = finding.asset
    if asset.image:
        return f"image:{asset.image}"
    if asset.url:
        return asset.url
    if asset.path:
        return f"file:{asset.path}"
    return f"{asset.type}:{asset.service or UNKNOWN_SERVICE}"


def derive_vulnerability_id(finding: FindingRecord) -> str:
    """First present of CVE, CWE, OWASP; otherwise a placeholder from asset type and title."""
    vuln = finding.vulnerability
    for candidate in (vuln.cve_id, vuln.cwe_id, vuln.owasp_id):
        if candidate:
            return candidate
    return f"vuln:{finding.asset.type}:{vuln.title}"


def _merge_properties(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge; missing (None) values in the newer set never erase older ones."""
    merged = dict(existing)
    for key, value in incoming.items():
        if value is None and key in merged:
            continue
        merged[key] = value
    return merged


class _NodeSet:
    """Insertion-ordered node map keyed by (label, id)."""

    def __init__(self) -> None:
        self._nodes: dict[tuple[str, str], GraphNode] = {}

    def ensure(self, label: str, node_id: str, properties: dict[str, Any]) -> NodeRef:
        key = (label, node_id)
        existing = self._nodes.get(key)
        if existing is None:
            self._nodes[key] = GraphNode(label=label, id=node_id, properties=dict(properties))
        else:
            existing.properties = _merge_properties(existing.properties, properties)
        return NodeRef(label=label, id=node_id)

    def values(self) -> list[GraphNode]:
        return list(self._nodes.values())


def _edge(edge_type: str, from_ref: NodeRef, to_ref: NodeRef) -> GraphEdge:
    return GraphEdge(type=edge_type, from_=from_ref, to=to_ref)


def build_graph_payload(findings: list[FindingRecord]) -> GraphPayload:
    """
    Turn findings into nodes and base edges, deterministically.

    Per finding: Finding, Scan, Scanner, Vulnerability and Asset nodes, six base
    edges, then conditional Service/Cluster/Registry/Repository/SourceFile/Package
    nodes and edges when the corresponding asset or package field is present.
    """
    nodes = _NodeSet()
    edges: list[GraphEdge] = []

    for finding in findings:
        vuln = finding.vulnerability
        asset = finding.asset

        finding_ref = nodes.ensure(
            "Finding",
            finding.finding_id,
            {
                "finding_id": finding.finding_id,
                "scanner": finding.scanner,
                "scan_id": finding.scan_id,
                "timestamp": finding.timestamp,
                "severity": vuln.severity,
                "title": vuln.title,
                "vector": vuln.vector,
            },
        )
        scan_ref = nodes.ensure(
            "Scan",
            finding.scan_id,
            {"scanner": finding.scanner, "occurred_at": finding.timestamp},
        )
        scanner_ref = nodes.ensure("Scanner", finding.scanner, {"name": finding.scanner})
        vuln_ref = nodes.ensure(
            "Vulnerability",
            derive_vulnerability_id(finding),
            {
                "cve_id": vuln.cve_id,
                "cwe_id": vuln.cwe_id,
                "owasp_id": vuln.owasp_id,
                "severity": vuln.severity,
                "title": vuln.title,
                "description": vuln.description,
                "vector": vuln.vector,
            },
        )
        asset_ref = nodes.ensure(
            "Asset",
            derive_asset_id(finding),
            {
                "type": asset.type,
                "url": asset.url,
                "path": asset.path,
                "image": asset.image,
                "registry": asset.registry,
                "service": asset.service,
                "cluster": asset.cluster,
                "repo": asset.repo,
            },
        )

        edges.extend(
            [
                _edge("REPORTS", finding_ref, vuln_ref),
                _edge("FOUND_ON", finding_ref, asset_ref),
                _edge("GENERATED_BY", finding_ref, scanner_ref),
                _edge("PART_OF_SCAN", finding_ref, scan_ref),
                _edge("SCANNED_BY", scan_ref, scanner_ref),
                _edge("AFFECTS", vuln_ref, asset_ref),
            ]
        )

        if asset.service:
            service_ref = nodes.ensure("Service", asset.service, {"name": asset.service})
            edges.append(_edge("BELONGS_TO_SERVICE", asset_ref, service_ref))
            edges.append(_edge("IMPACTS_SERVICE", vuln_ref, service_ref))

        if asset.cluster:
            cluster_ref = nodes.ensure("Cluster", asset.cluster, {"name": asset.cluster})
            edges.append(_edge("DEPLOYED_ON", asset_ref, cluster_ref))

        if asset.registry:
            registry_ref = nodes.ensure("Registry", asset.registry, {"name": asset.registry})
            edges.append(_edge("PUBLISHED_TO", asset_ref, registry_ref))

        if asset.repo:
            repo_ref = nodes.ensure("Repository", asset.repo, {"url": asset.repo})
            edges.append(_edge("TRACKED_IN", asset_ref, repo_ref))

        if asset.type == SOURCE_FILE_ASSET_TYPE and asset.path:
            file_ref = nodes.ensure("SourceFile", asset.path, {"path": asset.path})
            edges.append(_edge("CONTAINS_FILE", asset_ref, file_ref))

        if finding.package:
            pkg = finding.package
            package_ref = nodes.ensure(
                "Package",
                pkg.package_id,
                {"ecosystem": pkg.ecosystem, "name": pkg.name, "version": pkg.version},
            )
            edges.append(_edge("USES_PACKAGE", asset_ref, package_ref))
            edges.append(_edge("ASSOCIATED_WITH", package_ref, vuln_ref))

    return GraphPayload(nodes=nodes.values(), edges=edges)
