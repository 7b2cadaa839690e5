"""Base graph construction: node identity, asset id priority, and conditional edges."""

import unittest

from vulngraph.schemas.findings import FindingRecord
from vulngraph.services.graph_builder import (
    build_graph_payload,
    derive_asset_id,
    derive_vulnerability_id,
)


def _finding(
    finding_id: str = "f-1",
    *,
    asset: dict | None = None,
    vulnerability: dict | None = None,
    package: dict | None = None,
    **kwargs: object,
) -> FindingRecord:
    """Build a minimal FindingRecord for tests."""
    data: dict = {
        "finding_id": finding_id,
        "scanner": "zap",
        "scan_id": "scan-1",
        "timestamp": "2024-05-01T10:00:00Z",
        "vulnerability": vulnerability
        or {"title": "SQL injection", "severity": "high", "cve_id": "CVE-2024-35689"},
        "asset": asset or {"type": "api_endpoint", "url": "https://api.example.com/login"},
    }
    if package is not None:
        data["package"] = package
    data.update(kwargs)
    return FindingRecord.model_validate(data)


def _edge_types(payload) -> list[str]:
    return [e.type for e in payload.edges]


class TestDeriveIds(unittest.TestCase):
    def test_image_wins_over_url(self) -> None:
        finding = _finding(
            asset={
                "type": "container_image",
                "image": "ghcr.io/acme/api:1.2",
                "url": "https://api.example.com",
            }
        )
        self.assertEqual(derive_asset_id(finding), "image:ghcr.io/acme/api:1.2")

    def test_url_then_path_then_type_and_service(self) -> None:
        self.assertEqual(
            derive_asset_id(_finding(asset={"type": "web_route", "url": "https://x/y"})),
            "https://x/y",
        )
        self.assertEqual(
            derive_asset_id(_finding(asset={"type": "source_file", "path": "src/app.py"})),
            "file:src/app.py",
        )
        self.assertEqual(
            derive_asset_id(_finding(asset={"type": "lambda", "service": "billing"})),
            "lambda:billing",
        )
        self.assertEqual(derive_asset_id(_finding(asset={"type": "lambda"})), "lambda:unknown")

    def test_vulnerability_id_prefers_cve_then_cwe_then_owasp(self) -> None:
        self.assertEqual(
            derive_vulnerability_id(
                _finding(vulnerability={"title": "t", "severity": "LOW", "cwe_id": "CWE-79", "owasp_id": "A03"})
            ),
            "CWE-79",
        )
        self.assertEqual(
            derive_vulnerability_id(_finding(vulnerability={"title": "t", "severity": "LOW", "owasp_id": "A03"})),
            "A03",
        )

    def test_vulnerability_fallback_uses_asset_type_and_title(self) -> None:
        finding = _finding(vulnerability={"title": "Open redirect", "severity": "LOW"})
        self.assertEqual(derive_vulnerability_id(finding), "vuln:api_endpoint:Open redirect")


class TestBuildGraphPayload(unittest.TestCase):
    def test_six_base_edges_for_minimal_finding(self) -> None:
        payload = build_graph_payload([_finding()])
        self.assertEqual(
            _edge_types(payload),
            ["REPORTS", "FOUND_ON", "GENERATED_BY", "PART_OF_SCAN", "SCANNED_BY", "AFFECTS"],
        )
        labels = [n.label for n in payload.nodes]
        self.assertEqual(labels, ["Finding", "Scan", "Scanner", "Vulnerability", "Asset"])

    def test_deterministic_for_same_input(self) -> None:
        findings = [
            _finding("f-1", asset={"type": "api_endpoint", "url": "https://a", "service": "auth"}),
            _finding("f-2", asset={"type": "container_image", "image": "img:1", "cluster": "prod"}),
        ]
        first = build_graph_payload(findings)
        second = build_graph_payload(findings)
        self.assertEqual(first.model_dump(), second.model_dump())

    def test_id_less_vulnerability_with_package_is_still_associated(self) -> None:
        finding = _finding(
            vulnerability={"title": "Weak hash", "severity": "MEDIUM"},
            package={"ecosystem": "pypi", "name": "md5lib", "version": "1.0"},
        )
        payload = build_graph_payload([finding])
        self.assertIn("USES_PACKAGE", _edge_types(payload))
        associated = [e for e in payload.edges if e.type == "ASSOCIATED_WITH"]
        self.assertEqual(len(associated), 1)
        self.assertEqual(associated[0].from_.id, "pypi:md5lib@1.0")
        self.assertEqual(associated[0].to.id, "vuln:api_endpoint:Weak hash")

    def test_id_less_vulnerability_without_package_gets_fallback_node_only(self) -> None:
        finding = _finding(vulnerability={"title": "Weak hash", "severity": "MEDIUM"})
        payload = build_graph_payload([finding])
        vulns = [n for n in payload.nodes if n.label == "Vulnerability"]
        self.assertEqual([n.id for n in vulns], ["vuln:api_endpoint:Weak hash"])
        self.assertEqual(vulns[0].properties["title"], "Weak hash")
        self.assertNotIn("ASSOCIATED_WITH", _edge_types(payload))
        self.assertNotIn("Package", [n.label for n in payload.nodes])
        reports = [e for e in payload.edges if e.type == "REPORTS"]
        self.assertEqual(reports[0].to.id, "vuln:api_endpoint:Weak hash")

    def test_timestamp_is_stored_in_canonical_iso_form(self) -> None:
        payload = build_graph_payload([_finding(timestamp="2024-05-01 10:00:00")])
        finding_node = next(n for n in payload.nodes if n.label == "Finding")
        scan_node = next(n for n in payload.nodes if n.label == "Scan")
        self.assertEqual(finding_node.properties["timestamp"], "2024-05-01T10:00:00+00:00")
        self.assertEqual(scan_node.properties["occurred_at"], "2024-05-01T10:00:00+00:00")

    def test_package_with_cve_links_package_to_vulnerability(self) -> None:
        finding = _finding(package={"ecosystem": "npm", "name": "lodash", "version": "4.17.20"})
        payload = build_graph_payload([finding])
        associated = [e for e in payload.edges if e.type == "ASSOCIATED_WITH"]
        self.assertEqual(len(associated), 1)
        self.assertEqual(associated[0].from_.id, "npm:lodash@4.17.20")
        self.assertEqual(associated[0].to.id, "CVE-2024-35689")

    def test_conditional_asset_edges(self) -> None:
        finding = _finding(
            asset={
                "type": "source_file",
                "path": "src/db.py",
                "service": "billing",
                "cluster": "prod-eu",
                "registry": "ghcr.io",
                "repository": "github.com/acme/billing",
            }
        )
        types = _edge_types(build_graph_payload([finding]))
        for expected in (
            "BELONGS_TO_SERVICE",
            "IMPACTS_SERVICE",
            "DEPLOYED_ON",
            "PUBLISHED_TO",
            "TRACKED_IN",
            "CONTAINS_FILE",
        ):
            self.assertIn(expected, types)

    def test_shared_nodes_are_merged(self) -> None:
        findings = [
            _finding("f-1", asset={"type": "container_image", "image": "img:1", "url": "https://a"}),
            _finding("f-2", asset={"type": "container_image", "image": "img:1", "url": "https://b"}),
        ]
        payload = build_graph_payload(findings)
        assets = [n for n in payload.nodes if n.label == "Asset"]
        self.assertEqual(len(assets), 1)
        self.assertEqual(assets[0].id, "image:img:1")
        self.assertEqual(len([n for n in payload.nodes if n.label == "Finding"]), 2)

    def test_missing_value_does_not_erase_existing_property(self) -> None:
        findings = [
            _finding("f-1", asset={"type": "container_image", "image": "img:1", "service": "auth"}),
            _finding("f-2", asset={"type": "container_image", "image": "img:1"}),
        ]
        payload = build_graph_payload(findings)
        asset = next(n for n in payload.nodes if n.label == "Asset")
        self.assertEqual(asset.properties["service"], "auth")
