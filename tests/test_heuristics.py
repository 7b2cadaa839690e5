"""Heuristic relationship suggestions: shared service, shared CVE, and scan co-occurrence."""

import unittest

from vulngraph.schemas.findings import FindingRecord
from vulngraph.services.heuristics import (
    HEURISTIC_PROVENANCE,
    co_occurrence_edges,
    heuristic_suggestions,
    shared_service_edges,
)


def _finding(
    finding_id: str,
    timestamp: str = "2024-05-01T10:00:00Z",
    scan_id: str = "scan-1",
    cve_id: str | None = "CVE-2024-35689",
    service: str | None = None,
) -> FindingRecord:
    asset: dict = {"type": "api_endpoint", "url": f"https://api.example.com/{finding_id}"}
    if service:
        asset["service"] = service
    return FindingRecord.model_validate(
        {
            "finding_id": finding_id,
            "scanner": "zap",
            "scan_id": scan_id,
            "timestamp": timestamp,
            "vulnerability": {"title": "XSS", "severity": "HIGH", "cve_id": cve_id},
            "asset": asset,
        }
    )


class TestHeuristicSuggestions(unittest.TestCase):
    def test_same_scan_same_cve_scenario(self) -> None:
        findings = [
            _finding("f-1", timestamp="2024-05-01T10:00:00Z"),
            _finding("f-2", timestamp="2024-05-01T10:10:00Z"),
        ]
        suggestions = heuristic_suggestions(findings)
        self.assertEqual([s.type for s in suggestions], ["SHARED_CVE", "CO_OCCURS"])

        shared_cve, co_occurs = suggestions
        self.assertEqual(shared_cve.properties["cve"], "CVE-2024-35689")
        self.assertEqual((shared_cve.from_.id, shared_cve.to.id), ("f-1", "f-2"))
        self.assertEqual(co_occurs.properties["delta_minutes"], 10)
        self.assertEqual(co_occurs.properties["scan_id"], "scan-1")
        for s in suggestions:
            self.assertEqual(s.properties["provenance"], HEURISTIC_PROVENANCE)
            self.assertEqual(s.from_.label, "Finding")
            self.assertTrue(s.rationale)

    def test_co_occurrence_orders_by_timestamp(self) -> None:
        findings = [
            _finding("late", timestamp="2024-05-01T11:00:00Z", cve_id=None),
            _finding("early", timestamp="2024-05-01T10:00:00Z", cve_id=None),
            _finding("mid", timestamp="2024-05-01T10:30:00+00:00", cve_id=None),
        ]
        edges = co_occurrence_edges(findings)
        self.assertEqual([(e.from_.id, e.to.id) for e in edges], [("early", "mid"), ("mid", "late")])
        self.assertEqual([e.properties["delta_minutes"] for e in edges], [30, 30])

    def test_single_finding_groups_produce_nothing(self) -> None:
        findings = [
            _finding("f-1", scan_id="scan-a", cve_id="CVE-1", service="auth"),
            _finding("f-2", scan_id="scan-b", cve_id="CVE-2", service="billing"),
        ]
        self.assertEqual(heuristic_suggestions(findings), [])

    def test_shared_service_pairs_every_member(self) -> None:
        findings = [_finding(f"f-{i}", scan_id=f"s-{i}", cve_id=None, service="auth") for i in range(4)]
        edges = shared_service_edges(findings)
        self.assertEqual(len(edges), 6)
        self.assertTrue(all(e.properties["service"] == "auth" for e in edges))

    def test_large_group_is_capped(self) -> None:
        findings = [_finding(f"f-{i}", scan_id=f"s-{i}", cve_id=None, service="auth") for i in range(5)]
        with self.assertLogs("vulngraph.services.heuristics", level="WARNING"):
            edges = shared_service_edges(findings, max_group=3)
        self.assertEqual(len(edges), 3)

    def test_repeated_finding_id_never_pairs_with_itself(self) -> None:
        findings = [
            _finding("dup", timestamp="2024-05-01T10:00:00Z", service="auth"),
            _finding("dup", timestamp="2024-05-01T10:05:00Z", service="auth"),
            _finding("other", timestamp="2024-05-01T10:10:00Z", service="auth"),
        ]
        suggestions = heuristic_suggestions(findings)
        self.assertTrue(suggestions)
        for s in suggestions:
            self.assertNotEqual(s.from_.id, s.to.id)
        self.assertEqual(
            [(s.type, s.from_.id, s.to.id) for s in suggestions],
            [
                ("SHARED_SERVICE", "dup", "other"),
                ("SHARED_SERVICE", "dup", "other"),
                ("SHARED_CVE", "dup", "other"),
                ("SHARED_CVE", "dup", "other"),
                ("CO_OCCURS", "dup", "other"),
            ],
        )
