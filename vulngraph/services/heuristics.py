"""Deterministic relationship suggestions from co-occurrence rules (shared service, shared CVE, scan window)."""

import logging
from collections import defaultdict
from collections.abc import Callable

from vulngraph.schemas.findings import FindingRecord
from vulngraph.schemas.graph import AgentEdgeSuggestion, SuggestedEndpoint

logger = logging.getLogger(__name__)

HEURISTIC_AGENT_SOURCE = "heuristic"
HEURISTIC_PROVENANCE = "agent_heuristic"
DEFAULT_MAX_PAIRWISE_GROUP = 200


def _finding_endpoint(finding: FindingRecord) -> SuggestedEndpoint:
    return SuggestedEndpoint(label="Finding", id=finding.finding_id)


def _group_by(
    findings: list[FindingRecord],
    key: Callable[[FindingRecord], str | None],
) -> dict[str, list[FindingRecord]]:
    """Group findings by key in first-seen order; findings with no key are skipped."""
    groups: defaultdict[str, list[FindingRecord]] = defaultdict(list)
    for finding in findings:
        value = key(finding)
        if value:
            groups[value].append(finding)
    return groups


def _pairwise(
    edge_type: str,
    property_name: str,
    groups: dict[str, list[FindingRecord]],
    rationale: Callable[[str], str],
    max_group: int,
) -> list[AgentEdgeSuggestion]:
    """One edge per pair (i < j) within each group. Quadratic in group size, so groups are capped."""
    suggestions: list[AgentEdgeSuggestion] = []
    for value, members in groups.items():
        if len(members) < 2:
            continue
        if len(members) > max_group:
            logger.warning(
                "Heuristic %s group %r has %s findings; pairing only the first %s",
                edge_type,
                value,
                len(members),
                max_group,
            )
            members = members[:max_group]
        for i in range(len(members)):
            for j in range(i + 1, len(members)):
                # Repeated finding ids collapse to one node; no self-loops.
                if members[i].finding_id == members[j].finding_id:
                    continue
                suggestions.append(
                    AgentEdgeSuggestion(
                        type=edge_type,
                        from_=_finding_endpoint(members[i]),
                        to=_finding_endpoint(members[j]),
                        properties={
                            property_name: value,
                            "agent_source": HEURISTIC_AGENT_SOURCE,
                            "provenance": HEURISTIC_PROVENANCE,
                        },
                        rationale=rationale(value),
                    )
                )
    return suggestions


def shared_service_edges(
    findings: list[FindingRecord],
    max_group: int = DEFAULT_MAX_PAIRWISE_GROUP,
) -> list[AgentEdgeSuggestion]:
    groups = _group_by(findings, lambda f: f.asset.service)
    return _pairwise(
        "SHARED_SERVICE",
        "service",
        groups,
        lambda service: f"Both findings impact service {service}.",
        max_group,
    )


def shared_cve_edges(
    findings: list[FindingRecord],
    max_group: int = DEFAULT_MAX_PAIRWISE_GROUP,
) -> list[AgentEdgeSuggestion]:
    groups = _group_by(findings, lambda f: f.vulnerability.cve_id)
    return _pairwise(
        "SHARED_CVE",
        "cve",
        groups,
        lambda cve: f"Both findings reference {cve}.",
        max_group,
    )


def co_occurrence_edges(findings: list[FindingRecord]) -> list[AgentEdgeSuggestion]:
    """
    Chain findings of the same scan in timestamp order: one edge per adjacent pair.

    A chain (not a clique) keeps the edge count at group size - 1.
    """
    suggestions: list[AgentEdgeSuggestion] = []
    for scan_id, members in _group_by(findings, lambda f: f.scan_id).items():
        if len(members) < 2:
            continue
        # sorted() is stable: equal timestamps keep input order.
        ordered = sorted(members, key=lambda f: f.occurred_at)
        for current, nxt in zip(ordered, ordered[1:]):
            if current.finding_id == nxt.finding_id:
                continue
            delta = nxt.occurred_at - current.occurred_at
            suggestions.append(
                AgentEdgeSuggestion(
                    type="CO_OCCURS",
                    from_=_finding_endpoint(current),
                    to=_finding_endpoint(nxt),
                    properties={
                        "scan_id": scan_id,
                        "delta_minutes": round(delta.total_seconds() / 60),
                        "agent_source": HEURISTIC_AGENT_SOURCE,
                        "provenance": HEURISTIC_PROVENANCE,
                    },
                    rationale=f"Findings discovered in scan {scan_id} within the same run.",
                )
            )
    return suggestions


def heuristic_suggestions(
    findings: list[FindingRecord],
    max_group: int = DEFAULT_MAX_PAIRWISE_GROUP,
) -> list[AgentEdgeSuggestion]:
    """All heuristic suggestions: SHARED_SERVICE, then SHARED_CVE, then CO_OCCURS."""
    return [
        *shared_service_edges(findings, max_group),
        *shared_cve_edges(findings, max_group),
        *co_occurrence_edges(findings),
    ]
