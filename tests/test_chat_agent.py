"""Chat analysis plan: retrieval fallback, ranking, relationship digest, and template answers."""

import asyncio
import json
import unittest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

from vulngraph.core.config import Settings
from vulngraph.core.graph_store import GraphStoreError
from vulngraph.schemas.chat import ChatAgentFinding, ChatAgentInsight
from vulngraph.services.chat_agent import (
    ENRICHED_RELATIONSHIPS_QUERY,
    KEYWORD_FINDINGS_QUERY,
    TOP_FINDINGS_QUERY,
    extract_keywords,
    merge_insights,
    rank_findings,
    run_chat_agent,
)

ROWS = [
    {"id": "f-low", "title": "Verbose header", "severity": "LOW", "service": "web", "timestamp": "2024-05-02T10:00:00Z"},
    {"id": "f-crit", "title": "SQL injection", "severity": "CRITICAL", "service": "auth", "timestamp": "2024-05-01T10:00:00Z"},
]


def _settings(**overrides: object) -> Settings:
    values: dict = {"LITELLM_BASE_URL": None, "LITELLM_API_KEY": None}
    values.update(overrides)
    return Settings(**values)


class _FakeSession:
    def __init__(self, keyword_rows=None, top_rows=None, relationship_rows=None, fail=False) -> None:
        self.rows = {
            KEYWORD_FINDINGS_QUERY: keyword_rows or [],
            TOP_FINDINGS_QUERY: top_rows or [],
            ENRICHED_RELATIONSHIPS_QUERY: relationship_rows or [],
        }
        self.fail = fail
        self.queries: list[tuple[str, dict]] = []

    async def run(self, query: str, **params: object) -> list[dict]:
        if self.fail:
            raise GraphStoreError("Graph query failed: connection refused")
        self.queries.append((query, params))
        return self.rows.get(query, [])


class _FakeStore:
    def __init__(self, session: _FakeSession) -> None:
        self._session = session

    @asynccontextmanager
    async def session(self):
        yield self._session


class TestHelpers(unittest.TestCase):
    def test_keywords(self) -> None:
        self.assertEqual(
            extract_keywords("Which CRITICAL findings affect the auth-service API?"),
            ["which", "critical", "affect", "auth", "service"],
        )

    def test_rank_by_severity_then_recency(self) -> None:
        findings = [
            ChatAgentFinding(id="a", severity="HIGH", timestamp="2024-05-01T00:00:00Z"),
            ChatAgentFinding(id="b", severity="HIGH", timestamp="2024-06-01T00:00:00Z"),
            ChatAgentFinding(id="c", severity="CRITICAL", timestamp="2023-01-01T00:00:00Z"),
        ]
        self.assertEqual([f.id for f in rank_findings(findings, 5)], ["c", "b", "a"])

    def test_merge_insights_by_title(self) -> None:
        merged = merge_insights(
            [ChatAgentInsight(title="T", detail="old", citations=["a"])],
            [ChatAgentInsight(title="T", detail="", citations=["a", "b"])],
        )
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].detail, "old")
        self.assertEqual(merged[0].citations, ["a", "b"])


class TestRunChatAgent(unittest.TestCase):
    def test_empty_question_has_no_steps(self) -> None:
        result = asyncio.run(
            run_chat_agent("   ", store=_FakeStore(_FakeSession()), settings=_settings())
        )
        self.assertEqual(result.steps, [])
        self.assertIn("need a question", result.answer)

    def test_keyword_retrieval_ranking_and_fallback_answer(self) -> None:
        session = _FakeSession(
            keyword_rows=ROWS,
            relationship_rows=[
                {
                    "fromId": "f-crit",
                    "type": "SHARED_CVE",
                    "source": "heuristic",
                    "rationale": "Both findings reference CVE-2024-35689.",
                    "toId": "f-low",
                    "toTitle": "Verbose header",
                }
            ],
        )
        result = asyncio.run(
            run_chat_agent("critical injection issues", store=_FakeStore(session), settings=_settings())
        )

        self.assertEqual(
            [s.tool for s in result.steps],
            ["graph-retrieval", "risk-ranking", "relationship-digest", "answer-synthesis"],
        )
        self.assertTrue(all(not s.failed for s in result.steps))
        self.assertEqual([f.id for f in result.findings], ["f-low", "f-crit"])
        self.assertTrue(result.insights[0].title.startswith("Priority 1: SQL injection"))
        self.assertTrue(any(i.title.startswith("SHARED_CVE") for i in result.insights))
        self.assertIn('I found 2 finding(s) relevant to "critical injection issues"', result.answer)
        self.assertIn("SQL injection on auth", result.answer)
        self.assertEqual(result.citations, ["f-low", "f-crit"])

        keyword_params = next(p for q, p in session.queries if q == KEYWORD_FINDINGS_QUERY)
        self.assertEqual(keyword_params["keywords"], ["critical", "injection", "issues"])

    def test_falls_back_to_top_findings_when_no_keyword_hits(self) -> None:
        session = _FakeSession(top_rows=ROWS[1:])
        result = asyncio.run(
            run_chat_agent("why?", store=_FakeStore(session), settings=_settings())
        )
        self.assertEqual([f.id for f in result.findings], ["f-crit"])
        self.assertEqual(
            [q for q, _ in session.queries][:1],
            [TOP_FINDINGS_QUERY],
        )

    def test_store_failure_is_recorded_not_raised(self) -> None:
        result = asyncio.run(
            run_chat_agent(
                "critical issues", store=_FakeStore(_FakeSession(fail=True)), settings=_settings()
            )
        )
        self.assertTrue(result.steps[0].failed)
        self.assertEqual(result.findings, [])
        self.assertIn("could not locate findings", result.answer)

    @patch("vulngraph.services.chat_agent.chat_completion_json", new_callable=AsyncMock)
    def test_llm_answer_is_used_when_configured(self, mock_completion: AsyncMock) -> None:
        mock_completion.return_value = {"answer": "Patch auth first.", "citations": ["f-crit"]}
        settings = _settings(LITELLM_BASE_URL="http://litellm:4000", LITELLM_API_KEY="k")
        result = asyncio.run(
            run_chat_agent(
                "critical issues",
                store=_FakeStore(_FakeSession(keyword_rows=ROWS)),
                settings=settings,
                model="chat-override",
            )
        )
        self.assertEqual(result.answer, "Patch auth first.")
        self.assertIn("f-crit", result.citations)
        kwargs = mock_completion.call_args.kwargs
        self.assertEqual(kwargs["model"], "chat-override")
        self.assertEqual(kwargs["temperature"], settings.CHAT_AGENT_TEMPERATURE)
        self.assertEqual(json.loads(kwargs["user_content"])["question"], "critical issues")
