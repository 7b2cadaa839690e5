"""CLI wrapper: summary output and exit codes (ingestion mocked)."""

import io
import unittest
from contextlib import redirect_stdout
from unittest.mock import AsyncMock, patch

from vulngraph.core.graph_store import GraphStoreError
from vulngraph.schemas.ingestion import IngestionResult
from vulngraph.scripts.ingest_findings import main
from vulngraph.services.ingestion import InvalidFindingsError


class TestIngestCli(unittest.TestCase):
    @patch("vulngraph.scripts.ingest_findings.ingest_findings_from_file", new_callable=AsyncMock)
    def test_success_prints_summary(self, mock_ingest: AsyncMock) -> None:
        mock_ingest.return_value = IngestionResult(findings=2, nodes_created=9, relationships_created=14)
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["findings.json", "--force"])
        self.assertEqual(code, 0)
        self.assertIn("Ingested 2 findings", out.getvalue())
        self.assertTrue(mock_ingest.call_args.kwargs["force"])

    @patch("vulngraph.scripts.ingest_findings.ingest_findings_from_file", new_callable=AsyncMock)
    def test_skip_exits_zero(self, mock_ingest: AsyncMock) -> None:
        mock_ingest.return_value = IngestionResult(findings=2, skipped=True, fingerprint="abc")
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["findings.json"])
        self.assertEqual(code, 0)
        self.assertIn("Skipped", out.getvalue())

    @patch("vulngraph.scripts.ingest_findings.ingest_findings_from_file", new_callable=AsyncMock)
    def test_input_and_store_failures_exit_one(self, mock_ingest: AsyncMock) -> None:
        for error in (InvalidFindingsError("Expected findings JSON array."), GraphStoreError("down")):
            mock_ingest.side_effect = error
            self.assertEqual(main(["findings.json"]), 1)
