"""
CLI entrypoint for ingesting a findings JSON file into the graph:

  python -m vulngraph.scripts.ingest_findings findings.json
  python -m vulngraph.scripts.ingest_findings findings.json --force

Exits 0 on success (including an already-ingested batch), 1 on input or store failure.
"""

from dotenv import load_dotenv

load_dotenv()

import argparse
import asyncio
import logging
import sys

from vulngraph.core.config import get_settings
from vulngraph.core.graph_store import GraphStoreError
from vulngraph.services.ingestion import IngestionInputError, ingest_findings_from_file

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest a findings JSON array into Neo4j.")
    parser.add_argument("file", help="Path to a JSON file containing an array of findings.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ingest even if an identical batch was already ingested.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Ingest one file and print a one-line summary."""
    args = _parse_args(argv)
    settings = get_settings()
    try:
        result = asyncio.run(
            ingest_findings_from_file(args.file, settings=settings, force=args.force)
        )
    except FileNotFoundError:
        logger.error("Findings file not found: %s", args.file)
        return 1
    except IngestionInputError as e:
        logger.error("Invalid findings input: %s", e.message)
        return 1
    except GraphStoreError as e:
        logger.error("Graph store failure: %s", e.message)
        return 1

    if result.skipped:
        print(f"Skipped: batch already ingested (fingerprint={result.fingerprint}).")
    else:
        print(
            f"Ingested {result.findings} findings -> "
            f"{result.nodes_created} nodes, {result.relationships_created} relationships "
            f"(agent applied {result.agent_suggestions_applied}, "
            f"dropped {result.agent_suggestions_dropped})."
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
