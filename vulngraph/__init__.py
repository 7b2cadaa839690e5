"""Security findings knowledge graph: build, enrich, and persist scanner findings in Neo4j."""

__version__ = "0.1.0"
