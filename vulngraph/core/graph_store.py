"""Neo4j connection and session management.

The store owns one async driver, created on first use and released by ``close()``.
Callers open a session per batch of work with ``async with store.session()``; the
session is always closed on exit, including when the work raises.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import Request
from neo4j import AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

if TYPE_CHECKING:
    from neo4j import AsyncDriver, AsyncManagedTransaction, AsyncSession

    from vulngraph.core.config import Settings

logger = logging.getLogger(__name__)


class GraphStoreError(Exception):
    """Raised when a query against the graph store fails (unreachable, auth, or Cypher error)."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class GraphStoreConfigError(GraphStoreError):
    """Raised when the store is used without connection settings."""


class GraphSession:
    """Thin wrapper over a driver session returning plain dict rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def run(self, query: str, **params: Any) -> list[dict[str, Any]]:
        """Run a read (auto-commit) query and return all rows."""
        try:
            result = await self._session.run(query, params)
            return await result.data()
        except (Neo4jError, DriverError) as e:
            raise GraphStoreError(f"Graph query failed: {e}", cause=e) from e

    async def write(self, query: str, **params: Any) -> list[dict[str, Any]]:
        """Run a write query in its own managed transaction and return all rows."""

        async def _work(tx: AsyncManagedTransaction) -> list[dict[str, Any]]:
            result = await tx.run(query, params)
            return await result.data()

        try:
            return await self._session.execute_write(_work)
        except (Neo4jError, DriverError) as e:
            raise GraphStoreError(f"Graph write failed: {e}", cause=e) from e


class GraphStore:
    """Explicitly owned Neo4j handle; pass it to the services that need the graph."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._driver: AsyncDriver | None = None

    @property
    def database(self) -> str:
        return self._settings.NEO4J_DATABASE

    def _get_driver(self) -> AsyncDriver:
        if self._driver is not None:
            return self._driver
        password = self._settings.NEO4J_PASSWORD
        if password is None or not password.get_secret_value().strip():
            raise GraphStoreConfigError(
                "Neo4j configuration missing. Set NEO4J_URI, NEO4J_USERNAME, and NEO4J_PASSWORD."
            )
        try:
            self._driver = AsyncGraphDatabase.driver(
                self._settings.NEO4J_URI,
                auth=(self._settings.NEO4J_USERNAME, password.get_secret_value()),
            )
        except (DriverError, ValueError) as e:
            raise GraphStoreConfigError(f"Invalid Neo4j configuration: {e}", cause=e) from e
        logger.info("Created Neo4j driver for %s", self._settings.NEO4J_URI)
        return self._driver

    @asynccontextmanager
    async def session(self) -> AsyncIterator[GraphSession]:
        """Open a session for one batch of queries and close it when done."""
        driver = self._get_driver()
        raw = driver.session(database=self.database)
        try:
            yield GraphSession(raw)
        finally:
            await raw.close()

    async def verify_connectivity(self) -> bool:
        """Return True if the store answers a trivial query."""
        try:
            async with self.session() as s:
                await s.run("RETURN 1 AS ok")
            return True
        except GraphStoreError:
            return False

    async def close(self) -> None:
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Closed Neo4j driver")


def get_graph_store(request: Request) -> GraphStore:
    """Dependency returning the application's GraphStore (created in the app lifespan)."""
    return request.app.state.graph_store
