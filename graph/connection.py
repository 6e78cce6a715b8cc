"""
Neo4j connection manager for graphmeta.

This module provides a connection manager for Neo4j with
automatic retry, error handling, and context manager support.
"""

import time
from typing import Any, Callable, Dict, Iterator, List, Optional

from neo4j import GraphDatabase
from neo4j.exceptions import AuthError, ServiceUnavailable

from utils.logger import get_logger

logger = get_logger(__name__)


class Neo4jConnection:
    """
    Neo4j connection manager with retry and error handling.

    This class provides a connection to Neo4j with:
    - Automatic retry on connection failures
    - Context manager support for safe resource handling
    - Read queries returned eagerly or streamed record by record
    - Write transactions that report counters or return records

    Example:
        >>> with Neo4jConnection(uri, user, password) as conn:
        ...     result = conn.execute_query("MATCH (n) RETURN count(n) AS count")
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str = "neo4j",
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize Neo4j connection.

        Args:
            uri: Neo4j connection URI (e.g., 'bolt://localhost:7687')
            user: Username for authentication
            password: Password for authentication
            database: Database used by every query on this connection
            max_retries: Maximum number of connection retry attempts
            retry_delay: Delay between retries in seconds
        """
        self.uri = uri
        self.user = user
        self.password = password
        self.database = database
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.driver = None
        self._connected = False

    def connect(self) -> bool:
        """
        Establish connection to Neo4j with retry logic.

        Returns:
            True if connection successful

        Raises:
            AuthError: If authentication fails
            ServiceUnavailable: If Neo4j is not reachable after retries
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Connecting to Neo4j at {self.uri} (attempt {attempt + 1}/{self.max_retries})")

                self.driver = GraphDatabase.driver(
                    self.uri,
                    auth=(self.user, self.password),
                )
                self.driver.verify_connectivity()

                self._connected = True
                logger.info("Successfully connected to Neo4j")
                return True

            except AuthError as e:
                logger.error(f"Authentication failed: {e}")
                raise

            except ServiceUnavailable as e:
                logger.warning(f"Neo4j unavailable (attempt {attempt + 1}/{self.max_retries}): {e}")

                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay)
                else:
                    logger.error("Max retries reached. Neo4j is not available.")
                    raise

        return False

    def close(self):
        """Close the Neo4j connection."""
        if self.driver:
            self.driver.close()
            self._connected = False
            logger.info("Neo4j connection closed")

    def is_connected(self) -> bool:
        """Check if connection is active."""
        return self._connected and self.driver is not None

    def _require_connection(self):
        if not self.is_connected():
            raise RuntimeError("Not connected to Neo4j. Call connect() first.")

    def execute_query(
        self,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Execute a Cypher query and return results.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            List of result records as dictionaries

        Raises:
            RuntimeError: If not connected to Neo4j
        """
        self._require_connection()
        parameters = parameters or {}

        with self.driver.session(database=self.database) as session:
            result = session.run(query, parameters)
            return [dict(record) for record in result]

    def stream_query(
        self,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Iterator[Dict[str, Any]]:
        """
        Execute a read query and yield records as they arrive.

        The session stays open until the generator is exhausted or closed.
        """
        self._require_connection()
        parameters = parameters or {}

        with self.driver.session(database=self.database) as session:
            for record in session.run(query, parameters):
                yield dict(record)

    def execute_read_columns(
        self,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> tuple[List[str], List[Dict[str, Any]]]:
        """Execute a query and return ``(column names, rows)``."""
        self._require_connection()
        parameters = parameters or {}

        with self.driver.session(database=self.database) as session:
            result = session.run(query, parameters)
            rows = [dict(record) for record in result]
            return list(result.keys()), rows

    def execute_write(
        self,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Execute a write query in a transaction.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            Query summary statistics

        Raises:
            RuntimeError: If not connected to Neo4j
        """
        self._require_connection()
        parameters = parameters or {}

        def transaction_function(tx):
            summary = tx.run(query, parameters).consume()
            return {
                "nodes_created": summary.counters.nodes_created,
                "relationships_created": summary.counters.relationships_created,
                "properties_set": summary.counters.properties_set,
                "nodes_deleted": summary.counters.nodes_deleted,
                "relationships_deleted": summary.counters.relationships_deleted,
            }

        with self.driver.session(database=self.database) as session:
            return session.execute_write(transaction_function)

    def execute_write_records(
        self,
        work: Callable[[Any], Any],
    ) -> Any:
        """
        Run ``work(tx)`` in one managed write transaction.

        Everything ``work`` runs commits together or rolls back together.
        """
        self._require_connection()

        with self.driver.session(database=self.database) as session:
            return session.execute_write(work)

    def clear_database(self) -> Dict[str, Any]:
        """
        Delete all nodes and relationships.

        Warning:
            This will delete ALL data in the database!
        """
        logger.warning("Clearing all data from Neo4j database")
        return self.execute_write("MATCH (n) DETACH DELETE n")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False
