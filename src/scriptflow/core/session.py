"""
ETL session orchestration.

Composes configured elements into executable chains and runs them in order
against one shared set of connections.
"""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from .connection_manager import ConnectionFactory, ConnectionManager
from .context import DynamicContext
from .elements import Element, QueryElement
from .executors import prepare
from .statistics import ExecutionStatistics, StatisticsCollector


class EtlSession:
    """
    Runs a tree of elements against pluggable connections.

    Chains are built once, at construction time, so configuration errors
    (unknown connection ids) surface before any connection is opened.
    A session runs one flow at a time; use separate sessions for concurrent flows.

    Example:
        >>> session = EtlSession(
        ...     name="users_export",
        ...     elements=[
        ...         QueryElement(
        ...             location="read_users",
        ...             connection_id="db",
        ...             content={"default": "SELECT id, name FROM dbo.users"},
        ...             children=[
        ...                 ScriptElement(location="write_user", connection_id="out",
        ...                               content={"default": "$id;$name"}),
        ...             ],
        ...         ),
        ...     ],
        ...     connections={
        ...         "db": lambda: connect("sqlserver", ConnectionParameters()),
        ...         "out": lambda: connect("text", ConnectionParameters(url="out/users.txt")),
        ...     },
        ... )
        >>>
        >>> # Validate configuration without executing
        >>> session.run(dry_run=True)
        >>>
        >>> stats = session.run()
        >>> print(f"{stats.executed_count} executions in {stats.duration_seconds:.1f}s")
    """

    def __init__(
        self,
        name: str,
        elements: list[Element],
        connections: Mapping[str, ConnectionFactory],
        variables: Optional[Mapping[str, Any]] = None,
    ):
        """
        Initialize the session and compose every element chain.

        Args:
            name: Identifier of this ETL (used in logging)
            elements: Top-level elements executed in order
            connections: Connection id to a zero-argument connection factory
            variables: Initial variables visible to every element

        Raises:
            ConfigurationError: If an element references an unknown connection id
        """
        self.name = name
        self.elements = elements
        self.variables = dict(variables or {})
        self.connection_factories = dict(connections)

        self.logger = logging.getLogger(f"scriptflow.session.{name}")

        self.connection_manager = ConnectionManager(self.connection_factories)
        self._statistics = StatisticsCollector()
        self._executables = [
            prepare(element, self.connection_manager, self._statistics) for element in elements
        ]

    def run(self, dry_run: bool = False) -> ExecutionStatistics:
        """
        Execute all elements in order.

        Args:
            dry_run: If True, validate configuration without opening connections

        Returns:
            ExecutionStatistics of this run

        Raises:
            ExecutionError: If an element fails and no fallback handler recovers it.
                           Connections are closed before the error propagates.
        """
        if dry_run:
            return self._run_dry_run()

        self._statistics.reset()
        ctx = DynamicContext(variables=self.variables)

        started_at = datetime.now()
        self.logger.info(f"ETL '{self.name}' starting: {len(self._executables)} elements to execute")

        try:
            for executable in self._executables:
                executable.execute(ctx)
        except Exception as e:
            self.logger.error(f"ETL '{self.name}' failed: {e}")
            raise
        finally:
            self.connection_manager.close_all()

        stats = self._statistics.snapshot(started_at=started_at, finished_at=datetime.now())
        self.logger.info(
            f"ETL '{self.name}' completed: {stats.executed_count} element executions "
            f"in {stats.duration_seconds:.2f}s"
        )
        return stats

    def _run_dry_run(self) -> ExecutionStatistics:
        """
        Validate session configuration without executing anything.

        Returns:
            Empty ExecutionStatistics
        """
        self.logger.info(f"Dry run: validating ETL '{self.name}' configuration...")

        if not self.connection_factories:
            self.logger.warning("No connections configured")
        else:
            self.logger.info(f"Connections configured: {', '.join(self.connection_factories)}")

        if not self.elements:
            self.logger.warning("No elements configured - nothing will be executed")
        for element in self.elements:
            self._log_element(element, depth=1)

        self.logger.info("Dry run validation completed successfully")
        return ExecutionStatistics()

    def _log_element(self, element: Element, depth: int) -> None:
        kind = "query" if isinstance(element, QueryElement) else "script"
        dialects = ", ".join(element.content) or "none"
        self.logger.info(
            f"{'  ' * depth}- {kind} {element.location} "
            f"(connection={element.connection_id or 'default'}, dialects={dialects})"
        )
        if isinstance(element, QueryElement):
            for child in element.children:
                self._log_element(child, depth + 1)