"""
Leaf executors: run selected content against the active connection.

ScriptExecutor owns the failure-recovery state machine: a failed script searches
its ordered fallback handlers, optionally retries, and otherwise propagates the
original failure. QueryExecutor streams rows into its nested elements.
"""

import enum
import logging
from typing import Any, Optional

from .connection_manager import ConnectionManager
from .content import NULL_CONTENT, ContentVariant, select_content
from .context import DynamicContext
from .elements import Element, OnErrorElement, QueryElement, ScriptElement
from .exceptions import ConfigurationError
from .interceptors import ExecutableElement, build_chain
from .statistics import StatisticsCollector


logger = logging.getLogger(__name__)


class RecoveryOutcome(enum.Enum):
    """Result of searching the fallback handlers for a failure."""

    RETRY = "retry"
    HANDLED = "handled"
    UNHANDLED = "unhandled"


class OnErrorHandler:
    """
    Cursor over an element's fallback handlers.

    Each handler is offered at most once; a fresh cursor is created for every
    failure of the original content.
    """

    def __init__(self, handlers: list[OnErrorElement]):
        self._handlers = handlers
        self._position = 0

    def on_error(self, error: BaseException) -> Optional[OnErrorElement]:
        """
        Advance to the next untried handler accepting ``error``.

        Returns:
            The handler, or None when the list is exhausted
        """
        while self._position < len(self._handlers):
            handler = self._handlers[self._position]
            self._position += 1
            if handler.matches(error):
                return handler
        return None


class ContentExecutor(ExecutableElement):
    """Base for executors that select dialect-specific content."""

    def __init__(self, element: Any):
        self.element = element

    @property
    def location(self) -> str:
        return self.element.location

    def _active_connection(self, ctx: DynamicContext):
        if ctx.connection is None:
            raise ConfigurationError(f"No active connection for {self.location}")
        return ctx.connection

    def get_content(self, ctx: DynamicContext) -> ContentVariant:
        """Select the element's content for the active connection's dialect."""
        return select_content(self._active_connection(ctx).dialect_identifier, self.element.content)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(location={self.location!r})"


class ScriptExecutor(ContentExecutor):
    """
    Runs script content, recovering from failures with fallback handlers.

    The retry loop is bounded only by the handlers' decisions. Every retry is
    logged with its attempt number so runaway configurations are visible.

    Example:
        >>> element = ScriptElement(
        ...     location="load_user",
        ...     content={"default": "INSERT INTO users VALUES ($id, $name)"},
        ...     on_error=[OnErrorElement(
        ...         codes={"23000"},
        ...         content={"default": "UPDATE users SET name=$name WHERE id=$id"},
        ...     )],
        ... )
        >>> ScriptExecutor(element).execute(ctx)
    """

    element: ScriptElement

    def execute(self, ctx: DynamicContext) -> None:
        connection = self._active_connection(ctx)
        content = self.get_content(ctx)
        if content is NULL_CONTENT:
            logger.info(f"Script {self.location} has no supported dialects")
            return

        attempt = 0
        while True:
            try:
                connection.execute_script(content, ctx)
                return
            except Exception as error:
                if not self.element.on_error:
                    raise
                outcome = self._on_error(error, ctx)
                if outcome is RecoveryOutcome.UNHANDLED:
                    raise
                if outcome is RecoveryOutcome.HANDLED:
                    return

            attempt += 1
            logger.warning(f"Script {self.location}: retry attempt #{attempt}")

    def _on_error(self, error: BaseException, ctx: DynamicContext) -> RecoveryOutcome:
        """
        Search the fallback handlers for one that recovers ``error``.

        Handlers without content for the active dialect are skipped. A handler
        whose own content fails is treated as unable to help and the search
        moves on; the original error is what the caller reports if nothing
        recovers it.
        """
        connection = ctx.connection
        dialect = connection.dialect_identifier
        handlers = OnErrorHandler(self.element.on_error)

        while True:
            handler = handlers.on_error(error)
            if handler is None:
                return RecoveryOutcome.UNHANDLED

            content = handler.get_content(dialect)
            if content is NULL_CONTENT:
                logger.debug(
                    f"Script {self.location}: {handler} has no content for dialect {dialect}, skipped"
                )
                continue

            logger.warning(
                f"Script {self.location} failed. Using onerror handler: {handler}",
                exc_info=error,
            )
            try:
                connection.execute_script(content, ctx)
            except Exception as handler_error:
                logger.debug(
                    f"Script {self.location}: {handler} failed with "
                    f"{type(handler_error).__name__}: {handler_error}"
                )
                continue

            return RecoveryOutcome.RETRY if handler.retry else RecoveryOutcome.HANDLED


class QueryExecutor(ContentExecutor):
    """
    Runs query content and executes the nested elements once per row.

    Each row's values are bound as variables of a child context, which inherits
    the query's connection binding.
    """

    element: QueryElement

    def __init__(self, element: QueryElement, children: list[ExecutableElement]):
        super().__init__(element)
        self.children = children

    def execute(self, ctx: DynamicContext) -> None:
        connection = self._active_connection(ctx)
        content = self.get_content(ctx)
        if content is NULL_CONTENT:
            logger.info(f"Query {self.location} has no supported dialects")
            return

        rows = 0

        def on_row(row) -> None:
            nonlocal rows
            rows += 1
            row_ctx = ctx.child(row)
            for child in self.children:
                child.execute(row_ctx)

        connection.execute_query(content, ctx, on_row)
        logger.debug(f"Query {self.location} processed {rows} rows")


def prepare(
    element: Element,
    connections: ConnectionManager,
    statistics: StatisticsCollector,
) -> ExecutableElement:
    """
    Compose the executable chain for an element definition.

    Nested query children are composed recursively.

    Raises:
        ConfigurationError: If a connection id cannot be resolved
        TypeError: If the element type is not supported
    """
    if isinstance(element, ScriptElement):
        leaf: ExecutableElement = ScriptExecutor(element)
    elif isinstance(element, QueryElement):
        children = [prepare(child, connections, statistics) for child in element.children]
        leaf = QueryExecutor(element, children)
    else:
        raise TypeError(f"Unsupported element type: {type(element).__name__}")
    return build_chain(leaf, element, connections, statistics)
