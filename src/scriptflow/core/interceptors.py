"""
Interceptor chain wrapped around every leaf executor.

Each configured element is composed once, at session construction time, into
a linear chain (outermost first):

    IfInterceptor -> ExceptionInterceptor -> ConnectionInterceptor
        -> TxInterceptor -> StatisticInterceptor -> leaf executor

Every layer except IfInterceptor delegates inward exactly once per invocation.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, Optional

from .connection_manager import ConnectionManager
from .context import DynamicContext
from .exceptions import ExecutionError
from .statistics import StatisticsCollector


logger = logging.getLogger(__name__)


class ExecutableElement(ABC):
    """
    Uniform unit of work: anything that can run against a context.

    Implementations hold no mutable state between invocations; everything
    observable happens through the active connection or the context.
    """

    @abstractmethod
    def execute(self, ctx: DynamicContext) -> None:
        """
        Run the element.

        Args:
            ctx: Context of the current execution flow

        Raises:
            ExecutionError: Once wrapped by the chain, for any unresolved failure
        """
        pass


class Interceptor(ExecutableElement):
    """
    A wrapper holding a reference to the next element of the chain.

    Subclasses are composed by build_chain() through prepare(), which has the
    same signature for every interceptor.
    """

    def __init__(self, next: ExecutableElement, location: str):
        self.next = next
        self.location = location

    @classmethod
    def prepare(
        cls,
        next: ExecutableElement,
        element: Any,
        connections: ConnectionManager,
        statistics: StatisticsCollector,
    ) -> "Interceptor":
        return cls(next, element.location)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(location={self.location!r})"


class IfInterceptor(Interceptor):
    """
    Skips the rest of the chain when the element's condition is not met.

    No connection is acquired and no statistics are recorded for a skipped
    element. A condition that cannot be evaluated skips the element.
    """

    def __init__(
        self,
        next: ExecutableElement,
        location: str,
        condition: Optional[Callable[[DynamicContext], Any]] = None,
    ):
        super().__init__(next, location)
        self.condition = condition

    @classmethod
    def prepare(cls, next, element, connections, statistics):
        return cls(next, element.location, element.condition)

    def execute(self, ctx: DynamicContext) -> None:
        if self._is_satisfied(ctx):
            self.next.execute(ctx)
        else:
            logger.debug(f"Element {self.location} skipped: condition not met")

    def _is_satisfied(self, ctx: DynamicContext) -> bool:
        if self.condition is None:
            return True
        try:
            result = self.condition(ctx)
        except Exception as e:
            logger.warning(
                f"Unable to evaluate if condition for {self.location}: {e}. "
                f"Element will be skipped",
                exc_info=True,
            )
            return False

        if result is None:
            return False
        if isinstance(result, str):
            return result.strip().lower() == "true"
        return bool(result)


class ExceptionInterceptor(Interceptor):
    """
    Translates any failure into an ExecutionError carrying the element location.

    ExecutionErrors raised by nested elements already carry the innermost
    location and pass through untouched.
    """

    def execute(self, ctx: DynamicContext) -> None:
        try:
            self.next.execute(ctx)
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(location=self.location, original_error=e) from e


class ConnectionInterceptor(Interceptor):
    """
    Binds the element's connection into the context for the inward chain.

    The previous binding is restored and the connection released on both the
    success and the failure path. A nested element targeting the connection
    already bound by its enclosing query joins that binding instead.
    """

    def __init__(
        self,
        next: ExecutableElement,
        location: str,
        connections: ConnectionManager,
        connection_id: str,
        new_tx: bool = False,
    ):
        super().__init__(next, location)
        self.connections = connections
        self.connection_id = connection_id
        self.new_tx = new_tx

    @classmethod
    def prepare(cls, next, element, connections, statistics):
        connection_id = connections.resolve_id(element.connection_id)
        return cls(next, element.location, connections, connection_id, element.new_tx)

    def execute(self, ctx: DynamicContext) -> None:
        if (
            not self.new_tx
            and ctx.connection is not None
            and ctx.connection_id == self.connection_id
        ):
            self.next.execute(ctx)
            return

        connection = self.connections.acquire(self.connection_id, new_tx=self.new_tx)
        previous = (ctx.connection, ctx.connection_id, ctx.in_transaction)
        ctx.connection, ctx.connection_id, ctx.in_transaction = connection, self.connection_id, False

        try:
            self.next.execute(ctx)
        except BaseException:
            self._unbind(ctx, previous, connection, failing=True)
            raise
        self._unbind(ctx, previous, connection, failing=False)

    def _unbind(self, ctx, previous, connection, failing: bool) -> None:
        ctx.connection, ctx.connection_id, ctx.in_transaction = previous
        try:
            self.connections.release(self.connection_id, connection, new_tx=self.new_tx)
        except Exception as e:
            if not failing:
                raise
            logger.error(
                f"Failed to release connection {self.connection_id!r} "
                f"after {self.location} failed: {e}"
            )


class TxInterceptor(Interceptor):
    """
    Commits the active connection when the inward chain returns normally and
    rolls back when it fails.

    Elements nested inside an open transaction scope join it; the scope owner
    commits. A failed commit is the primary failure: the transaction is rolled
    back and the commit error propagates.
    """

    def execute(self, ctx: DynamicContext) -> None:
        if ctx.in_transaction or ctx.connection is None:
            self.next.execute(ctx)
            return

        connection = ctx.connection
        ctx.in_transaction = True
        try:
            try:
                self.next.execute(ctx)
            except BaseException:
                self._rollback(connection)
                raise
            try:
                connection.commit()
            except Exception:
                self._rollback(connection)
                raise
        finally:
            ctx.in_transaction = False

    def _rollback(self, connection) -> None:
        try:
            connection.rollback()
        except Exception as e:
            logger.error(f"Rollback failed for {self.location}: {e}")


class StatisticInterceptor(Interceptor):
    """Records duration and outcome of every invocation without altering failures."""

    def __init__(
        self,
        next: ExecutableElement,
        location: str,
        statistics: StatisticsCollector,
    ):
        super().__init__(next, location)
        self.statistics = statistics

    @classmethod
    def prepare(cls, next, element, connections, statistics):
        return cls(next, element.location, statistics)

    def execute(self, ctx: DynamicContext) -> None:
        start_time = time.time()
        success = False
        try:
            self.next.execute(ctx)
            success = True
        finally:
            self.statistics.record(self.location, time.time() - start_time, success)


# Outermost first
CHAIN_ORDER: tuple[type[Interceptor], ...] = (
    IfInterceptor,
    ExceptionInterceptor,
    ConnectionInterceptor,
    TxInterceptor,
    StatisticInterceptor,
)


def build_chain(
    leaf: ExecutableElement,
    element: Any,
    connections: ConnectionManager,
    statistics: StatisticsCollector,
) -> ExecutableElement:
    """
    Wrap a leaf executor with every interceptor in CHAIN_ORDER.

    Args:
        leaf: Innermost executor
        element: Element definition (location, connection_id, condition, new_tx)
        connections: Session connection manager
        statistics: Session statistics collector

    Returns:
        The outermost interceptor

    Raises:
        ConfigurationError: If the element's connection id cannot be resolved
    """
    executable = leaf
    for interceptor in reversed(CHAIN_ORDER):
        executable = interceptor.prepare(executable, element, connections, statistics)
    return executable


def iter_chain(executable: ExecutableElement) -> Iterator[ExecutableElement]:
    """Yield every layer of a chain, outermost first, ending with the leaf."""
    while isinstance(executable, Interceptor):
        yield executable
        executable = executable.next
    yield executable
