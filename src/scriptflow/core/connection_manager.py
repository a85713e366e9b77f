"""
Connection lifecycle management for one ETL session.

Hands out connections per configured connection id and takes them back. Idle
connections are pooled and reused by later elements, so consecutive scripts on
the same file connection append to the same output stream.
"""

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from ..connections.base import AbstractConnection


logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], "AbstractConnection"]


class ConnectionManager:
    """
    Per-session registry and pool of connections.

    A pooled connection is handed to one flow at a time. ``new_tx`` requests
    always get a dedicated connection that is closed on release.

    Example:
        >>> manager = ConnectionManager({
        ...     "out": lambda: TextConnection(ConnectionParameters(url="out.txt")),
        ... })
        >>> con = manager.acquire("out")
        >>> manager.release("out", con)
        >>> manager.close_all()
    """

    def __init__(self, factories: dict[str, ConnectionFactory]):
        """
        Initialize the manager.

        Args:
            factories: Connection id to a zero-argument connection factory
        """
        self._factories = dict(factories)
        self._idle: dict[str, list["AbstractConnection"]] = {cid: [] for cid in self._factories}
        self._in_use: dict[str, int] = {cid: 0 for cid in self._factories}
        self._lock = threading.Lock()
        self.acquired_count = 0
        self.released_count = 0

    @property
    def connection_ids(self) -> list[str]:
        return list(self._factories)

    def resolve_id(self, connection_id: Optional[str]) -> str:
        """
        Resolve an element's connection id.

        Args:
            connection_id: Configured id, or None for "the only connection"

        Returns:
            A registered connection id

        Raises:
            ConfigurationError: If the id is unknown or ambiguous
        """
        if connection_id is None:
            if len(self._factories) == 1:
                return next(iter(self._factories))
            raise ConfigurationError(
                f"Connection id is required when {len(self._factories)} connections "
                f"are configured: {', '.join(self._factories) or 'none'}"
            )
        if connection_id not in self._factories:
            raise ConfigurationError(
                f"Unknown connection id {connection_id!r}. "
                f"Available connections: {', '.join(self._factories) or 'none'}"
            )
        return connection_id

    def acquire(self, connection_id: str, new_tx: bool = False) -> "AbstractConnection":
        """
        Get a connection for exclusive use by the calling flow.

        Args:
            connection_id: Registered connection id
            new_tx: Create a dedicated connection instead of using the pool

        Returns:
            An open connection

        Raises:
            ConfigurationError: If the id is unknown
            ProviderError: If the driver fails to connect
        """
        connection_id = self.resolve_id(connection_id)
        connection = None
        with self._lock:
            if not new_tx and self._idle[connection_id]:
                connection = self._idle[connection_id].pop()
                self._in_use[connection_id] += 1
                self.acquired_count += 1

        if connection is None:
            # Create outside the lock; drivers may block while connecting
            connection = self._factories[connection_id]()
            logger.debug(f"Opened connection {connection_id!r}: {connection!r}")
            with self._lock:
                self._in_use[connection_id] += 1
                self.acquired_count += 1

        return connection

    def release(
        self,
        connection_id: str,
        connection: "AbstractConnection",
        new_tx: bool = False,
    ) -> None:
        """
        Give a connection back.

        Pooled connections return to the idle pool; dedicated ones are closed.

        Raises:
            ProviderError: If closing a dedicated connection fails
        """
        with self._lock:
            self._in_use[connection_id] -= 1
            self.released_count += 1
            if not new_tx:
                self._idle[connection_id].append(connection)
                return

        logger.debug(f"Closing dedicated connection {connection_id!r}")
        connection.close()

    def close_all(self) -> None:
        """
        Close every idle connection.

        Failures are logged so that one broken connection does not keep the
        others open.
        """
        with self._lock:
            idle = [(cid, con) for cid, cons in self._idle.items() for con in cons]
            for cons in self._idle.values():
                cons.clear()
            in_use = {cid: count for cid, count in self._in_use.items() if count}

        for connection_id, count in in_use.items():
            logger.warning(
                f"Connection {connection_id!r} still has {count} connection(s) in use "
                f"while the session is closing"
            )

        for connection_id, connection in idle:
            try:
                connection.close()
            except Exception as e:
                logger.error(f"Failed to close connection {connection_id!r}: {e}")
