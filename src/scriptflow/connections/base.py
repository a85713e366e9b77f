"""
Abstract base class for connections.

A connection is the polymorphic boundary between the engine and one target
system instance (a database, a text file, a CSV file, ...). The engine only
relies on the operations declared here.
"""

import codecs
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from string import Template
from typing import Any, Callable, Mapping, Optional
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field

from ..core.content import ContentVariant, DialectIdentifier
from ..core.context import DynamicContext
from ..core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

# Receives one row (column name -> value) of a query result
QueryCallback = Callable[[Mapping[str, Any]], None]


class ConnectionParameters(BaseModel):
    """
    Driver-independent connection configuration.

    Attributes:
        url: Driver specific location (file path, ODBC connection string, ...)
        user: Optional user name
        password: Optional password
        properties: Driver specific properties (encoding, separator, ...)

    Example:
        >>> ConnectionParameters(url="output/report.txt", properties={"encoding": "utf-8"})
    """

    url: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    properties: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def get_boolean_property(self, name: str, default: bool = False) -> bool:
        """
        Read a boolean property.

        Raises:
            ConfigurationError: If the value is not true/false/yes/no/1/0
        """
        value = self.properties.get(name)
        if value is None:
            return default
        normalized = value.strip().lower()
        if normalized in ("true", "yes", "1"):
            return True
        if normalized in ("false", "no", "0"):
            return False
        raise ConfigurationError(
            f"Property '{name}' must be a boolean (true/false), got {value!r}"
        )

    def get_char_property(self, name: str, default: str) -> str:
        """
        Read a single-character property.

        Raises:
            ConfigurationError: If the value is not exactly one character
        """
        value = self.properties.get(name, default)
        if len(value) != 1:
            raise ConfigurationError(
                f"Property '{name}' must be a single character, got {value!r}"
            )
        return value


class AbstractConnection(ABC):
    """
    Base class for all connections.

    Subclasses must implement execute_script(), execute_query() and close().
    Non-transactional targets inherit the no-op commit() and rollback().

    Example:
        >>> class EchoConnection(AbstractConnection):
        ...     def __init__(self):
        ...         super().__init__(DialectIdentifier(name="Echo"))
        ...
        ...     def execute_script(self, content, ctx):
        ...         print(self.substitute(content.read(), ctx))
        ...
        ...     def execute_query(self, content, ctx, callback):
        ...         callback({"line": content.read()})
        ...
        ...     def close(self):
        ...         pass
    """

    def __init__(self, dialect: DialectIdentifier):
        """
        Initialize the connection.

        Args:
            dialect: Dialect this connection understands
        """
        self._dialect = dialect

    @property
    def dialect_identifier(self) -> DialectIdentifier:
        """Dialect used to select content variants. Side-effect free."""
        return self._dialect

    @abstractmethod
    def execute_script(self, content: ContentVariant, ctx: DynamicContext) -> None:
        """
        Run side-effecting content against the target.

        Args:
            content: Content selected for this connection's dialect
            ctx: Execution context providing variables

        Raises:
            ProviderError: If the target rejects the content
        """
        pass

    @abstractmethod
    def execute_query(
        self,
        content: ContentVariant,
        ctx: DynamicContext,
        callback: QueryCallback,
    ) -> None:
        """
        Run query content and stream each result row to ``callback``.

        Args:
            content: Content selected for this connection's dialect
            ctx: Execution context providing variables
            callback: Invoked once per row with a column name -> value mapping

        Raises:
            ProviderError: If the query fails or the connection cannot
                          serve reads and writes simultaneously
        """
        pass

    def commit(self) -> None:
        """Commit the current transaction. No-op for non-transactional targets."""
        logger.debug(f"{type(self).__name__} does not support transactions, commit ignored")

    def rollback(self) -> None:
        """Roll back the current transaction. No-op for non-transactional targets."""
        logger.debug(f"{type(self).__name__} does not support transactions, rollback ignored")

    @abstractmethod
    def close(self) -> None:
        """Release all resources. Must be safe to call more than once."""
        pass

    @staticmethod
    def substitute(text: str, ctx: DynamicContext) -> str:
        """
        Replace ``$name`` and ``${name}`` with context variables.

        Unknown names are left untouched.
        """
        return Template(text).safe_substitute(ctx)

    def __enter__(self) -> "AbstractConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"{type(self).__name__}(dialect={str(self._dialect)!r})"


def resolve_file_path(parameters: ConnectionParameters) -> Path:
    """
    Resolve the file a file-based connection reads and writes.

    Accepts plain paths and ``file:`` URLs.

    Raises:
        ConfigurationError: If no url is configured
    """
    if not parameters.url:
        raise ConfigurationError("File connections require a 'url' parameter")
    url = parameters.url
    if url.startswith("file:"):
        url = unquote(urlparse(url).path)
    return Path(url)


def resolve_encoding(parameters: ConnectionParameters, default: str = "utf-8") -> str:
    """
    Read and validate the ``encoding`` property.

    Raises:
        ConfigurationError: If the encoding is unknown
    """
    encoding = parameters.properties.get("encoding", default)
    try:
        codecs.lookup(encoding)
    except LookupError:
        raise ConfigurationError(f"Unknown encoding {encoding!r}")
    return encoding
