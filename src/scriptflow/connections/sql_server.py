"""
SQL Server connection implementation.

Executes T-SQL scripts and queries through pyodbc inside explicit transactions.
Supports environment variable fallback for connection strings.
"""

import logging
import os
import re
from typing import Any, Optional

import pyodbc

from ..core.content import ContentVariant, DialectIdentifier
from ..core.context import DynamicContext
from ..core.exceptions import ConfigurationError, ProviderError
from .base import AbstractConnection, ConnectionParameters, QueryCallback


logger = logging.getLogger(__name__)

# Batch separator understood by SQL Server tools
_GO_SEPARATOR = re.compile(r"^\s*GO\s*;?\s*$", re.IGNORECASE | re.MULTILINE)

# $name or ${name} references bound as ? parameters. String literals, quoted
# identifiers and comments are matched first and left as they are; names must
# start with a letter or underscore so money literals ($100) are not bound.
_VARIABLE = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|\[[^\]]*\]"
    r"|--[^\n]*"
    r"|/\*.*?\*/"
    r"|\$(?:\{([A-Za-z_]\w*)\}|([A-Za-z_]\w*))",
    re.DOTALL,
)


class SQLServerProviderError(ProviderError):
    """Raised when pyodbc reports a failure."""

    @classmethod
    def from_pyodbc(cls, message: str, error: Exception, statement: Optional[str] = None):
        """Build an error carrying the SQLSTATE reported by pyodbc."""
        codes = []
        if error.args and isinstance(error.args[0], str):
            codes.append(error.args[0])
        return cls(f"{message}: {error}", error_codes=codes, error_statement=statement)


class SQLServerConnection(AbstractConnection):
    """
    SQL Server connection over ODBC.

    The pyodbc connection is opened at construction with autocommit disabled;
    commit() and rollback() are driven by the transaction interceptor.

    Script content is split into batches on ``GO`` lines. ``$name`` and
    ``${name}`` references are sent as ``?`` bind parameters, never inlined.
    References inside string literals, quoted identifiers and comments are
    left untouched.

    Example:
        >>> con = SQLServerConnection(ConnectionParameters(
        ...     url="Driver={ODBC Driver 18 for SQL Server};Server=...;Database=etl"
        ... ))
        >>> ctx = DynamicContext(variables={"id": 1, "name": "Ada"})
        >>> con.execute_script(
        ...     ContentVariant(text="INSERT INTO dbo.users (id, name) VALUES ($id, $name)"), ctx
        ... )
        >>> con.commit()
        >>> con.close()

    Environment Variables:
        SQL_SERVER_CONN: Default ODBC connection string
            Example: "Driver={ODBC Driver 18 for SQL Server};Server=...;Database=...;UID=...;PWD=..."
    """

    def __init__(self, parameters: ConnectionParameters):
        """
        Open the ODBC connection.

        If url is not provided, reads from the SQL_SERVER_CONN environment variable.
        user and password, when given, are appended as UID/PWD.

        Args:
            parameters: url is the ODBC connection string

        Raises:
            ConfigurationError: If no connection string is available
            SQLServerProviderError: If connecting fails
        """
        connection_string = parameters.url
        if connection_string is None:
            connection_string = os.getenv("SQL_SERVER_CONN")
            if connection_string is None:
                raise ConfigurationError(
                    "No connection string provided. Either pass a url parameter "
                    "or set SQL_SERVER_CONN environment variable."
                )
        if parameters.user is not None:
            connection_string = f"{connection_string.rstrip(';')};UID={parameters.user}"
        if parameters.password is not None:
            connection_string = f"{connection_string.rstrip(';')};PWD={parameters.password}"

        try:
            self._conn = pyodbc.connect(connection_string, autocommit=False)
        except pyodbc.Error as e:
            raise SQLServerProviderError.from_pyodbc(
                "Failed to connect to SQL Server. "
                "Check your connection string and network connectivity", e
            ) from e

        super().__init__(self._read_dialect())

    def _read_dialect(self) -> DialectIdentifier:
        try:
            return DialectIdentifier(
                name=self._conn.getinfo(pyodbc.SQL_DBMS_NAME),
                version=self._conn.getinfo(pyodbc.SQL_DBMS_VER),
            )
        except pyodbc.Error as e:
            logger.warning(f"Unable to read DBMS name and version: {e}")
            return DialectIdentifier(name="Microsoft SQL Server")

    def execute_script(self, content: ContentVariant, ctx: DynamicContext) -> None:
        """
        Execute every batch of the content.

        Raises:
            SQLServerProviderError: If a batch fails; carries the SQLSTATE and statement
        """
        for batch in _split_batches(_read(content)):
            sql, params = _bind_variables(batch, ctx)
            cursor = self._conn.cursor()
            try:
                cursor.execute(sql, params)
            except pyodbc.Error as e:
                raise SQLServerProviderError.from_pyodbc(
                    "Failed to execute script", e, statement=batch
                ) from e
            finally:
                cursor.close()

    def execute_query(
        self,
        content: ContentVariant,
        ctx: DynamicContext,
        callback: QueryCallback,
    ) -> None:
        """
        Execute the query and call back once per row.

        Raises:
            SQLServerProviderError: If the query fails or returns no result set
        """
        query = _read(content)
        sql, params = _bind_variables(query, ctx)
        cursor = self._conn.cursor()
        try:
            try:
                cursor.execute(sql, params)
            except pyodbc.Error as e:
                raise SQLServerProviderError.from_pyodbc(
                    "Failed to execute query", e, statement=query
                ) from e

            if cursor.description is None:
                raise SQLServerProviderError(
                    "Query did not return any columns. Ensure the query is a SELECT statement.",
                    error_statement=query,
                )
            column_names = [col[0] for col in cursor.description]

            for row in cursor:
                callback(dict(zip(column_names, row)))
        finally:
            cursor.close()

    def commit(self) -> None:
        try:
            self._conn.commit()
        except pyodbc.Error as e:
            raise SQLServerProviderError.from_pyodbc("Failed to commit transaction", e) from e

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except pyodbc.Error as e:
            raise SQLServerProviderError.from_pyodbc("Failed to roll back transaction", e) from e

    def close(self) -> None:
        """Close the ODBC connection. Safe to call repeatedly."""
        conn, self._conn = self._conn, None
        if conn is not None:
            try:
                conn.close()
            except pyodbc.Error as e:
                logger.warning(f"Failed to close SQL Server connection: {e}")


def _read(content: ContentVariant) -> str:
    try:
        return content.read()
    except OSError as e:
        raise SQLServerProviderError(f"Cannot read content {content}: {e}") from e


def _split_batches(script: str) -> list[str]:
    return [batch.strip() for batch in _GO_SEPARATOR.split(script) if batch.strip()]


def _bind_variables(statement: str, ctx: DynamicContext) -> tuple[str, list[Any]]:
    """Replace variable references with ? placeholders, collecting their values."""
    params: list[Any] = []

    def bind(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        if name is None:
            return match.group(0)
        params.append(ctx.get_parameter(name))
        return "?"

    return _VARIABLE.sub(bind, statement), params
