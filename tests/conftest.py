"""
Shared fixtures: a recording in-memory connection.
"""

from typing import Optional

import pytest

from scriptflow.connections.base import AbstractConnection
from scriptflow.core.content import DialectIdentifier
from scriptflow.core.context import DynamicContext
from scriptflow.core.exceptions import ProviderError


class DuplicateKeyError(ProviderError):
    """Provider failure used to exercise fallback handlers."""

    def __init__(self, message: str = "Duplicate key"):
        super().__init__(message, error_codes=["23000"])


class RecordingConnection(AbstractConnection):
    """
    Connection that records every call instead of talking to a target.

    Attributes:
        scripts: Executed script texts (after variable substitution), in order
        queries: Executed query texts, in order
        failures: Raw content text -> exceptions raised by successive executions
        rows: Rows passed to query callbacks
    """

    def __init__(
        self,
        dialect: str = "Fake",
        failures: Optional[dict[str, list[Exception]]] = None,
        rows: Optional[list[dict]] = None,
        commit_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
    ):
        super().__init__(DialectIdentifier(name=dialect, version="1.0"))
        self.failures = failures or {}
        self.rows = rows or []
        self.commit_error = commit_error
        self.close_error = close_error
        self.scripts: list[str] = []
        self.queries: list[str] = []
        self.commits = 0
        self.rollbacks = 0
        self.closes = 0

    def execute_script(self, content, ctx):
        raw = content.read()
        self.scripts.append(self.substitute(raw, ctx))
        pending = self.failures.get(raw)
        if pending:
            raise pending.pop(0)

    def execute_query(self, content, ctx, callback):
        raw = content.read()
        self.queries.append(raw)
        pending = self.failures.get(raw)
        if pending:
            raise pending.pop(0)
        for row in self.rows:
            callback(row)

    def commit(self):
        self.commits += 1
        if self.commit_error is not None:
            raise self.commit_error

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closes += 1
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def connection():
    """A fresh recording connection."""
    return RecordingConnection()


@pytest.fixture
def ctx(connection):
    """A context with the recording connection already bound."""
    context = DynamicContext(variables={"id": 1, "name": "Ada"})
    context.connection = connection
    context.connection_id = "db"
    return context
