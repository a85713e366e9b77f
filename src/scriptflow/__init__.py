"""
scriptflow - A script and query ETL execution engine.

Run configured scripts and queries against pluggable connections (text files,
CSV files, SQL Server) with fallback error handlers, transactions, connection
lifecycle management and execution statistics applied uniformly.
"""

__version__ = "0.1.0"

# Core components
from scriptflow.core.session import EtlSession
from scriptflow.core.context import DynamicContext
from scriptflow.core.content import ContentVariant, DialectIdentifier, NULL_CONTENT
from scriptflow.core.elements import OnErrorElement, QueryElement, ScriptElement
from scriptflow.core.statistics import ExecutionStatistics
from scriptflow.core.exceptions import (
    ScriptflowError,
    ConfigurationError,
    ProviderError,
    ExecutionError,
)

# Connections
from scriptflow.connections.base import AbstractConnection, ConnectionParameters
from scriptflow.connections.text import TextConnection
from scriptflow.connections.csv_connection import CSVConnection
from scriptflow.connections import connect

# Lazy imports for SQL Server components to avoid pyodbc dependency
def __getattr__(name):
    if name == "SQLServerConnection":
        from scriptflow.connections.sql_server import SQLServerConnection
        return SQLServerConnection
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    # Version
    "__version__",
    # Core
    "EtlSession",
    "DynamicContext",
    "ContentVariant",
    "DialectIdentifier",
    "NULL_CONTENT",
    "OnErrorElement",
    "QueryElement",
    "ScriptElement",
    "ExecutionStatistics",
    "ScriptflowError",
    "ConfigurationError",
    "ProviderError",
    "ExecutionError",
    # Connections
    "AbstractConnection",
    "ConnectionParameters",
    "TextConnection",
    "CSVConnection",
    "SQLServerConnection",
    "connect",
]
