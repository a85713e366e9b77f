"""
Core components for the scriptflow ETL engine.

Includes element definitions, the interceptor chain, leaf executors,
session orchestration, and exception handling.
"""

from scriptflow.core.content import (
    DEFAULT_DIALECT,
    NULL_CONTENT,
    ContentVariant,
    DialectIdentifier,
    select_content,
)
from scriptflow.core.context import DynamicContext
from scriptflow.core.elements import OnErrorElement, QueryElement, ScriptElement
from scriptflow.core.exceptions import (
    ScriptflowError,
    ConfigurationError,
    ProviderError,
    ExecutionError,
)
from scriptflow.core.executors import QueryExecutor, ScriptExecutor, prepare
from scriptflow.core.interceptors import ExecutableElement, build_chain
from scriptflow.core.session import EtlSession
from scriptflow.core.statistics import ElementStatistics, ExecutionStatistics

__all__ = [
    "DEFAULT_DIALECT",
    "NULL_CONTENT",
    "ContentVariant",
    "DialectIdentifier",
    "select_content",
    "DynamicContext",
    "OnErrorElement",
    "QueryElement",
    "ScriptElement",
    "ScriptflowError",
    "ConfigurationError",
    "ProviderError",
    "ExecutionError",
    "QueryExecutor",
    "ScriptExecutor",
    "prepare",
    "ExecutableElement",
    "build_chain",
    "EtlSession",
    "ElementStatistics",
    "ExecutionStatistics",
]
