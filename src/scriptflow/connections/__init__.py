"""
Connection implementations.

Connections execute script and query content against one target system.
Drivers are resolved by name so optional dependencies load only when used.
"""

import importlib

from scriptflow.connections.base import AbstractConnection, ConnectionParameters, QueryCallback
from scriptflow.connections.csv_connection import CSVConnection
from scriptflow.connections.text import TextConnection
from scriptflow.core.exceptions import ConfigurationError

# Driver name -> "module:class"
DRIVERS = {
    "text": "scriptflow.connections.text:TextConnection",
    "csv": "scriptflow.connections.csv_connection:CSVConnection",
    "sqlserver": "scriptflow.connections.sql_server:SQLServerConnection",
}


def connect(driver: str, parameters: ConnectionParameters) -> AbstractConnection:
    """
    Create a connection for a named driver.

    Args:
        driver: One of DRIVERS, or a "module:class" reference to a custom driver
        parameters: Connection parameters passed to the driver constructor

    Returns:
        A new connection

    Raises:
        ConfigurationError: If the driver cannot be resolved

    Example:
        >>> con = connect("text", ConnectionParameters(url="output/report.txt"))
    """
    reference = DRIVERS.get(driver.lower(), driver)
    module_name, _, class_name = reference.partition(":")
    if not class_name:
        raise ConfigurationError(
            f"Unknown driver {driver!r}. Available drivers: {', '.join(DRIVERS)}"
        )
    try:
        driver_class = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Unable to load driver {driver!r}: {e}") from e
    return driver_class(parameters)


# Lazy import for SQL Server to avoid pyodbc dependency when not needed
def __getattr__(name):
    if name == "SQLServerConnection":
        from scriptflow.connections.sql_server import SQLServerConnection
        return SQLServerConnection
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "AbstractConnection",
    "ConnectionParameters",
    "QueryCallback",
    "TextConnection",
    "CSVConnection",
    "SQLServerConnection",
    "connect",
    "DRIVERS",
]
