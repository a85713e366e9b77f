"""
Custom exceptions for the scriptflow ETL engine.

Provides a hierarchy of exceptions with rich context for debugging element failures.
"""

from typing import Iterable, Optional


class ScriptflowError(Exception):
    """
    Base exception for all scriptflow errors.

    All custom exceptions in the engine inherit from this class,
    allowing users to catch engine-specific errors.

    Example:
        >>> try:
        ...     session.run()
        ... except ScriptflowError as e:
        ...     print(f"ETL error: {e}")
    """

    pass


class ConfigurationError(ScriptflowError):
    """
    Raised when configuration is malformed.

    Detected eagerly (connection construction, session construction) and never
    recovered by fallback handlers.

    Example:
        >>> raise ConfigurationError("Unknown encoding 'utf-99' for connection 'out'")
    """

    pass


class ProviderError(ScriptflowError):
    """
    Raised by a connection implementation when script or query execution fails.

    Provider errors are the failures fallback handlers are designed to recover.

    Attributes:
        error_codes: Vendor or SQLSTATE codes describing the failure
        error_statement: The statement being executed when the failure occurred

    Example:
        >>> raise ProviderError(
        ...     "Violation of PRIMARY KEY constraint",
        ...     error_codes=["23000"],
        ...     error_statement="INSERT INTO dbo.users VALUES (1, 'a')",
        ... )
    """

    def __init__(
        self,
        message: str,
        error_codes: Optional[Iterable[str]] = None,
        error_statement: Optional[str] = None,
    ):
        """
        Initialize a ProviderError.

        Args:
            message: Human readable description of the failure
            error_codes: Vendor or SQLSTATE codes (defaults to none)
            error_statement: Statement that failed, if known
        """
        self.error_codes = tuple(str(code) for code in (error_codes or ()))
        self.error_statement = error_statement
        super().__init__(message)

    def __repr__(self) -> str:
        """Detailed representation for debugging."""
        return (
            f"{type(self).__name__}({str(self)!r}, "
            f"error_codes={list(self.error_codes)!r}, "
            f"error_statement={self.error_statement!r})"
        )


class ExecutionError(ScriptflowError):
    """
    Raised when an element fails and no fallback handler resolved the failure.

    Captures the element location and the original error so the caller always
    sees the root cause.

    Attributes:
        location: Diagnostic location of the failed element
        original_error: The underlying exception that caused the failure

    Example:
        >>> try:
        ...     connection.execute_script(content, ctx)
        ... except ProviderError as e:
        ...     raise ExecutionError(location="etl.xml/script[2]", original_error=e) from e
    """

    def __init__(self, location: str, original_error: BaseException):
        """
        Initialize an ExecutionError.

        Args:
            location: Diagnostic location of the failed element
            original_error: The underlying exception that caused the failure
        """
        self.location = location
        self.original_error = original_error

        message = (
            f"Element '{location}' failed: "
            f"{type(original_error).__name__}: {original_error}"
        )
        super().__init__(message)

    def __repr__(self) -> str:
        """Detailed representation for debugging."""
        return (
            f"ExecutionError(location={self.location!r}, "
            f"original_error={self.original_error!r})"
        )
