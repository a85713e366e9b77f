"""
Element definitions - immutable configuration for units of ETL work.

Definitions are plain pydantic models, so a configuration loader can build them
from parsed XML/YAML/JSON with ``model_validate``. They are frozen once created.
"""

import re
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .content import ContentVariant, DialectIdentifier, select_content


class OnErrorElement(BaseModel):
    """
    A fallback handler: alternative content run when an element fails.

    The failure predicate is the conjunction of the configured criteria; a
    handler with no criteria accepts every failure.

    Attributes:
        type: Regex matched against class names of the failure and its causes
        message: Regex searched in messages of the failure and its causes
        codes: Error codes, any of which must appear in ProviderError.error_codes
        content: Dialect name to content variant
        retry: Re-run the original content after the handler succeeds

    Example:
        >>> OnErrorElement(
        ...     type="IntegrityError|ProviderError",
        ...     codes={"23000"},
        ...     content={"default": "UPDATE users SET name=$name WHERE id=$id"},
        ...     retry=False,
        ... )
    """

    type: Optional[str] = None
    message: Optional[str] = None
    codes: frozenset[str] = frozenset()
    content: dict[str, ContentVariant] = Field(default_factory=dict)
    retry: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("type", "message")
    @classmethod
    def _check_pattern(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"Invalid regular expression {value!r}: {e}")
        return value

    def matches(self, error: BaseException) -> bool:
        """
        Check whether this handler applies to a failure.

        The failure and every exception in its cause chain are inspected.

        Args:
            error: The failure raised by the original content

        Returns:
            True if all configured criteria are satisfied
        """
        chain = list(_cause_chain(error))

        if self.type is not None:
            pattern = re.compile(self.type)
            names = set()
            for exc in chain:
                for cls in type(exc).__mro__:
                    names.add(cls.__name__)
                    names.add(f"{cls.__module__}.{cls.__qualname__}")
            if not any(pattern.fullmatch(name) for name in names):
                return False

        if self.message is not None:
            pattern = re.compile(self.message)
            if not any(pattern.search(str(exc)) for exc in chain):
                return False

        if self.codes:
            error_codes = set()
            for exc in chain:
                error_codes.update(getattr(exc, "error_codes", ()) or ())
            if not self.codes & error_codes:
                return False

        return True

    def get_content(self, dialect: Optional[DialectIdentifier]) -> ContentVariant:
        """Select the handler's content for a dialect (may be NULL_CONTENT)."""
        return select_content(dialect, self.content)

    def __str__(self) -> str:
        criteria = []
        if self.type is not None:
            criteria.append(f"type={self.type!r}")
        if self.message is not None:
            criteria.append(f"message={self.message!r}")
        if self.codes:
            criteria.append(f"codes={sorted(self.codes)}")
        criteria.append(f"retry={self.retry}")
        return f"onerror({', '.join(criteria)})"


class ScriptElement(BaseModel):
    """
    A script: side-effecting content run against one connection.

    Attributes:
        location: Where the element was configured (used in diagnostics)
        connection_id: Target connection (optional if only one is configured)
        content: Dialect name to content variant
        on_error: Ordered fallback handlers; order is priority
        condition: Predicate over the DynamicContext; falsy skips the element
        new_tx: Run on a dedicated connection that is closed afterwards

    Example:
        >>> ScriptElement(
        ...     location="load_users",
        ...     connection_id="warehouse",
        ...     content={"default": "INSERT INTO users VALUES ($id, $name)"},
        ...     on_error=[OnErrorElement(codes={"23000"}, content={"default": "..."})],
        ... )
    """

    location: str
    connection_id: Optional[str] = None
    content: dict[str, ContentVariant] = Field(default_factory=dict)
    on_error: list[OnErrorElement] = Field(default_factory=list)
    condition: Optional[Callable[[Any], Any]] = None
    new_tx: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")


class QueryElement(BaseModel):
    """
    A query: content producing rows, each row running the nested elements.

    Row values become variables of a child context, so nested scripts and
    queries can reference them (e.g. ``$name`` in a text driver script).

    Example:
        >>> QueryElement(
        ...     location="extract_users",
        ...     connection_id="source",
        ...     content={"default": "SELECT id, name FROM users"},
        ...     children=[ScriptElement(location="write_user", connection_id="out",
        ...                             content={"default": "$id;$name"})],
        ... )
    """

    location: str
    connection_id: Optional[str] = None
    content: dict[str, ContentVariant] = Field(default_factory=dict)
    children: list[Union[ScriptElement, "QueryElement"]] = Field(default_factory=list)
    condition: Optional[Callable[[Any], Any]] = None
    new_tx: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")


QueryElement.model_rebuild()

Element = Union[ScriptElement, QueryElement]


def _cause_chain(error: BaseException):
    """Yield an exception followed by its causes, guarding against cycles."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__
