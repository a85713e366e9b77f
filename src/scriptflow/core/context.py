"""
DynamicContext - The per-flow execution context.

A context travels through the interceptor chain of every element executed in one
flow. It carries the active connection installed by the connection binder and a
layered variable scope: query rows create child contexts whose variables shadow
the parent's.
"""

from typing import Any, Iterator, Mapping, Optional


class DynamicContext:
    """
    Mutable container for one execution flow.

    The connection binder is the only component that installs or clears the
    active connection. Variables are read-only for elements; child contexts
    add a new scope on top.

    Example:
        >>> ctx = DynamicContext(variables={"batch_id": 42})
        >>> ctx.get_parameter("batch_id")
        42
        >>> row_ctx = ctx.child({"name": "Ada"})
        >>> row_ctx["name"], row_ctx["batch_id"]
        ('Ada', 42)
    """

    def __init__(
        self,
        variables: Optional[Mapping[str, Any]] = None,
        parent: Optional["DynamicContext"] = None,
    ):
        """
        Initialize a context.

        Args:
            variables: Variable bindings for this scope (copied)
            parent: Enclosing context; its connection binding is inherited
        """
        self._variables = dict(variables or {})
        self.parent = parent
        self.connection = parent.connection if parent else None
        self.connection_id = parent.connection_id if parent else None
        self.in_transaction = parent.in_transaction if parent else False

    def child(self, variables: Optional[Mapping[str, Any]] = None) -> "DynamicContext":
        """
        Create a nested context, e.g. for one query row.

        Args:
            variables: Bindings that shadow the parent's within the child

        Returns:
            New context inheriting this context's connection binding
        """
        return DynamicContext(variables=variables, parent=self)

    def get_parameter(self, name: str, default: Any = None) -> Any:
        """
        Resolve a variable through this scope and its parents.

        Args:
            name: Variable name
            default: Value returned when no scope binds the name

        Returns:
            The innermost binding of ``name``, or ``default``
        """
        try:
            return self[name]
        except KeyError:
            return default

    def __getitem__(self, name: str) -> Any:
        scope: Optional[DynamicContext] = self
        while scope is not None:
            if name in scope._variables:
                return scope._variables[name]
            scope = scope.parent
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        try:
            self[name]  # type: ignore[index]
        except KeyError:
            return False
        return True

    def variables(self) -> dict[str, Any]:
        """Flatten all visible variables into a plain dict (inner scopes win)."""
        scopes = []
        scope: Optional[DynamicContext] = self
        while scope is not None:
            scopes.append(scope._variables)
            scope = scope.parent
        merged: dict[str, Any] = {}
        for variables in reversed(scopes):
            merged.update(variables)
        return merged

    def __iter__(self) -> Iterator[str]:
        return iter(self.variables())

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"DynamicContext(connection_id={self.connection_id!r}, "
            f"in_transaction={self.in_transaction}, "
            f"variables={list(self.variables().keys())})"
        )
