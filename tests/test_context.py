"""
Tests for DynamicContext.

Validates:
- Variable lookup through nested scopes
- Child contexts inherit the connection binding
- Mapping access used by parameter substitution
"""

from string import Template

import pytest

from scriptflow.core.context import DynamicContext


def test_get_parameter_with_default():
    ctx = DynamicContext(variables={"batch_id": 42})

    assert ctx.get_parameter("batch_id") == 42
    assert ctx.get_parameter("missing") is None
    assert ctx.get_parameter("missing", "fallback") == "fallback"


def test_child_variables_shadow_parent():
    """Test that row variables win over session variables within the child only."""
    parent = DynamicContext(variables={"name": "session", "batch_id": 1})
    child = parent.child({"name": "row"})

    assert child["name"] == "row"
    assert child["batch_id"] == 1
    assert parent["name"] == "session"
    assert child.variables() == {"name": "row", "batch_id": 1}


def test_child_inherits_connection_binding(connection):
    parent = DynamicContext()
    parent.connection = connection
    parent.connection_id = "db"
    parent.in_transaction = True

    child = parent.child({"id": 3})

    assert child.connection is connection
    assert child.connection_id == "db"
    assert child.in_transaction is True

    # Rebinding the child leaves the parent untouched
    child.connection = None
    assert parent.connection is connection


def test_missing_variable_raises_key_error():
    ctx = DynamicContext()

    with pytest.raises(KeyError):
        ctx["nope"]
    assert "nope" not in ctx


def test_context_works_as_template_mapping():
    ctx = DynamicContext(variables={"id": 7}).child({"name": "Grace"})

    assert Template("$id;${name};$unknown").safe_substitute(ctx) == "7;Grace;$unknown"


def test_variables_are_copied():
    variables = {"a": 1}
    ctx = DynamicContext(variables=variables)
    variables["a"] = 2

    assert ctx["a"] == 1
