"""
Tests for content variants and dialect-based selection.

Validates:
- Exact, case-insensitive dialect matching
- Fallback to the default variant
- NULL_CONTENT sentinel when nothing applies
- Inline and file-based content
"""

import pytest
from pydantic import ValidationError

from scriptflow.core.content import (
    DEFAULT_DIALECT,
    NULL_CONTENT,
    ContentVariant,
    DialectIdentifier,
    select_content,
)


TEXT = DialectIdentifier(name="Text", version="1.0")


def test_exact_dialect_match_wins_over_default():
    """Test that the variant keyed by the dialect name is preferred."""
    variants = {
        "text": ContentVariant(text="text variant"),
        DEFAULT_DIALECT: ContentVariant(text="default variant"),
    }

    assert select_content(TEXT, variants).text == "text variant"


def test_dialect_match_is_case_insensitive():
    variants = {"TEXT": ContentVariant(text="upper")}

    assert select_content(TEXT, variants).text == "upper"


def test_default_variant_used_when_no_exact_match():
    variants = {
        "CSV": ContentVariant(text="csv"),
        DEFAULT_DIALECT: ContentVariant(text="fallback"),
    }

    assert select_content(TEXT, variants).text == "fallback"


def test_null_content_when_nothing_applies():
    """Test that a missing dialect is a normal outcome, not an error."""
    variants = {"CSV": ContentVariant(text="csv only")}

    assert select_content(TEXT, variants) is NULL_CONTENT
    assert select_content(TEXT, {}) is NULL_CONTENT


def test_unknown_dialect_uses_default():
    variants = {DEFAULT_DIALECT: ContentVariant(text="any")}

    assert select_content(None, variants).text == "any"


def test_plain_string_becomes_inline_content():
    content = ContentVariant.model_validate("DELETE FROM staging")

    assert content.text == "DELETE FROM staging"
    assert content.read() == "DELETE FROM staging"


def test_file_content_is_read_with_encoding(tmp_path):
    script = tmp_path / "load.sql"
    script.write_text("INSERT INTO t VALUES ('é')", encoding="latin-1")

    content = ContentVariant(path=script, encoding="latin-1")

    assert content.read() == "INSERT INTO t VALUES ('é')"
    assert str(content) == str(script)


def test_content_requires_exactly_one_source(tmp_path):
    with pytest.raises(ValidationError):
        ContentVariant()

    with pytest.raises(ValidationError):
        ContentVariant(text="x", path=tmp_path / "x.sql")


def test_content_is_immutable():
    content = ContentVariant(text="SELECT 1")

    with pytest.raises(ValidationError):
        content.text = "SELECT 2"


def test_dialect_identifier_str():
    assert str(TEXT) == "Text 1.0"
    assert str(DialectIdentifier(name="CSV")) == "CSV"
