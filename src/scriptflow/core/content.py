"""
Content variants and dialect-based content selection.

An element declares one content variant per dialect it supports. At run time the
variant matching the active connection's dialect is selected; when none applies
the NULL_CONTENT sentinel is returned, which is a normal outcome, not an error.
"""

import io
from pathlib import Path
from typing import Any, Mapping, Optional, TextIO

from pydantic import BaseModel, ConfigDict, model_validator


# Mapping key of the variant used when no exact dialect match exists
DEFAULT_DIALECT = "default"


class DialectIdentifier(BaseModel):
    """
    Identifies the content dialect a connection understands.

    Example:
        >>> DialectIdentifier(name="Microsoft SQL Server", version="16.00.1000")
        >>> DialectIdentifier(name="Text", version="1.0")
    """

    name: str
    version: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.name} {self.version}" if self.version else self.name


class ContentVariant(BaseModel):
    """
    A block of executable text, given inline or as a file.

    Exactly one of ``text`` or ``path`` must be set. A plain string is accepted
    wherever a variant is expected and becomes inline text.

    Example:
        >>> ContentVariant(text="INSERT INTO users VALUES ($id, $name)")
        >>> ContentVariant(path="sql/load_users.sql", encoding="cp1252")
        >>> ContentVariant.model_validate("DELETE FROM staging")
    """

    text: Optional[str] = None
    path: Optional[Path] = None
    encoding: str = "utf-8"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"text": data}
        return data

    @model_validator(mode="after")
    def _check_source(self) -> "ContentVariant":
        if (self.text is None) == (self.path is None):
            raise ValueError("Content requires exactly one of 'text' or 'path'")
        return self

    def open(self) -> TextIO:
        """
        Open the content as a text stream.

        Returns:
            Readable text stream; the caller is responsible for closing it

        Raises:
            OSError: If the content file cannot be opened
        """
        if self.text is not None:
            return io.StringIO(self.text)
        return self.path.open("r", encoding=self.encoding)

    def read(self) -> str:
        """Read the whole content as a string."""
        with self.open() as reader:
            return reader.read()

    def __str__(self) -> str:
        if self.path is not None:
            return str(self.path)
        first_line = self.text.strip().split("\n", 1)[0]
        return first_line if len(first_line) <= 60 else first_line[:57] + "..."


# Sentinel: element has nothing applicable for the active dialect
NULL_CONTENT = ContentVariant(text="")


def select_content(
    dialect: Optional[DialectIdentifier],
    variants: Mapping[str, ContentVariant],
) -> ContentVariant:
    """
    Pick the content variant for a dialect.

    Resolution order:
    1. Variant keyed by the dialect name (case-insensitive)
    2. Variant keyed by DEFAULT_DIALECT
    3. NULL_CONTENT

    Args:
        dialect: Dialect of the active connection (None if unknown)
        variants: Mapping of dialect name to content variant

    Returns:
        The selected variant, or NULL_CONTENT if nothing applies

    Example:
        >>> variants = {"default": ContentVariant(text="SELECT 1")}
        >>> select_content(DialectIdentifier(name="Text"), variants).text
        'SELECT 1'
        >>> select_content(DialectIdentifier(name="Text"), {}) is NULL_CONTENT
        True
    """
    if not variants:
        return NULL_CONTENT

    if dialect is not None:
        wanted = dialect.name.lower()
        for key, variant in variants.items():
            if key.lower() == wanted:
                return variant

    return variants.get(DEFAULT_DIALECT, NULL_CONTENT)
