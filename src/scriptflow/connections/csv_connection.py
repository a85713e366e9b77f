"""
CSV file connection.

Scripts write CSV rows produced from substituted content; queries read the
file and pass matching rows on. Useful for extracts and loads without a
database server.
"""

import csv
import io
import logging
import re
from typing import Any, Optional, TextIO

from ..core.content import ContentVariant, DialectIdentifier
from ..core.context import DynamicContext
from ..core.exceptions import ProviderError
from .base import (
    AbstractConnection,
    ConnectionParameters,
    QueryCallback,
    resolve_encoding,
    resolve_file_path,
)


logger = logging.getLogger(__name__)


class CSVProviderError(ProviderError):
    """Raised when reading or writing a CSV file fails."""

    pass


class CSVConnection(AbstractConnection):
    """
    Connection to a delimited text file.

    The output is opened lazily by the first script and stays open until
    close(), so several scripts on one connection append to the same file.
    Query and script use on the same instance are mutually exclusive.

    Properties:
        encoding: Charset of the file (default: utf-8; BOM tolerated when reading)
        separator: Field delimiter (default: ",")
        quote: Quote character (default: '"')
        headers: First line holds column names (default: true)

    Example:
        >>> con = CSVConnection(ConnectionParameters(url="out/users.csv"))
        >>> ctx = DynamicContext(variables={"id": 7, "name": "Grace"})
        >>> con.execute_script(ContentVariant(text="id,name\\n$id,$name"), ctx)

        Query content lines are CSV rows of regex patterns; a row passes when
        every pattern column matches the corresponding cell. Empty content
        passes every row:

        >>> reader = CSVConnection(ConnectionParameters(url="out/users.csv"))
        >>> reader.execute_query(ContentVariant(text=r"\\d+,G.*"), ctx, print)
        {'id': '7', 'name': 'Grace', 'column1': '7', 'column2': 'Grace'}
    """

    DIALECT = DialectIdentifier(name="CSV", version="1.0")

    def __init__(self, parameters: ConnectionParameters):
        """
        Initialize the CSV connection.

        Args:
            parameters: url is the file path; see class docstring for properties

        Raises:
            ConfigurationError: If url is missing or a property is invalid
        """
        super().__init__(self.DIALECT)
        self.file_path = resolve_file_path(parameters)
        self.encoding = resolve_encoding(parameters)
        self.separator = parameters.get_char_property("separator", ",")
        self.quote = parameters.get_char_property("quote", '"')
        self.headers = parameters.get_boolean_property("headers", default=True)
        self._out: Optional[TextIO] = None
        self._writer: Any = None
        self._reading = False

    def _format_params(self) -> dict[str, Any]:
        return {
            "delimiter": self.separator,
            "quotechar": self.quote,
            "quoting": csv.QUOTE_MINIMAL,
        }

    def execute_script(self, content: ContentVariant, ctx: DynamicContext) -> None:
        """
        Substitute variables in the content and write it as CSV rows.

        Raises:
            CSVProviderError: If the content is malformed or the file cannot be written,
                             or a query on this connection is in progress
        """
        if self._reading:
            raise CSVProviderError("Cannot query and update a CSV file simultaneously")
        self._init_out()
        try:
            with content.open() as reader:
                text = "\n".join(self.substitute(line.rstrip("\r\n"), ctx) for line in reader)
            rows = [row for row in csv.reader(io.StringIO(text), **self._format_params()) if row]
            self._writer.writerows(rows)
        except csv.Error as e:
            raise CSVProviderError(f"CSV formatting error in {self.file_path}: {e}") from e
        except OSError as e:
            raise CSVProviderError(f"Failed to write CSV file {self.file_path}: {e}") from e

    def _init_out(self) -> None:
        """Lazily open the output file and its writer."""
        if self._out is None:
            try:
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                self._out = self.file_path.open("w", encoding=self.encoding, newline="")
            except OSError as e:
                raise CSVProviderError(
                    f"Unable to open file {self.file_path} for writing: {e}"
                ) from e
            self._writer = csv.writer(self._out, lineterminator="\n", **self._format_params())

    def execute_query(
        self,
        content: ContentVariant,
        ctx: DynamicContext,
        callback: QueryCallback,
    ) -> None:
        """
        Read the file and call back once per row matching the content patterns.

        Raises:
            CSVProviderError: If a script already wrote through this connection,
                             a pattern is invalid, or the file cannot be parsed
        """
        if self._out is not None:
            raise CSVProviderError("Cannot query and update a CSV file simultaneously")

        patterns = self._compile_patterns(content, ctx)

        encoding = "utf-8-sig" if self.encoding.lower().replace("_", "-") == "utf-8" else self.encoding
        self._reading = True
        try:
            with self.file_path.open("r", encoding=encoding, newline="") as f:
                reader = csv.reader(f, **self._format_params())
                header: list[str] = []
                if self.headers:
                    header = next(reader, [])

                for record in reader:
                    if not record:
                        continue
                    if patterns and not any(_row_matches(p, record) for p in patterns):
                        continue
                    callback(_row_from_record(header, record))

        except csv.Error as e:
            raise CSVProviderError(f"CSV parsing error in {self.file_path}: {e}") from e
        except UnicodeDecodeError as e:
            raise CSVProviderError(
                f"CSV file encoding error in {self.file_path}. "
                f"Expected {self.encoding}: {e}"
            ) from e
        except OSError as e:
            raise CSVProviderError(f"Failed to read CSV file {self.file_path}: {e}") from e
        finally:
            self._reading = False

    def _compile_patterns(
        self, content: ContentVariant, ctx: DynamicContext
    ) -> list[list[re.Pattern]]:
        try:
            text = self.substitute(content.read(), ctx)
        except OSError as e:
            raise CSVProviderError(f"Cannot read query: {e}") from e

        try:
            return [
                [re.compile(cell) for cell in row]
                for row in csv.reader(io.StringIO(text), **self._format_params())
                if row
            ]
        except re.error as e:
            raise CSVProviderError(f"Invalid query pattern: {e}") from e

    def close(self) -> None:
        """Flush and close the output file if it was opened. Safe to call repeatedly."""
        out, self._out, self._writer = self._out, None, None
        if out is not None:
            try:
                out.close()
            except OSError as e:
                logger.warning(f"Failed to close CSV file {self.file_path}: {e}")


def _row_matches(patterns: list[re.Pattern], record: list[str]) -> bool:
    if len(patterns) > len(record):
        return False
    return all(pattern.search(cell) for pattern, cell in zip(patterns, record))


def _row_from_record(header: list[str], record: list[str]) -> dict[str, str]:
    row = {name: value for name, value in zip(header, record)}
    for index, value in enumerate(record, start=1):
        row[f"column{index}"] = value
    return row
