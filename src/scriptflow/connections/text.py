"""
Text file connection.

Scripts append substituted lines to an output file; queries match regular
expressions against the lines of an input file. A single connection instance
either writes or reads, never both; a script issued while a query is reading
the same instance is rejected.
"""

import logging
import re
from typing import Optional, TextIO

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


class TextProviderError(ProviderError):
    """Raised when reading or writing a text file fails."""

    pass


class TextConnection(AbstractConnection):
    """
    Connection to a text file.

    The output file is opened lazily by the first script and kept open until
    close(), so consecutive scripts on the same connection append to the same
    stream.

    Properties:
        encoding: Charset of the file (default: utf-8)
        eol: Line terminator written after each line (default: "\\n")
        trim: Strip whitespace around script lines and skip empty ones (default: false)

    Example:
        >>> con = TextConnection(ConnectionParameters(url="output/users.txt"))
        >>> ctx = DynamicContext(variables={"id": 1, "name": "Ada"})
        >>> con.execute_script(ContentVariant(text="$id;$name"), ctx)
        >>> con.close()  # output/users.txt now contains "1;Ada"

        Query content holds one regex per line; each match becomes a row with
        column0 (whole match), column1..N (groups) and named groups:

        >>> reader = TextConnection(ConnectionParameters(url="output/users.txt"))
        >>> reader.execute_query(
        ...     ContentVariant(text=r"(?P<id>\\d+);(\\w+)"), ctx, lambda row: print(row)
        ... )
        {'column0': '1;Ada', 'column1': '1', 'column2': 'Ada', 'id': '1'}
    """

    DIALECT = DialectIdentifier(name="Text", version="1.0")

    def __init__(self, parameters: ConnectionParameters):
        """
        Initialize the text connection.

        Args:
            parameters: url is the file path; see class docstring for properties

        Raises:
            ConfigurationError: If url is missing or a property is invalid
        """
        super().__init__(self.DIALECT)
        self.file_path = resolve_file_path(parameters)
        self.encoding = resolve_encoding(parameters)
        self.eol = parameters.properties.get("eol", "\n")
        self.trim = parameters.get_boolean_property("trim", default=False)
        self._out: Optional[TextIO] = None
        self._reading = False

    def execute_script(self, content: ContentVariant, ctx: DynamicContext) -> None:
        """
        Write each content line, with variables substituted, to the output file.

        Raises:
            TextProviderError: If the content cannot be read or the file written,
                              or a query on this connection is in progress
        """
        if self._reading:
            raise TextProviderError("Cannot query and update a Text file simultaneously")
        out = self._init_out()
        try:
            with content.open() as reader:
                for line in reader:
                    line = line.rstrip("\r\n")
                    if self.trim:
                        line = line.strip()
                        if not line:
                            continue
                    out.write(self.substitute(line, ctx))
                    out.write(self.eol)
        except OSError as e:
            raise TextProviderError(f"Failed to produce a text file {self.file_path}: {e}") from e

    def _init_out(self) -> TextIO:
        """Lazily open the output file for writing."""
        if self._out is None:
            try:
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                self._out = self.file_path.open("w", encoding=self.encoding, newline="")
            except OSError as e:
                raise TextProviderError(
                    f"Unable to open file {self.file_path} for writing: {e}"
                ) from e
        return self._out

    def execute_query(
        self,
        content: ContentVariant,
        ctx: DynamicContext,
        callback: QueryCallback,
    ) -> None:
        """
        Search every line of the file with each content regex.

        Raises:
            TextProviderError: If a script already wrote through this connection,
                              a pattern is invalid, or the file cannot be read
        """
        if self._out is not None:
            raise TextProviderError("Cannot query and update a Text file simultaneously")

        try:
            query = content.read()
        except OSError as e:
            raise TextProviderError(f"Cannot read query: {e}") from e

        try:
            patterns = [
                re.compile(self.substitute(line.strip(), ctx))
                for line in query.splitlines()
                if line.strip()
            ]
        except re.error as e:
            raise TextProviderError(f"Invalid query pattern: {e}") from e

        self._reading = True
        try:
            with self.file_path.open("r", encoding=self.encoding) as reader:
                for line in reader:
                    line = line.rstrip("\r\n")
                    for pattern in patterns:
                        match = pattern.search(line)
                        if match:
                            callback(_row_from_match(match))
        except OSError as e:
            raise TextProviderError(
                f"Cannot open a text file {self.file_path} for reading: {e}"
            ) from e
        finally:
            self._reading = False

    def close(self) -> None:
        """Close the output file if it was opened. Safe to call repeatedly."""
        out, self._out = self._out, None
        if out is not None:
            try:
                out.close()
            except OSError as e:
                logger.warning(f"Failed to close text file {self.file_path}: {e}")


def _row_from_match(match: re.Match) -> dict[str, str]:
    row = {"column0": match.group(0)}
    for index, value in enumerate(match.groups(), start=1):
        row[f"column{index}"] = value
    row.update({name: value for name, value in match.groupdict().items()})
    return row
