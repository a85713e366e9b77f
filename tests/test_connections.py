"""
Tests for the file-based connections and driver lookup.

Validates:
- Text connection: lazy output, appending scripts, trim, regex queries
- CSV connection: writing rows, header-aware pattern queries
- Read/write exclusivity on one instance
- Idempotent close
- Configuration errors for bad parameters
"""

import pytest

from scriptflow.connections import DRIVERS, connect
from scriptflow.connections.base import ConnectionParameters, resolve_file_path
from scriptflow.connections.csv_connection import CSVConnection, CSVProviderError
from scriptflow.connections.text import TextConnection, TextProviderError
from scriptflow.core.content import ContentVariant
from scriptflow.core.context import DynamicContext
from scriptflow.core.exceptions import ConfigurationError


@pytest.fixture
def ctx():
    return DynamicContext(variables={"id": 1, "name": "Ada", "email": "ada@example.com"})


def collect(connection, query, ctx):
    rows = []
    connection.execute_query(ContentVariant(text=query), ctx, rows.append)
    return rows


class TestTextConnection:

    def test_output_is_opened_lazily(self, tmp_path):
        target = tmp_path / "out" / "report.txt"
        con = TextConnection(ConnectionParameters(url=str(target)))

        assert not target.exists()
        con.close()
        assert not target.exists()

    def test_scripts_append_substituted_lines(self, tmp_path, ctx):
        target = tmp_path / "report.txt"
        con = TextConnection(ConnectionParameters(url=str(target)))

        con.execute_script(ContentVariant(text="# Users"), ctx)
        con.execute_script(ContentVariant(text="$id;$name\n${email}"), ctx)
        con.close()

        assert target.read_text(encoding="utf-8") == "# Users\n1;Ada\nada@example.com\n"

    def test_trim_and_custom_eol(self, tmp_path, ctx):
        target = tmp_path / "report.txt"
        con = TextConnection(
            ConnectionParameters(url=str(target), properties={"trim": "true", "eol": "\r\n"})
        )

        con.execute_script(ContentVariant(text="   $name  \n\n   \n  end"), ctx)
        con.close()

        assert target.read_bytes() == b"Ada\r\nend\r\n"

    def test_file_url_is_accepted(self, tmp_path, ctx):
        target = tmp_path / "url.txt"
        con = TextConnection(ConnectionParameters(url=target.as_uri()))

        con.execute_script(ContentVariant(text="x"), ctx)
        con.close()

        assert target.read_text(encoding="utf-8") == "x\n"

    def test_query_matches_regex_per_line(self, tmp_path, ctx):
        source = tmp_path / "users.txt"
        source.write_text("1;Ada\n2;Grace\nnot a user\n", encoding="utf-8")
        con = TextConnection(ConnectionParameters(url=str(source)))

        rows = collect(con, r"(?P<id>\d+);(\w+)", ctx)

        assert rows == [
            {"column0": "1;Ada", "column1": "1", "column2": "Ada", "id": "1"},
            {"column0": "2;Grace", "column1": "2", "column2": "Grace", "id": "2"},
        ]

    def test_query_patterns_are_substituted(self, tmp_path, ctx):
        source = tmp_path / "users.txt"
        source.write_text("1;Ada\n2;Grace\n", encoding="utf-8")
        con = TextConnection(ConnectionParameters(url=str(source)))

        rows = collect(con, "^$id;", ctx)

        assert [row["column0"] for row in rows] == ["1;"]

    def test_query_after_script_is_rejected(self, tmp_path, ctx):
        con = TextConnection(ConnectionParameters(url=str(tmp_path / "both.txt")))
        con.execute_script(ContentVariant(text="1;Ada"), ctx)

        with pytest.raises(TextProviderError, match="Cannot query and update a Text file"):
            collect(con, ".*", ctx)
        con.close()

    def test_script_during_query_is_rejected(self, tmp_path, ctx):
        """Test that writing while a query reads the same file fails and keeps the input."""
        source = tmp_path / "users.txt"
        source.write_text("1;Ada\n2;Grace\n", encoding="utf-8")
        con = TextConnection(ConnectionParameters(url=str(source)))

        def write_back(row):
            con.execute_script(ContentVariant(text="out $column1"), ctx)

        with pytest.raises(TextProviderError, match="Cannot query and update a Text file"):
            con.execute_query(ContentVariant(text=r"(\d+);"), ctx, write_back)
        con.close()

        assert source.read_text(encoding="utf-8") == "1;Ada\n2;Grace\n"

    def test_script_allowed_after_query_finished(self, tmp_path, ctx):
        target = tmp_path / "users.txt"
        target.write_text("1;Ada\n", encoding="utf-8")
        con = TextConnection(ConnectionParameters(url=str(target)))

        collect(con, ".*", ctx)
        con.execute_script(ContentVariant(text="$name"), ctx)
        con.close()

        assert target.read_text(encoding="utf-8") == "Ada\n"

    def test_missing_input_file_is_provider_error(self, tmp_path, ctx):
        con = TextConnection(ConnectionParameters(url=str(tmp_path / "missing.txt")))

        with pytest.raises(TextProviderError, match="for reading"):
            collect(con, ".*", ctx)

    def test_invalid_pattern_is_provider_error(self, tmp_path, ctx):
        source = tmp_path / "users.txt"
        source.write_text("x\n", encoding="utf-8")
        con = TextConnection(ConnectionParameters(url=str(source)))

        with pytest.raises(TextProviderError, match="Invalid query pattern"):
            collect(con, "(unclosed", ctx)

    def test_close_is_idempotent(self, tmp_path, ctx):
        con = TextConnection(ConnectionParameters(url=str(tmp_path / "x.txt")))
        con.execute_script(ContentVariant(text="x"), ctx)

        con.close()
        con.close()

    def test_context_manager_closes(self, tmp_path, ctx):
        target = tmp_path / "cm.txt"
        with TextConnection(ConnectionParameters(url=str(target))) as con:
            con.execute_script(ContentVariant(text="$name"), ctx)

        assert target.read_text(encoding="utf-8") == "Ada\n"

    def test_dialect(self, tmp_path):
        con = TextConnection(ConnectionParameters(url=str(tmp_path / "x.txt")))

        assert str(con.dialect_identifier) == "Text 1.0"

    def test_missing_url(self):
        with pytest.raises(ConfigurationError, match="url"):
            TextConnection(ConnectionParameters())

    def test_unknown_encoding(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown encoding"):
            TextConnection(
                ConnectionParameters(url=str(tmp_path / "x.txt"), properties={"encoding": "utf-99"})
            )

    def test_invalid_boolean_property(self, tmp_path):
        with pytest.raises(ConfigurationError, match="trim"):
            TextConnection(
                ConnectionParameters(url=str(tmp_path / "x.txt"), properties={"trim": "maybe"})
            )


class TestCSVConnection:

    @pytest.fixture
    def users_csv(self, tmp_path):
        path = tmp_path / "users.csv"
        path.write_text(
            "id,name,status\n"
            "1,Ada,active\n"
            "2,Grace,disabled\n"
            '3,"Hopper, Grace",active\n',
            encoding="utf-8",
        )
        return path

    def test_query_without_patterns_returns_every_row(self, users_csv, ctx):
        con = CSVConnection(ConnectionParameters(url=str(users_csv)))

        rows = collect(con, "", ctx)

        assert len(rows) == 3
        assert rows[0] == {
            "id": "1",
            "name": "Ada",
            "status": "active",
            "column1": "1",
            "column2": "Ada",
            "column3": "active",
        }
        assert rows[2]["name"] == "Hopper, Grace"

    def test_query_patterns_filter_rows(self, users_csv, ctx):
        con = CSVConnection(ConnectionParameters(url=str(users_csv)))

        rows = collect(con, ".*,.*,^active$", ctx)

        assert [row["id"] for row in rows] == ["1", "3"]

    def test_any_pattern_row_may_match(self, users_csv, ctx):
        con = CSVConnection(ConnectionParameters(url=str(users_csv)))

        rows = collect(con, "^1$\n^2$", ctx)

        assert [row["id"] for row in rows] == ["1", "2"]

    def test_headers_disabled(self, tmp_path, ctx):
        path = tmp_path / "raw.csv"
        path.write_text("1;Ada\n2;Grace\n", encoding="utf-8")
        con = CSVConnection(
            ConnectionParameters(url=str(path), properties={"headers": "false", "separator": ";"})
        )

        rows = collect(con, "", ctx)

        assert rows == [
            {"column1": "1", "column2": "Ada"},
            {"column1": "2", "column2": "Grace"},
        ]

    def test_utf8_bom_is_ignored(self, tmp_path, ctx):
        path = tmp_path / "bom.csv"
        path.write_bytes("id,name\n1,Ada\n".encode("utf-8-sig"))
        con = CSVConnection(ConnectionParameters(url=str(path)))

        rows = collect(con, "", ctx)

        assert rows[0]["id"] == "1"

    def test_script_writes_rows_with_quoting(self, tmp_path, ctx):
        target = tmp_path / "out" / "users.csv"
        con = CSVConnection(ConnectionParameters(url=str(target)))

        con.execute_script(ContentVariant(text="id,name"), ctx)
        con.execute_script(ContentVariant(text='$id,"$name, Lovelace"'), ctx)
        con.close()

        assert target.read_text(encoding="utf-8") == 'id,name\n1,"Ada, Lovelace"\n'

    def test_query_after_script_is_rejected(self, tmp_path, ctx):
        con = CSVConnection(ConnectionParameters(url=str(tmp_path / "both.csv")))
        con.execute_script(ContentVariant(text="a,b"), ctx)

        with pytest.raises(CSVProviderError, match="simultaneously"):
            collect(con, "", ctx)
        con.close()

    def test_script_during_query_is_rejected(self, users_csv, ctx):
        original = users_csv.read_text(encoding="utf-8")
        con = CSVConnection(ConnectionParameters(url=str(users_csv)))

        def write_back(row):
            con.execute_script(ContentVariant(text="$id,copy"), ctx)

        with pytest.raises(CSVProviderError, match="Cannot query and update a CSV file"):
            con.execute_query(ContentVariant(text=""), ctx, write_back)
        con.close()

        assert users_csv.read_text(encoding="utf-8") == original

    def test_missing_file_is_provider_error(self, tmp_path, ctx):
        con = CSVConnection(ConnectionParameters(url=str(tmp_path / "missing.csv")))

        with pytest.raises(CSVProviderError, match="Failed to read"):
            collect(con, "", ctx)

    def test_separator_must_be_single_character(self, tmp_path):
        with pytest.raises(ConfigurationError, match="separator"):
            CSVConnection(
                ConnectionParameters(url=str(tmp_path / "x.csv"), properties={"separator": ";;"})
            )

    def test_close_is_idempotent(self, tmp_path, ctx):
        con = CSVConnection(ConnectionParameters(url=str(tmp_path / "x.csv")))
        con.execute_script(ContentVariant(text="a"), ctx)

        con.close()
        con.close()


class TestConnect:

    def test_builtin_drivers(self, tmp_path):
        params = ConnectionParameters(url=str(tmp_path / "x.txt"))

        assert isinstance(connect("text", params), TextConnection)
        assert isinstance(connect("CSV", params), CSVConnection)
        assert set(DRIVERS) == {"text", "csv", "sqlserver"}

    def test_custom_driver_reference(self, tmp_path):
        params = ConnectionParameters(url=str(tmp_path / "x.txt"))

        con = connect("scriptflow.connections.text:TextConnection", params)

        assert isinstance(con, TextConnection)

    def test_unknown_driver(self):
        with pytest.raises(ConfigurationError, match="Unknown driver 'oracle'"):
            connect("oracle", ConnectionParameters())

    def test_unloadable_driver(self):
        with pytest.raises(ConfigurationError, match="Unable to load driver"):
            connect("no.such.module:Driver", ConnectionParameters())


def test_resolve_file_path_decodes_file_url(tmp_path):
    target = tmp_path / "with space.txt"

    assert resolve_file_path(ConnectionParameters(url=target.as_uri())) == target
