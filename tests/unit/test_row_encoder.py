"""
Unit tests for row encoding.
"""

from datetime import date

from tabingest.ingest.row_encoder import RowEncoder, encode_row
from tabingest.ingest.schema_builder import ColumnSchema, TableSchema
from tabingest.ingest.type_detector import ColumnType

SCHEMA = TableSchema(columns=(
    ColumnSchema("id", "ID", ColumnType.WIDE_INTEGER, False),
    ColumnSchema("price", "Price", ColumnType.FLOAT, True),
    ColumnSchema("active", "Active", ColumnType.BOOLEAN, True),
    ColumnSchema("day", "Day", ColumnType.DATE, True),
    ColumnSchema("note", "Note", ColumnType.TEXT, True),
))


class TestEncodeRow:
    """Tests for encode_row."""

    def test_typed_values_in_schema_order(self):
        row = {"Note": "hi", "Day": "2024-01-31", "Active": "yes", "Price": "9.5", "ID": "42"}
        assert encode_row(row, SCHEMA) == [42, 9.5, True, "2024-01-31", "hi"]

    def test_empty_and_missing_cells_are_null(self):
        assert encode_row({"ID": "", "Price": "   "}, SCHEMA) == [None] * 5

    def test_unparsable_numbers_become_null(self):
        row = {"ID": "forty-two", "Price": "n/a", "Active": "no", "Day": "x", "Note": "y"}
        assert encode_row(row, SCHEMA)[:3] == [None, None, False]

    def test_boolean_uses_the_truthy_tokens(self):
        for token, expected in [("TRUE", True), ("y", True), ("1", True), ("0", False), ("nope", False)]:
            assert encode_row({"Active": token}, SCHEMA)[2] is expected

    def test_dates_pass_through_unchanged(self):
        assert encode_row({"Day": "31/01/2024"}, SCHEMA)[3] == "31/01/2024"
        assert encode_row({"Day": date(2024, 1, 31)}, SCHEMA)[3] == "2024-01-31"

    def test_native_spreadsheet_numbers(self):
        assert encode_row({"ID": 7.0, "Price": 1.25}, SCHEMA)[:2] == [7, 1.25]

    def test_non_finite_floats_are_null(self):
        assert encode_row({"Price": "nan"}, SCHEMA)[1] is None
        assert encode_row({"Price": "inf"}, SCHEMA)[1] is None

    def test_text_keeps_the_string_form(self):
        assert encode_row({"Note": 12}, SCHEMA)[4] == "12"


class TestRowEncoder:
    """Tests for RowEncoder batches."""

    def test_batch_is_flattened(self):
        encoder = RowEncoder(SCHEMA)
        params = encoder.encode_batch([{"ID": "1"}, {"ID": "2"}])
        assert len(params) == 2 * len(SCHEMA.columns)
        assert params[0] == 1
        assert params[len(SCHEMA.columns)] == 2
