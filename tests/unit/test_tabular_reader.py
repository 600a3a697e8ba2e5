"""
Unit tests for the CSV and XLSX readers.
"""

import io
import os
from datetime import datetime

import pytest
from openpyxl import Workbook

from billing_intake.core.errors import (
    EmptyFileError,
    MalformedFileError,
    MissingHeadersError,
    UnsupportedFileTypeError,
)
from billing_intake.core.models import FileType
from billing_intake.ingest.provider_headers import ProviderHeaderConfig
from billing_intake.ingest.tabular import TabularReader, format_cell

HEADERS = ProviderHeaderConfig(
    {
        "FirstNet": ["Account number", "Wireless number", "Total current charges"],
        "FirstNet Inventory": ["Billing Account Number", "Wireless number", "Status"],
    }
)


@pytest.fixture
def reader():
    return TabularReader(HEADERS)


def xlsx_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestCsv:
    """Tests for CSV reading"""

    def test_reads_rows_in_order(self, reader):
        data = (
            "Account number,Wireless number,Total current charges\n"
            "287301234567,916-555-0100, $45.10 \n"
            "287301234567,916-555-0101,$20.00\n"
        ).encode()
        rows = reader.read(data, "firstnet.csv", "FirstNet")
        assert rows == [
            {"Account number": "287301234567", "Wireless number": "916-555-0100", "Total current charges": "$45.10"},
            {"Account number": "287301234567", "Wireless number": "916-555-0101", "Total current charges": "$20.00"},
        ]

    def test_byte_order_mark_is_removed(self, reader):
        data = "\ufeffAccount number,Wireless number,Total current charges\n1,2,3\n".encode()
        rows = reader.read(data, "firstnet.csv", "FirstNet")
        assert rows[0]["Account number"] == "1"

    def test_byte_order_mark_before_quoted_header(self, reader):
        data = b'\xef\xbb\xbf"Account number","Wireless number","Total current charges"\n1,2,3\n'
        rows = reader.read(data, "firstnet.csv", "FirstNet")
        assert list(rows[0]) == ["Account number", "Wireless number", "Total current charges"]
        assert rows[0]["Account number"] == "1"

    def test_excel_text_wrapper_is_unwrapped(self, reader):
        data = 'Account number,Wireless number,Total current charges\n"=""287301234567""",x,1\n'.encode()
        rows = reader.read(data, "firstnet.csv", "FirstNet")
        assert rows[0]["Account number"] == "287301234567"

    def test_blank_rows_are_skipped(self, reader):
        data = "Account number,Wireless number,Total current charges\n,,\n\n1,2,3\n  , ,\n".encode()
        assert len(reader.read(data, "firstnet.csv", "FirstNet")) == 1

    def test_short_rows_are_padded(self, reader):
        data = "Account number,Wireless number,Total current charges\n1,2\n".encode()
        rows = reader.read(data, "firstnet.csv", "FirstNet")
        assert rows[0]["Total current charges"] == ""

    def test_extra_columns_are_malformed(self, reader):
        data = "Account number,Wireless number,Total current charges\n1,2,3,4\n".encode()
        with pytest.raises(MalformedFileError, match="line 2"):
            reader.read(data, "firstnet.csv", "FirstNet")

    def test_bad_quoting_is_malformed(self, reader):
        data = 'Account number,Wireless number,Total current charges\n1,"2"x,3\n'.encode()
        with pytest.raises(MalformedFileError):
            reader.read(data, "firstnet.csv", "FirstNet")

    def test_missing_headers(self, reader):
        data = "Account number,Total current charges\n1,3\n".encode()
        with pytest.raises(MissingHeadersError) as exc_info:
            reader.read(data, "firstnet.csv", "FirstNet")
        assert exc_info.value.missing == ["Wireless number"]

    def test_inventory_headers(self, reader):
        data = "Billing Account Number,Wireless number,Status\n1,2,Active\n".encode()
        rows = reader.read(io.BytesIO(data), "inventory.csv", "FirstNet", FileType.INVENTORY)
        assert rows[0]["Status"] == "Active"

    def test_fixture_file(self, test_data_dir, provider_headers):
        path = os.path.join(test_data_dir, "att_invoice.csv")
        with open(path, "rb") as f:
            rows = TabularReader(provider_headers).read(f, "att_invoice.csv", "AT&T Mobility")
        assert len(rows) == 3
        assert rows[1]["Total current charges"] == "$1,040.00"


class TestXlsx:
    """Tests for XLSX reading"""

    def test_reads_numeric_cells_without_exponent(self, reader):
        data = xlsx_bytes(
            [
                ["Account number", "Wireless number", "Total current charges"],
                [287301234567.0, "916-555-0100", 45.1],
                [None, None, None],
                [287301234568, "916-555-0101", 20],
            ]
        )
        rows = reader.read(data, "firstnet.xlsx", "FirstNet")
        assert rows == [
            {"Account number": "287301234567", "Wireless number": "916-555-0100", "Total current charges": "45.1"},
            {"Account number": "287301234568", "Wireless number": "916-555-0101", "Total current charges": "20"},
        ]

    def test_missing_headers(self, reader):
        data = xlsx_bytes([["Account number"], [1]])
        with pytest.raises(MissingHeadersError):
            reader.read(data, "firstnet.xlsx", "FirstNet")

    def test_corrupt_workbook(self, reader):
        with pytest.raises(MalformedFileError, match="XLSX"):
            reader.read(b"definitely not a workbook", "firstnet.xlsx", "FirstNet")


class TestRead:
    """Tests for dispatch and empty input"""

    def test_empty_file(self, reader):
        with pytest.raises(EmptyFileError):
            reader.read(b"", "firstnet.csv", "FirstNet")

    def test_unsupported_extension(self, reader):
        with pytest.raises(UnsupportedFileTypeError):
            reader.read(b"a,b", "firstnet.txt", "FirstNet")

    @pytest.mark.parametrize(
        "value, text",
        [
            (None, ""),
            (True, "TRUE"),
            (12, "12"),
            (2.87301234567e11, "287301234567"),
            (0.5, "0.5"),
            (datetime(2024, 3, 15), "03/15/2024"),
            ("  x ", "x"),
        ],
    )
    def test_format_cell(self, value, text):
        assert format_cell(value) == text
