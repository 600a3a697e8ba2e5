"""
CSV and XLSX readers.

Both readers return rows as {header: value} dicts with trimmed values,
skip fully blank rows and validate the header row before any data row
is returned.
"""

import csv
import io
import re
from datetime import date, datetime
from decimal import Decimal
from pathlib import PurePath
from typing import Any, BinaryIO
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from billing_intake.core.errors import (
    EmptyFileError,
    MalformedFileError,
    UnsupportedFileTypeError,
)
from billing_intake.core.models import FileType
from billing_intake.ingest.provider_headers import ProviderHeaderConfig
from billing_intake.observability.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx")
_EXCEL_TEXT = re.compile(r'^="(.*)"$')

Row = dict[str, str]


def _clean_csv_value(value: str | None) -> str:
    """Trim and unwrap Excel text-forcing ="..." and stray quotes"""
    if value is None:
        return ""
    value = value.strip()
    match = _EXCEL_TEXT.match(value)
    if match:
        value = match.group(1)
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value.strip()


def format_cell(value: Any) -> str:
    """
    Render a spreadsheet cell as text.

    Floats go through Decimal so account numbers never come out in
    scientific notation; whole numbers lose their trailing ".0".
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        normalized = Decimal(str(value)).normalize()
        if normalized == normalized.to_integral_value():
            return format(normalized.quantize(Decimal(1)), "f")
        return format(normalized, "f")
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.strftime("%m/%d/%Y")
        return value.isoformat()
    if isinstance(value, date):
        return value.strftime("%m/%d/%Y")
    return str(value).strip()


def _is_blank(row: Row) -> bool:
    return not any(v.strip() for v in row.values())


class TabularReader:
    """
    Reads carrier detail files into validated row maps.

    Args:
        headers: Provider header configuration used for validation
    """

    def __init__(self, headers: ProviderHeaderConfig):
        self.headers = headers

    def read(
        self,
        stream: BinaryIO | bytes,
        filename: str,
        carrier: str,
        file_type: FileType = FileType.INVOICE,
    ) -> list[Row]:
        """
        Read a CSV or XLSX upload.

        Args:
            stream: File content
            filename: Original filename; its extension picks the reader
            carrier: Declared carrier, selects the expected headers
            file_type: INVOICE or INVENTORY

        Returns:
            Non-blank rows in file order

        Raises:
            EmptyFileError: If the file has no bytes or no header row
            UnsupportedFileTypeError: If the extension is not .csv/.xlsx
            MissingHeadersError: If expected headers are absent
            MalformedFileError: If the file structure cannot be read
        """
        data = stream if isinstance(stream, bytes) else stream.read()
        if not data:
            raise EmptyFileError(f"File {filename} is empty")

        extension = PurePath(filename).suffix.lower()
        if extension == ".csv":
            rows = self.read_csv(data, carrier, file_type)
        elif extension == ".xlsx":
            rows = self.read_xlsx(data, carrier, file_type)
        else:
            raise UnsupportedFileTypeError(
                f"Unsupported file type '{extension or filename}'. Expected one of: "
                f"{', '.join(SUPPORTED_EXTENSIONS)}"
            )

        logger.info(f"Read {len(rows)} rows from {filename} ({carrier}, {file_type.value})")
        return rows

    def read_csv(self, data: bytes, carrier: str, file_type: FileType = FileType.INVOICE) -> list[Row]:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedFileError(f"The CSV file is not valid UTF-8: {e}") from e

        reader = csv.reader(io.StringIO(text, newline=""), strict=True)
        try:
            header_row = next(reader, None)
            if header_row is None:
                raise EmptyFileError("The CSV file has no header row")
            headers = [h.strip() for h in header_row]

            self.headers.validate_headers(headers, carrier, file_type)

            rows = []
            for line in reader:
                if not line:
                    continue
                if len(line) > len(headers):
                    raise MalformedFileError(
                        f"The CSV file is malformed near line {reader.line_num}: "
                        f"expected {len(headers)} columns, found {len(line)}"
                    )
                row = {
                    header: _clean_csv_value(line[i]) if i < len(line) else ""
                    for i, header in enumerate(headers)
                }
                if not _is_blank(row):
                    rows.append(row)
        except csv.Error as e:
            raise MalformedFileError(
                f"The CSV file is malformed or corrupted near line {reader.line_num}: {e}"
            ) from e
        return rows

    def read_xlsx(self, data: bytes, carrier: str, file_type: FileType = FileType.INVOICE) -> list[Row]:
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
            raise MalformedFileError(
                "The file is corrupted or not a valid Excel (XLSX) file."
            ) from e

        try:
            sheet = workbook.worksheets[0]
            row_iter = sheet.iter_rows(values_only=True)
            header_cells = next(row_iter, None)
            if header_cells is None:
                raise EmptyFileError("The spreadsheet has no header row")
            headers = [format_cell(cell) for cell in header_cells]
            # read-only sheets may report trailing empty columns
            while headers and not headers[-1]:
                headers.pop()

            self.headers.validate_headers(headers, carrier, file_type)

            rows = []
            for cells in row_iter:
                row = {
                    header: format_cell(cells[i]) if i < len(cells) else ""
                    for i, header in enumerate(headers)
                }
                if not _is_blank(row):
                    rows.append(row)
        finally:
            workbook.close()
        return rows
