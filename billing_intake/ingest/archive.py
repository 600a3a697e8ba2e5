"""
ZIP upload handling.

A ZIP upload bundles invoice PDFs with one or more detail reports. The
PDFs only contribute an account number to invoice number mapping; the
detail reports carry the billable rows.
"""

import io
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath

import pdfplumber
from pdfminer.pdfparser import PDFSyntaxError
from pdfplumber.utils.exceptions import PdfminerException

from billing_intake.core.errors import EmptyFileError, MalformedFileError
from billing_intake.observability.logger import get_logger

logger = get_logger(__name__)

INVOICE_PATTERN = re.compile(r"Invoice:\s*([\w\-]+)")
ACCOUNT_PATTERN = re.compile(r"Account Number:\s*(\d+)")

PDF_EXTENSIONS = (".pdf",)
DETAIL_EXTENSIONS = (".csv", ".xlsx")


@dataclass
class ArchiveContents:
    """
    Entries of a ZIP upload split by role.

    Attributes:
        pdfs: Full entry path to bytes for invoice PDFs
        details: Full entry path to bytes for CSV/XLSX detail reports
    """

    pdfs: dict[str, bytes] = field(default_factory=dict)
    details: dict[str, bytes] = field(default_factory=dict)


def unpack_zip(data: bytes) -> ArchiveContents:
    """
    Split a ZIP upload into PDFs and detail reports.

    Directories, macOS resource forks and other extensions are skipped.

    Raises:
        EmptyFileError: If the upload has no bytes
        MalformedFileError: If the archive is corrupted or not a ZIP
    """
    if not data:
        raise EmptyFileError("ZIP file is empty")

    contents = ArchiveContents()
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                path = PurePosixPath(info.filename)
                if info.is_dir() or path.parts[0] == "__MACOSX" or path.name.startswith("._"):
                    continue
                extension = path.suffix.lower()
                if extension in PDF_EXTENSIONS:
                    contents.pdfs[info.filename] = archive.read(info)
                elif extension in DETAIL_EXTENSIONS:
                    contents.details[info.filename] = archive.read(info)
                else:
                    logger.debug(f"Skipping ZIP entry {info.filename}")
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise MalformedFileError("The uploaded file is corrupted or not a valid ZIP archive.") from e

    logger.info(
        f"Unpacked ZIP: {len(contents.pdfs)} PDF(s), {len(contents.details)} detail file(s)"
    )
    return contents


def extract_invoice_reference(data: bytes) -> tuple[str | None, str | None]:
    """
    Read the account number and invoice number from a PDF's first page.

    Returns:
        (account_number, invoice_number); either may be None

    Raises:
        MalformedFileError: If the PDF cannot be opened
    """
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            if not pdf.pages:
                return None, None
            text = pdf.pages[0].extract_text() or ""
    except (PDFSyntaxError, PdfminerException) as e:
        raise MalformedFileError(f"Could not read PDF: {e}") from e

    invoice = INVOICE_PATTERN.search(text)
    account = ACCOUNT_PATTERN.search(text)
    return (
        account.group(1).strip() if account else None,
        invoice.group(1).strip() if invoice else None,
    )


def build_invoice_map(pdfs: dict[str, bytes]) -> dict[str, str]:
    """
    Map account number to invoice number across every PDF of an upload.

    PDFs missing either value are logged and skipped.
    """
    invoice_map: dict[str, str] = {}
    for name, data in pdfs.items():
        account, invoice = extract_invoice_reference(data)
        if account and invoice:
            invoice_map[account] = invoice
            logger.debug(f"{name}: account {account} -> invoice {invoice}")
        else:
            logger.warning(f"No account/invoice reference found in {name}")
    return invoice_map
