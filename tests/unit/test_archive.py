"""
Unit tests for ZIP unpacking and invoice reference extraction.
"""

import io
import zipfile

import pytest

from billing_intake.core.errors import EmptyFileError, MalformedFileError
from billing_intake.ingest import archive
from billing_intake.ingest.archive import build_invoice_map, extract_invoice_reference, unpack_zip


def zip_bytes(entries):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


class TestUnpackZip:
    """Tests for splitting a ZIP upload"""

    def test_entries_are_split_by_extension(self):
        data = zip_bytes(
            {
                "march/invoice_1.PDF": b"%PDF-1.4",
                "march/detail.csv": b"a,b\n",
                "march/detail2.xlsx": b"xlsx",
                "march/readme.txt": b"ignored",
                "__MACOSX/march/._detail.csv": b"resource fork",
                "march/._invoice_1.pdf": b"resource fork",
            }
        )
        contents = unpack_zip(data)
        assert sorted(contents.pdfs) == ["march/invoice_1.PDF"]
        assert sorted(contents.details) == ["march/detail.csv", "march/detail2.xlsx"]
        assert contents.details["march/detail.csv"] == b"a,b\n"

    def test_same_name_in_different_folders(self):
        data = zip_bytes(
            {
                "jan/detail.csv": b"jan rows",
                "feb/detail.csv": b"feb rows",
                "jan/invoice.pdf": b"%PDF-jan",
                "feb/invoice.pdf": b"%PDF-feb",
            }
        )
        contents = unpack_zip(data)
        assert contents.details == {"jan/detail.csv": b"jan rows", "feb/detail.csv": b"feb rows"}
        assert sorted(contents.pdfs) == ["feb/invoice.pdf", "jan/invoice.pdf"]

    def test_empty_upload(self):
        with pytest.raises(EmptyFileError):
            unpack_zip(b"")

    def test_not_a_zip(self):
        with pytest.raises(MalformedFileError, match="not a valid ZIP"):
            unpack_zip(b"plain text, not an archive")


class TestInvoiceReferences:
    """Tests for PDF account/invoice extraction"""

    def test_unreadable_pdf(self):
        with pytest.raises(MalformedFileError):
            extract_invoice_reference(b"this is not a pdf")

    def test_build_invoice_map_skips_incomplete_pdfs(self, monkeypatch):
        references = {
            b"one": ("287301234567", "INV-1"),
            b"two": ("287309876543", None),
            b"three": (None, "INV-3"),
        }
        monkeypatch.setattr(archive, "extract_invoice_reference", lambda data: references[data])
        invoice_map = build_invoice_map({"a.pdf": b"one", "b.pdf": b"two", "c.pdf": b"three"})
        assert invoice_map == {"287301234567": "INV-1"}
