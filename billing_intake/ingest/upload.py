"""
Upload intake.

Turns an uploaded file into a staged PENDING_APPROVAL batch. Everything
that can be validated without the database (extension, headers, ZIP
structure, PDF references) is checked before the batch is created, so a
rejected upload leaves no trace in storage.
"""

from pathlib import PurePath
from typing import BinaryIO

from billing_intake.batch.lifecycle import BatchLifecycle
from billing_intake.core.errors import EmptyFileError, InputValidationError
from billing_intake.core.models import FileType
from billing_intake.ingest.archive import build_invoice_map, unpack_zip
from billing_intake.ingest.tabular import TabularReader
from billing_intake.observability.logger import get_logger, log_operation

logger = get_logger(__name__)

CONTENT_TYPES = {
    ".csv": "text/csv",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".zip": "application/zip",
}


def _read(stream: BinaryIO | bytes) -> bytes:
    return stream if isinstance(stream, bytes) else stream.read()


def _content_type(filename: str) -> str | None:
    return CONTENT_TYPES.get(PurePath(filename).suffix.lower())


class IntakeService:
    """
    Entry point for carrier uploads.

    Args:
        lifecycle: Batch lifecycle orchestrator
        reader: CSV/XLSX reader with header validation
    """

    def __init__(self, lifecycle: BatchLifecycle, reader: TabularReader):
        self.lifecycle = lifecycle
        self.reader = reader

    def upload_detail_file(
        self,
        stream: BinaryIO | bytes,
        filename: str,
        carrier: str,
        uploaded_by: str,
        file_type: FileType = FileType.INVOICE,
    ) -> str:
        """
        Stage a single CSV or XLSX detail report.

        Returns:
            batch_id of the new PENDING_APPROVAL batch

        Raises:
            InputValidationError: If the file is rejected; nothing is written
            UnknownCarrierError: If the carrier is not supported
            BatchProcessingError: If staging failed; the batch is FAILED
        """
        data = _read(stream)
        with log_operation("upload_detail_file", logger, upload=filename, carrier=carrier):
            # strategy lookup first so an unsupported carrier never reads the file
            self.lifecycle.registry.resolve(carrier, file_type)
            rows = self.reader.read(data, filename, carrier, file_type)
            if not rows:
                raise EmptyFileError(f"File {filename} contains no data rows")

            batch = self.lifecycle.create_batch(
                carrier,
                filename,
                uploaded_by,
                len(data),
                file_type=file_type,
                content_type=_content_type(filename),
            )
            self.lifecycle.stage(batch, rows, source_filename=filename)
        return batch.batch_id

    def upload_inventory(
        self,
        stream: BinaryIO | bytes,
        filename: str,
        carrier: str,
        uploaded_by: str,
    ) -> str:
        """Stage a device inventory report; see upload_detail_file()"""
        return self.upload_detail_file(
            stream, filename, carrier, uploaded_by, file_type=FileType.INVENTORY
        )

    def upload_zip(
        self,
        stream: BinaryIO | bytes,
        filename: str,
        carrier: str,
        uploaded_by: str,
    ) -> str:
        """
        Stage a ZIP of invoice PDFs plus CSV/XLSX detail reports.

        The PDFs are read first to build the account to invoice number
        map; every detail row is then stamped with its invoice number.

        Returns:
            batch_id of the new PENDING_APPROVAL batch

        Raises:
            InputValidationError: If the archive, a PDF or a detail file
                is rejected; nothing is written
            BatchProcessingError: If staging failed; the batch is FAILED
        """
        data = _read(stream)
        with log_operation("upload_zip", logger, upload=filename, carrier=carrier):
            self.lifecycle.registry.resolve(carrier, FileType.INVOICE)
            contents = unpack_zip(data)
            if not contents.pdfs:
                raise InputValidationError("ZIP must contain at least one invoice PDF.")
            if not contents.details:
                raise InputValidationError("ZIP must contain at least one CSV or XLSX detail file.")

            invoice_map = build_invoice_map(contents.pdfs)
            if not invoice_map:
                raise InputValidationError(
                    "No invoice numbers could be read from the PDFs in the ZIP."
                )

            sources = []
            for name, content in contents.details.items():
                rows = self.reader.read(content, name, carrier, FileType.INVOICE)
                if rows:
                    sources.append((name, rows))
                else:
                    logger.warning(f"Detail file {name} has no data rows")
            if not sources:
                raise EmptyFileError("No data rows found in the detail files of the ZIP.")

            batch = self.lifecycle.create_batch(
                carrier,
                filename,
                uploaded_by,
                len(data),
                file_type=FileType.INVOICE,
                content_type=_content_type(filename),
            )
            self.lifecycle.stage_many(batch, sources, invoice_map=invoice_map)
        return batch.batch_id
