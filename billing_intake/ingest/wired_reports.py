"""
CALNET wired report processing.

Opens a statement PDF with pdfplumber, parses its Detail of Charges
pages and stores the charge lines. Wired reports are not reviewed; they
are written directly to wired_report.
"""

import io
from pathlib import Path

import pdfplumber
from pdfminer.pdfparser import PDFSyntaxError
from pdfplumber.utils.exceptions import PdfminerException

from billing_intake.core.errors import InvoiceHeaderNotFoundError, MalformedFileError
from billing_intake.ingest.detail_of_charges import DetailOfChargesParser
from billing_intake.observability.logger import get_logger, log_operation
from billing_intake.observability.metrics import observe_duration
from billing_intake.warehouse.connection import DatabaseConnectionPool
from billing_intake.warehouse.record_store import WiredReportStore

logger = get_logger(__name__)


class WiredReportService:
    """
    Parse and persist CALNET statements.

    Args:
        pool: Connection pool
        parser: Detail of Charges parser
        store: wired_report store
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        parser: DetailOfChargesParser | None = None,
        store: WiredReportStore | None = None,
    ):
        self.pool = pool
        self.parser = parser or DetailOfChargesParser()
        self.store = store or WiredReportStore()

    def process_document(self, document, name: str = "<document>") -> int:
        """
        Parse an opened document and store its charge lines.

        A document without an invoice header is skipped and nothing is
        stored. A document without charge rows is not an error.

        Returns:
            Number of stored charge lines
        """
        with log_operation("process_wired_report", logger, document=name) as op:
            try:
                reports = self.parser.parse(document)
            except InvoiceHeaderNotFoundError as e:
                logger.error(f"Skipping {name}: {e}")
                return 0

            if not reports:
                logger.warning(f"No Detail of Charges rows found in {name}")
                return 0

            with self.pool.unit_of_work() as conn:
                saved = self.store.save_all(conn, reports)
        observe_duration("process_wired_report", op.duration)
        logger.info(f"Stored {saved} wired report lines from {name}")
        return saved

    def process_report(self, source: str | Path | bytes) -> int:
        """
        Open a statement from a path or raw bytes and process it.

        Raises:
            MalformedFileError: If the PDF cannot be opened
        """
        if isinstance(source, bytes):
            name = "<bytes>"
            target = io.BytesIO(source)
        else:
            name = str(source)
            target = source
        try:
            with pdfplumber.open(target) as pdf:
                return self.process_document(pdf, name)
        except (PDFSyntaxError, PdfminerException) as e:
            raise MalformedFileError(f"Could not read PDF {name}: {e}") from e
