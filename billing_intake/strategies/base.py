"""
Carrier strategy base class.

A strategy owns everything carrier-specific about a batch: how raw row
maps become typed records, which staged and final tables they live in,
and how approval promotes staged rows into final rows.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping, Sequence

import psycopg
from pydantic import ValidationError

from billing_intake.core.carriers import Carrier
from billing_intake.core.models import BatchRecord, BatchStatus, BillingRecord, FileType
from billing_intake.observability.logger import get_logger
from billing_intake.warehouse.record_store import RecordStore

logger = get_logger(__name__)

_LEADING_DIGITS = re.compile(r"^(\d+)")


def normalize_key(header: str) -> str:
    """'Billing Account Name' -> 'billing_account_name'"""
    return re.sub(r"[^a-z0-9]+", "_", header.strip().lower()).strip("_")


def normalize_keys(row: Mapping[str, Any]) -> dict[str, str | None]:
    """Snake-case every header and trim every value"""
    normalized = {}
    for header, value in row.items():
        if header is None:
            continue
        key = normalize_key(str(header))
        if not key:
            continue
        normalized[key] = value.strip() if isinstance(value, str) else value
    return normalized


def is_blank_row(row: Mapping[str, Any]) -> bool:
    return all(value is None or not str(value).strip() for value in row.values())


class CarrierStrategy(ABC):
    """
    Conversion, staging and approval for one carrier and file type.

    Subclasses set the class attributes and implement convert_row().

    Attributes:
        carrier: Carrier the strategy is registered under
        file_type: INVOICE or INVENTORY
        record_model: BillingRecord subclass for staged and final rows
        staged_table: Staging table name
        final_table: Final table name
    """

    carrier: Carrier
    file_type: FileType = FileType.INVOICE
    record_model: type[BillingRecord]
    staged_table: str
    final_table: str

    def __init__(self) -> None:
        self.staged = RecordStore(self.staged_table, self.record_model)
        self.final = RecordStore(self.final_table, self.record_model)

    @property
    def provider_name(self) -> str:
        return self.carrier.value

    # =======================
    # CONVERSION
    # =======================

    @abstractmethod
    def convert_row(
        self,
        data: dict[str, str | None],
        department_mapping: Mapping[str, str],
    ) -> BillingRecord:
        """
        Build one typed record from a row with normalized keys.

        Raises:
            ValueError: If the row cannot be converted
        """

    def prepare_row(self, data: dict[str, str | None]) -> dict[str, str | None]:
        """Rename carrier columns before conversion; identity by default"""
        return data

    def payload_row(self, row: Mapping[str, Any]) -> dict[str, str | None]:
        """
        Normalized row with batch metadata names removed.

        A column named like a metadata field (e.g. "Status") would otherwise
        overwrite the batch-owned value, so prepare_row() must claim it first.
        """
        data = self.prepare_row(normalize_keys(row))
        for name in self.record_model.METADATA_FIELDS.intersection(data):
            logger.debug(f"Ignoring {self.provider_name} column '{name}'")
            del data[name]
        return data

    def convert(
        self,
        rows: Sequence[Mapping[str, Any]],
        batch: BatchRecord,
        source_filename: str,
        department_mapping: Mapping[str, str],
    ) -> list[BillingRecord]:
        """
        Convert raw row maps into staged records of a batch.

        Blank rows are skipped. A row that fails conversion is logged and
        dropped; the remaining rows still convert.
        """
        records = []
        for index, row in enumerate(rows, start=1):
            if is_blank_row(row):
                continue
            try:
                record = self.convert_row(self.payload_row(row), department_mapping)
            except (ValueError, ValidationError) as e:
                logger.error(
                    f"Failed to convert {self.provider_name} row {index} of '{source_filename}': {e}",
                    extra={"batch_id": batch.batch_id, "row": dict(row)},
                )
                continue
            record.batch_id = batch.batch_id
            record.source_filename = source_filename
            record.status = BatchStatus.PENDING_APPROVAL
            records.append(record)

        logger.info(
            f"Converted {len(records)} of {len(rows)} {self.provider_name} rows from '{source_filename}'"
        )
        return records

    def account_reference(self, record: BillingRecord) -> str | None:
        """Account number used to join a record to an invoice PDF"""
        described = getattr(record, "account_and_descriptions", None)
        if described:
            match = _LEADING_DIGITS.match(described.strip())
            if match:
                return match.group(1)
        return getattr(record, "account_number", None)

    def apply_invoice_numbers(
        self,
        records: Sequence[BillingRecord],
        invoice_map: Mapping[str, str],
    ) -> int:
        """
        Stamp invoice numbers read from the PDFs of a ZIP upload.

        Returns:
            Number of records that matched an account in invoice_map
        """
        matched = 0
        for record in records:
            account = self.account_reference(record)
            if account and account in invoice_map:
                record.invoice_number = invoice_map[account]
                matched += 1
            else:
                logger.warning(f"No invoice PDF found for account '{account}'")
        return matched

    # =======================
    # PERSISTENCE
    # =======================

    def stage(self, conn: psycopg.Connection, records: Sequence[BillingRecord]) -> int:
        return self.staged.save_all(conn, records)

    def promote(self, record: BillingRecord) -> BillingRecord:
        """Final-table copy of a staged record"""
        return record.model_copy(
            update={
                "record_id": None,
                "status": BatchStatus.APPROVED,
                "created_at": datetime.utcnow(),
            }
        )

    def approve(self, conn: psycopg.Connection, batch: BatchRecord) -> int:
        """
        Move every staged record of the batch into the final table.

        Runs entirely on the caller's unit of work; any failure leaves
        both tables untouched once the caller rolls back.

        Returns:
            Number of final records written
        """
        staged = self.staged.find_by_batch(conn, batch.batch_id)
        finals = [self.promote(record) for record in staged]
        written = self.final.save_all(conn, finals)
        self.staged.clear(conn, batch.batch_id)
        logger.info(f"Promoted {written} {self.provider_name} records for batch {batch.batch_id}")
        return written

    def clear_staged(self, conn: psycopg.Connection, batch_id: str) -> int:
        return self.staged.clear(conn, batch_id)

    def reject(self, conn: psycopg.Connection, batch_id: str) -> int:
        """Discard the staged records of a rejected batch"""
        removed = self.clear_staged(conn, batch_id)
        logger.info(f"Discarded {removed} staged {self.provider_name} records for batch {batch_id}")
        return removed

    def list_staged(self, conn: psycopg.Connection, batch_id: str) -> list[BillingRecord]:
        return self.staged.find_by_batch(conn, batch_id)

    def list_final(self, conn: psycopg.Connection, batch_id: str) -> list[BillingRecord]:
        return self.final.find_by_batch(conn, batch_id)
