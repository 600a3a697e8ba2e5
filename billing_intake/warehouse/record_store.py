"""
Staged and final record stores.

Each carrier/file-type pair owns one staged and one final table with the
same shape: batch metadata, the promoted natural-key columns and the
carrier payload as JSONB. Final tables carry a UNIQUE constraint on
line_key, which is how duplicate invoice lines surface on approval.
"""

import json
from typing import Generic, Sequence, TypeVar

import psycopg
from psycopg import sql

from billing_intake.core.models import BillingRecord, WiredReport
from billing_intake.observability.logger import get_logger

logger = get_logger(__name__)

R = TypeVar("R", bound=BillingRecord)


class RecordStore(Generic[R]):
    """
    Typed access to one staged or final record table.

    Args:
        table: Table name
        model: BillingRecord subclass rows are rebuilt into
    """

    def __init__(self, table: str, model: type[R]):
        self.table = table
        self.model = model
        self._table = sql.Identifier(table)

    def save_all(self, conn: psycopg.Connection, records: Sequence[R]) -> int:
        """
        Insert records in one executemany call.

        Returns:
            Number of records written

        Raises:
            psycopg.DatabaseError: If any insert fails (e.g. UniqueViolation)
        """
        if not records:
            return 0

        insert_sql = sql.SQL("""
            INSERT INTO {table} (
                batch_id, source_filename, status, line_key,
                invoice_number, account_number, payload, created_at
            ) VALUES (
                %(batch_id)s, %(source_filename)s, %(status)s, %(line_key)s,
                %(invoice_number)s, %(account_number)s, %(payload)s::jsonb,
                %(created_at)s
            )
        """).format(table=self._table)

        params = [
            {
                "batch_id": record.batch_id,
                "source_filename": record.source_filename,
                "status": record.status.value,
                "line_key": record.natural_key(),
                "invoice_number": record.invoice_number,
                "account_number": getattr(record, "account_number", None)
                or getattr(record, "billing_account_number", None),
                "payload": json.dumps(record.payload()),
                "created_at": record.created_at,
            }
            for record in records
        ]
        with conn.cursor() as cur:
            cur.executemany(insert_sql, params)
        logger.debug(f"Wrote {len(params)} rows to {self.table}")
        return len(params)

    def find_by_batch(self, conn: psycopg.Connection, batch_id: str) -> list[R]:
        """Records of a batch in insertion order"""
        query = sql.SQL("""
            SELECT record_id, batch_id, source_filename, status, payload, created_at
            FROM {table}
            WHERE batch_id = %s
            ORDER BY record_id
        """).format(table=self._table)
        with conn.cursor() as cur:
            cur.execute(query, (batch_id,))
            rows = cur.fetchall()
        return [self.model.from_row(row) for row in rows]

    def clear(self, conn: psycopg.Connection, batch_id: str) -> int:
        """
        Delete every record of a batch.

        Returns:
            Number of rows deleted
        """
        delete_sql = sql.SQL("DELETE FROM {table} WHERE batch_id = %s").format(
            table=self._table
        )
        with conn.cursor() as cur:
            cur.execute(delete_sql, (batch_id,))
            return cur.rowcount


class WiredReportStore:
    """Writes parsed CALNET charge lines to wired_report"""

    _FIELDS = [
        name for name in WiredReport.model_fields if name != "report_id"
    ]

    def save_all(self, conn: psycopg.Connection, reports: Sequence[WiredReport]) -> int:
        if not reports:
            return 0
        insert_sql = sql.SQL("INSERT INTO wired_report ({cols}) VALUES ({vals})").format(
            cols=sql.SQL(", ").join(sql.Identifier(f) for f in self._FIELDS),
            vals=sql.SQL(", ").join(sql.Placeholder(f) for f in self._FIELDS),
        )
        with conn.cursor() as cur:
            cur.executemany(insert_sql, [r.model_dump(include=set(self._FIELDS)) for r in reports])
        return len(reports)

    def find_by_invoice(self, conn: psycopg.Connection, invoice_number: str) -> list[WiredReport]:
        query = sql.SQL("SELECT {cols} FROM wired_report WHERE invoice_number = %s ORDER BY report_id").format(
            cols=sql.SQL(", ").join(sql.Identifier(f) for f in ["report_id", *self._FIELDS]),
        )
        with conn.cursor() as cur:
            cur.execute(query, (invoice_number,))
            return [WiredReport.model_validate(row) for row in cur.fetchall()]
