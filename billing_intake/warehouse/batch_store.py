"""
Batch record persistence.

Every function takes the connection of the caller's unit of work. Status
transitions are conditional on the row still being PENDING_APPROVAL, so
two concurrent decisions can never both leave that status.
"""

from datetime import datetime

import psycopg

from billing_intake.core.models import BatchRecord, BatchStatus
from billing_intake.observability.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = """
    batch_id, carrier, file_type, status, filename, content_type,
    file_size, uploaded_by, created_at, reviewed_by, reviewed_at,
    rejection_reason
"""


class BatchStore:
    """Reads and writes rows of the batch_record table"""

    def insert(self, conn: psycopg.Connection, batch: BatchRecord) -> BatchRecord:
        """
        Persist a new batch.

        Raises:
            psycopg.DatabaseError: If the insert fails
        """
        insert_sql = f"""
            INSERT INTO batch_record ({_COLUMNS})
            VALUES (
                %(batch_id)s, %(carrier)s, %(file_type)s, %(status)s,
                %(filename)s, %(content_type)s, %(file_size)s, %(uploaded_by)s,
                %(created_at)s, %(reviewed_by)s, %(reviewed_at)s,
                %(rejection_reason)s
            )
        """
        params = batch.model_dump()
        params["file_type"] = batch.file_type.value
        params["status"] = batch.status.value
        try:
            conn.execute(insert_sql, params)
        except psycopg.DatabaseError as e:
            logger.error(f"Failed to insert batch {batch.batch_id}: {e}")
            raise
        return batch

    def find_by_batch_id(
        self,
        conn: psycopg.Connection,
        batch_id: str,
        for_update: bool = False,
    ) -> BatchRecord | None:
        """
        Look up a batch.

        Args:
            conn: Unit-of-work connection
            batch_id: Batch to load
            for_update: Lock the row until the unit of work ends

        Returns:
            BatchRecord, or None if no such batch exists
        """
        query = f"SELECT {_COLUMNS} FROM batch_record WHERE batch_id = %s"
        if for_update:
            query += " FOR UPDATE"
        with conn.cursor() as cur:
            cur.execute(query, (batch_id,))
            row = cur.fetchone()
        return BatchRecord.model_validate(row) if row else None

    def transition(
        self,
        conn: psycopg.Connection,
        batch_id: str,
        status: BatchStatus,
        reviewed_by: str | None = None,
        reviewed_at: datetime | None = None,
        reason: str | None = None,
    ) -> bool:
        """
        Move a PENDING_APPROVAL batch to a terminal status.

        Returns:
            True if the row moved, False if it was missing or already decided
        """
        update_sql = """
            UPDATE batch_record
            SET status = %(status)s,
                reviewed_by = %(reviewed_by)s,
                reviewed_at = %(reviewed_at)s,
                rejection_reason = %(reason)s
            WHERE batch_id = %(batch_id)s
              AND status = %(pending)s
        """
        with conn.cursor() as cur:
            cur.execute(
                update_sql,
                {
                    "status": status.value,
                    "reviewed_by": reviewed_by,
                    "reviewed_at": reviewed_at,
                    "reason": reason,
                    "batch_id": batch_id,
                    "pending": BatchStatus.PENDING_APPROVAL.value,
                },
            )
            moved = cur.rowcount == 1
        logger.debug(
            f"Batch transition {batch_id} -> {status.value}: "
            f"{'applied' if moved else 'skipped'}"
        )
        return moved
