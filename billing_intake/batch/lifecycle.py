"""
Batch lifecycle orchestrator.

Owns the PENDING_APPROVAL -> APPROVED | REJECTED | FAILED state machine.
Every write happens inside an explicit unit of work taken from the
connection pool. Recording FAILED after a broken approval always opens a
new unit of work, never the one that just rolled back.
"""

from datetime import datetime
from typing import Iterable, Mapping, Sequence

from psycopg import errors as pg_errors

from billing_intake.config import DEFAULT_REJECTION_REASON_MAX_LENGTH
from billing_intake.core.errors import (
    ApprovalFailedError,
    BatchNotFoundError,
    BatchProcessingError,
    ConfigurationError,
    EmptyBatchError,
    InvalidBatchStateError,
)
from billing_intake.core.models import (
    ApprovedBatch,
    BatchRecord,
    BatchReview,
    BatchStatus,
    FileType,
    ReviewAction,
)
from billing_intake.observability.logger import get_logger, log_operation
from billing_intake.observability.metrics import (
    approval_failures_total,
    batches_total,
    compensation_failures_total,
    final_records_total,
    increment_counter,
    observe_duration,
    staged_records_total,
)
from billing_intake.strategies.base import CarrierStrategy
from billing_intake.strategies.registry import StrategyRegistry
from billing_intake.warehouse.batch_store import BatchStore
from billing_intake.warehouse.connection import DatabaseConnectionPool
from billing_intake.warehouse.department_mapping import load_department_mapping

logger = get_logger(__name__)

DUPLICATE_APPROVAL_MESSAGE = "The uploaded file contains duplicate invoice entries."
GENERIC_APPROVAL_MESSAGE = "An unexpected error occurred during approval."
DUPLICATE_INGESTION_MESSAGE = "The file contains duplicate invoice entries."
APPROVAL_FAILED_PREFIX = "Approval failed: "


def is_duplicate_key_error(error: BaseException) -> bool:
    """True if a unique-constraint violation appears anywhere in the cause chain"""
    seen = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        if isinstance(current, pg_errors.UniqueViolation):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


class BatchLifecycle:
    """
    Create, stage, approve, reject and fail batches.

    Args:
        pool: Connection pool handing out units of work
        registry: Carrier strategies keyed by carrier and file type
        batches: batch_record store
        rejection_reason_max_length: Bound applied to stored reasons
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        registry: StrategyRegistry,
        batches: BatchStore | None = None,
        rejection_reason_max_length: int = DEFAULT_REJECTION_REASON_MAX_LENGTH,
    ):
        self.pool = pool
        self.registry = registry
        self.batches = batches or BatchStore()
        self.rejection_reason_max_length = rejection_reason_max_length

    def truncate_reason(self, reason: str | None) -> str | None:
        if reason is None:
            return None
        return reason[: self.rejection_reason_max_length]

    def strategy_for(self, batch: BatchRecord) -> CarrierStrategy:
        return self.registry.resolve(batch.carrier, batch.file_type)

    # =======================
    # INGESTION
    # =======================

    def create_batch(
        self,
        carrier: str,
        filename: str,
        uploaded_by: str,
        size: int,
        *,
        file_type: FileType = FileType.INVOICE,
        content_type: str | None = None,
    ) -> BatchRecord:
        """
        Persist a new PENDING_APPROVAL batch.

        Args:
            carrier: Carrier name, any casing
            filename: Uploaded file name
            uploaded_by: Uploader identity
            size: Upload size in bytes
            file_type: INVOICE or INVENTORY
            content_type: Declared media type

        Returns:
            The stored BatchRecord

        Raises:
            UnknownCarrierError: If no strategy handles the carrier and file type
            psycopg.DatabaseError: If the insert fails
        """
        strategy = self.registry.resolve(carrier, file_type)
        batch = BatchRecord(
            carrier=strategy.provider_name,
            file_type=file_type,
            filename=filename,
            uploaded_by=uploaded_by,
            file_size=size,
            content_type=content_type,
        )
        with self.pool.unit_of_work() as conn:
            self.batches.insert(conn, batch)

        increment_counter(batches_total, carrier=batch.carrier, status=batch.status.value)
        logger.info(
            f"Created batch {batch.batch_id} for {batch.carrier} ({file_type.value})",
            extra={"batch_id": batch.batch_id, "uploaded_by": uploaded_by},
        )
        return batch

    def stage(
        self,
        batch: BatchRecord,
        rows: Sequence[Mapping[str, str | None]],
        *,
        source_filename: str | None = None,
        invoice_map: Mapping[str, str] | None = None,
    ) -> int:
        """
        Convert rows with the batch's strategy and write them to staging.

        Returns:
            Number of staged records

        Raises:
            BatchProcessingError: If conversion yields nothing or staging
                fails; the batch has already been marked FAILED
        """
        return self.stage_many(
            batch, [(source_filename or batch.filename, rows)], invoice_map=invoice_map
        )

    def stage_many(
        self,
        batch: BatchRecord,
        sources: Iterable[tuple[str, Sequence[Mapping[str, str | None]]]],
        invoice_map: Mapping[str, str] | None = None,
    ) -> int:
        """
        Stage rows from several source files into one batch.

        All sources are converted and written in a single unit of work.
        When invoice_map is given, records are stamped with the invoice
        number of their account before staging.

        Args:
            batch: Pending batch
            sources: (source_filename, rows) pairs
            invoice_map: Account number to invoice number, from ZIP PDFs

        Returns:
            Number of staged records

        Raises:
            BatchProcessingError: If staging fails for any reason
        """
        strategy = self.strategy_for(batch)
        try:
            with log_operation("stage_batch", logger, batch_id=batch.batch_id) as op:
                with self.pool.unit_of_work() as conn:
                    mapping = load_department_mapping(conn)
                    records = []
                    for source_filename, rows in sources:
                        records.extend(strategy.convert(rows, batch, source_filename, mapping))
                    if invoice_map is not None:
                        matched = strategy.apply_invoice_numbers(records, invoice_map)
                        logger.info(
                            f"Matched {matched} of {len(records)} records to invoice PDFs",
                            extra={"batch_id": batch.batch_id},
                        )
                    if not records:
                        raise EmptyBatchError("No valid data rows were found in the uploaded file.")
                    staged = strategy.stage(conn, records)
            observe_duration("stage_batch", op.duration)
        except Exception as e:
            reason = DUPLICATE_INGESTION_MESSAGE if is_duplicate_key_error(e) else str(e)
            try:
                self.mark_failed(batch.batch_id, reason)
            except Exception as mark_error:
                increment_counter(compensation_failures_total)
                logger.error(
                    f"Could not record FAILED status for batch {batch.batch_id}: {mark_error}",
                    exc_info=True,
                    extra={"batch_id": batch.batch_id},
                )
            raise BatchProcessingError(batch.batch_id, reason) from e

        increment_counter(staged_records_total, staged, carrier=batch.carrier)
        logger.info(
            f"Staged {staged} records for batch {batch.batch_id}",
            extra={"batch_id": batch.batch_id},
        )
        return staged

    # =======================
    # REVIEW
    # =======================

    def decide(
        self,
        batch_id: str,
        action: ReviewAction | str,
        reviewer: str,
        reason: str | None = None,
    ) -> BatchRecord:
        """
        Apply a reviewer's decision to a pending batch.

        Args:
            batch_id: Batch under review
            action: APPROVE or REJECT
            reviewer: Reviewer identity stamped on the batch
            reason: Rejection reason, ignored on approval

        Returns:
            The batch after its terminal transition

        Raises:
            BatchNotFoundError: If the batch does not exist
            InvalidBatchStateError: If the batch is no longer pending
            UnknownCarrierError: If the batch's carrier has no strategy
            ApprovalFailedError: If approval broke; the batch is FAILED
        """
        action = ReviewAction.parse(action)
        if action is ReviewAction.APPROVE:
            return self._approve(batch_id, reviewer)
        return self._reject(batch_id, reviewer, reason)

    def _require_pending(self, batch: BatchRecord | None, batch_id: str) -> BatchRecord:
        if batch is None:
            raise BatchNotFoundError(batch_id)
        if batch.status is not BatchStatus.PENDING_APPROVAL:
            raise InvalidBatchStateError(batch_id, batch.status, BatchStatus.PENDING_APPROVAL)
        return batch

    def _approve(self, batch_id: str, reviewer: str) -> BatchRecord:
        carrier = None
        try:
            with log_operation("approve_batch", logger, batch_id=batch_id) as op:
                with self.pool.unit_of_work() as conn:
                    batch = self._require_pending(
                        self.batches.find_by_batch_id(conn, batch_id, for_update=True),
                        batch_id,
                    )
                    carrier = batch.carrier
                    strategy = self.strategy_for(batch)
                    promoted = strategy.approve(conn, batch)
                    reviewed_at = datetime.utcnow()
                    if not self.batches.transition(
                        conn, batch_id, BatchStatus.APPROVED, reviewer, reviewed_at, None
                    ):
                        raise InvalidBatchStateError(
                            batch_id, batch.status, BatchStatus.PENDING_APPROVAL
                        )
            observe_duration("approve_batch", op.duration)
        except (BatchNotFoundError, InvalidBatchStateError, ConfigurationError):
            raise
        except Exception as e:
            duplicate = is_duplicate_key_error(e)
            message = DUPLICATE_APPROVAL_MESSAGE if duplicate else GENERIC_APPROVAL_MESSAGE
            logger.error(
                f"Approval of batch {batch_id} failed: {e}",
                exc_info=True,
                extra={"batch_id": batch_id, "reviewer": reviewer},
            )
            self._finalize_as_failed(batch_id, reviewer, APPROVAL_FAILED_PREFIX + message)
            increment_counter(
                approval_failures_total,
                carrier=carrier or "unknown",
                reason="duplicate" if duplicate else "error",
            )
            raise ApprovalFailedError(batch_id, message) from e

        increment_counter(final_records_total, promoted, carrier=carrier)
        increment_counter(batches_total, carrier=carrier, status=BatchStatus.APPROVED.value)
        logger.info(
            f"Batch {batch_id} approved by {reviewer}: {promoted} final records",
            extra={"batch_id": batch_id, "reviewer": reviewer},
        )
        return batch.model_copy(
            update={
                "status": BatchStatus.APPROVED,
                "reviewed_by": reviewer,
                "reviewed_at": reviewed_at,
            }
        )

    def _finalize_as_failed(self, batch_id: str, reviewer: str | None, reason: str) -> None:
        """
        Record FAILED in a new unit of work.

        Failures here are logged and counted, never raised; the caller is
        already propagating the approval error.
        """
        try:
            with self.pool.unit_of_work() as conn:
                batch = self.batches.find_by_batch_id(conn, batch_id, for_update=True)
                if batch is None or batch.status.is_terminal:
                    logger.warning(f"Batch {batch_id} not pending; FAILED status not recorded")
                    return
                self.strategy_for(batch).clear_staged(conn, batch_id)
                self.batches.transition(
                    conn,
                    batch_id,
                    BatchStatus.FAILED,
                    reviewer,
                    datetime.utcnow(),
                    self.truncate_reason(reason),
                )
            increment_counter(batches_total, carrier=batch.carrier, status=BatchStatus.FAILED.value)
            logger.info(f"Batch {batch_id} finalized as FAILED", extra={"batch_id": batch_id})
        except Exception as e:
            increment_counter(compensation_failures_total)
            logger.error(
                f"Could not record FAILED status for batch {batch_id}: {e}",
                exc_info=True,
                extra={"batch_id": batch_id},
            )

    def _reject(self, batch_id: str, reviewer: str, reason: str | None) -> BatchRecord:
        with log_operation("reject_batch", logger, batch_id=batch_id):
            with self.pool.unit_of_work() as conn:
                batch = self._require_pending(
                    self.batches.find_by_batch_id(conn, batch_id, for_update=True),
                    batch_id,
                )
                self.strategy_for(batch).reject(conn, batch_id)
                reviewed_at = datetime.utcnow()
                stored_reason = self.truncate_reason(reason)
                if not self.batches.transition(
                    conn, batch_id, BatchStatus.REJECTED, reviewer, reviewed_at, stored_reason
                ):
                    raise InvalidBatchStateError(batch_id, batch.status, BatchStatus.PENDING_APPROVAL)

        increment_counter(batches_total, carrier=batch.carrier, status=BatchStatus.REJECTED.value)
        logger.info(
            f"Batch {batch_id} rejected by {reviewer}",
            extra={"batch_id": batch_id, "reviewer": reviewer, "reason": stored_reason},
        )
        return batch.model_copy(
            update={
                "status": BatchStatus.REJECTED,
                "reviewed_by": reviewer,
                "reviewed_at": reviewed_at,
                "rejection_reason": stored_reason,
            }
        )

    def mark_failed(self, batch_id: str, reason: str) -> bool:
        """
        Move a pending batch straight to FAILED in its own unit of work.

        A missing or already-decided batch is left alone.

        Returns:
            True if the batch was moved to FAILED
        """
        with self.pool.unit_of_work() as conn:
            batch = self.batches.find_by_batch_id(conn, batch_id, for_update=True)
            if batch is None:
                logger.warning(f"mark_failed: batch {batch_id} not found")
                return False
            if batch.status.is_terminal:
                logger.warning(
                    f"mark_failed: batch {batch_id} already {batch.status.value}",
                    extra={"batch_id": batch_id},
                )
                return False
            self.strategy_for(batch).clear_staged(conn, batch_id)
            moved = self.batches.transition(
                conn, batch_id, BatchStatus.FAILED, reason=self.truncate_reason(reason)
            )

        if moved:
            increment_counter(batches_total, carrier=batch.carrier, status=BatchStatus.FAILED.value)
            logger.warning(
                f"Batch {batch_id} marked FAILED: {reason}", extra={"batch_id": batch_id}
            )
        return moved

    # =======================
    # QUERIES
    # =======================

    def get_batch(self, batch_id: str) -> BatchRecord:
        """
        Raises:
            BatchNotFoundError: If the batch does not exist
        """
        with self.pool.unit_of_work() as conn:
            batch = self.batches.find_by_batch_id(conn, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def get_batch_for_review(self, batch_id: str) -> BatchReview:
        """
        Batch metadata with its staged records.

        Raises:
            BatchNotFoundError: If the batch does not exist
        """
        with self.pool.unit_of_work() as conn:
            batch = self.batches.find_by_batch_id(conn, batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)
            records = self.strategy_for(batch).list_staged(conn, batch_id)
        return BatchReview(batch=batch, records=[record.model_dump(mode="json") for record in records])

    def get_approved_batch(self, batch_id: str) -> ApprovedBatch:
        """
        Batch metadata with the final records approval produced.

        Raises:
            BatchNotFoundError: If the batch does not exist
            InvalidBatchStateError: If the batch is not APPROVED
        """
        with self.pool.unit_of_work() as conn:
            batch = self.batches.find_by_batch_id(conn, batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)
            if batch.status is not BatchStatus.APPROVED:
                raise InvalidBatchStateError(batch_id, batch.status, BatchStatus.APPROVED)
            records = self.strategy_for(batch).list_final(conn, batch_id)
        return ApprovedBatch(batch=batch, records=[record.model_dump(mode="json") for record in records])
