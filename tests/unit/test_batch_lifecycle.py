"""
Unit tests for the batch lifecycle orchestrator.

The pool, batch store and strategy persistence are in-memory fakes whose
writes only become visible when the unit of work that made them commits,
so rollback and compensation behave the way they do against PostgreSQL.
"""

from contextlib import contextmanager
from itertools import count

import pytest
from psycopg import errors as pg_errors

from billing_intake.batch.lifecycle import BatchLifecycle, is_duplicate_key_error
from billing_intake.core.errors import (
    ApprovalFailedError,
    BatchNotFoundError,
    BatchProcessingError,
    InvalidBatchStateError,
    UnknownCarrierError,
)
from billing_intake.core.models import BatchStatus, ReviewAction
from billing_intake.observability.metrics import REGISTRY
from billing_intake.strategies import ATTInvoiceStrategy, StrategyRegistry

ROWS = [
    {"Account number": "287301234567", "Wireless number": "916-555-0100", "Invoice date": "03/15/2024"},
    {"Account number": "287301234567", "Wireless number": "916-555-0101", "Invoice date": "03/15/2024"},
]


class FakeConnection:
    _ids = count(1)

    def __init__(self):
        self.id = next(self._ids)
        self.on_commit = []
        self.committed = False
        self.rolled_back = False


class FakePool:
    """Hands out a fresh connection per unit of work"""

    def __init__(self):
        self.connections = []

    @contextmanager
    def unit_of_work(self):
        conn = FakeConnection()
        self.connections.append(conn)
        try:
            yield conn
        except BaseException:
            conn.rolled_back = True
            raise
        for apply in conn.on_commit:
            apply()
        conn.committed = True


class FakeBatchStore:
    def __init__(self):
        self.batches = {}
        self.fail_on_status = None

    def insert(self, conn, batch):
        conn.on_commit.append(lambda: self.batches.__setitem__(batch.batch_id, batch))
        return batch

    def find_by_batch_id(self, conn, batch_id, for_update=False):
        return self.batches.get(batch_id)

    def transition(self, conn, batch_id, status, reviewed_by=None, reviewed_at=None, reason=None):
        if status is self.fail_on_status:
            raise RuntimeError("database unavailable")
        batch = self.batches.get(batch_id)
        if batch is None or batch.status is not BatchStatus.PENDING_APPROVAL:
            return False
        updated = batch.model_copy(
            update={
                "status": status,
                "reviewed_by": reviewed_by,
                "reviewed_at": reviewed_at,
                "rejection_reason": reason,
            }
        )
        conn.on_commit.append(lambda: self.batches.__setitem__(batch_id, updated))
        return True


class InMemoryATTStrategy(ATTInvoiceStrategy):
    """Real AT&T conversion over in-memory staged and final sets"""

    def __init__(self):
        super().__init__()
        self.staged_rows = {}
        self.final_rows = {}
        self.approve_error = None
        self.reject_error = None
        self.stage_error = None
        self.approve_connections = []

    def stage(self, conn, records):
        if self.stage_error is not None:
            raise self.stage_error
        batch_id = records[0].batch_id
        conn.on_commit.append(lambda: self.staged_rows.setdefault(batch_id, []).extend(records))
        return len(records)

    def approve(self, conn, batch):
        self.approve_connections.append(conn)
        staged = list(self.staged_rows.get(batch.batch_id, []))
        if self.approve_error is not None:
            raise self.approve_error
        conn.on_commit.append(lambda: self.final_rows.__setitem__(batch.batch_id, staged))
        conn.on_commit.append(lambda: self.staged_rows.pop(batch.batch_id, None))
        return len(staged)

    def clear_staged(self, conn, batch_id):
        conn.on_commit.append(lambda: self.staged_rows.pop(batch_id, None))
        return len(self.staged_rows.get(batch_id, []))

    def reject(self, conn, batch_id):
        if self.reject_error is not None:
            raise self.reject_error
        return self.clear_staged(conn, batch_id)

    def list_staged(self, conn, batch_id):
        return list(self.staged_rows.get(batch_id, []))

    def list_final(self, conn, batch_id):
        return list(self.final_rows.get(batch_id, []))


@pytest.fixture(autouse=True)
def no_department_mapping(monkeypatch):
    monkeypatch.setattr("billing_intake.batch.lifecycle.load_department_mapping", lambda conn: {})


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def store():
    return FakeBatchStore()


@pytest.fixture
def strategy():
    return InMemoryATTStrategy()


@pytest.fixture
def lifecycle(pool, store, strategy):
    return BatchLifecycle(pool, StrategyRegistry([strategy]), batches=store, rejection_reason_max_length=40)


@pytest.fixture
def staged_batch(lifecycle):
    batch = lifecycle.create_batch("AT&T Mobility", "att.csv", "analyst", 512)
    lifecycle.stage(batch, ROWS)
    return batch


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestCreateAndStage:
    """Tests for batch creation and staging"""

    def test_create_batch_is_pending(self, lifecycle, store):
        batch = lifecycle.create_batch("at&t mobility", "att.csv", "analyst", 512, content_type="text/csv")
        stored = store.batches[batch.batch_id]
        assert stored.status == BatchStatus.PENDING_APPROVAL
        assert stored.carrier == "AT&T Mobility"
        assert stored.file_size == 512
        assert stored.content_type == "text/csv"
        assert stored.reviewed_by is None

    def test_unknown_carrier_writes_nothing(self, lifecycle, pool, store):
        with pytest.raises(UnknownCarrierError):
            lifecycle.create_batch("Sprint", "s.csv", "analyst", 1)
        assert pool.connections == []
        assert store.batches == {}

    def test_stage_converts_and_writes(self, lifecycle, strategy, store):
        batch = lifecycle.create_batch("AT&T Mobility", "att.csv", "analyst", 512)
        assert lifecycle.stage(batch, ROWS) == 2
        staged = strategy.staged_rows[batch.batch_id]
        assert [r.wireless_number for r in staged] == ["916-555-0100", "916-555-0101"]
        assert all(r.source_filename == "att.csv" for r in staged)
        assert store.batches[batch.batch_id].status == BatchStatus.PENDING_APPROVAL

    def test_stage_many_applies_invoice_map(self, lifecycle, strategy):
        batch = lifecycle.create_batch("AT&T Mobility", "bundle.zip", "analyst", 2048)
        staged = lifecycle.stage_many(
            batch, [("a.csv", ROWS[:1]), ("b.csv", ROWS[1:])], invoice_map={"287301234567": "INV-9"}
        )
        assert staged == 2
        records = strategy.staged_rows[batch.batch_id]
        assert [r.source_filename for r in records] == ["a.csv", "b.csv"]
        assert {r.invoice_number for r in records} == {"INV-9"}

    def test_no_usable_rows_fails_batch(self, lifecycle, store, strategy):
        batch = lifecycle.create_batch("AT&T Mobility", "att.csv", "analyst", 512)
        with pytest.raises(BatchProcessingError) as exc_info:
            lifecycle.stage(batch, [{"Invoice date": "garbage"}, {"Account number": ""}])
        failed = store.batches[batch.batch_id]
        assert failed.status == BatchStatus.FAILED
        assert "No valid data rows" in failed.rejection_reason
        assert failed.reviewed_by is None
        assert exc_info.value.batch_id == batch.batch_id
        assert batch.batch_id not in strategy.staged_rows

    def test_duplicate_during_staging(self, lifecycle, store, strategy):
        strategy.stage_error = pg_errors.UniqueViolation("duplicate key value")
        batch = lifecycle.create_batch("AT&T Mobility", "att.csv", "analyst", 512)
        with pytest.raises(BatchProcessingError) as exc_info:
            lifecycle.stage(batch, ROWS)
        assert exc_info.value.reason == "The file contains duplicate invoice entries."
        assert store.batches[batch.batch_id].rejection_reason.startswith("The file contains duplicate")
        assert isinstance(exc_info.value.__cause__, pg_errors.UniqueViolation)

    def test_staging_error_survives_failed_mark(self, lifecycle, store, strategy):
        strategy.stage_error = RuntimeError("disk full")
        store.fail_on_status = BatchStatus.FAILED
        batch = lifecycle.create_batch("AT&T Mobility", "att.csv", "analyst", 512)
        before = sample("intake_compensation_failures_total")

        with pytest.raises(BatchProcessingError) as exc_info:
            lifecycle.stage(batch, ROWS)

        assert exc_info.value.reason == "disk full"
        assert str(exc_info.value.__cause__) == "disk full"
        assert sample("intake_compensation_failures_total") == before + 1
        assert store.batches[batch.batch_id].status == BatchStatus.PENDING_APPROVAL


class TestApprove:
    """Tests for the approval path"""

    def test_approve_promotes_staged_rows(self, lifecycle, store, strategy, staged_batch):
        result = lifecycle.decide(staged_batch.batch_id, ReviewAction.APPROVE, "supervisor")
        stored = store.batches[staged_batch.batch_id]
        assert result.status == BatchStatus.APPROVED
        assert stored.status == BatchStatus.APPROVED
        assert stored.reviewed_by == "supervisor"
        assert stored.reviewed_at is not None
        assert stored.rejection_reason is None
        assert len(strategy.final_rows[staged_batch.batch_id]) == 2
        assert staged_batch.batch_id not in strategy.staged_rows

    def test_duplicate_key_is_compensated_in_new_unit_of_work(self, lifecycle, pool, store, strategy, staged_batch):
        """Test that FAILED is committed on a different connection than the failed approval"""
        strategy.approve_error = pg_errors.UniqueViolation("duplicate key value violates unique constraint")
        before = sample("intake_approval_failures_total", carrier="AT&T Mobility", reason="duplicate")

        with pytest.raises(ApprovalFailedError) as exc_info:
            lifecycle.decide(staged_batch.batch_id, "approve", "supervisor")

        assert isinstance(exc_info.value.__cause__, pg_errors.UniqueViolation)
        assert exc_info.value.reason == "The uploaded file contains duplicate invoice entries."

        approval_conn = strategy.approve_connections[-1]
        compensation_conn = pool.connections[-1]
        assert approval_conn.rolled_back
        assert compensation_conn is not approval_conn
        assert compensation_conn.committed

        failed = store.batches[staged_batch.batch_id]
        assert failed.status == BatchStatus.FAILED
        assert failed.reviewed_by == "supervisor"
        assert failed.reviewed_at is not None
        # bounded to rejection_reason_max_length
        assert failed.rejection_reason == (
            "Approval failed: The uploaded file contains duplicate invoice entries."[:40]
        )
        assert staged_batch.batch_id not in strategy.final_rows
        assert staged_batch.batch_id not in strategy.staged_rows
        assert sample("intake_approval_failures_total", carrier="AT&T Mobility", reason="duplicate") == before + 1

    def test_unexpected_error_uses_generic_message(self, pool, store, strategy):
        lifecycle = BatchLifecycle(pool, StrategyRegistry([strategy]), batches=store)
        batch = lifecycle.create_batch("AT&T Mobility", "att.csv", "analyst", 512)
        lifecycle.stage(batch, ROWS)
        strategy.approve_error = RuntimeError("disk full")

        with pytest.raises(ApprovalFailedError) as exc_info:
            lifecycle.decide(batch.batch_id, ReviewAction.APPROVE, "supervisor")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert store.batches[batch.batch_id].rejection_reason == (
            "Approval failed: An unexpected error occurred during approval."
        )

    def test_compensation_failure_is_not_propagated(self, lifecycle, store, strategy, staged_batch):
        strategy.approve_error = RuntimeError("disk full")
        store.fail_on_status = BatchStatus.FAILED
        before = sample("intake_compensation_failures_total")

        with pytest.raises(ApprovalFailedError) as exc_info:
            lifecycle.decide(staged_batch.batch_id, ReviewAction.APPROVE, "supervisor")

        assert str(exc_info.value.__cause__) == "disk full"
        assert sample("intake_compensation_failures_total") == before + 1
        assert store.batches[staged_batch.batch_id].status == BatchStatus.PENDING_APPROVAL

    def test_missing_batch(self, lifecycle, store):
        with pytest.raises(BatchNotFoundError):
            lifecycle.decide("no-such-batch", ReviewAction.APPROVE, "supervisor")
        assert store.batches == {}

    def test_second_decision_is_rejected(self, lifecycle, store, strategy, staged_batch):
        lifecycle.decide(staged_batch.batch_id, ReviewAction.APPROVE, "supervisor")
        with pytest.raises(InvalidBatchStateError):
            lifecycle.decide(staged_batch.batch_id, ReviewAction.REJECT, "someone-else")
        assert store.batches[staged_batch.batch_id].status == BatchStatus.APPROVED
        assert store.batches[staged_batch.batch_id].reviewed_by == "supervisor"

    def test_lost_race_on_transition(self, lifecycle, store, strategy, staged_batch, monkeypatch):
        """Test that a transition which no longer matches PENDING_APPROVAL fails the decision"""
        monkeypatch.setattr(store, "transition", lambda *args, **kwargs: False)
        with pytest.raises(InvalidBatchStateError):
            lifecycle.decide(staged_batch.batch_id, ReviewAction.APPROVE, "supervisor")
        assert staged_batch.batch_id not in strategy.final_rows


class TestReject:
    """Tests for the rejection path"""

    def test_reject_clears_staged_rows(self, lifecycle, store, strategy, staged_batch):
        lifecycle.decide(staged_batch.batch_id, ReviewAction.REJECT, "supervisor", "Wrong billing month entirely")
        stored = store.batches[staged_batch.batch_id]
        assert stored.status == BatchStatus.REJECTED
        assert stored.reviewed_by == "supervisor"
        assert stored.rejection_reason == "Wrong billing month entirely"
        assert staged_batch.batch_id not in strategy.staged_rows
        assert staged_batch.batch_id not in strategy.final_rows

    def test_long_reason_is_truncated(self, lifecycle, store, staged_batch):
        lifecycle.decide(staged_batch.batch_id, ReviewAction.REJECT, "supervisor", "x" * 100)
        assert len(store.batches[staged_batch.batch_id].rejection_reason) == 40

    def test_reject_error_propagates_unchanged(self, lifecycle, store, strategy, staged_batch):
        strategy.reject_error = RuntimeError("delete failed")
        with pytest.raises(RuntimeError, match="delete failed"):
            lifecycle.decide(staged_batch.batch_id, ReviewAction.REJECT, "supervisor")
        assert store.batches[staged_batch.batch_id].status == BatchStatus.PENDING_APPROVAL
        assert len(strategy.staged_rows[staged_batch.batch_id]) == 2


class TestMarkFailed:
    """Tests for the administrative FAILED transition"""

    def test_mark_failed(self, lifecycle, store, strategy, staged_batch):
        assert lifecycle.mark_failed(staged_batch.batch_id, "source file withdrawn")
        stored = store.batches[staged_batch.batch_id]
        assert stored.status == BatchStatus.FAILED
        assert stored.reviewed_by is None
        assert staged_batch.batch_id not in strategy.staged_rows

    def test_missing_batch_is_a_no_op(self, lifecycle):
        assert lifecycle.mark_failed("no-such-batch", "whatever") is False

    def test_terminal_batch_is_left_alone(self, lifecycle, store, staged_batch):
        lifecycle.decide(staged_batch.batch_id, ReviewAction.APPROVE, "supervisor")
        assert lifecycle.mark_failed(staged_batch.batch_id, "late failure") is False
        assert store.batches[staged_batch.batch_id].status == BatchStatus.APPROVED


class TestQueries:
    """Tests for review and approved views"""

    def test_batch_for_review(self, lifecycle, staged_batch):
        review = lifecycle.get_batch_for_review(staged_batch.batch_id)
        assert review.batch.batch_id == staged_batch.batch_id
        assert [r["wireless_number"] for r in review.records] == ["916-555-0100", "916-555-0101"]

    def test_review_missing_batch(self, lifecycle):
        with pytest.raises(BatchNotFoundError):
            lifecycle.get_batch_for_review("no-such-batch")

    def test_approved_batch_requires_approval(self, lifecycle, staged_batch):
        with pytest.raises(InvalidBatchStateError):
            lifecycle.get_approved_batch(staged_batch.batch_id)

        lifecycle.decide(staged_batch.batch_id, ReviewAction.APPROVE, "supervisor")
        approved = lifecycle.get_approved_batch(staged_batch.batch_id)
        assert approved.batch.status == BatchStatus.APPROVED
        assert len(approved.records) == 2


class TestDuplicateDetection:
    """Tests for duplicate-key classification"""

    def test_direct_violation(self):
        assert is_duplicate_key_error(pg_errors.UniqueViolation("dup"))

    def test_wrapped_violation(self):
        try:
            try:
                raise pg_errors.UniqueViolation("dup")
            except pg_errors.UniqueViolation as inner:
                raise RuntimeError("save failed") from inner
        except RuntimeError as outer:
            assert is_duplicate_key_error(outer)

    def test_other_error(self):
        assert not is_duplicate_key_error(ValueError("nope"))
