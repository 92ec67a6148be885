"""sync_payments: idempotence, updates, pagination, failure and concurrency."""

from __future__ import annotations

import asyncio

import pytest

from lexe_wallet.errors import StoreError, SyncError
from lexe_wallet.models.payments import PaymentStatus
from lexe_wallet.models.requests import UpdatePaymentNote
from lexe_wallet.payments_db import PaymentsDb
from lexe_wallet.storage.sqlite import SQLitePaymentsStore

from tests.factories import make_payment
from tests.mocks import FakeNodeBackend, FlakyStore


# ── Scenarios ─────────────────────────────────────────────────────


async def test_sync_into_empty_store(payments_db, backend):
    for _ in range(3):
        backend.add_payment()

    summary = await payments_db.sync_payments(backend)

    assert summary.num_new == 3
    assert summary.num_updated == 0
    assert summary.any_changes()
    assert payments_db.num_payments() == 3


async def test_sync_applies_status_change(payments_db, backend):
    payments = [backend.add_payment() for _ in range(3)]
    await payments_db.sync_payments(backend)
    pending_before = payments_db.num_pending()
    finalized_before = payments_db.num_finalized()

    backend.finalize(payments[1].index)
    summary = await payments_db.sync_payments(backend)

    assert summary.num_new == 0
    assert summary.num_updated == 1
    assert payments_db.num_finalized() == finalized_before + 1
    assert payments_db.num_pending() == pending_before - 1
    stored = payments_db.get_payment_by_created_index(payments[1].index)
    assert stored.status == PaymentStatus.FINALIZED


async def test_sync_is_idempotent(payments_db, backend):
    for _ in range(3):
        backend.add_payment()
    await payments_db.sync_payments(backend)

    second = await payments_db.sync_payments(backend)

    assert second.num_new == 0
    assert second.num_updated == 0
    assert not second.any_changes()
    assert payments_db.num_payments() == 3


async def test_remote_record_fully_replaces_local(payments_db, backend):
    target = backend.add_payment()
    await payments_db.sync_payments(backend)
    await payments_db.update_payment_note(UpdatePaymentNote(target.index, "local only"))

    # Remote changes something else later; its version wins wholesale.
    backend.mutate(target.index, is_junk=True)
    await payments_db.sync_payments(backend)

    stored = payments_db.get_payment_by_created_index(target.index)
    assert stored.is_junk
    assert stored.note is None
    assert stored == backend.payments[target.index]


# ── Cursor ────────────────────────────────────────────────────────


async def test_cursor_is_max_updated_index(payments_db, backend):
    payments = [backend.add_payment() for _ in range(4)]
    await payments_db.sync_payments(backend)
    backend.finalize(payments[0].index)
    await payments_db.sync_payments(backend)

    expected = max(p.updated_index for p in backend.payments.values())
    assert payments_db.latest_updated_index() == expected


async def test_sync_requests_only_newer_than_cursor(payments_db, backend):
    backend.add_payment()
    await payments_db.sync_payments(backend)
    cursor = payments_db.latest_updated_index()

    backend.fetch_calls.clear()
    await payments_db.sync_payments(backend)

    assert backend.fetch_calls[0][0] == cursor


async def test_sync_paginates(payments_db, backend):
    for _ in range(7):
        backend.add_payment()

    summary = await payments_db.sync_payments(backend, page_size=3)

    assert summary.num_new == 7
    # 3 + 3 + 1, then an empty page ends the sync
    assert len(backend.fetch_calls) == 4
    assert backend.fetch_calls[0][0] is None


async def test_exact_page_multiple_needs_one_empty_fetch(payments_db, backend):
    for _ in range(4):
        backend.add_payment()

    summary = await payments_db.sync_payments(backend, page_size=2)

    assert summary.num_new == 4
    assert len(backend.fetch_calls) == 3


class CappedBackend(FakeNodeBackend):
    """Serves at most two records per page whatever limit is asked for."""

    async def fetch_payments(self, since, limit):
        return await super().fetch_payments(since, min(limit, 2))


async def test_backend_with_smaller_pages_is_fully_drained(payments_db):
    backend = CappedBackend()
    for _ in range(5):
        backend.add_payment()

    first = await payments_db.sync_payments(backend)
    second = await payments_db.sync_payments(backend)

    assert first.num_new == 5
    assert payments_db.num_payments() == 5
    assert second.num_new == 0
    assert second.num_updated == 0


# ── Failure handling ──────────────────────────────────────────────


async def test_fetch_failure_leaves_state_untouched(payments_db, backend):
    backend.add_payment()
    await payments_db.sync_payments(backend)
    cursor = payments_db.latest_updated_index()

    backend.add_payment()
    backend.fail_fetch_after = len(backend.fetch_calls)
    with pytest.raises(SyncError) as exc_info:
        await payments_db.sync_payments(backend)

    assert exc_info.value.retryable
    assert payments_db.num_payments() == 1
    assert payments_db.latest_updated_index() == cursor


async def test_interrupted_sync_resumes_without_duplicates(payments_db, backend):
    for _ in range(5):
        backend.add_payment()
    backend.fail_fetch_after = 1

    with pytest.raises(SyncError):
        await payments_db.sync_payments(backend, page_size=2)

    # First page committed, cursor sits at its last record
    assert payments_db.num_payments() == 2
    ordered = sorted(backend.payments.values(), key=lambda p: p.updated_index)
    assert payments_db.latest_updated_index() == ordered[1].updated_index

    backend.fail_fetch_after = None
    summary = await payments_db.sync_payments(backend, page_size=2)

    assert summary.num_new == 3
    assert payments_db.num_payments() == 5


async def test_malformed_page_rejected_entirely(payments_db, backend):
    good = backend.add_payment()
    await payments_db.sync_payments(backend)
    cursor = payments_db.latest_updated_index()

    # Out-of-order page with one record at or behind the cursor
    backend.page_override = [
        make_payment(created_at=good.index.created_at + 5, updated_at=cursor.updated_at + 10),
        make_payment(created_at=good.index.created_at + 6, updated_at=cursor.updated_at - 1),
    ]
    with pytest.raises(SyncError):
        await payments_db.sync_payments(backend)

    assert payments_db.num_payments() == 1
    assert payments_db.latest_updated_index() == cursor


async def test_non_wallet_errors_become_sync_errors(payments_db):
    class BrokenBackend(FakeNodeBackend):
        async def fetch_payments(self, since, limit):
            raise ConnectionResetError("peer went away")

    with pytest.raises(SyncError) as exc_info:
        await payments_db.sync_payments(BrokenBackend())
    assert isinstance(exc_info.value.__cause__, ConnectionResetError)


async def test_store_failure_is_store_error_and_keeps_earlier_pages(db_path, backend):
    for _ in range(4):
        backend.add_payment()
    db = await PaymentsDb.open(FlakyStore(db_path, fail_on_batch=2))
    try:
        with pytest.raises(StoreError):
            await db.sync_payments(backend, page_size=2)
        assert db.num_payments() == 2

        summary = await db.sync_payments(backend, page_size=2)
        assert summary.num_new == 2
        assert db.num_payments() == 4
    finally:
        await db.close()

    reopened = await PaymentsDb.open(SQLitePaymentsStore(db_path))
    try:
        assert reopened.num_payments() == 4
    finally:
        await reopened.close()


# ── Concurrency ───────────────────────────────────────────────────


async def test_concurrent_syncs_are_serialized(payments_db, backend):
    for _ in range(3):
        backend.add_payment()
    backend.fetch_delay = 0.01

    first, second = await asyncio.gather(
        payments_db.sync_payments(backend),
        payments_db.sync_payments(backend),
    )

    assert first.num_new + second.num_new == 3
    assert first.num_updated + second.num_updated == 0
    assert payments_db.num_payments() == 3
    # The second sync started from the cursor the first one left behind
    assert backend.fetch_calls[0][0] is None
    assert backend.fetch_calls[-1][0] == payments_db.latest_updated_index()


async def test_note_update_serializes_with_sync(payments_db, backend):
    target = backend.add_payment()
    await payments_db.sync_payments(backend)
    backend.finalize(target.index)
    backend.fetch_delay = 0.01

    summary, updated = await asyncio.gather(
        payments_db.sync_payments(backend),
        payments_db.update_payment_note(UpdatePaymentNote(target.index, "groceries")),
    )

    assert summary.num_updated == 1
    stored = payments_db.get_payment_by_created_index(target.index)
    # The note update ran after the sync and is the latest write
    assert stored == updated
    assert stored.note == "groceries"
    assert stored.status == PaymentStatus.FINALIZED
    assert payments_db.latest_updated_index() == stored.updated_index


async def test_reads_during_sync_see_whole_pages(payments_db, backend):
    for _ in range(4):
        backend.add_payment()
    backend.fetch_delay = 0.005
    observed: list[int] = []

    async def reader():
        for _ in range(20):
            observed.append(payments_db.num_payments())
            await asyncio.sleep(0.001)

    await asyncio.gather(payments_db.sync_payments(backend, page_size=2), reader())

    assert set(observed) <= {0, 2, 4}
