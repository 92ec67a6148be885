"""Local payments db: indexed views over synced payments and the sync engine."""

from __future__ import annotations

import asyncio
import bisect
import logging
from pathlib import Path

from lexe_wallet.errors import StoreError, SyncError
from lexe_wallet.interfaces.backend import NodeBackend
from lexe_wallet.interfaces.store import PaymentsStore
from lexe_wallet.models.config import WalletEnvConfig
from lexe_wallet.models.payments import BasicPayment, PaymentCreatedIndex, PaymentUpdatedIndex
from lexe_wallet.models.requests import PaymentSyncSummary, UpdatePaymentNote
from lexe_wallet.storage.sqlite import DB_FILENAME

log = logging.getLogger(__name__)

SYNC_PAGE_SIZE = 100


def payments_db_path(data_dir: str | Path, env_config: WalletEnvConfig, user_pk: str) -> Path:
    """Where a user's payments db lives under the wallet data dir."""
    return (
        Path(data_dir).expanduser()
        / env_config.deploy_env.value
        / user_pk
        / "payments_db"
        / DB_FILENAME
    )


class PaymentsDb:
    """In-memory indexed copy of the user's payments, backed by a PaymentsStore.

    Views ("all", "pending", "pending_not_junk", "finalized",
    "finalized_not_junk") are kept as lists of created indices sorted
    ascending and updated incrementally. Scroll index 0 is the newest payment
    (highest created index) in each view.

    Reads are plain synchronous method calls and never await, so on a single
    event loop they always see either the state before or after a whole
    applied batch. Sync and note updates are serialized by one lock.
    """

    def __init__(self, store: PaymentsStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self._deleted = False
        self._reset()

    def _reset(self) -> None:
        self._payments: dict[PaymentCreatedIndex, BasicPayment] = {}
        self._all: list[PaymentCreatedIndex] = []
        self._pending: list[PaymentCreatedIndex] = []
        self._pending_not_junk: list[PaymentCreatedIndex] = []
        self._finalized: list[PaymentCreatedIndex] = []
        self._finalized_not_junk: list[PaymentCreatedIndex] = []
        self._latest_updated: PaymentUpdatedIndex | None = None

    @classmethod
    async def open(cls, store: PaymentsStore) -> PaymentsDb:
        """Open the store and rebuild all indices from its records."""
        await store.initialize()
        db = cls(store)
        try:
            payments = await store.load_all()
        except BaseException:
            await store.close()
            raise
        db._apply(payments)
        log.debug("Loaded %d payments (cursor: %s)", len(payments), db._latest_updated)
        return db

    async def close(self) -> None:
        await self._store.close()

    async def __aenter__(self) -> PaymentsDb:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── In-memory indices ──────────────────────────────────

    def _views_for(self, payment: BasicPayment) -> list[list[PaymentCreatedIndex]]:
        views = [self._all]
        if payment.is_pending:
            views.append(self._pending)
            if not payment.is_junk:
                views.append(self._pending_not_junk)
        else:
            views.append(self._finalized)
            if not payment.is_junk:
                views.append(self._finalized_not_junk)
        return views

    def _apply(self, payments: list[BasicPayment]) -> tuple[int, int]:
        """Insert or replace payments in memory. Must not await."""
        num_new = num_updated = 0
        for payment in payments:
            old = self._payments.get(payment.index)
            if old is not None:
                for view in self._views_for(old):
                    del view[bisect.bisect_left(view, old.index)]
                num_updated += 1
            else:
                num_new += 1
            self._payments[payment.index] = payment
            for view in self._views_for(payment):
                bisect.insort(view, payment.index)
            if self._latest_updated is None or payment.updated_index > self._latest_updated:
                self._latest_updated = payment.updated_index
        return num_new, num_updated

    def _check_live(self) -> None:
        if self._deleted:
            raise StoreError("payments db has been deleted")

    # ── Counts ─────────────────────────────────────────────

    def num_payments(self) -> int:
        return len(self._all)

    def num_pending(self) -> int:
        return len(self._pending)

    def num_finalized(self) -> int:
        return len(self._finalized)

    def num_pending_not_junk(self) -> int:
        return len(self._pending_not_junk)

    def num_finalized_not_junk(self) -> int:
        return len(self._finalized_not_junk)

    def latest_updated_index(self) -> PaymentUpdatedIndex | None:
        """The sync cursor: highest updated index stored, None if empty."""
        return self._latest_updated

    # ── Lookups ────────────────────────────────────────────

    def get_payment_by_created_index(self, index: PaymentCreatedIndex) -> BasicPayment | None:
        return self._payments.get(index)

    def _scroll(self, view: list[PaymentCreatedIndex], scroll_idx: int) -> BasicPayment | None:
        if scroll_idx < 0 or scroll_idx >= len(view):
            return None
        return self._payments[view[len(view) - 1 - scroll_idx]]

    def get_payment_by_scroll_idx(self, scroll_idx: int) -> BasicPayment | None:
        return self._scroll(self._all, scroll_idx)

    def get_pending_payment_by_scroll_idx(self, scroll_idx: int) -> BasicPayment | None:
        return self._scroll(self._pending, scroll_idx)

    def get_pending_not_junk_payment_by_scroll_idx(self, scroll_idx: int) -> BasicPayment | None:
        return self._scroll(self._pending_not_junk, scroll_idx)

    def get_finalized_payment_by_scroll_idx(self, scroll_idx: int) -> BasicPayment | None:
        return self._scroll(self._finalized, scroll_idx)

    def get_finalized_not_junk_payment_by_scroll_idx(self, scroll_idx: int) -> BasicPayment | None:
        return self._scroll(self._finalized_not_junk, scroll_idx)

    # ── Sync ───────────────────────────────────────────────

    async def sync_payments(
        self, backend: NodeBackend, page_size: int = SYNC_PAGE_SIZE
    ) -> PaymentSyncSummary:
        """Pull every payment updated since the cursor from the remote node.

        Pages are fetched until one comes back empty, so a backend that
        returns fewer than ``page_size`` records per page is still drained.
        Each fetched page is committed in one transaction before the cursor
        moves past it. A failure mid-sync leaves the cursor at the last
        committed page, so calling again resumes where it stopped.
        A concurrent caller waits for the in-flight sync, then runs its own
        incremental pass.
        """
        self._check_live()
        async with self._lock:
            self._check_live()
            summary = PaymentSyncSummary()
            while True:
                since = self._latest_updated
                try:
                    page = await backend.fetch_payments(since, page_size)
                except SyncError:
                    raise
                except Exception as exc:
                    raise SyncError(f"failed to fetch payments since {since}: {exc}") from exc

                if not page:
                    break
                _validate_page(page, since)
                await self._store.upsert_batch(page)
                num_new, num_updated = self._apply(page)
                summary.num_new += num_new
                summary.num_updated += num_updated
                log.debug(
                    "Applied page of %d payments (new=%d updated=%d cursor=%s)",
                    len(page), num_new, num_updated, self._latest_updated,
                )

        if summary.any_changes():
            log.info(
                "Synced payments: %d new, %d updated", summary.num_new, summary.num_updated,
            )
        return summary

    # ── Mutation ───────────────────────────────────────────

    async def update_payment_note(self, req: UpdatePaymentNote) -> BasicPayment | None:
        """Set a payment's note locally and bump its updated index.

        Returns the updated payment, or None if the payment isn't stored.
        """
        self._check_live()
        async with self._lock:
            self._check_live()
            current = self._payments.get(req.index)
            latest = self._latest_updated
            if current is None or latest is None:
                return None
            bumped = PaymentUpdatedIndex(updated_at=latest.updated_at + 1, id=current.index.id)
            updated = current.with_note(req.note, bumped)
            await self._store.upsert_batch([updated])
            self._apply([updated])
            log.debug("Updated note for %s (updated index %s)", req.index, bumped)
            return updated

    async def delete(self) -> None:
        """Irreversibly delete the payments db, on disk and in memory.

        The handle afterwards reads as an empty db; sync and note updates on
        it raise StoreError.
        """
        async with self._lock:
            await self._store.destroy()
            self._reset()
            self._deleted = True


def _validate_page(page: list[BasicPayment], since: PaymentUpdatedIndex | None) -> None:
    """Reject the whole page if it isn't strictly after ``since`` and ascending."""
    prev = since
    for payment in page:
        if prev is not None and payment.updated_index <= prev:
            raise SyncError(
                f"malformed payments page: {payment.updated_index} is not after {prev}"
            )
        prev = payment.updated_index
