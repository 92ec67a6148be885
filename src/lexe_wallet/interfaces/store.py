"""PaymentsStore protocol - durable storage behind the PaymentsDb."""

from __future__ import annotations

from typing import Protocol

from lexe_wallet.models.payments import BasicPayment


class PaymentsStore(Protocol):
    """Persists payment records. Each ``upsert_batch`` is all-or-nothing."""

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Open (or create) the store and validate its schema."""
        ...

    async def close(self) -> None:
        ...

    async def destroy(self) -> None:
        """Close and irreversibly remove everything on disk."""
        ...

    # ── Records ────────────────────────────────────────────

    async def load_all(self) -> list[BasicPayment]:
        ...

    async def upsert_batch(self, payments: list[BasicPayment]) -> None:
        """Insert or fully replace each payment in one transaction."""
        ...
