"""Protocol interfaces for lexe_wallet components."""

from lexe_wallet.interfaces.backend import NodeBackend
from lexe_wallet.interfaces.store import PaymentsStore

__all__ = ["NodeBackend", "PaymentsStore"]
