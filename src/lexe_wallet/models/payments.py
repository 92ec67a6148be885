"""Payment record models as stored locally and served by the remote node."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


def _split_index(value: str) -> tuple[int, str]:
    if not isinstance(value, str):
        raise ValueError(f"invalid payment index: {value!r}")
    ts, sep, ident = value.partition("-")
    if not sep or not ts.isdigit() or not ident:
        raise ValueError(f"invalid payment index: {value!r}")
    return int(ts), ident


@dataclass(frozen=True, order=True)
class PaymentCreatedIndex:
    """Primary key of a payment: creation time, then payment id.

    Ordering is total and gap-tolerant, so it is safe to sort by.
    """

    created_at: int  # ms since epoch
    id: str

    def __str__(self) -> str:
        return f"{self.created_at:013}-{self.id}"

    @classmethod
    def parse(cls, value: str) -> PaymentCreatedIndex:
        created_at, ident = _split_index(value)
        return cls(created_at=created_at, id=ident)


@dataclass(frozen=True, order=True)
class PaymentUpdatedIndex:
    """Bumped on every mutation of a payment; doubles as the sync cursor."""

    updated_at: int  # ms since epoch
    id: str

    def __str__(self) -> str:
        return f"{self.updated_at:013}-{self.id}"

    @classmethod
    def parse(cls, value: str) -> PaymentUpdatedIndex:
        updated_at, ident = _split_index(value)
        return cls(updated_at=updated_at, id=ident)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    FINALIZED = "finalized"


class FinalizedStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class PaymentKind(str, Enum):
    INVOICE = "invoice"
    ONCHAIN = "onchain"
    SPONTANEOUS = "spontaneous"


@dataclass(frozen=True)
class BasicPayment:
    """A single payment record.

    The remote node is the source of truth for everything here. Locally the
    record is only ever replaced wholesale (sync) or has its note changed.
    """

    index: PaymentCreatedIndex
    updated_index: PaymentUpdatedIndex
    status: PaymentStatus
    direction: PaymentDirection
    kind: PaymentKind = PaymentKind.INVOICE
    amount_msat: int | None = None
    fees_msat: int = 0
    is_junk: bool = False
    note: str | None = None
    invoice: str | None = None  # BOLT11, opaque here
    description: str | None = None
    finalized_status: FinalizedStatus | None = None
    finalized_at: int | None = None  # ms since epoch

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    @property
    def is_finalized(self) -> bool:
        return self.status == PaymentStatus.FINALIZED

    def with_note(self, note: str | None, updated_index: PaymentUpdatedIndex) -> BasicPayment:
        return replace(self, note=note, updated_index=updated_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": str(self.index),
            "updated_index": str(self.updated_index),
            "status": self.status.value,
            "direction": self.direction.value,
            "kind": self.kind.value,
            "amount_msat": self.amount_msat,
            "fees_msat": self.fees_msat,
            "is_junk": self.is_junk,
            "note": self.note,
            "invoice": self.invoice,
            "description": self.description,
            "finalized_status": self.finalized_status.value if self.finalized_status else None,
            "finalized_at": self.finalized_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BasicPayment:
        """Build from a JSON object. Raises KeyError/ValueError/TypeError if malformed."""
        finalized_status = data.get("finalized_status")
        amount = data.get("amount_msat")
        finalized_at = data.get("finalized_at")
        return cls(
            index=PaymentCreatedIndex.parse(data["index"]),
            updated_index=PaymentUpdatedIndex.parse(data["updated_index"]),
            status=PaymentStatus(data["status"]),
            direction=PaymentDirection(data["direction"]),
            kind=PaymentKind(data.get("kind", PaymentKind.INVOICE.value)),
            amount_msat=int(amount) if amount is not None else None,
            fees_msat=int(data.get("fees_msat", 0)),
            is_junk=bool(data.get("is_junk", False)),
            note=data.get("note"),
            invoice=data.get("invoice"),
            description=data.get("description"),
            finalized_status=FinalizedStatus(finalized_status) if finalized_status else None,
            finalized_at=int(finalized_at) if finalized_at is not None else None,
        )


@dataclass(frozen=True)
class SdkPayment:
    """A payment as returned directly by the remote node (not the local db)."""

    payment: BasicPayment

    @property
    def index(self) -> PaymentCreatedIndex:
        return self.payment.index

    def to_dict(self) -> dict[str, Any]:
        return self.payment.to_dict()
