"""Request/response types for remote node operations and sync results."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from lexe_wallet.models.payments import PaymentCreatedIndex, SdkPayment


@dataclass
class SdkNodeInfo:
    """Status snapshot of the user's remote node."""

    version: str
    measurement: str  # enclave measurement, hex
    user_pk: str
    node_pk: str
    balance_msat: int = 0
    lightning_balance_msat: int = 0
    onchain_balance_msat: int = 0
    num_channels: int = 0
    num_usable_channels: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SdkCreateInvoiceRequest:
    expiration_secs: int
    amount: int | None = None  # msat; None = amountless invoice
    description: str | None = None


@dataclass
class SdkCreateInvoiceResponse:
    invoice: str
    index: PaymentCreatedIndex


@dataclass
class SdkPayInvoiceRequest:
    invoice: str
    fallback_amount: int | None = None  # msat, only for amountless invoices
    note: str | None = None


@dataclass
class SdkPayInvoiceResponse:
    index: PaymentCreatedIndex
    created_at: int  # ms since epoch


@dataclass
class SdkGetPaymentRequest:
    index: PaymentCreatedIndex


@dataclass
class SdkGetPaymentResponse:
    payment: SdkPayment | None


@dataclass
class UpdatePaymentNote:
    index: PaymentCreatedIndex
    note: str | None


@dataclass
class ProvisionStatus:
    """Remote view of the user's registration and provisioned node version."""

    registered: bool
    provisioned_version: str | None
    latest_version: str


@dataclass
class ProvisionOptions:
    allow_gvfs_access: bool = False
    encrypted_seed: bytes | None = None
    google_auth_code: str | None = None


@dataclass
class PaymentSyncSummary:
    """Outcome of one sync_payments() call."""

    num_new: int = 0
    num_updated: int = 0

    def any_changes(self) -> bool:
        return self.num_new + self.num_updated > 0
