"""NodeBackend protocol - the remote node as seen by the wallet."""

from __future__ import annotations

from typing import Protocol

from lexe_wallet.credentials import CredentialsRef, RootSeed
from lexe_wallet.models.payments import BasicPayment, PaymentCreatedIndex, PaymentUpdatedIndex, SdkPayment
from lexe_wallet.models.requests import (
    ProvisionOptions,
    ProvisionStatus,
    SdkCreateInvoiceRequest,
    SdkCreateInvoiceResponse,
    SdkNodeInfo,
    SdkPayInvoiceRequest,
    SdkPayInvoiceResponse,
    UpdatePaymentNote,
)


class NodeBackend(Protocol):
    """Remote source of truth for payments, and the provisioning endpoint."""

    async def fetch_payments(
        self, since: PaymentUpdatedIndex | None, limit: int
    ) -> list[BasicPayment]:
        """Payments with updated index > ``since`` (all if None), ascending, at most ``limit``."""
        ...

    async def node_info(self) -> SdkNodeInfo:
        ...

    async def create_invoice(self, req: SdkCreateInvoiceRequest) -> SdkCreateInvoiceResponse:
        ...

    async def pay_invoice(self, req: SdkPayInvoiceRequest) -> SdkPayInvoiceResponse:
        ...

    async def get_payment(self, index: PaymentCreatedIndex) -> SdkPayment | None:
        ...

    async def update_payment_note(self, req: UpdatePaymentNote) -> None:
        ...

    async def provision_status(self) -> ProvisionStatus:
        ...

    async def provision(self, credentials: CredentialsRef, options: ProvisionOptions) -> None:
        ...

    async def signup(
        self, root_seed: RootSeed, partner: str | None, signup_code: str | None
    ) -> None:
        ...

    async def close(self) -> None:
        ...
