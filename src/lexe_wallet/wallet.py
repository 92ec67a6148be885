"""LexeWallet - the top-level wallet object.

Two concrete types share one base:

- ``WalletWithDb`` owns a local PaymentsDb and can sync payments.
- ``WalletWithoutDb`` has no local persistence; ``payments_db`` and
  ``sync_payments`` don't exist on it at all.

Construct with ``LexeWallet.fresh / load / load_or_fresh / without_db``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from lexe_wallet.credentials import CredentialsRef, RootSeed, SysRng
from lexe_wallet.errors import CredentialError, StoreExistsError
from lexe_wallet.interfaces.backend import NodeBackend
from lexe_wallet.models.config import WalletEnvConfig, WalletUserConfig
from lexe_wallet.models.requests import (
    PaymentSyncSummary,
    SdkCreateInvoiceRequest,
    SdkCreateInvoiceResponse,
    SdkGetPaymentRequest,
    SdkGetPaymentResponse,
    SdkNodeInfo,
    SdkPayInvoiceRequest,
    SdkPayInvoiceResponse,
    UpdatePaymentNote,
)
from lexe_wallet.payments_db import PaymentsDb, payments_db_path
from lexe_wallet.provision import ProvisionState, Provisioner
from lexe_wallet.remote.client import NodeClient
from lexe_wallet.storage.sqlite import SQLitePaymentsStore

log = logging.getLogger(__name__)


def _check_credentials(credentials: object) -> CredentialsRef:
    if not isinstance(credentials, CredentialsRef):
        raise CredentialError("expected a CredentialsRef; pass credentials.as_ref()")
    return credentials


class LexeWallet:
    """Remote operations available whether or not there is a local db."""

    def __init__(
        self,
        rng: SysRng,
        env_config: WalletEnvConfig,
        credentials: CredentialsRef,
        backend: NodeBackend | None = None,
    ) -> None:
        credentials = _check_credentials(credentials)
        self._rng = rng
        self._credentials = credentials
        self._user_config = WalletUserConfig(user_pk=credentials.user_pk(), env_config=env_config)
        self._owns_backend = backend is None
        self._backend: NodeBackend = backend or NodeClient(env_config, credentials)
        self._provisioner = Provisioner(self._backend)

    # ── Constructors ───────────────────────────────────────

    @classmethod
    async def fresh(
        cls,
        rng: SysRng,
        env_config: WalletEnvConfig,
        credentials: CredentialsRef,
        lexe_data_dir: str | Path,
        *,
        backend: NodeBackend | None = None,
    ) -> WalletWithDb:
        """Create a wallet with a new, empty payments db.

        Raises StoreExistsError if a db already exists for this user/env.
        """
        credentials = _check_credentials(credentials)
        path = payments_db_path(lexe_data_dir, env_config, credentials.user_pk())
        if SQLitePaymentsStore.exists(path):
            raise StoreExistsError(f"payments db already exists at {path}")
        db = await PaymentsDb.open(SQLitePaymentsStore(path))
        log.info("Created fresh payments db at %s", path)
        return WalletWithDb(rng, env_config, credentials, db, backend=backend)

    @classmethod
    async def load(
        cls,
        rng: SysRng,
        env_config: WalletEnvConfig,
        credentials: CredentialsRef,
        lexe_data_dir: str | Path,
        *,
        backend: NodeBackend | None = None,
    ) -> WalletWithDb | None:
        """Load a wallet from an existing payments db.

        Returns None if there is nothing to load. A db that exists but
        can't be read raises StoreCorruptedError.
        """
        credentials = _check_credentials(credentials)
        path = payments_db_path(lexe_data_dir, env_config, credentials.user_pk())
        if not SQLitePaymentsStore.exists(path):
            log.debug("No payments db at %s", path)
            return None
        db = await PaymentsDb.open(SQLitePaymentsStore(path))
        log.info("Loaded payments db at %s (%d payments)", path, db.num_payments())
        return WalletWithDb(rng, env_config, credentials, db, backend=backend)

    @classmethod
    async def load_or_fresh(
        cls,
        rng: SysRng,
        env_config: WalletEnvConfig,
        credentials: CredentialsRef,
        lexe_data_dir: str | Path,
        *,
        backend: NodeBackend | None = None,
    ) -> WalletWithDb:
        wallet = await cls.load(rng, env_config, credentials, lexe_data_dir, backend=backend)
        if wallet is not None:
            return wallet
        return await cls.fresh(rng, env_config, credentials, lexe_data_dir, backend=backend)

    @classmethod
    async def without_db(
        cls,
        rng: SysRng,
        env_config: WalletEnvConfig,
        credentials: CredentialsRef,
        *,
        backend: NodeBackend | None = None,
    ) -> WalletWithoutDb:
        return WalletWithoutDb(rng, env_config, credentials, backend=backend)

    # ── Lifecycle ──────────────────────────────────────────

    async def close(self) -> None:
        if self._owns_backend:
            await self._backend.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Info ───────────────────────────────────────────────

    def user_config(self) -> WalletUserConfig:
        return self._user_config

    async def node_info(self) -> SdkNodeInfo:
        return await self._backend.node_info()

    # ── Payments (remote) ──────────────────────────────────

    async def create_invoice(self, req: SdkCreateInvoiceRequest) -> SdkCreateInvoiceResponse:
        if req.expiration_secs <= 0:
            raise ValueError("expiration_secs must be positive")
        resp = await self._backend.create_invoice(req)
        log.info("Created invoice %s", resp.index)
        return resp

    async def pay_invoice(self, req: SdkPayInvoiceRequest) -> SdkPayInvoiceResponse:
        resp = await self._backend.pay_invoice(req)
        log.info("Initiated payment %s", resp.index)
        return resp

    async def get_payment(self, req: SdkGetPaymentRequest) -> SdkGetPaymentResponse:
        """Fetch one payment straight from the node, bypassing any local db."""
        return SdkGetPaymentResponse(payment=await self._backend.get_payment(req.index))

    async def update_payment_note(self, req: UpdatePaymentNote) -> None:
        """Set a payment's note on the remote node."""
        await self._backend.update_payment_note(req)

    # ── Provisioning ───────────────────────────────────────

    async def signup_and_provision(
        self,
        rng: SysRng,
        root_seed: RootSeed,
        partner: str | None = None,
        signup_code: str | None = None,
        allow_gvfs_access: bool = False,
        backup_password: str | None = None,
        google_auth_code: str | None = None,
    ) -> None:
        """Sign up and provision this wallet's user; ``root_seed`` must belong to it."""
        if root_seed.user_pk() != self._user_config.user_pk:
            raise CredentialError("root seed does not belong to this wallet's user")
        await self._provisioner.signup_and_provision(
            rng, root_seed, partner, signup_code,
            allow_gvfs_access, backup_password, google_auth_code,
        )

    async def ensure_provisioned(
        self,
        credentials: CredentialsRef,
        allow_gvfs_access: bool = False,
        encrypted_seed: bytes | None = None,
        google_auth_code: str | None = None,
    ) -> ProvisionState:
        return await self._provisioner.ensure_provisioned(
            _check_credentials(credentials), allow_gvfs_access, encrypted_seed, google_auth_code,
        )


class WalletWithDb(LexeWallet):
    """Wallet with a local payments db."""

    def __init__(
        self,
        rng: SysRng,
        env_config: WalletEnvConfig,
        credentials: CredentialsRef,
        payments_db: PaymentsDb,
        backend: NodeBackend | None = None,
    ) -> None:
        super().__init__(rng, env_config, credentials, backend=backend)
        self._payments_db = payments_db

    def payments_db(self) -> PaymentsDb:
        return self._payments_db

    async def sync_payments(self) -> PaymentSyncSummary:
        return await self._payments_db.sync_payments(self._backend)

    async def update_payment_note(self, req: UpdatePaymentNote) -> None:
        """Set the note on the remote node, then write it through the local db."""
        await super().update_payment_note(req)
        await self._payments_db.update_payment_note(req)

    async def close(self) -> None:
        try:
            await self._payments_db.close()
        finally:
            await super().close()


class WalletWithoutDb(LexeWallet):
    """Wallet with no local persistence.

    ``update_payment_note`` goes straight to the remote node.
    """
