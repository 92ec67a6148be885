"""Provisioning state machine - signup and ensure-provisioned."""

from __future__ import annotations

import logging
from enum import Enum

from lexe_wallet.credentials import (
    Credentials,
    CredentialsRef,
    RootSeed,
    SysRng,
    encrypt_seed_with_password,
)
from lexe_wallet.errors import CredentialError, ProvisioningError, WalletError
from lexe_wallet.interfaces.backend import NodeBackend
from lexe_wallet.models.requests import ProvisionOptions, ProvisionStatus

log = logging.getLogger(__name__)


class ProvisionState(str, Enum):
    UNREGISTERED = "unregistered"
    PROVISIONED_STALE = "provisioned_stale"
    PROVISIONED_CURRENT = "provisioned_current"

    @classmethod
    def from_status(cls, status: ProvisionStatus) -> ProvisionState:
        if not status.registered:
            return cls.UNREGISTERED
        if status.provisioned_version == status.latest_version:
            return cls.PROVISIONED_CURRENT
        return cls.PROVISIONED_STALE


class Provisioner:
    """Drives a user's node from unregistered to provisioned-at-latest.

    Transitions:
        UNREGISTERED        --signup_and_provision--> PROVISIONED_CURRENT
        PROVISIONED_STALE   --ensure_provisioned-->   PROVISIONED_CURRENT
        PROVISIONED_CURRENT --ensure_provisioned-->   PROVISIONED_CURRENT (no-op)

    Nothing here retries; whether a retry is safe depends on the backend.
    """

    def __init__(self, backend: NodeBackend) -> None:
        self._backend = backend

    async def state(self) -> ProvisionState:
        status = await self._status()
        return ProvisionState.from_status(status)

    async def _status(self) -> ProvisionStatus:
        try:
            return await self._backend.provision_status()
        except ProvisioningError:
            raise
        except WalletError as exc:
            raise ProvisioningError(f"failed to fetch provision status: {exc}") from exc

    async def _provision(self, credentials: CredentialsRef, options: ProvisionOptions) -> None:
        try:
            await self._backend.provision(credentials, options)
        except ProvisioningError:
            raise
        except WalletError as exc:
            raise ProvisioningError(f"provisioning failed: {exc}") from exc

    async def ensure_provisioned(
        self,
        credentials: CredentialsRef,
        allow_gvfs_access: bool = False,
        encrypted_seed: bytes | None = None,
        google_auth_code: str | None = None,
    ) -> ProvisionState:
        """Provision the node to the latest version unless it already is.

        Returns the state the node was found in.
        """
        status = await self._status()
        state = ProvisionState.from_status(status)

        if state == ProvisionState.UNREGISTERED:
            raise ProvisioningError("user is not signed up; call signup_and_provision first")
        if state == ProvisionState.PROVISIONED_CURRENT:
            log.debug("Node already provisioned to %s", status.latest_version)
            return state

        if credentials.root_seed is None:
            raise ProvisioningError(
                f"node is at {status.provisioned_version}, latest is {status.latest_version}; "
                "provisioning requires root seed credentials"
            )

        log.info(
            "Provisioning node: %s -> %s", status.provisioned_version, status.latest_version,
        )
        await self._provision(credentials, ProvisionOptions(
            allow_gvfs_access=allow_gvfs_access,
            encrypted_seed=encrypted_seed,
            google_auth_code=google_auth_code,
        ))
        log.info("Node provisioned to %s", status.latest_version)
        return state

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
        """First-time signup of the user derived from ``root_seed``, then provision.

        If ``backup_password`` is given the seed is encrypted with it and
        handed to the node for backup.
        """
        user_pk = root_seed.user_pk()
        log.info("Signing up user %s", user_pk)

        encrypted_seed = None
        if backup_password is not None:
            try:
                encrypted_seed = encrypt_seed_with_password(rng, root_seed, backup_password)
            except CredentialError as exc:
                raise ProvisioningError(f"cannot encrypt seed backup: {exc}") from exc

        try:
            await self._backend.signup(root_seed, partner, signup_code)
        except ProvisioningError:
            raise
        except WalletError as exc:
            raise ProvisioningError(f"signup failed: {exc}") from exc

        # The seed is borrowed for this call only.
        credentials = Credentials.from_root_seed(root_seed)
        await self._provision(credentials.as_ref(), ProvisionOptions(
            allow_gvfs_access=allow_gvfs_access,
            encrypted_seed=encrypted_seed,
            google_auth_code=google_auth_code,
        ))
        log.info("User %s signed up and provisioned", user_pk)
