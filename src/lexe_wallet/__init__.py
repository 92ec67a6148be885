"""lexe_wallet - client SDK for a hosted Lightning node."""

from lexe_wallet.credentials import ClientCredentials, Credentials, CredentialsRef, RootSeed, SysRng
from lexe_wallet.errors import (
    CredentialError,
    ProvisioningError,
    RemoteError,
    StoreCorruptedError,
    StoreError,
    StoreExistsError,
    SyncError,
    WalletError,
)
from lexe_wallet.logger import init_logger
from lexe_wallet.models.config import WalletEnvConfig, WalletUserConfig
from lexe_wallet.payments_db import PaymentsDb
from lexe_wallet.provision import ProvisionState
from lexe_wallet.wallet import LexeWallet, WalletWithDb, WalletWithoutDb

__all__ = [
    "ClientCredentials", "Credentials", "CredentialsRef", "RootSeed", "SysRng",
    "CredentialError", "ProvisioningError", "RemoteError", "StoreCorruptedError",
    "StoreError", "StoreExistsError", "SyncError", "WalletError",
    "init_logger",
    "WalletEnvConfig", "WalletUserConfig",
    "PaymentsDb", "ProvisionState",
    "LexeWallet", "WalletWithDb", "WalletWithoutDb",
]
