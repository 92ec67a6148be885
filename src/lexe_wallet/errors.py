"""Exception taxonomy for the wallet SDK.

Every error carries a ``retryable`` flag so callers can tell "safe to try
again" apart from "fatal, fix the input". Absent lookups are not errors;
they return ``None``.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for wallet errors."""

    retryable: bool = False


class CredentialError(WalletError):
    """Malformed or missing secret input. Fatal at construction."""


class StoreError(WalletError):
    """Local payments db I/O failure."""


class StoreExistsError(StoreError):
    """A payments db already exists where a fresh one was requested."""


class StoreCorruptedError(StoreError):
    """The payments db on disk is structurally unreadable."""


class SyncError(WalletError):
    """Fetching or applying remote payments failed; local state is unchanged."""

    retryable = True


class RemoteError(WalletError):
    """A request to the remote node failed."""

    retryable = True


class ProvisioningError(WalletError):
    """Signup or provisioning failed. Never retried automatically."""
