"""Credential material: root seed or client credentials, plus seed backup crypto."""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from lexe_wallet.errors import CredentialError

USER_KEY_LABEL = b"LEXE-REALM::RootSeed/user-key"

# Seed backup blob: version(1) | salt(16) | nonce(12) | ciphertext+tag
BACKUP_VERSION = 1
_SALT_LEN = 16
_NONCE_LEN = 12
_SCRYPT_N = 2**14


class SysRng:
    """Cryptographically secure random source backed by ``secrets``."""

    def token_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)


class RootSeed:
    """32 bytes of seed entropy from which all user keys are derived."""

    LENGTH = 32

    __slots__ = ("_seed",)

    def __init__(self, seed: bytes) -> None:
        if len(seed) != self.LENGTH:
            raise CredentialError(f"root seed must be {self.LENGTH} bytes, got {len(seed)}")
        self._seed = bytes(seed)

    @classmethod
    def from_hex(cls, value: str) -> RootSeed:
        value = value.strip()
        if len(value) != cls.LENGTH * 2:
            raise CredentialError(f"expected {cls.LENGTH * 2} hex chars for root seed")
        try:
            return cls(bytes.fromhex(value))
        except ValueError as exc:
            raise CredentialError("root seed is not valid hex") from exc

    @classmethod
    def generate(cls, rng: SysRng) -> RootSeed:
        return cls(rng.token_bytes(cls.LENGTH))

    def expose_secret(self) -> bytes:
        return self._seed

    def derive_user_key(self) -> Ed25519PrivateKey:
        hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=USER_KEY_LABEL)
        return Ed25519PrivateKey.from_private_bytes(hkdf.derive(self._seed))

    def user_pk(self) -> str:
        pub = self.derive_user_key().public_key()
        return pub.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        ).hex()

    def sign(self, message: bytes) -> bytes:
        return self.derive_user_key().sign(message)

    def __repr__(self) -> str:
        return "RootSeed(..)"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RootSeed):
            return NotImplemented
        return secrets.compare_digest(self._seed, other._seed)

    def __hash__(self) -> int:
        return hash(self.user_pk())


@dataclass(frozen=True)
class ClientCredentials:
    """Revocable credentials issued to a client; no root seed involved."""

    user_pk: str
    auth_token: str = field(repr=False)

    @classmethod
    def try_from_base64_blob(cls, blob: str) -> ClientCredentials:
        try:
            data = json.loads(base64.b64decode(blob.strip(), validate=True))
        except (binascii.Error, ValueError) as exc:
            raise CredentialError("client credentials blob is not base64 JSON") from exc
        if not isinstance(data, dict):
            raise CredentialError("client credentials blob must be a JSON object")
        user_pk = data.get("user_pk")
        token = data.get("auth_token")
        if not isinstance(user_pk, str) or not isinstance(token, str) or not user_pk or not token:
            raise CredentialError("client credentials blob missing user_pk or auth_token")
        return cls(user_pk=user_pk, auth_token=token)

    def to_base64_blob(self) -> str:
        raw = json.dumps({"user_pk": self.user_pk, "auth_token": self.auth_token})
        return base64.b64encode(raw.encode()).decode()


class Credentials:
    """Exactly one of a root seed or client credentials.

    Owned by the caller. Wallets only ever hold a :class:`CredentialsRef`
    pointing back at this object, so one ``Credentials`` can serve many
    wallets without the secret being copied.
    """

    __slots__ = ("_root_seed", "_client_credentials")

    def __init__(
        self,
        root_seed: RootSeed | None = None,
        client_credentials: ClientCredentials | None = None,
    ) -> None:
        if (root_seed is None) == (client_credentials is None):
            raise CredentialError("credentials need exactly one of root_seed or client_credentials")
        self._root_seed = root_seed
        self._client_credentials = client_credentials

    @classmethod
    def from_root_seed(cls, root_seed: RootSeed) -> Credentials:
        return cls(root_seed=root_seed)

    @classmethod
    def from_client_credentials(cls, client_credentials: ClientCredentials) -> Credentials:
        return cls(client_credentials=client_credentials)

    @property
    def root_seed(self) -> RootSeed | None:
        return self._root_seed

    @property
    def client_credentials(self) -> ClientCredentials | None:
        return self._client_credentials

    def user_pk(self) -> str:
        if self._root_seed is not None:
            return self._root_seed.user_pk()
        if self._client_credentials is None:
            raise CredentialError("credentials hold neither a root seed nor client credentials")
        return self._client_credentials.user_pk

    def as_ref(self) -> CredentialsRef:
        return CredentialsRef(self)

    def __repr__(self) -> str:
        kind = "RootSeed" if self._root_seed is not None else "ClientCredentials"
        return f"Credentials({kind})"


class CredentialsRef:
    """Borrowed view of caller-owned :class:`Credentials`.

    The caller must keep the underlying ``Credentials`` alive for as long as
    any wallet built from this view is in use.
    """

    __slots__ = ("_credentials",)

    def __init__(self, credentials: Credentials) -> None:
        self._credentials = credentials

    @property
    def root_seed(self) -> RootSeed | None:
        return self._credentials.root_seed

    @property
    def client_credentials(self) -> ClientCredentials | None:
        return self._credentials.client_credentials

    def user_pk(self) -> str:
        return self._credentials.user_pk()

    def __repr__(self) -> str:
        return f"CredentialsRef({self._credentials!r})"


# ── Seed backup ────────────────────────────────────────


def _password_key(password: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=32, n=_SCRYPT_N, r=8, p=1)
    return kdf.derive(password.encode("utf-8"))


def encrypt_seed_with_password(rng: SysRng, root_seed: RootSeed, password: str) -> bytes:
    """Encrypt the root seed under a user password for remote backup."""
    if not password:
        raise CredentialError("backup password must not be empty")
    salt = rng.token_bytes(_SALT_LEN)
    nonce = rng.token_bytes(_NONCE_LEN)
    ciphertext = AESGCM(_password_key(password, salt)).encrypt(
        nonce, root_seed.expose_secret(), bytes([BACKUP_VERSION]),
    )
    return bytes([BACKUP_VERSION]) + salt + nonce + ciphertext


def decrypt_seed_with_password(blob: bytes, password: str) -> RootSeed:
    header = 1 + _SALT_LEN + _NONCE_LEN
    if len(blob) <= header or blob[0] != BACKUP_VERSION:
        raise CredentialError("unrecognized seed backup format")
    salt = blob[1:1 + _SALT_LEN]
    nonce = blob[1 + _SALT_LEN:header]
    try:
        seed = AESGCM(_password_key(password, salt)).decrypt(
            nonce, blob[header:], bytes([BACKUP_VERSION]),
        )
    except InvalidTag as exc:
        raise CredentialError("wrong password or corrupted seed backup") from exc
    return RootSeed(seed)
