"""Shared fixtures for lexe_wallet tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from lexe_wallet.credentials import Credentials, RootSeed, SysRng
from lexe_wallet.models.config import WalletEnvConfig
from lexe_wallet.payments_db import PaymentsDb
from lexe_wallet.storage.sqlite import SQLitePaymentsStore

from tests.mocks import FakeNodeBackend

TEST_SEED_HEX = "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"


def pytest_configure(config):
    """Add SDK info to the report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["SDK"] = "lexe_wallet"
    meta["Backend"] = "FakeNodeBackend (in-memory)"


@pytest.fixture
def rng():
    return SysRng()


@pytest.fixture
def root_seed():
    return RootSeed.from_hex(TEST_SEED_HEX)


@pytest.fixture
def credentials(root_seed):
    return Credentials.from_root_seed(root_seed)


@pytest.fixture
def env_config():
    return WalletEnvConfig.dev()


@pytest.fixture
def backend():
    return FakeNodeBackend()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "payments_db" / "payments.sqlite3"


@pytest.fixture
async def payments_db(db_path):
    """PaymentsDb backed by a fresh on-disk SQLite store."""
    db = await PaymentsDb.open(SQLitePaymentsStore(db_path))
    yield db
    await db.close()
