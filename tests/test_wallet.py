"""LexeWallet constructors, db variants, and remote operations."""

from __future__ import annotations

import asyncio

import aiosqlite
import pytest

from lexe_wallet.credentials import ClientCredentials, Credentials
from lexe_wallet.errors import CredentialError, RemoteError, StoreCorruptedError, StoreExistsError
from lexe_wallet.models.config import WalletEnvConfig
from lexe_wallet.models.payments import PaymentCreatedIndex, PaymentStatus
from lexe_wallet.models.requests import (
    SdkCreateInvoiceRequest,
    SdkGetPaymentRequest,
    SdkPayInvoiceRequest,
    UpdatePaymentNote,
)
from lexe_wallet.payments_db import payments_db_path
from lexe_wallet.wallet import LexeWallet, WalletWithDb, WalletWithoutDb

from tests.mocks import FakeNodeBackend


@pytest.fixture
async def wallet(rng, env_config, credentials, backend, tmp_path):
    w = await LexeWallet.fresh(rng, env_config, credentials.as_ref(), tmp_path, backend=backend)
    yield w
    await w.close()


# ── Constructors ──────────────────────────────────────────────────


async def test_fresh_creates_db_under_user_dir(wallet, env_config, credentials, tmp_path):
    assert isinstance(wallet, WalletWithDb)
    path = payments_db_path(tmp_path, env_config, credentials.user_pk())
    assert path.is_file()
    assert path.parent.name == "payments_db"
    assert path.parent.parent.name == credentials.user_pk()
    assert path.parent.parent.parent.name == "dev"
    assert wallet.payments_db().num_payments() == 0


async def test_fresh_refuses_existing_db(wallet, rng, env_config, credentials, backend, tmp_path):
    with pytest.raises(StoreExistsError):
        await LexeWallet.fresh(rng, env_config, credentials.as_ref(), tmp_path, backend=backend)


async def test_load_returns_none_without_db(rng, env_config, credentials, backend, tmp_path):
    loaded = await LexeWallet.load(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    )
    assert loaded is None


async def test_load_corrupt_db_is_an_error(rng, env_config, credentials, backend, tmp_path):
    path = payments_db_path(tmp_path, env_config, credentials.user_pk())
    path.parent.mkdir(parents=True)
    path.write_bytes(b"definitely not sqlite" * 64)

    with pytest.raises(StoreCorruptedError):
        await LexeWallet.load(rng, env_config, credentials.as_ref(), tmp_path, backend=backend)


async def test_interrupted_fresh_leaves_nothing_behind(
    rng, env_config, credentials, backend, tmp_path, monkeypatch,
):
    async def cancelled(self, *args, **kwargs):
        raise asyncio.CancelledError

    monkeypatch.setattr(aiosqlite.Connection, "executescript", cancelled)
    with pytest.raises(asyncio.CancelledError):
        await LexeWallet.fresh(rng, env_config, credentials.as_ref(), tmp_path, backend=backend)
    monkeypatch.undo()

    path = payments_db_path(tmp_path, env_config, credentials.user_pk())
    assert not path.exists()
    assert list(path.parent.iterdir()) == []

    async with await LexeWallet.load_or_fresh(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    ) as wallet:
        assert wallet.payments_db().num_payments() == 0


async def test_load_restores_synced_payments(rng, env_config, credentials, backend, tmp_path):
    backend.add_payment()
    backend.add_payment(status=PaymentStatus.FINALIZED)
    async with await LexeWallet.fresh(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    ) as first:
        await first.sync_payments()

    loaded = await LexeWallet.load(rng, env_config, credentials.as_ref(), tmp_path, backend=backend)
    assert loaded is not None
    async with loaded:
        db = loaded.payments_db()
        assert db.num_payments() == 2
        assert db.num_finalized() == 1
        summary = await loaded.sync_payments()
        assert not summary.any_changes()


async def test_load_or_fresh(rng, env_config, credentials, backend, tmp_path):
    backend.add_payment()
    async with await LexeWallet.load_or_fresh(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    ) as first:
        await first.sync_payments()

    async with await LexeWallet.load_or_fresh(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    ) as second:
        assert second.payments_db().num_payments() == 1


async def test_dbs_are_separate_per_env(rng, credentials, backend, tmp_path):
    async with await LexeWallet.fresh(
        rng, WalletEnvConfig.dev(), credentials.as_ref(), tmp_path, backend=backend,
    ):
        pass
    # Same user, different env: fresh succeeds
    async with await LexeWallet.fresh(
        rng, WalletEnvConfig.staging(), credentials.as_ref(), tmp_path, backend=backend,
    ) as other:
        assert other.user_config().env_config.network == "testnet3"


async def test_without_db_has_no_local_surface(rng, env_config, credentials, backend):
    async with await LexeWallet.without_db(
        rng, env_config, credentials.as_ref(), backend=backend,
    ) as wallet:
        assert isinstance(wallet, WalletWithoutDb)
        assert not hasattr(wallet, "payments_db")
        assert not hasattr(wallet, "sync_payments")


async def test_owned_credentials_are_rejected(rng, env_config, credentials, backend, tmp_path):
    with pytest.raises(CredentialError):
        await LexeWallet.fresh(rng, env_config, credentials, tmp_path, backend=backend)
    with pytest.raises(CredentialError):
        await LexeWallet.without_db(rng, env_config, credentials, backend=backend)


async def test_user_config(wallet, env_config, root_seed):
    cfg = wallet.user_config()
    assert cfg.user_pk == root_seed.user_pk()
    assert cfg.env_config == env_config


async def test_client_credentials_wallet(rng, env_config, backend):
    creds = Credentials.from_client_credentials(
        ClientCredentials(user_pk="ab" * 32, auth_token="tok")
    )
    async with await LexeWallet.without_db(rng, env_config, creds.as_ref(), backend=backend) as w:
        assert w.user_config().user_pk == "ab" * 32


# ── Remote operations ─────────────────────────────────────────────


async def test_node_info(wallet):
    info = await wallet.node_info()
    assert info.version
    assert info.to_dict()["node_pk"] == info.node_pk


async def test_create_invoice_then_sync(wallet):
    resp = await wallet.create_invoice(
        SdkCreateInvoiceRequest(expiration_secs=600, amount=21_000, description="coffee")
    )
    assert resp.invoice.startswith("lnbcrt")

    await wallet.sync_payments()
    stored = wallet.payments_db().get_payment_by_created_index(resp.index)
    assert stored is not None
    assert stored.amount_msat == 21_000
    assert stored.is_pending


@pytest.mark.parametrize("expiration", [0, -5])
async def test_create_invoice_rejects_non_positive_expiry(wallet, backend, expiration):
    with pytest.raises(ValueError):
        await wallet.create_invoice(SdkCreateInvoiceRequest(expiration_secs=expiration))
    assert not backend.payments


async def test_pay_invoice(wallet, backend):
    resp = await wallet.pay_invoice(
        SdkPayInvoiceRequest(invoice="lnbcrt1fake", fallback_amount=3_000, note="rent")
    )
    assert resp.created_at == resp.index.created_at
    assert backend.payments[resp.index].note == "rent"


async def test_get_payment_hits_remote(wallet, backend):
    payment = backend.add_payment()
    # Not synced locally; still found
    resp = await wallet.get_payment(SdkGetPaymentRequest(index=payment.index))
    assert resp.payment is not None
    assert resp.payment.index == payment.index
    assert wallet.payments_db().num_payments() == 0


async def test_get_payment_unknown_is_none(wallet):
    resp = await wallet.get_payment(SdkGetPaymentRequest(index=PaymentCreatedIndex(1, "nope")))
    assert resp.payment is None


# ── Payment notes ─────────────────────────────────────────────────


async def test_update_note_with_db_writes_through(wallet, backend):
    payment = backend.add_payment()
    await wallet.sync_payments()

    await wallet.update_payment_note(UpdatePaymentNote(payment.index, "dinner"))

    assert backend.note_calls == [UpdatePaymentNote(payment.index, "dinner")]
    local = wallet.payments_db().get_payment_by_created_index(payment.index)
    assert local.note == "dinner"

    # The node's copy carries a newer updated index and replaces the local one
    summary = await wallet.sync_payments()
    assert summary.num_updated == 1
    assert wallet.payments_db().get_payment_by_created_index(payment.index).note == "dinner"


async def test_update_note_without_db_forwards(rng, env_config, credentials, backend):
    payment = backend.add_payment()
    async with await LexeWallet.without_db(
        rng, env_config, credentials.as_ref(), backend=backend,
    ) as wallet:
        await wallet.update_payment_note(UpdatePaymentNote(payment.index, "split"))
    assert backend.payments[payment.index].note == "split"


async def test_update_note_remote_failure_skips_local_write(wallet, backend):
    payment = backend.add_payment()
    await wallet.sync_payments()
    cursor = wallet.payments_db().latest_updated_index()
    del backend.payments[payment.index]

    with pytest.raises(RemoteError):
        await wallet.update_payment_note(UpdatePaymentNote(payment.index, "lost"))

    assert wallet.payments_db().get_payment_by_created_index(payment.index).note is None
    assert wallet.payments_db().latest_updated_index() == cursor


# ── Lifecycle ─────────────────────────────────────────────────────


async def test_close_leaves_injected_backend_open(rng, env_config, credentials, tmp_path):
    backend = FakeNodeBackend()
    wallet = await LexeWallet.fresh(rng, env_config, credentials.as_ref(), tmp_path, backend=backend)
    await wallet.close()
    assert not backend.closed


async def test_delete_db_then_fresh(rng, env_config, credentials, backend, tmp_path):
    async with await LexeWallet.fresh(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    ) as wallet:
        await wallet.payments_db().delete()

    assert await LexeWallet.load(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    ) is None
    async with await LexeWallet.fresh(
        rng, env_config, credentials.as_ref(), tmp_path, backend=backend,
    ) as wallet:
        assert wallet.payments_db().num_payments() == 0
