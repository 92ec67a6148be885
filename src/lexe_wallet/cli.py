"""CLI entry point for the lexe_wallet SDK."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Awaitable, Callable

import click
from dotenv import load_dotenv

from lexe_wallet.config import credentials_from_env, load_config
from lexe_wallet.credentials import Credentials, SysRng
from lexe_wallet.errors import WalletError
from lexe_wallet.logger import init_logger
from lexe_wallet.models.config import CliConfig
from lexe_wallet.models.payments import BasicPayment, PaymentCreatedIndex
from lexe_wallet.models.requests import (
    SdkCreateInvoiceRequest,
    SdkGetPaymentRequest,
    SdkPayInvoiceRequest,
    UpdatePaymentNote,
)
from lexe_wallet.payments_db import PaymentsDb
from lexe_wallet.wallet import LexeWallet, WalletWithDb

SCROLL_VIEWS: dict[str, Callable[[PaymentsDb, int], BasicPayment | None]] = {
    "all": PaymentsDb.get_payment_by_scroll_idx,
    "pending": PaymentsDb.get_pending_payment_by_scroll_idx,
    "pending-not-junk": PaymentsDb.get_pending_not_junk_payment_by_scroll_idx,
    "finalized": PaymentsDb.get_finalized_payment_by_scroll_idx,
    "finalized-not-junk": PaymentsDb.get_finalized_not_junk_payment_by_scroll_idx,
}


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


def _require_credentials(cfg: CliConfig) -> Credentials:
    """Exit with error if no credentials are configured."""
    try:
        return credentials_from_env(cfg)
    except WalletError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _run(ctx: click.Context, action: Callable[[WalletWithDb], Awaitable[None]]) -> None:
    """Open the wallet, run ``action`` against it, close it; map errors to exit 1."""
    cfg: CliConfig = ctx.obj["cfg"]
    credentials = _require_credentials(cfg)

    async def _main() -> None:
        wallet = await LexeWallet.load_or_fresh(
            SysRng(),
            cfg.env_config(),
            credentials.as_ref(),
            cfg.data_dir,
            backend=ctx.obj.get("backend"),
        )
        async with wallet:
            await action(wallet)

    try:
        asyncio.run(_main())
    except (WalletError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """lexe-wallet - manage a Lexe Lightning wallet from the command line."""
    ctx.ensure_object(dict)
    load_dotenv()
    try:
        cfg = load_config(config_path)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    ctx.obj["cfg"] = cfg
    init_logger("debug" if verbose else cfg.log_level)


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show wallet configuration."""
    cfg: CliConfig = ctx.obj["cfg"]
    env_config = cfg.env_config()
    if cfg.root_seed_hex:
        creds = "root seed (***configured***)"
    elif cfg.client_credentials:
        creds = "client credentials (***configured***)"
    else:
        creds = "(not set)"
    click.echo(f"Env:         {env_config.deploy_env.value}")
    click.echo(f"Network:     {env_config.network}")
    click.echo(f"Gateway:     {env_config.gateway_url}")
    click.echo(f"Data dir:    {cfg.data_dir}")
    click.echo(f"Credentials: {creds}")


@cli.command("node-info")
@click.pass_context
def node_info(ctx: click.Context) -> None:
    """Fetch node status from the remote node."""

    async def _node_info(wallet: WalletWithDb) -> None:
        info = await wallet.node_info()
        _echo_json(info.to_dict())

    _run(ctx, _node_info)


# ── Payments ───────────────────────────────────────────


@cli.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Sync payments from the node into the local db."""

    async def _sync(wallet: WalletWithDb) -> None:
        summary = await wallet.sync_payments()
        db = wallet.payments_db()
        click.echo(f"New:       {summary.num_new}")
        click.echo(f"Updated:   {summary.num_updated}")
        click.echo(f"Total:     {db.num_payments()}")
        click.echo(f"Pending:   {db.num_pending()}")
        click.echo(f"Finalized: {db.num_finalized()}")

    _run(ctx, _sync)


@cli.command()
@click.option(
    "--filter", "view", type=click.Choice(sorted(SCROLL_VIEWS)), default="all",
    help="Which payments to list",
)
@click.option("-n", "--limit", type=int, default=10, help="Max payments to show, newest first")
@click.pass_context
def payments(ctx: click.Context, view: str, limit: int) -> None:
    """List payments from the local db (no network)."""

    async def _payments(wallet: WalletWithDb) -> None:
        lookup = SCROLL_VIEWS[view]
        db = wallet.payments_db()
        shown = []
        for i in range(limit):
            payment = lookup(db, i)
            if payment is None:
                break
            shown.append(payment)
        if not shown:
            click.echo("No payments.")
            return
        for p in shown:
            amount = f"{p.amount_msat} msat" if p.amount_msat is not None else "? msat"
            junk = " junk" if p.is_junk else ""
            note = f" note={p.note!r}" if p.note else ""
            click.echo(
                f"  [{p.status.value:9s}] {p.index} {p.direction.value:8s} {amount}{junk}{note}"
            )

    _run(ctx, _payments)


@cli.command("get-payment")
@click.argument("index")
@click.pass_context
def get_payment(ctx: click.Context, index: str) -> None:
    """Fetch a single payment from the node by created index."""
    created_index = _parse_index(index)

    async def _get(wallet: WalletWithDb) -> None:
        resp = await wallet.get_payment(SdkGetPaymentRequest(index=created_index))
        if resp.payment is None:
            click.echo("Payment not found.")
            return
        _echo_json(resp.payment.to_dict())

    _run(ctx, _get)


@cli.command("set-note")
@click.argument("index")
@click.argument("note")
@click.pass_context
def set_note(ctx: click.Context, index: str, note: str) -> None:
    """Set the note on a payment."""
    created_index = _parse_index(index)

    async def _set(wallet: WalletWithDb) -> None:
        await wallet.update_payment_note(UpdatePaymentNote(index=created_index, note=note or None))
        click.echo(f"Updated note for {created_index}")

    _run(ctx, _set)


@cli.command("create-invoice")
@click.option("--amount-msat", type=int, default=None, help="Amount; omit for an amountless invoice")
@click.option("--description", default=None, help="Invoice description")
@click.option("--expiration-secs", type=int, default=3600, show_default=True)
@click.pass_context
def create_invoice(
    ctx: click.Context, amount_msat: int | None, description: str | None, expiration_secs: int
) -> None:
    """Create a Lightning invoice."""

    async def _create(wallet: WalletWithDb) -> None:
        resp = await wallet.create_invoice(SdkCreateInvoiceRequest(
            expiration_secs=expiration_secs, amount=amount_msat, description=description,
        ))
        click.echo(f"Index:   {resp.index}")
        click.echo(f"Invoice: {resp.invoice}")

    _run(ctx, _create)


@cli.command("pay-invoice")
@click.argument("invoice")
@click.option("--fallback-amount-msat", type=int, default=None, help="Amount for amountless invoices")
@click.option("--note", default=None, help="Private note to attach")
@click.pass_context
def pay_invoice(
    ctx: click.Context, invoice: str, fallback_amount_msat: int | None, note: str | None
) -> None:
    """Pay a Lightning invoice."""

    async def _pay(wallet: WalletWithDb) -> None:
        resp = await wallet.pay_invoice(SdkPayInvoiceRequest(
            invoice=invoice, fallback_amount=fallback_amount_msat, note=note,
        ))
        click.echo(f"Payment initiated: {resp.index}")

    _run(ctx, _pay)


# ── Provisioning ───────────────────────────────────────


@cli.command()
@click.option("--allow-gvfs-access", is_flag=True, help="Allow the node to back up to Google Drive")
@click.pass_context
def provision(ctx: click.Context, allow_gvfs_access: bool) -> None:
    """Ensure the node is provisioned to the latest version."""
    cfg: CliConfig = ctx.obj["cfg"]
    credentials = _require_credentials(cfg)

    async def _provision(wallet: WalletWithDb) -> None:
        state = await wallet.ensure_provisioned(
            credentials.as_ref(), allow_gvfs_access=allow_gvfs_access,
        )
        click.echo(f"Node is provisioned and ready (was: {state.value})")

    _run(ctx, _provision)


@cli.command()
@click.option("--partner", default=None, help="Partner user pk")
@click.option("--signup-code", default=None)
@click.option("--backup-password", default=None, help="Encrypt and back up the seed with this password")
@click.option("--allow-gvfs-access", is_flag=True)
@click.pass_context
def signup(
    ctx: click.Context,
    partner: str | None,
    signup_code: str | None,
    backup_password: str | None,
    allow_gvfs_access: bool,
) -> None:
    """Sign up and provision a new node (requires ROOT_SEED)."""
    cfg: CliConfig = ctx.obj["cfg"]
    credentials = _require_credentials(cfg)
    root_seed = credentials.root_seed
    if root_seed is None:
        click.echo("Error: signup requires ROOT_SEED credentials.", err=True)
        sys.exit(1)

    async def _signup(wallet: WalletWithDb) -> None:
        await wallet.signup_and_provision(
            SysRng(), root_seed, partner, signup_code,
            allow_gvfs_access, backup_password, None,
        )
        click.echo(f"Signed up user {root_seed.user_pk()}")

    _run(ctx, _signup)


# ── Local db ───────────────────────────────────────────


@cli.command("delete-db")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def delete_db(ctx: click.Context, yes: bool) -> None:
    """Irreversibly delete the local payments db."""
    if not yes:
        click.confirm("Delete the local payments db? This cannot be undone.", abort=True)

    async def _delete(wallet: WalletWithDb) -> None:
        await wallet.payments_db().delete()
        click.echo("Deleted local payments db.")

    _run(ctx, _delete)


def _parse_index(value: str) -> PaymentCreatedIndex:
    try:
        return PaymentCreatedIndex.parse(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="INDEX") from exc


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
