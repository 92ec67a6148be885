"""Configuration loading: TOML file + .env + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from lexe_wallet.credentials import ClientCredentials, Credentials, RootSeed
from lexe_wallet.errors import CredentialError
from lexe_wallet.models.config import CliConfig, DeployEnv


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "LEXE_",
) -> CliConfig:
    """Load CLI configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (LEXE_ENV, LEXE_DATA_DIR, ...)
        2. TOML config file
        3. Defaults from CliConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = CliConfig()

    # ── Wallet section ─────────────────────────────────────
    wallet = raw.get("wallet", {})
    if v := wallet.get("env"):
        cfg.env = str(v)
    if v := wallet.get("data_dir"):
        cfg.data_dir = str(v)
    if v := wallet.get("log_level"):
        cfg.log_level = str(v)
    if v := wallet.get("gateway_url"):
        cfg.gateway_url = str(v)

    # ── Dev section ────────────────────────────────────────
    dev = raw.get("dev", {})
    if "use_sgx" in dev:
        cfg.use_sgx = bool(dev["use_sgx"])
    if v := dev.get("gateway_url"):
        cfg.gateway_url = str(v)

    # ── Environment variable overrides (highest priority) ──
    if env := os.environ.get(f"{env_prefix}ENV"):
        cfg.env = env
    if data_dir := os.environ.get(f"{env_prefix}DATA_DIR"):
        cfg.data_dir = data_dir
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level
    if url := os.environ.get(f"{env_prefix}GATEWAY_URL"):
        cfg.gateway_url = url
    cfg.root_seed_hex = os.environ.get("ROOT_SEED", "")
    cfg.client_credentials = os.environ.get(f"{env_prefix}CLIENT_CREDENTIALS", "")

    # Validate env name early
    try:
        DeployEnv(cfg.env)
    except ValueError as exc:
        raise ValueError(f"unknown env {cfg.env!r}; expected prod, staging or dev") from exc

    cfg.data_dir = str(Path(cfg.data_dir).expanduser())

    return cfg


def credentials_from_env(cfg: CliConfig) -> Credentials:
    """Build credentials from ROOT_SEED (hex) or LEXE_CLIENT_CREDENTIALS (base64).

    ROOT_SEED wins if both are set.
    """
    if cfg.root_seed_hex:
        return Credentials.from_root_seed(RootSeed.from_hex(cfg.root_seed_hex))
    if cfg.client_credentials:
        return Credentials.from_client_credentials(
            ClientCredentials.try_from_base64_blob(cfg.client_credentials)
        )
    raise CredentialError(
        "No credentials found. Set either ROOT_SEED (hex) or "
        "LEXE_CLIENT_CREDENTIALS (base64) in env or .env"
    )
