"""Configuration models for the wallet and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DeployEnv(str, Enum):
    """Which Lexe deployment the wallet talks to."""

    PROD = "prod"
    STAGING = "staging"
    DEV = "dev"


DEFAULT_GATEWAY_URLS = {
    DeployEnv.PROD: "https://lexe.app",
    DeployEnv.STAGING: "https://staging.lexe.app",
    DeployEnv.DEV: "http://localhost:4040",
}

NETWORKS = {
    DeployEnv.PROD: "mainnet",
    DeployEnv.STAGING: "testnet3",
    DeployEnv.DEV: "regtest",
}


@dataclass(frozen=True)
class WalletEnvConfig:
    """Environment selection: deployment, bitcoin network, gateway."""

    deploy_env: DeployEnv
    network: str
    gateway_url: str
    use_sgx: bool = True

    @classmethod
    def prod(cls) -> WalletEnvConfig:
        return cls(
            deploy_env=DeployEnv.PROD,
            network=NETWORKS[DeployEnv.PROD],
            gateway_url=DEFAULT_GATEWAY_URLS[DeployEnv.PROD],
        )

    @classmethod
    def staging(cls) -> WalletEnvConfig:
        return cls(
            deploy_env=DeployEnv.STAGING,
            network=NETWORKS[DeployEnv.STAGING],
            gateway_url=DEFAULT_GATEWAY_URLS[DeployEnv.STAGING],
        )

    @classmethod
    def dev(cls, use_sgx: bool = False, gateway_url: str | None = None) -> WalletEnvConfig:
        return cls(
            deploy_env=DeployEnv.DEV,
            network=NETWORKS[DeployEnv.DEV],
            gateway_url=gateway_url or DEFAULT_GATEWAY_URLS[DeployEnv.DEV],
            use_sgx=use_sgx,
        )

    @classmethod
    def from_name(cls, name: str, gateway_url: str | None = None, use_sgx: bool = False) -> WalletEnvConfig:
        env = DeployEnv(name)
        if env == DeployEnv.DEV:
            return cls.dev(use_sgx, gateway_url)
        cfg = cls.prod() if env == DeployEnv.PROD else cls.staging()
        if gateway_url:
            cfg = WalletEnvConfig(cfg.deploy_env, cfg.network, gateway_url, cfg.use_sgx)
        return cfg


@dataclass(frozen=True)
class WalletUserConfig:
    """Per-user wallet config: who the user is and which env they live in."""

    user_pk: str  # hex ed25519 public key
    env_config: WalletEnvConfig


@dataclass
class CliConfig:
    """Complete CLI configuration."""

    env: str = "prod"
    gateway_url: str | None = None
    use_sgx: bool = False  # dev only
    data_dir: str = ".lexe_data"
    log_level: str = "info"

    # Credentials, loaded from env vars only
    root_seed_hex: str = field(default="", repr=False)
    client_credentials: str = field(default="", repr=False)

    def env_config(self) -> WalletEnvConfig:
        return WalletEnvConfig.from_name(self.env, self.gateway_url, self.use_sgx)
