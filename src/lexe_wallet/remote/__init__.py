"""Remote node integration."""

from lexe_wallet.remote.client import NodeClient

__all__ = ["NodeClient"]
