"""HTTP client for the user's remote node - implements the NodeBackend protocol."""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any

import httpx

from lexe_wallet.credentials import CredentialsRef, RootSeed
from lexe_wallet.errors import ProvisioningError, RemoteError, SyncError, WalletError
from lexe_wallet.models.config import WalletEnvConfig
from lexe_wallet.models.payments import (
    BasicPayment,
    PaymentCreatedIndex,
    PaymentUpdatedIndex,
    SdkPayment,
)
from lexe_wallet.models.requests import (
    ProvisionOptions,
    ProvisionStatus,
    SdkCreateInvoiceRequest,
    SdkCreateInvoiceResponse,
    SdkNodeInfo,
    SdkPayInvoiceRequest,
    SdkPayInvoiceResponse,
    UpdatePaymentNote,
)

log = logging.getLogger(__name__)

API_PREFIX = "/app/v1"
AUTH_LIFETIME_SECS = 3600
# Refresh the bearer token this long before it actually expires
AUTH_REFRESH_MARGIN_MS = 60_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _signed_body(root_seed: RootSeed, payload: dict[str, Any]) -> dict[str, Any]:
    """Attach an ed25519 signature over the canonical JSON of ``payload``."""
    message = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
    return {**payload, "signature": root_seed.sign(message).hex()}


class NodeClient:
    """Talks JSON over HTTPS to the user's node via the Lexe gateway.

    Auth:
    - client credentials: the bundled token is sent as a bearer token
    - root seed: a signed, time-limited auth request is exchanged at
      /app/v1/auth for a bearer token, cached until shortly before expiry
    """

    def __init__(
        self,
        env_config: WalletEnvConfig,
        credentials: CredentialsRef,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._env_config = env_config
        self._credentials = credentials
        self._client = httpx.AsyncClient(
            base_url=env_config.gateway_url.rstrip("/"),
            timeout=httpx.Timeout(timeout, connect=10),
            transport=transport,
        )
        self._token: str | None = None
        self._token_expires_at = 0

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    async def close(self) -> None:
        await self._client.aclose()

    # ── Plumbing ───────────────────────────────────────────

    async def _bearer_token(self) -> str:
        client_creds = self._credentials.client_credentials
        if client_creds is not None:
            return client_creds.auth_token

        if self._token and _now_ms() < self._token_expires_at - AUTH_REFRESH_MARGIN_MS:
            return self._token

        root_seed = self._credentials.root_seed
        if root_seed is None:
            raise RemoteError("no credentials to authenticate with")
        body = _signed_body(root_seed, {
            "user_pk": root_seed.user_pk(),
            "expires_at": _now_ms() + AUTH_LIFETIME_SECS * 1000,
        })
        data = await self._send("POST", "/auth", RemoteError, json=body, auth=False)
        try:
            self._token = str(data["token"])
            self._token_expires_at = int(data["expires_at"])
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f"malformed auth response: {exc}") from exc
        log.debug("Obtained bearer token (expires_at=%d)", self._token_expires_at)
        return self._token

    async def _send(
        self,
        method: str,
        path: str,
        error_cls: type[WalletError],
        *,
        auth: bool = True,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Issue a request and decode the JSON body, mapping failures to ``error_cls``."""
        headers = {}
        if auth:
            headers["Authorization"] = f"Bearer {await self._bearer_token()}"
        url = f"{API_PREFIX}{path}"
        try:
            resp = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            log.warning("%s %s failed: %s", method, url, exc)
            raise error_cls(f"{method} {url}: {exc}") from exc

        if allow_404 and resp.status_code == 404:
            return None
        if resp.status_code == 401 and auth and self._credentials.root_seed is not None:
            self._token = None
        if resp.is_error:
            detail = resp.text[:200]
            log.warning("%s %s -> HTTP %d: %s", method, url, resp.status_code, detail)
            raise error_cls(f"{method} {url}: HTTP {resp.status_code}: {detail}")
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise error_cls(f"{method} {url}: malformed JSON response") from exc

    # ── Payments ───────────────────────────────────────────

    async def fetch_payments(
        self, since: PaymentUpdatedIndex | None, limit: int
    ) -> list[BasicPayment]:
        params: dict[str, Any] = {"limit": limit}
        if since is not None:
            params["since"] = str(since)
        data = await self._send("GET", "/payments/updated", SyncError, params=params)
        try:
            return [BasicPayment.from_dict(p) for p in data["payments"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise SyncError(f"malformed payments page: {exc}") from exc

    async def get_payment(self, index: PaymentCreatedIndex) -> SdkPayment | None:
        data = await self._send("GET", f"/payments/{index}", RemoteError, allow_404=True)
        if data is None:
            return None
        try:
            return SdkPayment(BasicPayment.from_dict(data))
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f"malformed payment {index}: {exc}") from exc

    async def update_payment_note(self, req: UpdatePaymentNote) -> None:
        await self._send(
            "PUT", "/payments/note", RemoteError,
            json={"index": str(req.index), "note": req.note},
        )

    # ── Node ───────────────────────────────────────────────

    async def node_info(self) -> SdkNodeInfo:
        data = await self._send("GET", "/node_info", RemoteError)
        try:
            return SdkNodeInfo(**data)
        except TypeError as exc:
            raise RemoteError(f"malformed node info: {exc}") from exc

    async def create_invoice(self, req: SdkCreateInvoiceRequest) -> SdkCreateInvoiceResponse:
        data = await self._send(
            "POST", "/create_invoice", RemoteError,
            json={
                "expiration_secs": req.expiration_secs,
                "amount_msat": req.amount,
                "description": req.description,
            },
        )
        try:
            return SdkCreateInvoiceResponse(
                invoice=str(data["invoice"]),
                index=PaymentCreatedIndex.parse(data["index"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f"malformed create_invoice response: {exc}") from exc

    async def pay_invoice(self, req: SdkPayInvoiceRequest) -> SdkPayInvoiceResponse:
        data = await self._send(
            "POST", "/pay_invoice", RemoteError,
            json={
                "invoice": req.invoice,
                "fallback_amount_msat": req.fallback_amount,
                "note": req.note,
            },
        )
        try:
            index = PaymentCreatedIndex.parse(data["index"])
            return SdkPayInvoiceResponse(
                index=index, created_at=int(data.get("created_at", index.created_at)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f"malformed pay_invoice response: {exc}") from exc

    # ── Provisioning ───────────────────────────────────────

    async def provision_status(self) -> ProvisionStatus:
        data = await self._send("GET", "/provision/status", ProvisioningError)
        try:
            return ProvisionStatus(
                registered=bool(data["registered"]),
                provisioned_version=data.get("provisioned_version"),
                latest_version=str(data["latest_version"]),
            )
        except (KeyError, TypeError) as exc:
            raise ProvisioningError(f"malformed provision status: {exc}") from exc

    async def provision(self, credentials: CredentialsRef, options: ProvisionOptions) -> None:
        root_seed = credentials.root_seed
        if root_seed is None:
            raise ProvisioningError("provisioning requires a root seed")
        encrypted_seed = (
            base64.b64encode(options.encrypted_seed).decode()
            if options.encrypted_seed is not None
            else None
        )
        await self._send(
            "POST", "/provision", ProvisioningError,
            json={
                "root_seed": root_seed.expose_secret().hex(),
                "deploy_env": self._env_config.deploy_env.value,
                "network": self._env_config.network,
                "use_sgx": self._env_config.use_sgx,
                "allow_gvfs_access": options.allow_gvfs_access,
                "encrypted_seed": encrypted_seed,
                "google_auth_code": options.google_auth_code,
            },
        )

    async def signup(
        self, root_seed: RootSeed, partner: str | None, signup_code: str | None
    ) -> None:
        body = _signed_body(root_seed, {
            "user_pk": root_seed.user_pk(),
            "partner": partner,
            "signup_code": signup_code,
        })
        await self._send("POST", "/signup", ProvisioningError, json=body, auth=False)
