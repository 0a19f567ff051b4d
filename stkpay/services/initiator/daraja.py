"""Thin async client for the two Daraja calls an STK push needs.

One attempt per call; a slow or failing provider surfaces as `ProviderError`.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from time import perf_counter

import httpx

from stkpay.common.config import PaymentConfig, settings
from stkpay.common.errors import ProviderError
from stkpay.common.logging import logger
from stkpay.common.metrics import provider_request_duration_seconds


TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
TRANSACTION_TYPE = "CustomerPayBillOnline"
# Daraja validates timestamps against its own clock (EAT, no DST).
PROVIDER_TZ = timezone(timedelta(hours=3), "EAT")


def request_timestamp(now: datetime | None = None) -> str:
    """`YYYYMMDDHHMMSS` in provider time."""

    now = now or datetime.now(timezone.utc)
    return now.astimezone(PROVIDER_TZ).strftime("%Y%m%d%H%M%S")


def request_password(short_code: str, passkey: str, timestamp: str) -> str:
    raw = f"{short_code}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("utf-8")


@dataclass(frozen=True)
class StkPushAck:
    """Provider's synchronous answer to a push request."""

    response_code: str
    description: str
    checkout_request_id: str | None
    merchant_request_id: str | None
    raw: dict = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.response_code == "0"


class DarajaClient:
    """Async context manager wrapping one `httpx.AsyncClient` per initiation."""

    def __init__(self, config: PaymentConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "DarajaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(self, endpoint: str, method: str, path: str, **kwargs) -> httpx.Response:
        start = perf_counter()
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("daraja_request_failed endpoint=%s error=%s", endpoint, exc)
            raise ProviderError(f"Failed to reach M-Pesa {endpoint} endpoint: {exc}") from exc
        finally:
            provider_request_duration_seconds.labels(
                service=settings.service_name,
                endpoint=endpoint,
            ).observe(max(0.0, perf_counter() - start))

    async def fetch_access_token(self) -> str:
        """Exchange client credentials for a bearer token."""

        resp = await self._send(
            "oauth",
            "GET",
            TOKEN_PATH,
            params={"grant_type": "client_credentials"},
            auth=httpx.BasicAuth(self.config.consumer_key, self.config.consumer_secret),
            headers={"Accept": "application/json"},
        )
        if resp.status_code != 200:
            raise ProviderError(
                f"M-Pesa OAuth error: status={resp.status_code}",
                details={"status": resp.status_code, "body": resp.text},
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("M-Pesa OAuth returned a non-JSON body") from exc
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise ProviderError("M-Pesa OAuth response is missing access_token")
        return token

    def build_push_payload(
        self,
        *,
        phone: str,
        amount: int,
        account_reference: str,
        description: str,
        timestamp: str,
    ) -> dict:
        short_code = self.config.business_short_code
        return {
            "BusinessShortCode": short_code,
            "Password": request_password(short_code, self.config.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": TRANSACTION_TYPE,
            "Amount": amount,
            "PartyA": phone,
            "PartyB": short_code,
            "PhoneNumber": phone,
            "CallBackURL": self.config.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }

    async def stk_push(self, access_token: str, payload: dict) -> StkPushAck:
        """Submit the push; non-2xx or non-"0" answers raise `ProviderError`."""

        resp = await self._send(
            "stkpush",
            "POST",
            STK_PUSH_PATH,
            json=payload,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        try:
            body = resp.json()
        except ValueError:
            body = {"raw": resp.text}
        if not isinstance(body, dict):
            body = {"raw": body}

        ack = StkPushAck(
            response_code=str(body.get("ResponseCode", body.get("errorCode", ""))),
            description=str(
                body.get("ResponseDescription")
                or body.get("errorMessage")
                or body.get("CustomerMessage")
                or "STK push was not accepted"
            ),
            checkout_request_id=body.get("CheckoutRequestID"),
            merchant_request_id=body.get("MerchantRequestID") or body.get("RequestID") or body.get("requestId"),
            raw=body,
        )
        if resp.is_success and ack.accepted:
            return ack
        logger.warning(
            "stk_push_rejected status=%s response_code=%s description=%s",
            resp.status_code,
            ack.response_code,
            ack.description,
        )
        raise ProviderError(
            ack.description,
            status_code=400 if resp.status_code < 500 else 502,
            details=body,
            checkout_request_id=ack.checkout_request_id,
        )
