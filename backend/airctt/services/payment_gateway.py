# Overview: HTTP client for the Toss Payments confirm API.

"""
Payment gateway client.

Transient failures (connection errors, timeouts, 5xx) are retried with
exponential backoff; the gateway deduplicates on orderId, so a retried
confirm cannot charge twice. A 4xx answer is an authoritative decline and
is returned as-is, never retried.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import httpx
from flask import current_app

CONFIRM_PATH = "/v1/payments/confirm"


class GatewayUnavailable(Exception):
    """Raised when every attempt failed for transport or server-side reasons."""


@dataclass
class GatewayResult:
    ok: bool
    status_code: int
    data: dict = field(default_factory=dict)

    @property
    def error_code(self) -> str | None:
        return self.data.get("code")

    @property
    def error_message(self) -> str | None:
        return self.data.get("message")


class TossPaymentsClient:
    def __init__(
        self,
        secret_key: str,
        base_url: str,
        *,
        timeout: float = 10.0,
        retries: int = 3,
        backoff: float = 0.2,
        transport: httpx.BaseTransport | None = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(1, retries)
        self.backoff = backoff
        self.transport = transport

    def _client(self) -> httpx.Client:
        # Basic auth is "<secret_key>:" (empty password)
        return httpx.Client(
            base_url=self.base_url,
            auth=(self.secret_key, ""),
            timeout=self.timeout,
            transport=self.transport,
        )

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {"message": response.text[:255]}
        return data if isinstance(data, dict) else {"data": data}

    def confirm(self, payment_key: str, order_id: str, amount: int) -> GatewayResult:
        payload = {"paymentKey": payment_key, "orderId": order_id, "amount": amount}
        last_error = None

        for attempt in range(self.retries):
            try:
                with self._client() as client:
                    response = client.post(
                        CONFIRM_PATH,
                        json=payload,
                        headers={"Idempotency-Key": order_id},
                    )
            except httpx.TransportError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                current_app.logger.warning(
                    "Payment confirm attempt %s/%s for %s failed: %s",
                    attempt + 1, self.retries, order_id, last_error,
                )
            else:
                if response.status_code < 500:
                    return GatewayResult(
                        ok=response.is_success,
                        status_code=response.status_code,
                        data=self._json(response),
                    )
                last_error = f"HTTP {response.status_code}"
                current_app.logger.warning(
                    "Payment confirm attempt %s/%s for %s got %s",
                    attempt + 1, self.retries, order_id, response.status_code,
                )

            if attempt < self.retries - 1:
                time.sleep(self.backoff * (2 ** attempt))

        raise GatewayUnavailable(last_error or "payment gateway unavailable")


def get_client() -> TossPaymentsClient:
    cfg = current_app.config
    return TossPaymentsClient(
        cfg["TOSS_SECRET_KEY"],
        cfg["TOSS_API_BASE"],
        timeout=cfg.get("PAYMENT_GATEWAY_TIMEOUT", 10.0),
        retries=cfg.get("PAYMENT_GATEWAY_RETRIES", 3),
        backoff=cfg.get("PAYMENT_GATEWAY_BACKOFF", 0.2),
        transport=cfg.get("PAYMENT_GATEWAY_TRANSPORT"),
    )
