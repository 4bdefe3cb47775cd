"""Razorpay Orders API adapter."""

from __future__ import annotations

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import httpx

LOGGER = logging.getLogger(__name__)


class GatewayOrderError(RuntimeError):
    """Raised when the gateway refuses or fails to create an order."""


class RazorpayAdapter:
    """Adapter for creating orders against the Razorpay REST API.

    Checkout and capture happen in the browser; the server only creates the
    order and later verifies the signed confirmation.
    """

    def __init__(
        self,
        *,
        key_id: str,
        key_secret: Optional[str],
        base_url: str = "https://api.razorpay.com/v1",
        use_stub: bool = False,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.key_id = key_id
        self._key_secret = key_secret or ""
        self.base_url = base_url.rstrip("/")
        self.use_stub = use_stub or not key_id or not key_secret
        self._timeout = timeout_seconds

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def create_order(
        self,
        *,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Create an order and return ``{order_id, amount, currency}``.

        ``amount`` is in major units; the gateway expects the minor unit.
        """

        LOGGER.info(
            "razorpay order: use_stub=%s receipt=%s",
            self.use_stub,
            receipt,
        )

        if self.use_stub:
            return self._stub_order(amount=amount, currency=currency)

        payload = {
            "amount": self._to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": {key: str(value) for key, value in notes.items()},
        }

        try:
            with self._http_client() as client:
                response = client.post("/orders", json=payload)
                response.raise_for_status()
                order_payload = response.json()
        except httpx.HTTPStatusError as exc:
            LOGGER.error(
                "razorpay order failed: status=%s body=%s",
                exc.response.status_code,
                exc.response.text,
            )
            raise GatewayOrderError("Payment gateway rejected the order") from exc
        except httpx.HTTPError as exc:
            LOGGER.error("razorpay order failed: %s", exc)
            raise GatewayOrderError("Payment gateway unavailable") from exc

        order_id = order_payload.get("id")
        if not order_id:
            raise GatewayOrderError("Payment gateway returned no order id")

        return {
            "order_id": order_id,
            "amount": amount,
            "currency": order_payload.get("currency", currency),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _http_client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            auth=(self.key_id, self._key_secret),
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
        )

    @staticmethod
    def _to_minor_units(amount: Decimal) -> int:
        return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @staticmethod
    def _stub_order(*, amount: Decimal, currency: str) -> Dict[str, Any]:
        return {
            "order_id": f"order_{uuid.uuid4().hex[:14]}",
            "amount": amount,
            "currency": currency,
        }
