"""Gateway callback signature verification."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

from mediq.errors import ConfigurationError, InvalidPaymentData, PaymentVerificationFailed
from mediq.schemas import GatewayConfirmation

LOGGER = logging.getLogger(__name__)


def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 over ``order_id|payment_id``."""

    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify(
    order_id: Optional[str],
    payment_id: Optional[str],
    signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """Return True only when ``signature`` matches the gateway's HMAC.

    Missing identifiers raise ``InvalidPaymentData``; a missing secret raises
    ``ConfigurationError`` instead of letting anything through.
    """

    missing = [
        name
        for name, value in (
            ("order_id", order_id),
            ("payment_id", payment_id),
            ("signature", signature),
        )
        if not value
    ]
    if missing:
        raise InvalidPaymentData(
            f"Missing payment confirmation fields: {', '.join(missing)}"
        )
    if not secret:
        raise ConfigurationError("Payment gateway secret is not configured")

    expected = expected_signature(order_id, payment_id, secret)
    return hmac.compare_digest(
        expected.encode("utf-8"),
        signature.encode("utf-8"),
    )


class PaymentVerifier:
    """Trust boundary between submitted fields and gateway-attested payments."""

    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret

    def verify(self, confirmation: GatewayConfirmation) -> None:
        """Raise unless the confirmation carries a valid gateway signature."""

        valid = verify(
            confirmation.razorpay_order_id,
            confirmation.razorpay_payment_id,
            confirmation.razorpay_signature,
            self._secret,
        )
        if not valid:
            LOGGER.warning(
                "Payment signature mismatch: order_id=%s payment_id=%s",
                confirmation.razorpay_order_id,
                confirmation.razorpay_payment_id,
            )
            raise PaymentVerificationFailed("Payment verification failed.")

        LOGGER.info(
            "Payment verified: order_id=%s payment_id=%s",
            confirmation.razorpay_order_id,
            confirmation.razorpay_payment_id,
        )
