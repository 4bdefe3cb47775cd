"""Gateway signature verification."""

import hashlib
import hmac

import pytest

from mediq.errors import ConfigurationError, InvalidPaymentData, PaymentVerificationFailed
from mediq.schemas import GatewayConfirmation
from mediq.services.payments import PaymentVerifier, expected_signature, verify

SECRET = "s3cr3t"


def _signature(order_id: str, payment_id: str, secret: str = SECRET) -> str:
    return hmac.new(
        secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256
    ).hexdigest()


def test_expected_signature_is_hex_hmac_sha256_over_pipe_joined_ids() -> None:
    assert expected_signature("order_1", "pay_1", SECRET) == _signature("order_1", "pay_1")


def test_valid_signature_verifies() -> None:
    assert verify("order_1", "pay_1", _signature("order_1", "pay_1"), SECRET) is True


def test_signature_for_other_payment_is_rejected() -> None:
    forged = _signature("order_1", "pay_2")
    assert verify("order_1", "pay_1", forged, SECRET) is False


def test_signature_with_other_secret_is_rejected() -> None:
    assert verify("order_1", "pay_1", _signature("order_1", "pay_1", "other"), SECRET) is False


@pytest.mark.parametrize(
    "order_id, payment_id, signature",
    [
        (None, "pay_1", "abc"),
        ("order_1", "", "abc"),
        ("order_1", "pay_1", None),
    ],
)
def test_missing_fields_fail_before_verification(order_id, payment_id, signature) -> None:
    with pytest.raises(InvalidPaymentData):
        verify(order_id, payment_id, signature, SECRET)


def test_missing_secret_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        verify("order_1", "pay_1", _signature("order_1", "pay_1"), None)


def test_verifier_raises_on_mismatch() -> None:
    verifier = PaymentVerifier(SECRET)
    confirmation = GatewayConfirmation(
        razorpay_order_id="order_1",
        razorpay_payment_id="pay_1",
        razorpay_signature=_signature("order_1", "pay_9"),
    )
    with pytest.raises(PaymentVerificationFailed):
        verifier.verify(confirmation)


def test_verifier_accepts_genuine_confirmation() -> None:
    verifier = PaymentVerifier(SECRET)
    verifier.verify(
        GatewayConfirmation(
            razorpay_order_id="order_1",
            razorpay_payment_id="pay_1",
            razorpay_signature=_signature("order_1", "pay_1"),
        )
    )
