"""Domain errors raised by the booking core.

Every error carries the HTTP status it maps to and the message shown to the
caller. Reconciliation-class errors hide the cause behind a generic message
and expose the payment reference and support case id instead.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

SUPPORT_MESSAGE = "Booking could not be completed, please contact support."


class BookingError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    code = "booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def public_message(self) -> str:
        return self.message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.public_message}


class InvalidPaymentData(BookingError):
    code = "invalid_payment_data"


class PaymentVerificationFailed(BookingError):
    code = "payment_verification_failed"


class SlotUnavailable(BookingError):
    status_code = 409
    code = "slot_unavailable"

    def __init__(self, message: str = "Time slot no longer available.") -> None:
        super().__init__(message)


class InvalidStateTransition(BookingError):
    status_code = 409
    code = "invalid_state_transition"


class NotFound(BookingError):
    status_code = 404
    code = "not_found"


class Unauthorized(BookingError):
    status_code = 403
    code = "unauthorized"


class PaymentGatewayError(BookingError):
    status_code = 502
    code = "payment_gateway_error"


class ConfigurationError(BookingError):
    status_code = 500
    code = "configuration_error"

    @property
    def public_message(self) -> str:
        return "Service is misconfigured."


class BookingFailed(BookingError):
    """Payment was verified but no appointment could be committed."""

    status_code = 500
    code = "booking_failed"

    def __init__(
        self,
        message: str,
        *,
        payment_reference: Optional[str] = None,
        case_id: Optional[uuid.UUID] = None,
    ) -> None:
        super().__init__(message)
        self.payment_reference = payment_reference
        self.case_id = case_id

    @property
    def public_message(self) -> str:
        return SUPPORT_MESSAGE

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["payment_reference"] = self.payment_reference
        payload["case_id"] = str(self.case_id) if self.case_id else None
        return payload


class TokenAllocationExhausted(BookingFailed):
    code = "token_allocation_exhausted"


class BookingPersistenceFailed(BookingFailed):
    code = "booking_persistence_failed"


class TokenClaimConflict(BookingFailed):
    """The payment reference already holds a token in another partition."""

    code = "token_claim_conflict"
