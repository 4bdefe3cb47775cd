"""Booking orchestration: gateway order, verified confirmation, queue token.

Confirmation runs through these steps:

1. validate the submitted gateway fields and load the order they name;
2. check the order is bound to the calling patient and that the submitted
   booking is the one the order was created for;
3. verify the gateway signature;
4. reserve a token under the gateway payment id, in the partition the order
   was created for;
5. commit the appointment, the completed payment and the notification
   intents in one transaction.

Anything that fails after step 3 means money has moved without an
appointment, so it opens a reconciliation case instead of being retried from
scratch. Re-submitting the same confirmation is idempotent: the token is
reserved under the payment id and the payment id is unique on ``payments``.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mediq.errors import (
    BookingFailed,
    BookingPersistenceFailed,
    InvalidPaymentData,
    InvalidStateTransition,
    NotFound,
    PaymentGatewayError,
    SlotUnavailable,
    TokenAllocationExhausted,
    TokenClaimConflict,
    Unauthorized,
)
from mediq.models.appointment import Appointment
from mediq.models.doctor import Doctor
from mediq.models.enums import (
    AppointmentStatus,
    AppointmentType,
    PaymentStatus,
    ReconciliationKind,
    Role,
    TokenType,
)
from mediq.models.hospital import Hospital
from mediq.models.notification import Notification
from mediq.models.patient import Patient
from mediq.models.payment import Payment
from mediq.schemas import (
    AppointmentOut,
    BookingIntent,
    BookingResult,
    Caller,
    ConfirmationRequest,
    OrderOut,
    PaymentOut,
)
from mediq.services import notifications
from mediq.services.access import require_appointment_viewer, require_role
from mediq.services.db import get_session
from mediq.services.payments import PaymentVerifier
from mediq.services.queue import QueueProjector
from mediq.services.reconciliation import open_case
from mediq.services.slots import find_slot
from mediq.services.tokens import SessionFactory, TokenAllocator
from payment_gateway.razorpay_adapter import GatewayOrderError, RazorpayAdapter

LOGGER = logging.getLogger(__name__)

# Booking fields fixed when the order is created.
BOOKING_BINDING_FIELDS = (
    "doctor_id",
    "hospital_id",
    "appointment_date",
    "appointment_time",
    "appointment_type",
    "special_instructions",
)


class _PersistConflict(Exception):
    """The order or the reserved token was taken by another write."""


class BookingOrchestrator:
    """Turns a verified gateway payment into a confirmed, queued appointment."""

    def __init__(
        self,
        *,
        verifier: PaymentVerifier,
        allocator: TokenAllocator,
        gateway: RazorpayAdapter,
        projector: QueueProjector,
        session_factory: SessionFactory = get_session,
        currency: str = "INR",
    ) -> None:
        self.verifier = verifier
        self.allocator = allocator
        self.gateway = gateway
        self.projector = projector
        self.currency = currency
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def create_order(self, intent: BookingIntent, caller: Caller) -> OrderOut:
        """Create a gateway order bound to the calling patient."""

        require_role(caller, Role.PATIENT)

        with self._session_factory() as session:
            self._require_patient(session, caller.user_id)
            doctor = self._require_bookable_doctor(
                session, intent.doctor_id, intent.hospital_id
            )
            slot = find_slot(
                session,
                doctor.id,
                intent.appointment_date,
                intent.appointment_time,
            )
            if slot is None or slot.is_booked:
                LOGGER.info(
                    "Slot unavailable: doctor=%s date=%s time=%s",
                    doctor.id,
                    intent.appointment_date,
                    intent.appointment_time,
                )
                raise SlotUnavailable()

            amount = doctor.consultation_fee
            if intent.consultation_fee is not None and intent.consultation_fee != amount:
                raise InvalidPaymentData(
                    "Quoted consultation fee does not match the current fee."
                )
            doctor_id = doctor.id

        try:
            order = self.gateway.create_order(
                amount=amount,
                currency=self.currency,
                receipt=f"apt_{int(time.time() * 1000)}",
                notes={
                    "doctor_id": doctor_id,
                    "hospital_id": intent.hospital_id,
                    "user_id": caller.user_id,
                },
            )
        except GatewayOrderError as exc:
            raise PaymentGatewayError(str(exc)) from exc

        with self._session_factory() as session:
            payment = Payment(
                patient_id=caller.user_id,
                doctor_id=doctor_id,
                hospital_id=intent.hospital_id,
                appointment_date=intent.appointment_date,
                appointment_time=intent.appointment_time,
                appointment_type=intent.appointment_type.value,
                special_instructions=intent.special_instructions,
                amount=amount,
                currency=order["currency"],
                gateway_order_id=order["order_id"],
                status=PaymentStatus.PENDING.value,
            )
            session.add(payment)
            session.flush()
            payment_id = payment.id

        LOGGER.info(
            "Order %s created for patient=%s doctor=%s amount=%s",
            order["order_id"],
            caller.user_id,
            doctor_id,
            amount,
        )
        return OrderOut(
            payment_id=payment_id,
            order_id=order["order_id"],
            amount=amount,
            currency=order["currency"],
            key_id=self.gateway.key_id,
        )

    def fail_payment(self, order_id: str, caller: Caller) -> PaymentOut:
        """Record that checkout for ``order_id`` was dismissed or declined."""

        with self._session_factory() as session:
            payment = self._load_order(session, order_id, lock=True)
            if not caller.is_admin and payment.patient_id != caller.user_id:
                raise Unauthorized("This payment order belongs to another patient.")

            status = PaymentStatus(payment.status)
            if status is PaymentStatus.COMPLETED:
                raise InvalidStateTransition("A completed payment cannot be marked failed.")
            if status is PaymentStatus.PENDING:
                payment.status = PaymentStatus.FAILED.value
                session.flush()
                LOGGER.info("Payment order %s marked failed", order_id)
            return PaymentOut.model_validate(payment)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------
    def confirm(self, request: ConfirmationRequest, caller: Caller) -> BookingResult:
        """Confirmation entry point. Safe to call again with the same payload.

        The booking is taken from the order; the submitted one must match it.
        """

        require_role(caller, Role.PATIENT)
        order_id, payment_id = self._require_gateway_fields(request)

        with self._session_factory() as session:
            order = self._load_order(session, order_id)
            if order.patient_id != caller.user_id:
                LOGGER.warning(
                    "Order %s replayed by another patient: caller=%s",
                    order_id,
                    caller.user_id,
                )
                raise Unauthorized("This payment order belongs to another patient.")
            booked = self._booked_intent(order)
            order_status = PaymentStatus(order.status)
            captured_payment_id = order.gateway_payment_id
            patient_id = order.patient_id

        self._require_matching_booking(order_id, booked, request.appointment)
        self.verifier.verify(request)

        if order_status is PaymentStatus.COMPLETED:
            if captured_payment_id != payment_id:
                case_id = open_case(
                    self._session_factory,
                    kind=ReconciliationKind.DUPLICATE_CAPTURE,
                    order_id=order_id,
                    payment_id=payment_id,
                    patient_id=patient_id,
                    detail=(
                        f"Order already settled by {captured_payment_id}; "
                        "second capture needs a refund."
                    ),
                )
                LOGGER.error(
                    "Second capture %s for settled order %s (case %s)",
                    payment_id,
                    order_id,
                    case_id,
                )
            return self._replay(order_id)

        if order_status is PaymentStatus.FAILED:
            case_id = open_case(
                self._session_factory,
                kind=ReconciliationKind.CAPTURE_AFTER_FAILURE,
                order_id=order_id,
                payment_id=payment_id,
                patient_id=patient_id,
                detail="Verified capture arrived for an order already marked failed.",
            )
            raise BookingFailed(
                f"Order {order_id} was marked failed before capture {payment_id}",
                payment_reference=payment_id,
                case_id=case_id,
            )

        try:
            with self._session_factory() as session:
                self._require_bookable_doctor(session, booked.doctor_id, booked.hospital_id)
        except NotFound as exc:
            case_id = open_case(
                self._session_factory,
                kind=ReconciliationKind.DOCTOR_UNAVAILABLE,
                order_id=order_id,
                payment_id=payment_id,
                patient_id=patient_id,
                detail=exc.message,
            )
            raise BookingFailed(
                f"Paid order {order_id} can no longer be booked: {exc.message}",
                payment_reference=payment_id,
                case_id=case_id,
            ) from exc

        try:
            token = self.allocator.allocate(
                booked.doctor_id,
                booked.appointment_date,
                claim_ref=payment_id,
            )
        except (TokenAllocationExhausted, TokenClaimConflict) as exc:
            kind = (
                ReconciliationKind.TOKEN_CLAIM_CONFLICT
                if isinstance(exc, TokenClaimConflict)
                else ReconciliationKind.TOKEN_ALLOCATION_EXHAUSTED
            )
            exc.case_id = open_case(
                self._session_factory,
                kind=kind,
                order_id=order_id,
                payment_id=payment_id,
                patient_id=patient_id,
                detail=str(exc),
            )
            exc.payment_reference = payment_id
            raise

        try:
            result = self._persist(request, booked, token)
        except (IntegrityError, _PersistConflict) as exc:
            # A concurrent confirmation of the same payment may have won.
            replay = self._try_replay(order_id, payment_id)
            if replay is not None:
                return replay
            raise self._persistence_failure(order_id, payment_id, patient_id, exc) from exc
        except SQLAlchemyError as exc:
            raise self._persistence_failure(order_id, payment_id, patient_id, exc) from exc

        self.projector.invalidate(booked.doctor_id, booked.appointment_date)
        return self._with_position(result)

    def get_appointment(self, appointment_id: uuid.UUID, caller: Caller) -> AppointmentOut:
        with self._session_factory() as session:
            appointment = session.get(Appointment, appointment_id)
            if appointment is None:
                raise NotFound(f"Appointment {appointment_id} not found.")
            require_appointment_viewer(session, caller, appointment)
            snapshot = AppointmentOut.model_validate(appointment)

        position = self.projector.position_of(
            snapshot.doctor_id,
            snapshot.appointment_date,
            snapshot.id,
        )
        return snapshot.model_copy(update={"queue_position": position})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _persist(
        self,
        request: ConfirmationRequest,
        booked: BookingIntent,
        token: int,
    ) -> BookingResult:
        with self._session_factory() as session:
            order = self._load_order(session, request.razorpay_order_id, lock=True)
            if PaymentStatus(order.status) is not PaymentStatus.PENDING:
                raise _PersistConflict(f"Order {order.gateway_order_id} is already {order.status}")

            appointment = session.execute(
                select(Appointment).where(
                    Appointment.doctor_id == booked.doctor_id,
                    Appointment.appointment_date == booked.appointment_date,
                    Appointment.token_number == token,
                )
            ).scalar_one_or_none()

            staged: List[Notification] = []
            if appointment is None:
                appointment = Appointment(
                    patient_id=order.patient_id,
                    doctor_id=booked.doctor_id,
                    hospital_id=booked.hospital_id,
                    appointment_date=booked.appointment_date,
                    appointment_time=booked.appointment_time,
                    appointment_type=booked.appointment_type.value,
                    token_number=token,
                    token_type=TokenType.NORMAL.value,
                    status=AppointmentStatus.CONFIRMED.value,
                    special_instructions=booked.special_instructions,
                )
                session.add(appointment)
                session.flush()
                doctor = session.get(Doctor, booked.doctor_id)
                staged = notifications.enqueue_confirmation(
                    session,
                    appointment,
                    doctor.user_id if doctor else None,
                )
            elif appointment.patient_id != order.patient_id:
                raise _PersistConflict(f"Token {token} is held by appointment {appointment.id}")
            else:
                LOGGER.warning(
                    "Repairing payment %s for existing appointment %s",
                    request.razorpay_payment_id,
                    appointment.id,
                )

            order.appointment_id = appointment.id
            order.gateway_payment_id = request.razorpay_payment_id
            order.gateway_signature = request.razorpay_signature
            order.status = PaymentStatus.COMPLETED.value
            session.flush()

            result = BookingResult(
                appointment=AppointmentOut.model_validate(appointment),
                payment=PaymentOut.model_validate(order),
                notification_ids=[notification.id for notification in staged],
            )

        LOGGER.info(
            "Appointment %s confirmed: doctor=%s date=%s token=%s payment_id=%s",
            result.appointment.id,
            booked.doctor_id,
            booked.appointment_date,
            token,
            request.razorpay_payment_id,
        )
        return result

    def _replay(self, order_id: str) -> BookingResult:
        with self._session_factory() as session:
            order = self._load_order(session, order_id)
            appointment = (
                session.get(Appointment, order.appointment_id)
                if order.appointment_id
                else None
            )
            if appointment is None:
                raise BookingPersistenceFailed(
                    f"Settled order {order_id} has no appointment",
                    payment_reference=order.gateway_payment_id,
                )
            result = BookingResult(
                appointment=AppointmentOut.model_validate(appointment),
                payment=PaymentOut.model_validate(order),
                replayed=True,
            )

        LOGGER.info(
            "Replayed confirmation for order %s -> appointment %s",
            order_id,
            result.appointment.id,
        )
        return self._with_position(result)

    def _try_replay(self, order_id: str, payment_id: str) -> Optional[BookingResult]:
        with self._session_factory() as session:
            order = self._load_order(session, order_id)
            settled = (
                PaymentStatus(order.status) is PaymentStatus.COMPLETED
                and order.gateway_payment_id == payment_id
            )
        return self._replay(order_id) if settled else None

    def _persistence_failure(
        self,
        order_id: str,
        payment_id: str,
        patient_id: uuid.UUID,
        exc: Exception,
    ) -> BookingPersistenceFailed:
        case_id = open_case(
            self._session_factory,
            kind=ReconciliationKind.PERSISTENCE_FAILED,
            order_id=order_id,
            payment_id=payment_id,
            patient_id=patient_id,
            detail=f"{type(exc).__name__}: {exc}",
        )
        return BookingPersistenceFailed(
            f"Could not persist booking for payment {payment_id}",
            payment_reference=payment_id,
            case_id=case_id,
        )

    def _with_position(self, result: BookingResult) -> BookingResult:
        appointment = result.appointment
        position = self.projector.position_of(
            appointment.doctor_id,
            appointment.appointment_date,
            appointment.id,
        )
        return result.model_copy(
            update={"appointment": appointment.model_copy(update={"queue_position": position})}
        )

    @staticmethod
    def _require_gateway_fields(request: ConfirmationRequest) -> tuple[str, str]:
        missing = [
            name
            for name in ("razorpay_order_id", "razorpay_payment_id", "razorpay_signature")
            if not getattr(request, name)
        ]
        if missing:
            raise InvalidPaymentData(
                f"Missing payment confirmation fields: {', '.join(missing)}"
            )
        return request.razorpay_order_id, request.razorpay_payment_id

    @staticmethod
    def _load_order(session: Session, order_id: str, *, lock: bool = False) -> Payment:
        stmt = select(Payment).where(Payment.gateway_order_id == order_id)
        if lock:
            stmt = stmt.with_for_update()
        payment = session.execute(stmt).scalar_one_or_none()
        if payment is None:
            raise NotFound(f"Payment order {order_id} not found.")
        return payment

    @staticmethod
    def _require_patient(session: Session, patient_id: uuid.UUID) -> Patient:
        patient = session.get(Patient, patient_id)
        if patient is None:
            raise NotFound(f"Patient profile {patient_id} not found.")
        return patient

    @staticmethod
    def _require_bookable_doctor(
        session: Session,
        doctor_id: uuid.UUID,
        hospital_id: uuid.UUID,
    ) -> Doctor:
        doctor = session.get(Doctor, doctor_id)
        if doctor is None or not doctor.is_active:
            raise NotFound(f"Doctor {doctor_id} not found.")
        if session.get(Hospital, hospital_id) is None:
            raise NotFound(f"Hospital {hospital_id} not found.")
        if doctor.hospital_id != hospital_id:
            raise NotFound(
                f"Doctor {doctor_id} does not practise at hospital {hospital_id}."
            )
        return doctor

    @staticmethod
    def _booked_intent(order: Payment) -> BookingIntent:
        """The booking the order was created for."""

        return BookingIntent(
            doctor_id=order.doctor_id,
            hospital_id=order.hospital_id,
            appointment_date=order.appointment_date,
            appointment_time=order.appointment_time,
            appointment_type=AppointmentType(order.appointment_type),
            special_instructions=order.special_instructions,
            consultation_fee=order.amount,
        )

    @staticmethod
    def _require_matching_booking(
        order_id: str,
        booked: BookingIntent,
        submitted: BookingIntent,
    ) -> None:
        mismatched = [
            name
            for name in BOOKING_BINDING_FIELDS
            if getattr(submitted, name) != getattr(booked, name)
        ]
        if (
            submitted.consultation_fee is not None
            and submitted.consultation_fee != booked.consultation_fee
        ):
            mismatched.append("consultation_fee")
        if mismatched:
            LOGGER.warning(
                "Confirmation for order %s does not match its booking: %s",
                order_id,
                ", ".join(mismatched),
            )
            raise InvalidPaymentData("Booking does not match the payment order.")
