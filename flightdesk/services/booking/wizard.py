"""
Booking wizard - PassengerDetails → Review → Payment → Confirmed

Transitions only move forward on explicit actions. The background
validation result is merged as soon as it settles, whatever the step.
"""
import logging
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel

from flightdesk.core.errors import (
    AppError,
    IncompleteManifestError,
    SessionExpiredError,
    SubmissionError,
    WizardStateError,
)
from flightdesk.core.metrics import ACTIVE_WIZARDS
from flightdesk.models.booking_models import Booking, Passenger, PaymentDetails
from flightdesk.models.flight_models import (
    Fare,
    FlightOffer,
    PaxType,
    SearchParams,
    ValidationResult,
    ValidationStatus,
)
from flightdesk.services.booking import payment
from flightdesk.services.flight.booking import UNCONFIRMED_PRICE_WARNING, BookingSubmitter
from flightdesk.services.flight.validation import ValidationHandle
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-Wizard")


# ═══════════════════════════════════════════════════════════════════
# STATES
# ═══════════════════════════════════════════════════════════════════

class PassengerDetails(BaseModel):
    step: Literal["passenger_details"] = "passenger_details"


class Review(BaseModel):
    step: Literal["review"] = "review"


class Payment(BaseModel):
    step: Literal["payment"] = "payment"
    booking: Booking


class Confirmed(BaseModel):
    step: Literal["confirmed"] = "confirmed"
    booking: Booking


class Held(BaseModel):
    step: Literal["held"] = "held"
    booking: Booking


WizardState = Union[PassengerDetails, Review, Payment, Confirmed, Held]


def initial_manifest(offer: FlightOffer) -> List[Passenger]:
    pax = offer.pax_quantity
    return (
        [Passenger(pax_type=PaxType.ADULT) for _ in range(pax.adt)]
        + [Passenger(pax_type=PaxType.CHILD) for _ in range(pax.chd)]
        + [Passenger(pax_type=PaxType.INFANT) for _ in range(pax.inf)]
    )


class BookingWizard:
    """
    Owns the booking draft for one attempt: selected offer, manifest,
    validation handle, and the resulting booking.
    """

    def __init__(
        self,
        client: BackendClient,
        offer: FlightOffer,
        search_params: SearchParams,
        handle: Optional[ValidationHandle] = None,
        submitter: Optional[BookingSubmitter] = None
    ):
        self.client = client
        self.offer = offer
        self.search_params = search_params
        self.handle = handle
        self.submitter = submitter or BookingSubmitter(client)

        self.state: WizardState = PassengerDetails()
        self.passengers: List[Passenger] = initial_manifest(offer)
        self.error: Optional[AppError] = None
        self.warnings: List[str] = []

        self._validation: Optional[ValidationResult] = None
        self._validation_error: Optional[AppError] = None

        if handle is not None:
            handle.add_done_callback(self._on_validation_settled)

        ACTIVE_WIZARDS.inc()
        self._closed = False

    # ─────────── validation merge ───────────

    def _on_validation_settled(self, handle: ValidationHandle) -> None:
        if handle is not self.handle:
            return

        result = handle.result()
        if result is not None:
            self._validation = result
            self._validation_error = None
            logger.info(
                f"💱 Validated fare merged at step={self.state.step} | "
                f"{result.validated_fare.total} {result.validated_fare.currency}"
            )
        elif handle.error is not None:
            self._validation_error = handle.error.to_app_error()

    def _sync_validation(self) -> None:
        if self.handle is not None and self.handle.done() and self._validation is None \
                and self._validation_error is None:
            self._on_validation_settled(self.handle)

    @property
    def validation_status(self) -> ValidationStatus:
        if self.handle is None:
            return ValidationStatus.NONE
        self._sync_validation()
        if self._validation is not None:
            return ValidationStatus.DONE
        if self._validation_error is not None:
            return ValidationStatus.FAILED
        return ValidationStatus.PENDING

    @property
    def display_fare(self) -> Fare:
        self._sync_validation()
        if isinstance(self.state, (Payment, Confirmed, Held)):
            return Fare(total=self.state.booking.total, currency=self.state.booking.currency)
        if self._validation is not None:
            return self._validation.validated_fare
        return self.offer.fare

    @property
    def price_warning(self) -> Optional[str]:
        if self.validation_status == ValidationStatus.FAILED:
            return UNCONFIRMED_PRICE_WARNING
        return None

    # ─────────── PassengerDetails ───────────

    def update_passenger(self, index: int, **fields) -> Passenger:
        if not isinstance(self.state, PassengerDetails):
            raise WizardStateError("Passenger details can only be edited before review")
        if not 0 <= index < len(self.passengers):
            raise WizardStateError(f"No passenger #{index + 1} on this booking")

        # the manifest's type distribution comes from the search
        fields.pop("pax_type", None)
        if index != 0:
            fields.pop("phone", None)
            fields.pop("email", None)

        updated = self.passengers[index].model_copy(update=fields)
        # re-validate through the model
        self.passengers[index] = Passenger.model_validate(updated.model_dump())
        return self.passengers[index]

    def missing_fields(self) -> Dict[int, List[str]]:
        missing = {}
        for i, p in enumerate(self.passengers):
            fields = p.missing_fields()
            if fields:
                missing[i] = fields
        return missing

    @property
    def can_continue(self) -> bool:
        return not self.missing_fields()

    def continue_to_review(self) -> WizardState:
        if not isinstance(self.state, PassengerDetails):
            raise WizardStateError(f"Cannot continue to review from {self.state.step}")

        missing = self.missing_fields()
        if missing:
            raise IncompleteManifestError(missing)

        self.error = None
        self.state = Review()
        return self.state

    # ─────────── Review ───────────

    @property
    def submitting(self) -> bool:
        return self.submitter.submitting

    async def confirm_booking(self, wait_for_validation: bool = True) -> WizardState:
        """
        Review → Payment. On failure stays in Review with self.error set;
        the manifest is kept for the retry.
        """
        if not isinstance(self.state, Review):
            raise WizardStateError(f"Cannot confirm a booking from {self.state.step}")

        self.error = None
        try:
            booking = await self.submitter.submit(
                self.offer,
                self.handle,
                self.passengers,
                self.search_params,
                wait_for_validation=wait_for_validation
            )
        except SessionExpiredError:
            raise
        except SubmissionError as e:
            self.error = e.to_app_error()
            logger.warning(f"❌ Booking failed, staying on review | {e.message}")
            return self.state

        # concurrent confirms share one submission; only the first advances
        if isinstance(self.state, Review):
            if booking.unconfirmed_pricing:
                self.warnings.append(UNCONFIRMED_PRICE_WARNING)
            self.warnings.extend(booking.warnings)
            self.state = Payment(booking=booking)
        return self.state

    # ─────────── Payment ───────────

    async def confirm_payment(self, details: PaymentDetails) -> WizardState:
        if not isinstance(self.state, Payment):
            raise WizardStateError(f"Cannot take payment from {self.state.step}")

        self.error = None
        try:
            booking = await payment.confirm_payment(self.client, self.state.booking, details)
        except SessionExpiredError:
            raise
        except SubmissionError as e:
            self.error = e.to_app_error()
            return self.state

        self.state = Confirmed(booking=booking)
        self.close()
        return self.state

    async def hold(self) -> WizardState:
        if not isinstance(self.state, Payment):
            raise WizardStateError(f"Cannot hold a booking from {self.state.step}")

        self.error = None
        try:
            booking = await payment.hold_booking(self.client, self.state.booking)
        except SessionExpiredError:
            raise
        except SubmissionError as e:
            self.error = e.to_app_error()
            return self.state

        self.state = Held(booking=booking)
        self.close()
        return self.state

    @property
    def closed(self) -> bool:
        """Confirmed, held or abandoned."""
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            ACTIVE_WIZARDS.dec()

    def abandon(self) -> None:
        """Discard the draft. An unfinished validation is not cancelled, it just runs out."""
        self.handle = None
        self.close()

    def snapshot(self) -> Dict:
        return {
            "step": self.state.step,
            "offer": {"search_id": self.offer.search_id, "index": self.offer.index,
                      "brand": self.offer.selected_brand},
            "fare": self.display_fare.model_dump(),
            "validation_status": self.validation_status.value,
            "price_warning": self.price_warning,
            "passengers": [p.model_dump(mode="json") for p in self.passengers],
            "missing_fields": {str(i): m for i, m in self.missing_fields().items()},
            "submitting": self.submitting,
            "booking": self.state.booking.model_dump(mode="json") if hasattr(self.state, "booking") else None,
            "warnings": list(self.warnings),
            "error": self.error.model_dump() if self.error else None,
        }
