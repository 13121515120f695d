import asyncio
import json

import httpx
import pytest

from flightdesk.core.errors import (
    IncompleteManifestError,
    SessionExpiredError,
    ValidationError,
    WizardStateError,
)
from flightdesk.models.booking_models import PaymentDetails, PaymentMethod, PaymentStatus
from flightdesk.models.flight_models import Fare, PaxType, ValidationResult, ValidationStatus
from flightdesk.services.booking.wizard import BookingWizard, Confirmed, Held, Payment, Review
from flightdesk.services.flight.booking import UNCONFIRMED_PRICE_WARNING
from flightdesk.services.flight.validation import BackgroundValidator

COMPLETE = dict(
    title="Mr", first_name="Imran", last_name="Qureshi", date_of_birth="1985-04-12",
    document_number="AB1234567", document_issue_date="2020-01-01",
    document_expiry_date="2030-01-01", country="PK",
)


def validated(offer, total):
    return ValidationResult(
        offer_key=offer.key,
        sealed="SEALED-1",
        validated_fare=Fare(total=total, currency="PKR"),
        payload={"sealed": "SEALED-1"},
    )


class AgencyBackend:
    """Answers book and update calls like the agency backend."""

    def __init__(self, book_status=200):
        self.book_status = book_status
        self.calls = []

    def __call__(self, request: httpx.Request):
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))

        if request.url.path == "/api/flights/book":
            if self.book_status != 200:
                return httpx.Response(self.book_status, json={"detail": "Supplier unavailable"})
            return httpx.Response(200, json={"pnr": "XYZ123", "bookingRefId": "BK-1001", "id": "b1"})

        if request.url.path.startswith("/api/ticket-bookings/"):
            return httpx.Response(200, json={"_id": "b1", **body})

        return httpx.Response(404, json={"detail": "Not found"})


def fill(wizard):
    for i in range(len(wizard.passengers)):
        wizard.update_passenger(i, **COMPLETE)


# ─────────── PassengerDetails ───────────

def test_manifest_follows_pax_quantity(backend, make_offer, search_params):
    wizard = BookingWizard(backend(None), make_offer(adt=2, chd=1, inf=1), search_params)

    assert [p.pax_type for p in wizard.passengers] == [
        PaxType.ADULT, PaxType.ADULT, PaxType.CHILD, PaxType.INFANT
    ]
    assert wizard.validation_status == ValidationStatus.NONE


def test_cannot_continue_with_missing_fields(backend, make_offer, search_params):
    wizard = BookingWizard(backend(None), make_offer(adt=2), search_params)
    wizard.update_passenger(0, **COMPLETE)
    wizard.update_passenger(1, **dict(COMPLETE, document_number="  "))

    assert wizard.can_continue is False
    assert wizard.missing_fields() == {1: ["document_number"]}

    with pytest.raises(IncompleteManifestError) as exc_info:
        wizard.continue_to_review()

    assert exc_info.value.missing == {1: ["document_number"]}
    assert wizard.state.step == "passenger_details"


def test_contact_details_only_on_primary_passenger(backend, make_offer, search_params):
    wizard = BookingWizard(backend(None), make_offer(adt=2), search_params)

    wizard.update_passenger(0, email="lead@example.com", pax_type=PaxType.INFANT)
    wizard.update_passenger(1, email="second@example.com")

    assert wizard.passengers[0].email == "lead@example.com"
    assert wizard.passengers[0].pax_type == PaxType.ADULT
    assert wizard.passengers[1].email == ""


def test_unknown_passenger_index(backend, offer, search_params):
    wizard = BookingWizard(backend(None), offer, search_params)

    with pytest.raises(WizardStateError):
        wizard.update_passenger(5, first_name="Nobody")


# ─────────── validation merge ───────────

@pytest.mark.asyncio
async def test_late_validation_result_is_shown(mocker, backend, offer, search_params):
    release = asyncio.Event()

    async def slow(client, o, params):
        await release.wait()
        return validated(o, 187500)

    mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=slow)
    client = backend(None)
    handle = BackgroundValidator(client).start(offer, search_params)

    wizard = BookingWizard(client, offer, search_params, handle=handle)

    assert wizard.display_fare.total == 185000
    assert wizard.validation_status == ValidationStatus.PENDING

    release.set()
    await handle.wait()
    await asyncio.sleep(0)

    assert wizard.state.step == "passenger_details"
    assert wizard.display_fare.total == 187500
    assert wizard.validation_status == ValidationStatus.DONE
    assert wizard.price_warning is None


@pytest.mark.asyncio
async def test_validation_settling_on_review_updates_fare(mocker, backend, offer, search_params):
    release = asyncio.Event()

    async def slow(client, o, params):
        await release.wait()
        return validated(o, 187500)

    mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=slow)
    client = backend(None)
    handle = BackgroundValidator(client).start(offer, search_params)
    wizard = BookingWizard(client, offer, search_params, handle=handle)
    fill(wizard)
    wizard.continue_to_review()

    assert wizard.snapshot()["fare"]["total"] == 185000

    release.set()
    await handle.wait()

    view = wizard.snapshot()
    assert view["step"] == "review"
    assert view["fare"]["total"] == 187500
    assert view["validation_status"] == "done"


@pytest.mark.asyncio
async def test_failed_validation_shows_warning(mocker, backend, offer, search_params):
    mocker.patch(
        "flightdesk.services.flight.validation.validate_offer",
        side_effect=ValidationError("Price validation failed: timeout")
    )
    client = backend(None)
    handle = BackgroundValidator(client).start(offer, search_params)
    wizard = BookingWizard(client, offer, search_params, handle=handle)

    with pytest.raises(ValidationError):
        await handle.wait()

    assert wizard.validation_status == ValidationStatus.FAILED
    assert wizard.price_warning == UNCONFIRMED_PRICE_WARNING
    assert wizard.display_fare.total == 185000


@pytest.mark.asyncio
async def test_abandoned_wizard_ignores_late_result(mocker, backend, offer, search_params):
    release = asyncio.Event()

    async def slow(client, o, params):
        await release.wait()
        return validated(o, 187500)

    mocker.patch("flightdesk.services.flight.validation.validate_offer", side_effect=slow)
    client = backend(None)
    handle = BackgroundValidator(client).start(offer, search_params)
    wizard = BookingWizard(client, offer, search_params, handle=handle)

    wizard.abandon()
    release.set()
    await handle.wait()
    await asyncio.sleep(0)

    assert wizard.display_fare.total == 185000
    assert wizard.validation_status == ValidationStatus.NONE


# ─────────── Review → Payment ───────────

@pytest.mark.asyncio
async def test_confirm_booking_moves_to_payment(mocker, backend, offer, search_params):
    mocker.patch(
        "flightdesk.services.flight.validation.validate_offer",
        side_effect=lambda client, o, params: validated(o, 187500)
    )
    client = backend(AgencyBackend())
    handle = BackgroundValidator(client).start(offer, search_params)
    wizard = BookingWizard(client, offer, search_params, handle=handle)
    fill(wizard)
    wizard.continue_to_review()

    state = await wizard.confirm_booking()

    assert isinstance(state, Payment)
    assert state.booking.reference == "BK-1001"
    assert state.booking.total == 187500
    assert state.booking.unconfirmed_pricing is False
    assert wizard.warnings == []


@pytest.mark.asyncio
async def test_confirm_without_validation_is_flagged(backend, offer, search_params):
    wizard = BookingWizard(backend(AgencyBackend()), offer, search_params)
    fill(wizard)
    wizard.continue_to_review()

    state = await wizard.confirm_booking()

    assert state.booking.unconfirmed_pricing is True
    assert wizard.warnings == [UNCONFIRMED_PRICE_WARNING]


@pytest.mark.asyncio
async def test_failed_confirm_stays_on_review(backend, offer, search_params):
    agency = AgencyBackend(book_status=503)
    wizard = BookingWizard(backend(agency), offer, search_params)
    fill(wizard)
    wizard.continue_to_review()

    state = await wizard.confirm_booking()

    assert isinstance(state, Review)
    assert wizard.error.retryable is True
    assert wizard.passengers[0].document_number == "AB1234567"

    agency.book_status = 200
    state = await wizard.confirm_booking()

    assert isinstance(state, Payment)
    assert wizard.error is None


@pytest.mark.asyncio
async def test_unreadable_book_response_stays_on_review(backend, offer, search_params):
    client = backend(lambda request: httpx.Response(200, json={"bookingRefId": "BK-1001", "status": {"code": "HK"}}))
    wizard = BookingWizard(client, offer, search_params)
    fill(wizard)
    wizard.continue_to_review()

    state = await wizard.confirm_booking()

    assert isinstance(state, Review)
    assert wizard.error is not None
    assert wizard.error.retryable is False


@pytest.mark.asyncio
async def test_concurrent_confirms_share_one_booking(backend, offer, search_params):
    agency = AgencyBackend()
    wizard = BookingWizard(backend(agency), offer, search_params)
    fill(wizard)
    wizard.continue_to_review()

    await asyncio.gather(wizard.confirm_booking(), wizard.confirm_booking())

    assert len([c for c in agency.calls if c[1] == "/api/flights/book"]) == 1
    assert isinstance(wizard.state, Payment)


@pytest.mark.asyncio
async def test_session_expiry_on_confirm_propagates(backend, offer, search_params):
    wizard = BookingWizard(backend(lambda request: httpx.Response(401)), offer, search_params)
    fill(wizard)
    wizard.continue_to_review()

    with pytest.raises(SessionExpiredError):
        await wizard.confirm_booking()


@pytest.mark.asyncio
async def test_confirm_requires_review(backend, offer, search_params):
    wizard = BookingWizard(backend(None), offer, search_params)

    with pytest.raises(WizardStateError):
        await wizard.confirm_booking()


# ─────────── Payment → Confirmed / Held ───────────

async def _at_payment(backend, offer, search_params, agency):
    wizard = BookingWizard(backend(agency), offer, search_params)
    fill(wizard)
    wizard.continue_to_review()
    await wizard.confirm_booking()
    return wizard


@pytest.mark.asyncio
async def test_credit_payment_confirms(backend, offer, search_params):
    agency = AgencyBackend()
    wizard = await _at_payment(backend, offer, search_params, agency)

    state = await wizard.confirm_payment(PaymentDetails(method=PaymentMethod.CREDIT, amount=185000))

    assert isinstance(state, Confirmed)
    assert state.booking.payment_status == PaymentStatus.PAID
    method, path, body = agency.calls[-1]
    assert (method, path) == ("PUT", "/api/ticket-bookings/b1")
    assert body["paid_amount"] == 185000

    with pytest.raises(WizardStateError):
        wizard.update_passenger(0, first_name="Changed")


@pytest.mark.asyncio
async def test_gateway_payment_is_rejected(backend, offer, search_params):
    wizard = await _at_payment(backend, offer, search_params, AgencyBackend())

    state = await wizard.confirm_payment(PaymentDetails(method=PaymentMethod.GATEWAY, amount=185000))

    assert isinstance(state, Payment)
    assert wizard.error.retryable is False


@pytest.mark.asyncio
async def test_hold_keeps_booking_pending(backend, offer, search_params):
    agency = AgencyBackend()
    wizard = await _at_payment(backend, offer, search_params, agency)

    state = await wizard.hold()

    assert isinstance(state, Held)
    assert state.booking.status == "pending"
    assert agency.calls[-1][2] == {"booking_status": "pending"}

    with pytest.raises(WizardStateError):
        await wizard.hold()


@pytest.mark.asyncio
async def test_snapshot(backend, offer, search_params):
    wizard = BookingWizard(backend(None), offer, search_params)

    view = wizard.snapshot()

    assert view["step"] == "passenger_details"
    assert view["fare"]["total"] == 185000
    assert view["validation_status"] == "none"
    assert view["booking"] is None
    assert "0" in view["missing_fields"]
