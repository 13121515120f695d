"""
Flight booking service - price resolution and PNR creation.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from flightdesk.core.errors import BackendError, MalformedResponseError, SubmissionError, ValidationError
from flightdesk.core.metrics import BOOKING_SUBMISSIONS
from flightdesk.models.booking_models import Booking, Passenger
from flightdesk.models.flight_models import Fare, FlightOffer, SearchParams, ValidationResult
from flightdesk.services.flight.mappers.booking_mapper import map_book_response
from flightdesk.services.flight.validation import ValidationHandle
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-FlightBooking")

UNCONFIRMED_PRICE_WARNING = "Price not confirmed. The fare may have changed since search."


class PriceSource(str, Enum):
    VALIDATED = "validated"
    SEARCH = "search"       # unconfirmed fallback


class ResolvedPrice(BaseModel):
    fare: Fare
    source: PriceSource
    validation: Optional[ValidationResult] = None
    warning: Optional[str] = None

    @property
    def unconfirmed(self) -> bool:
        return self.source == PriceSource.SEARCH

    @property
    def sealed(self) -> Optional[str]:
        return self.validation.sealed if self.validation else None


def _validated(result: ValidationResult) -> ResolvedPrice:
    return ResolvedPrice(fare=result.validated_fare, source=PriceSource.VALIDATED, validation=result)


def _fallback(offer: FlightOffer, reason: str) -> ResolvedPrice:
    logger.warning(f"⚠️ Booking with unconfirmed pricing | offer={offer.index} | {reason}")
    return ResolvedPrice(fare=offer.fare, source=PriceSource.SEARCH, warning=UNCONFIRMED_PRICE_WARNING)


async def resolve_price(
    offer: FlightOffer,
    handle: Optional[ValidationHandle],
    wait: bool = True
) -> ResolvedPrice:
    """
    1. cached validation result
    2. the in-flight validation (awaited, never restarted)
    3. the search-time fare, flagged unconfirmed

    SessionExpiredError from the validation propagates.
    """
    if handle is None:
        return _fallback(offer, "validation was never started")

    cached = handle.result()
    if cached is not None:
        return _validated(cached)

    if handle.done():
        error = handle.error
        if error is not None and not isinstance(error, ValidationError):
            raise error
        return _fallback(offer, error.message if error else "validation failed")

    if not wait:
        return _fallback(offer, "validation still pending, not waiting")

    try:
        result = await handle.wait()
    except ValidationError as e:
        return _fallback(offer, e.message)

    return _validated(result)


def build_book_payload(
    offer: FlightOffer,
    price: ResolvedPrice,
    passengers: List[Passenger],
    search_params: SearchParams
) -> Dict[str, Any]:
    validated_data: Dict[str, Any]
    if price.validation is not None:
        validated_data = dict(price.validation.payload)
    else:
        validated_data = {"sealed": None}

    return {
        "flight": offer.reference(),
        "validatedData": validated_data,
        "passengers": [p.to_payload() for p in passengers],
        "searchParams": search_params.to_payload(),
        "pricing": {
            "total": price.fare.total,
            "currency": price.fare.currency,
            "source": price.source.value,
            "unconfirmed": price.unconfirmed,
        },
    }


def _map_booking(
    response: Any,
    offer: FlightOffer,
    price: ResolvedPrice,
    passengers: List[Passenger]
) -> Booking:
    # the booking already exists upstream at this point
    try:
        return map_book_response(
            response,
            passengers=[p.model_copy() for p in passengers],
            fare=price.fare,
            unconfirmed_pricing=price.unconfirmed
        )
    except (ValueError, TypeError) as e:
        keys = sorted(response.keys()) if isinstance(response, dict) else type(response).__name__
        logger.error(f"❌ Could not map book response | offer={offer.index} | keys={keys} | {e}")
        raise MalformedResponseError(f"Booking was submitted but the response could not be read: {e}") from e


async def book_flight(
    client: BackendClient,
    offer: FlightOffer,
    price: ResolvedPrice,
    passengers: List[Passenger],
    search_params: SearchParams
) -> Booking:
    """
    POST /api/flights/book

    Raises SubmissionError on failure. A response that cannot be read is
    not retryable: the booking may already exist upstream.
    """
    body = build_book_payload(offer, price, passengers, search_params)

    try:
        response = await client.post("/api/flights/book", body, service="book")
        booking = _map_booking(response, offer, price, passengers)
    except BackendError as e:
        BOOKING_SUBMISSIONS.labels(price_source=price.source.value, status="error").inc()
        raise SubmissionError(e.message, retryable=True, status_code=e.status_code) from e
    except MalformedResponseError as e:
        BOOKING_SUBMISSIONS.labels(price_source=price.source.value, status="error").inc()
        logger.error(f"❌ Unexpected book response | offer={offer.index} | {e.message}")
        raise SubmissionError(e.message, retryable=False) from e

    BOOKING_SUBMISSIONS.labels(price_source=price.source.value, status="success").inc()
    logger.info(
        f"✅ Flight booked | ref={booking.reference} | pnr={booking.pnr} | "
        f"{booking.total} {booking.currency} | unconfirmed={booking.unconfirmed_pricing}"
    )
    return booking


class BookingSubmitter:
    """
    Issues at most one create-booking call at a time: a second submit while
    one is pending joins it (double-click guard, not server idempotency).
    """

    def __init__(self, client: BackendClient):
        self.client = client
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def submitting(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def submit(
        self,
        offer: FlightOffer,
        handle: Optional[ValidationHandle],
        passengers: List[Passenger],
        search_params: SearchParams,
        wait_for_validation: bool = True
    ) -> Booking:
        if not self.submitting:
            self._in_flight = asyncio.get_running_loop().create_task(
                self._submit(offer, handle, passengers, search_params, wait_for_validation)
            )
        return await asyncio.shield(self._in_flight)

    async def _submit(
        self,
        offer: FlightOffer,
        handle: Optional[ValidationHandle],
        passengers: List[Passenger],
        search_params: SearchParams,
        wait_for_validation: bool
    ) -> Booking:
        price = await resolve_price(offer, handle, wait=wait_for_validation)
        return await book_flight(self.client, offer, price, passengers, search_params)
