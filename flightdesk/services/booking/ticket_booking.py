"""
Ticket / package bookings and booking records on the agency backend.

Endpoints:
    POST /api/ticket-bookings/          - CreateBooking (non-flight)
    PUT  /api/ticket-bookings/{id}      - UpdateBooking (status / payment)
    GET  /api/flights/bookings          - Booked flights
    GET  /api/flights/bookings/{ref}    - Booking detail retrieval
"""
import logging
from typing import Any, Dict, List, Optional

from flightdesk.core import config
from flightdesk.core.errors import BackendError, MalformedResponseError, SubmissionError
from flightdesk.models.booking_models import Booking, BookingStatus, PackagePricing, Passenger
from flightdesk.models.flight_models import PaxType
from flightdesk.services.flight.mappers.booking_mapper import extract_trip_detail, map_ticket_booking
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-TicketBookings")

_PAX_LABELS = {PaxType.ADULT: "Adult", PaxType.CHILD: "Child", PaxType.INFANT: "Infant"}


def build_ticket_booking_payload(
    ticket_id: str,
    ticket_details: Dict[str, Any],
    passengers: List[Passenger],
    pricing: PackagePricing
) -> Dict[str, Any]:
    total_pax = len(passengers)
    grand_total = pricing.grand_total(passengers)

    counts = {t: sum(1 for p in passengers if p.pax_type == t) for t in PaxType}
    plurals = {PaxType.ADULT: "Adults", PaxType.CHILD: "Children", PaxType.INFANT: "Infants"}
    notes = ", ".join(
        f"{plurals[t]}: {counts[t]} @ {config.DEFAULT_CURRENCY} {pricing.price_for(t):g}"
        for t in PaxType
    )

    return {
        "ticket_id": ticket_id,
        "booking_type": "ticket",
        "ticket_details": ticket_details,
        "passengers": [
            {
                "type": _PAX_LABELS.get(p.pax_type, ""),
                "title": p.title,
                "first_name": p.first_name,
                "last_name": p.last_name,
                "passport_number": p.document_number,
                "date_of_birth": p.date_of_birth,
                "passport_issue_date": p.document_issue_date,
                "passport_expiry_date": p.document_expiry_date,
                "country": p.country,
            }
            for p in passengers
        ],
        "total_passengers": total_pax,
        # selling prices are final customer prices
        "base_price_per_person": round(grand_total / total_pax) if total_pax else 0,
        "tax_per_person": 0,
        "service_charge_per_person": 0,
        "subtotal": grand_total,
        "total_tax": 0,
        "total_service_charge": 0,
        "grand_total": grand_total,
        # filled in by the payment step
        "payment_method": None,
        "payment_status": None,
        "booking_status": BookingStatus.UNDER_PROCESS.value,
        "notes": notes,
    }


async def create_ticket_booking(
    client: BackendClient,
    ticket_id: str,
    ticket_details: Dict[str, Any],
    passengers: List[Passenger],
    pricing: PackagePricing
) -> Booking:
    body = build_ticket_booking_payload(ticket_id, ticket_details, passengers, pricing)

    try:
        raw = await client.post("/api/ticket-bookings/", body, service="create-booking")
        booking = map_ticket_booking(raw, config.DEFAULT_CURRENCY)
    except BackendError as e:
        raise SubmissionError(e.message, status_code=e.status_code) from e
    except MalformedResponseError as e:
        raise SubmissionError(e.message) from e

    logger.info(f"✅ Ticket booking created | id={booking.update_id} | total={booking.total}")
    return booking


async def update_booking(client: BackendClient, booking_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    PUT /api/ticket-bookings/{id}

    Returns the updated record as sent back by the backend ({} when empty).
    """
    try:
        raw = await client.put(f"/api/ticket-bookings/{booking_id}", fields, service="update-booking")
    except BackendError as e:
        raise SubmissionError(e.message, status_code=e.status_code) from e

    return raw if isinstance(raw, dict) else {}


async def list_bookings(client: BackendClient) -> List[Dict[str, Any]]:
    raw = await client.get("/api/flights/bookings", service="list-bookings")

    if isinstance(raw, dict):
        raw = raw.get("bookings", raw.get("data"))
    if not isinstance(raw, list):
        raise MalformedResponseError("Booking list response is not a list")

    return [b for b in raw if isinstance(b, dict)]


async def get_booking_detail(
    client: BackendClient,
    booking_ref_id: str,
    supplier_code: Optional[int] = None
) -> Dict[str, Any]:
    raw = await client.get(
        f"/api/flights/bookings/{booking_ref_id}",
        {"supplierCode": supplier_code or config.DEFAULT_SUPPLIER_CODE},
        service="booking-detail"
    )
    return extract_trip_detail(raw)
