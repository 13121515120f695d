"""
Maps agency-backend booking responses onto Booking.
"""
import logging
from typing import Any, Dict, List, Optional

from flightdesk.core.errors import MalformedResponseError
from flightdesk.models.booking_models import (
    Booking,
    BookingStatus,
    Passenger,
    PaymentMethod,
    PaymentStatus,
)
from flightdesk.models.flight_models import Fare, PaxType

logger = logging.getLogger("FlightDesk-BookingMapper")


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _enum_or_none(enum_cls, value):
    try:
        return enum_cls(value) if value else None
    except ValueError:
        return None


def map_book_response(
    raw_response: Any,
    passengers: List[Passenger],
    fare: Fare,
    unconfirmed_pricing: bool
) -> Booking:
    """
    BookFlight response → Booking.

    Expected shape:
    {"pnr": str, "bookingRefId": str, "airlineLocator": str, "status": str}
    """
    if not isinstance(raw_response, dict):
        raise MalformedResponseError("Book response is not an object")

    reference = raw_response.get("bookingRefId") or raw_response.get("pnr")
    if not reference:
        raise MalformedResponseError("Book response has neither bookingRefId nor pnr")

    warnings = [
        w.get("detail", "") if isinstance(w, dict) else str(w)
        for w in raw_response.get("warnings") or []
    ]
    booking_id = raw_response.get("id") or raw_response.get("_id")
    pnr = raw_response.get("pnr")
    airline_locator = raw_response.get("airlineLocator")

    return Booking(
        reference=str(reference),
        booking_id=str(booking_id) if booking_id else None,
        pnr=str(pnr) if pnr else None,
        airline_locator=str(airline_locator) if airline_locator else None,
        status=raw_response.get("status") or "HK",
        passengers=passengers,
        total=fare.total,
        currency=fare.currency,
        unconfirmed_pricing=unconfirmed_pricing,
        warnings=warnings,
    )


def map_ticket_booking(raw: Any, currency: str) -> Booking:
    """CreateBooking / UpdateBooking record → Booking."""
    if not isinstance(raw, dict):
        raise MalformedResponseError("Booking record is not an object")

    booking_id = raw.get("_id") or raw.get("id")
    reference = raw.get("booking_reference") or booking_id
    if not reference:
        raise MalformedResponseError("Booking record has no id")

    passengers = []
    for p in raw.get("passengers", []):
        if not isinstance(p, dict):
            continue
        passengers.append(Passenger(
            pax_type=_pax_type(p.get("type")),
            title=p.get("title") or "",
            first_name=p.get("first_name") or "",
            last_name=p.get("last_name") or "",
            document_number=p.get("passport_number") or "",
            date_of_birth=p.get("date_of_birth") or "",
            document_issue_date=p.get("passport_issue_date") or "",
            document_expiry_date=p.get("passport_expiry_date") or "",
            country=p.get("country") or "",
        ))

    return Booking(
        reference=str(reference),
        booking_id=str(booking_id) if booking_id else None,
        status=raw.get("booking_status") or BookingStatus.UNDER_PROCESS.value,
        payment_method=_enum_or_none(PaymentMethod, raw.get("payment_method")),
        payment_status=_enum_or_none(PaymentStatus, raw.get("payment_status")),
        paid_amount=float(raw.get("paid_amount") or 0),
        passengers=passengers,
        total=float(raw.get("grand_total") or 0),
        currency=raw.get("currency") or currency,
    )


_PAX_LABELS = {"Adult": "ADT", "Child": "CHD", "Infant": "INF"}


def _pax_type(label: Optional[str]):
    code = _PAX_LABELS.get(label or "", label)
    return _enum_or_none(PaxType, code)


def extract_trip_detail(raw: Any) -> Dict[str, Any]:
    """
    Booking-detail retrieval:
    response.content.tripDetailRS.tripDetailsUiData.response

    An unexpected shape is logged with its keys before raising, so the
    provider change can be diagnosed.
    """
    response = _as_dict(raw).get("response")
    content = _as_dict(_as_dict(response).get("content"))
    trip_detail_rs = _as_dict(content.get("tripDetailRS"))
    detail = _as_dict(trip_detail_rs.get("tripDetailsUiData")).get("response")

    if not isinstance(detail, dict):
        logger.error(
            "Could not parse trip details | top-level keys=%s | content keys=%s | tripDetailRS keys=%s",
            sorted(_as_dict(raw).keys()),
            sorted(content.keys()),
            sorted(trip_detail_rs.keys()),
        )
        raise MalformedResponseError(
            f"Could not parse trip details. Content keys: [{', '.join(sorted(content.keys()))}]. "
            f"tripDetailRS keys: [{', '.join(sorted(trip_detail_rs.keys()))}]"
        )

    return {
        "detail": detail,
        "supplier_specific": content.get("supplierSpecific"),
    }
