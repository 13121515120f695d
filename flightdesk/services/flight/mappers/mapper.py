"""
Maps raw provider payloads from the agency backend onto internal models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from flightdesk.core import config
from flightdesk.models.flight_models import (
    BrandTier,
    Fare,
    FlightOffer,
    Leg,
    OfferKey,
    PaxQuantity,
    Segment,
    ValidationResult,
)

# Keys of a raw offer that are provider identifiers, passed back verbatim
_PROVIDER_KEYS = (
    "fareSourceCode",
    "sequenceNumber",
    "supplierCode",
    "supplierSpecific",
    "offerId",
    "itineraryRef",
    "traceId",
)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid date-time: {value!r}")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _to_float(value: Any, default: float = 0.0) -> float:
    if value in (None, ""):
        return default
    return float(value)


def map_fare(raw_fare: Any, currency: Optional[str] = None) -> Fare:
    if not isinstance(raw_fare, dict):
        raise ValueError("fare is missing")

    if raw_fare.get("total") in (None, ""):
        raise ValueError("fare.total is missing")

    return Fare(
        base=_to_float(raw_fare.get("baseFare")),
        tax=_to_float(raw_fare.get("tax")),
        total=_to_float(raw_fare.get("total")),
        currency=raw_fare.get("currency") or currency or config.DEFAULT_CURRENCY,
    )


def map_leg(raw_leg: Dict[str, Any]) -> Leg:
    if not isinstance(raw_leg, dict):
        raise ValueError("flight leg is not an object")

    airline = raw_leg.get("airlineDetails") or {}

    return Leg(
        airline_code=airline.get("airlineCode") or raw_leg.get("airlineCode", ""),
        airline_name=airline.get("airlineName"),
        flight_number=str(raw_leg.get("flightNumber", "")),
        origin=raw_leg.get("origin") or raw_leg.get("departureAirport", ""),
        destination=raw_leg.get("destination") or raw_leg.get("arrivalAirport", ""),
        departure_at=_parse_datetime(raw_leg.get("departureDateTime")),
        arrival_at=_parse_datetime(raw_leg.get("arrivalDateTime")),
        duration_minutes=raw_leg.get("journeyDuration"),
    )


def map_segment(raw_pair: Dict[str, Any]) -> Segment:
    if not isinstance(raw_pair, dict):
        raise ValueError("origin/destination pair is not an object")

    raw_legs = raw_pair.get("segments")
    if not isinstance(raw_legs, list) or not raw_legs:
        raise ValueError("origin/destination pair has no flights")

    legs = sorted((map_leg(l) for l in raw_legs), key=lambda l: l.departure_at)

    return Segment(
        origin=raw_pair.get("origin") or legs[0].origin,
        destination=raw_pair.get("destination") or legs[-1].destination,
        legs=legs,
    )


def map_brand_tiers(raw_brands: Any, currency: Optional[str] = None) -> List[BrandTier]:
    if not isinstance(raw_brands, list):
        return []

    tiers: List[BrandTier] = []
    for i, b in enumerate(raw_brands):
        if not isinstance(b, dict):
            continue

        raw_fare = b.get("fare") or {"total": b.get("total"), "currency": b.get("currency")}
        try:
            fare = map_fare(raw_fare, currency)
        except ValueError:
            continue

        tiers.append(BrandTier(
            brand_id=str(b.get("brandId") or b.get("id") or i),
            name=b.get("brandName") or b.get("name") or f"Fare {i + 1}",
            fare=fare,
            inclusions=[str(x) for x in b.get("inclusions", []) if x],
            supplier_specific=b.get("supplierSpecific") or {},
            is_default=bool(b.get("isDefault", i == 0)),
        ))

    return tiers


def map_search_offer(raw_offer: Dict[str, Any], search_id: str, index: int) -> FlightOffer:
    """Raises ValueError when the offer is unusable."""
    if not isinstance(raw_offer, dict):
        raise ValueError("offer is not an object")

    raw_pairs = raw_offer.get("ondPairs")
    if not isinstance(raw_pairs, list) or not raw_pairs:
        raise ValueError("offer has no origin/destination pairs")

    segments = sorted((map_segment(p) for p in raw_pairs), key=lambda s: s.departure_at)
    fare = map_fare(raw_offer.get("fare"))

    pax = raw_offer.get("paxQuantity") or {}
    brands = map_brand_tiers(raw_offer.get("brands"), fare.currency) or None

    return FlightOffer(
        search_id=search_id,
        index=index,
        segments=segments,
        fare=fare,
        refundable=bool(raw_offer.get("refundable", False)),
        brands=brands,
        provider_ids={k: raw_offer[k] for k in _PROVIDER_KEYS if k in raw_offer},
        pax_quantity=PaxQuantity(
            adt=pax.get("adt") or 1,
            chd=pax.get("chd") or 0,
            inf=pax.get("inf") or 0,
        ),
    )


def map_validation_response(raw: Any, offer_key: OfferKey, currency: str) -> ValidationResult:
    """Raises ValueError when no sealed token came back."""
    if not isinstance(raw, dict):
        raise ValueError("validate response is not an object")

    sealed = raw.get("sealed")
    if not sealed:
        raise ValueError("validate response has no sealed token")

    raw_fare = raw.get("validatedFare") or raw.get("fare")
    return ValidationResult(
        offer_key=offer_key,
        sealed=str(sealed),
        validated_fare=map_fare(raw_fare, currency),
        payload=raw,
    )
