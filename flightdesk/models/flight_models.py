# flightdesk/models/flight_models.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from flightdesk.core.errors import AppError


class TripType(str, Enum):
    ONE_WAY = "oneway"
    ROUND_TRIP = "return"
    MULTI_CITY = "multicity"


class PaxType(str, Enum):
    ADULT = "ADT"
    CHILD = "CHD"
    INFANT = "INF"


# ─────────────────────────────────────────────
# SEARCH
# ─────────────────────────────────────────────

class OriginDestination(BaseModel):
    origin: str = Field(..., min_length=3, max_length=3)
    destination: str = Field(..., min_length=3, max_length=3)
    departure_date: str     # YYYY-MM-DD

    @model_validator(mode="after")
    def _upper_codes(self):
        self.origin = self.origin.upper()
        self.destination = self.destination.upper()
        return self


class PaxQuantity(BaseModel):
    adt: int = Field(default=1, ge=1, le=9)
    chd: int = Field(default=0, ge=0, le=9)
    inf: int = Field(default=0, ge=0, le=9)

    @model_validator(mode="after")
    def _infants_on_laps(self):
        if self.inf > self.adt:
            raise ValueError("infants cannot outnumber adults")
        return self

    @property
    def total(self) -> int:
        return self.adt + self.chd + self.inf


class SearchParams(BaseModel):
    trip_type: TripType
    ond_pairs: List[OriginDestination]
    pax: PaxQuantity = Field(default_factory=PaxQuantity)
    cabin_class: str = "Y"
    non_stop: bool = False
    preferred_airlines: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_pairs(self):
        count = len(self.ond_pairs)
        if self.trip_type == TripType.ONE_WAY and count != 1:
            raise ValueError("one-way search needs exactly one origin/destination pair")
        if self.trip_type == TripType.ROUND_TRIP and count != 2:
            raise ValueError("round-trip search needs an outbound and a return pair")
        if self.trip_type == TripType.MULTI_CITY and count < 2:
            raise ValueError("multi-city search needs at least two origin/destination pairs")
        return self

    @classmethod
    def one_way(cls, origin: str, destination: str, departure_date: str, **kwargs) -> "SearchParams":
        return cls(
            trip_type=TripType.ONE_WAY,
            ond_pairs=[OriginDestination(origin=origin, destination=destination, departure_date=departure_date)],
            **kwargs
        )

    @classmethod
    def round_trip(
        cls, origin: str, destination: str, departure_date: str, return_date: str, **kwargs
    ) -> "SearchParams":
        """Synthesizes the return pair by swapping origin and destination."""
        return cls(
            trip_type=TripType.ROUND_TRIP,
            ond_pairs=[
                OriginDestination(origin=origin, destination=destination, departure_date=departure_date),
                OriginDestination(origin=destination, destination=origin, departure_date=return_date),
            ],
            **kwargs
        )

    @classmethod
    def multi_city(cls, pairs: List[OriginDestination], **kwargs) -> "SearchParams":
        return cls(trip_type=TripType.MULTI_CITY, ond_pairs=pairs, **kwargs)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "tripType": self.trip_type.value,
            "adults": self.pax.adt,
            "children": self.pax.chd,
            "infants": self.pax.inf,
            "cabinClass": self.cabin_class,
            "nonStop": self.non_stop,
            "preferredAirlines": list(self.preferred_airlines),
            "multiCitySegments": [],
        }

        if self.trip_type == TripType.MULTI_CITY:
            payload["multiCitySegments"] = [
                {
                    "origin": p.origin,
                    "destination": p.destination,
                    "departureDate": p.departure_date,
                }
                for p in self.ond_pairs
            ]
        else:
            first = self.ond_pairs[0]
            payload.update({
                "origin": first.origin,
                "destination": first.destination,
                "departureDate": first.departure_date,
                "returnDate": self.ond_pairs[1].departure_date if len(self.ond_pairs) > 1 else "",
            })

        return payload


# ─────────────────────────────────────────────
# OFFERS
# ─────────────────────────────────────────────

class OfferKey(NamedTuple):
    """Identity of an offer: the search run it came from plus its position."""
    search_id: str
    index: int


class Leg(BaseModel):
    model_config = ConfigDict(frozen=True)

    airline_code: str
    airline_name: Optional[str] = None
    flight_number: str
    origin: str
    destination: str
    departure_at: datetime
    arrival_at: datetime
    duration_minutes: Optional[int] = None


class Segment(BaseModel):
    """One origin/destination journey; legs ordered by flight sequence."""
    model_config = ConfigDict(frozen=True)

    origin: str
    destination: str
    legs: List[Leg]

    @property
    def departure_at(self) -> datetime:
        return self.legs[0].departure_at

    @property
    def arrival_at(self) -> datetime:
        return self.legs[-1].arrival_at

    @property
    def stops(self) -> int:
        return max(len(self.legs) - 1, 0)

    @property
    def duration_minutes(self) -> int:
        return int((self.arrival_at - self.departure_at).total_seconds() // 60)


class Fare(BaseModel):
    model_config = ConfigDict(frozen=True)

    base: float = 0.0
    tax: float = 0.0
    total: float
    currency: str


class BrandTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    brand_id: str
    name: str
    fare: Fare
    inclusions: List[str] = Field(default_factory=list)
    supplier_specific: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False


class FlightOffer(BaseModel):
    """
    One bookable itinerary. Never mutated: choosing a brand tier yields
    a derived offer via with_brand().
    """
    model_config = ConfigDict(frozen=True)

    search_id: str
    index: int
    segments: List[Segment]
    fare: Fare
    refundable: bool = False
    brands: Optional[List[BrandTier]] = None
    provider_ids: Dict[str, Any] = Field(default_factory=dict)
    pax_quantity: PaxQuantity = Field(default_factory=PaxQuantity)
    selected_brand: Optional[str] = None

    @property
    def key(self) -> OfferKey:
        return OfferKey(self.search_id, self.index)

    @property
    def stops(self) -> int:
        return max((s.stops for s in self.segments), default=0)

    @property
    def duration_minutes(self) -> int:
        return sum(s.duration_minutes for s in self.segments)

    def with_brand(self, brand: BrandTier) -> "FlightOffer":
        provider_ids = dict(self.provider_ids)
        if brand.supplier_specific:
            provider_ids["supplierSpecific"] = brand.supplier_specific
        provider_ids["brandId"] = brand.brand_id

        return self.model_copy(update={
            "fare": brand.fare,
            "provider_ids": provider_ids,
            "selected_brand": brand.brand_id,
        })

    def reference(self) -> Dict[str, Any]:
        """Opaque reference sent back to the provider for follow-up calls."""
        return {
            **self.provider_ids,
            "offerIndex": self.index,
            "fare": self.fare.model_dump(),
        }


class SearchResult(BaseModel):
    search_id: str
    params: SearchParams
    offers: List[FlightOffer]
    created_at: datetime


# ─────────────────────────────────────────────
# VALIDATION
# ─────────────────────────────────────────────

class ValidationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    offer_key: OfferKey
    sealed: str
    validated_fare: Fare
    # full validate payload incl. supplierSpecific, needed by book
    payload: Dict[str, Any] = Field(default_factory=dict)


# ─────────────────────────────────────────────
# ENRICHMENT
# ─────────────────────────────────────────────

class EnrichmentCategory(str, Enum):
    FARE_RULES = "fare-rules"
    MEALS = "meals"
    BAGGAGE = "baggage"
    BRANDED_FARES = "branded-fares"


class FareRule(BaseModel):
    category: str
    text: str


class Ancillary(BaseModel):
    type: str          # BAGGAGE / MEAL
    code: Optional[str] = None
    description: str
    price: float
    currency: str


class EnrichmentState(BaseModel):
    category: EnrichmentCategory
    ok: bool
    data: List[Any] = Field(default_factory=list)
    error: Optional[AppError] = None
