"""
FlightDesk API - Flight Routes

Endpoints:
    POST /flights/search                                  - Flight search
    GET  /flights/{search_id}/offers/{index}/{category}   - Fare rules / meals / baggage / branded fares
    POST /flights/{search_id}/offers/{index}/book         - Select offer, start validation, open wizard
    GET  /flights/bookings                                - Booked flights
    GET  /flights/bookings/{booking_ref_id}               - Booking detail
"""

from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from flightdesk.api.v1.deps import current_workspace
from flightdesk.core.workspace import AgencyWorkspace
from flightdesk.models.flight_models import (
    EnrichmentCategory,
    FlightOffer,
    OriginDestination,
    PaxQuantity,
    SearchParams,
    TripType,
)
from flightdesk.services.booking.ticket_booking import get_booking_detail, list_bookings
from flightdesk.services.booking.wizard import BookingWizard
from flightdesk.services.flight.search import filter_offers, search_flights, sort_offers

router = APIRouter(prefix="/flights", tags=["Flights"])
logger = logging.getLogger("FlightDesk-Flights")


class SearchRequest(BaseModel):
    trip_type: TripType = TripType.ONE_WAY
    origin: Optional[str] = None
    destination: Optional[str] = None
    departure_date: Optional[str] = None
    return_date: Optional[str] = None
    segments: List[OriginDestination] = Field(default_factory=list)
    adults: int = 1
    children: int = 0
    infants: int = 0
    cabin_class: str = "Y"
    non_stop: bool = False
    preferred_airlines: List[str] = Field(default_factory=list)

    def to_params(self) -> SearchParams:
        common = {
            "pax": PaxQuantity(adt=self.adults, chd=self.children, inf=self.infants),
            "cabin_class": self.cabin_class,
            "non_stop": self.non_stop,
            "preferred_airlines": self.preferred_airlines,
        }
        if self.trip_type == TripType.MULTI_CITY:
            return SearchParams.multi_city(self.segments, **common)

        if not (self.origin and self.destination and self.departure_date):
            raise ValueError("origin, destination and departure_date are required")

        if self.trip_type == TripType.ROUND_TRIP:
            if not self.return_date:
                raise ValueError("return_date is required for a round trip")
            return SearchParams.round_trip(
                self.origin, self.destination, self.departure_date, self.return_date, **common
            )
        return SearchParams.one_way(self.origin, self.destination, self.departure_date, **common)


class BookRequest(BaseModel):
    brand_id: Optional[str] = None


def _offer_or_410(workspace: AgencyWorkspace, search_id: str, index: int) -> FlightOffer:
    result = workspace.searches.get(search_id)
    if result is None:
        raise HTTPException(410, "Flight offer expired. Please search again.")
    if not 0 <= index < len(result.offers):
        raise HTTPException(404, f"No offer #{index} in this search")
    return result.offers[index]


# --------------------------------------------------
# FLIGHT SEARCH
# --------------------------------------------------
@router.post("/search")
async def search_flights_endpoint(
    request: SearchRequest,
    sort_by: str = Query(default="price", pattern="^(price|duration)$"),
    min_price: float = Query(default=0, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    max_stops: Optional[int] = Query(default=None, ge=0),
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    try:
        params = request.to_params()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    result = await search_flights(workspace.client, params)
    workspace.prune()
    workspace.searches.store(result)

    offers = sort_offers(
        filter_offers(result.offers, min_price=min_price, max_price=max_price, max_stops=max_stops),
        by=sort_by
    )

    cheapest = None
    if offers:
        best = min(offers, key=lambda o: o.fare.total)
        cheapest = f"{best.fare.total:.2f} {best.fare.currency}"

    return jsonable_encoder({
        "success": True,
        "search_id": result.search_id,
        "count": len(offers),
        "total": len(result.offers),
        "cheapest": cheapest,
        "flights": offers,
    })


# --------------------------------------------------
# OFFER ENRICHMENT
# --------------------------------------------------
@router.get("/{search_id}/offers/{index}/{category}")
async def offer_enrichment(
    search_id: str,
    index: int,
    category: EnrichmentCategory,
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    offer = _offer_or_410(workspace, search_id, index)
    state = await workspace.enrichment.fetch(offer, category)
    return jsonable_encoder(state)


# --------------------------------------------------
# SELECT OFFER → WIZARD
# --------------------------------------------------
@router.post("/{search_id}/offers/{index}/book")
async def book_offer(
    search_id: str,
    index: int,
    request: Optional[BookRequest] = None,
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    """
    Starts background validation and opens the wizard without waiting
    for the validation to finish.
    """
    offer = _offer_or_410(workspace, search_id, index)
    params = workspace.searches.get(search_id).params

    if request is not None and request.brand_id:
        offer = await workspace.enrichment.select_brand(offer, request.brand_id)

    handle = workspace.validator.start(offer, params)
    wizard = BookingWizard(workspace.client, offer, params, handle=handle)
    wizard_id = workspace.open_wizard(wizard)

    logger.info(f"🧾 Wizard opened | id={wizard_id} | offer={index} | brand={offer.selected_brand}")

    return jsonable_encoder({"wizard_id": wizard_id, **wizard.snapshot()})


# --------------------------------------------------
# BOOKED FLIGHTS
# --------------------------------------------------
@router.get("/bookings")
async def booked_flights(workspace: AgencyWorkspace = Depends(current_workspace)):
    bookings = await list_bookings(workspace.client)
    return jsonable_encoder({"count": len(bookings), "bookings": bookings})


@router.get("/bookings/{booking_ref_id}")
async def booking_detail(
    booking_ref_id: str,
    supplier_code: Optional[int] = Query(default=None),
    workspace: AgencyWorkspace = Depends(current_workspace)
):
    detail = await get_booking_detail(workspace.client, booking_ref_id, supplier_code)
    return jsonable_encoder(detail)
