"""
Flight search service - agency backend integration.
"""
from datetime import datetime
from typing import List, Optional
import logging
import uuid

from flightdesk.core.errors import BackendError, SearchError
from flightdesk.models.flight_models import FlightOffer, SearchParams, SearchResult
from flightdesk.services.flight.mappers.mapper import map_search_offer
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-FlightSearch")


async def search_flights(client: BackendClient, params: SearchParams) -> SearchResult:
    """
    POST /api/flights/search

    Raises SearchError with the upstream message when the call fails or the
    payload is unusable. Never retries; the user has to re-submit.
    SessionExpiredError propagates unchanged.
    """
    route = " → ".join(f"{p.origin}-{p.destination}" for p in params.ond_pairs)

    try:
        response = await client.post("/api/flights/search", params.to_payload(), service="search")
    except BackendError as e:
        logger.warning(f"❌ Flight search failed | {route} | {e.message}")
        raise SearchError(e.message) from e

    raw_flights = response.get("flights") if isinstance(response, dict) else None
    if not isinstance(raw_flights, list):
        logger.error(f"❌ Flight search returned malformed data | {route} | type={type(response).__name__}")
        raise SearchError("Search returned an unexpected response. Please try again.")

    search_id = uuid.uuid4().hex
    offers: List[FlightOffer] = []

    try:
        for index, raw in enumerate(raw_flights):
            offers.append(map_search_offer(raw, search_id, index))
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        logger.error(f"❌ Flight search offer #{len(offers)} malformed | {route} | {e}")
        raise SearchError(f"Search returned malformed flight data: {e}") from e

    logger.info(f"✈️ Flight search OK | {route} | offers={len(offers)}")

    return SearchResult(
        search_id=search_id,
        params=params,
        offers=offers,
        created_at=datetime.utcnow(),
    )


def sort_offers(offers: List[FlightOffer], by: str = "price") -> List[FlightOffer]:
    if by == "price":
        return sorted(offers, key=lambda o: o.fare.total)
    if by == "duration":
        return sorted(offers, key=lambda o: o.duration_minutes)
    raise ValueError(f"Unknown sort key: {by}")


def filter_offers(
    offers: List[FlightOffer],
    min_price: float = 0,
    max_price: Optional[float] = None,
    max_stops: Optional[int] = None
) -> List[FlightOffer]:
    result = []
    for o in offers:
        if o.fare.total < min_price:
            continue
        if max_price is not None and o.fare.total > max_price:
            continue
        if max_stops is not None and o.stops > max_stops:
            continue
        result.append(o)
    return result
