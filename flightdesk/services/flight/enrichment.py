"""
On-demand offer enrichment: fare rules, meals, baggage, branded fares.

Each category is fetched independently and cached per offer identity.
A failing category becomes an error state for that panel only.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from flightdesk.core.errors import BackendError, EnrichmentError
from flightdesk.models.flight_models import EnrichmentCategory, EnrichmentState, FlightOffer
from flightdesk.services.flight.ancillary_mapper import (
    map_baggage_options,
    map_fare_rules,
    map_meal_options,
)
from flightdesk.services.flight.mappers.mapper import map_brand_tiers
from flightdesk.services.flight.offer_cache import EnrichmentCache
from flightdesk.services.integration.backend.client import BackendClient

logger = logging.getLogger("FlightDesk-Enrichment")


def _parse(category: EnrichmentCategory, raw: Any, offer: FlightOffer) -> List[Any]:
    currency = offer.fare.currency
    if category == EnrichmentCategory.FARE_RULES:
        return map_fare_rules(raw)
    if category == EnrichmentCategory.MEALS:
        return map_meal_options(raw, currency)
    if category == EnrichmentCategory.BAGGAGE:
        return map_baggage_options(raw, currency)
    if category == EnrichmentCategory.BRANDED_FARES:
        brands = raw.get("brands") if isinstance(raw, dict) else raw
        return map_brand_tiers(brands, currency)
    raise ValueError(f"Unknown enrichment category: {category}")


class OfferEnrichment:
    def __init__(self, client: BackendClient, cache: Optional[EnrichmentCache] = None):
        self.client = client
        self.cache = cache if cache is not None else EnrichmentCache()

    async def fetch(self, offer: FlightOffer, category: EnrichmentCategory) -> EnrichmentState:
        cached = self.cache.get(offer.key, category)
        if cached is not None:
            return cached

        # inline brands need no round trip
        if category == EnrichmentCategory.BRANDED_FARES and offer.brands:
            state = EnrichmentState(category=category, ok=True, data=list(offer.brands))
            self.cache.store(offer.key, state)
            return state

        try:
            data = await self._lookup(offer, category)
        except EnrichmentError as e:
            logger.warning(f"⚠️ {category.value} unavailable | offer={offer.index} | {e.message}")
            return EnrichmentState(category=category, ok=False, error=e.to_app_error())

        state = EnrichmentState(category=category, ok=True, data=data)
        self.cache.store(offer.key, state)
        return state

    async def _lookup(self, offer: FlightOffer, category: EnrichmentCategory) -> List[Any]:
        try:
            raw = await self.client.post(
                f"/api/flights/{category.value}",
                {"flight": offer.reference()},
                service=category.value
            )
        except BackendError as e:
            raise EnrichmentError(category.value, e.message) from e

        try:
            return _parse(category, raw, offer)
        except (ValueError, TypeError) as e:
            raise EnrichmentError(category.value, f"Unreadable {category.value} data: {e}") from e

    async def fare_rules(self, offer: FlightOffer) -> EnrichmentState:
        return await self.fetch(offer, EnrichmentCategory.FARE_RULES)

    async def meals(self, offer: FlightOffer) -> EnrichmentState:
        return await self.fetch(offer, EnrichmentCategory.MEALS)

    async def baggage(self, offer: FlightOffer) -> EnrichmentState:
        return await self.fetch(offer, EnrichmentCategory.BAGGAGE)

    async def branded_fares(self, offer: FlightOffer) -> EnrichmentState:
        return await self.fetch(offer, EnrichmentCategory.BRANDED_FARES)

    async def fetch_all(
        self,
        offer: FlightOffer,
        categories: Optional[Iterable[EnrichmentCategory]] = None
    ) -> Dict[EnrichmentCategory, EnrichmentState]:
        """Fetch categories concurrently; SessionExpiredError still propagates."""
        wanted = list(categories or EnrichmentCategory)
        states = await asyncio.gather(*(self.fetch(offer, c) for c in wanted))
        return dict(zip(wanted, states))

    async def select_brand(self, offer: FlightOffer, brand_id: str) -> FlightOffer:
        """
        Derived offer carrying the chosen tier's fare and supplier payload.
        The default tier leaves the offer as searched.
        """
        state = await self.branded_fares(offer)
        if not state.ok:
            raise EnrichmentError(
                EnrichmentCategory.BRANDED_FARES.value,
                state.error.message if state.error else "Branded fares unavailable"
            )

        for tier in state.data:
            if tier.brand_id == brand_id:
                if tier.is_default:
                    return offer
                logger.info(
                    f"🏷️ Brand selected | offer={offer.index} | {tier.name} | "
                    f"{tier.fare.total} {tier.fare.currency}"
                )
                return offer.with_brand(tier)

        raise EnrichmentError(EnrichmentCategory.BRANDED_FARES.value, f"Unknown fare brand: {brand_id}")
