import httpx
import pytest

from flightdesk.core.errors import EnrichmentError, SessionExpiredError
from flightdesk.models.flight_models import EnrichmentCategory
from flightdesk.services.flight.enrichment import OfferEnrichment


class LookupBackend:
    """Serves enrichment lookups; categories listed in `failing` answer 500."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.paths = []

    def __call__(self, request: httpx.Request):
        self.paths.append(request.url.path)
        category = request.url.path.rsplit("/", 1)[-1]

        if category in self.failing:
            return httpx.Response(500, json={"detail": f"{category} service down"})
        if category == "meals":
            return httpx.Response(200, json={"meals": [
                {"code": "VGML", "description": "Vegetarian", "amount": 1500},
            ]})
        if category == "baggage":
            return httpx.Response(200, json=[{"code": "XB20", "name": "Extra 20kg", "price": 9000}])
        if category == "fare-rules":
            return httpx.Response(200, json={"fareRules": [
                {"category": "CANCELLATION", "text": "Non-refundable after departure"},
                {"category": "EMPTY", "text": ""},
            ]})
        if category == "branded-fares":
            return httpx.Response(200, json={"brands": [
                {"brandId": "ECO", "brandName": "Saver", "total": 185000},
                {"brandId": "FLEX", "brandName": "Flex", "total": 199000},
            ]})
        return httpx.Response(404)


@pytest.mark.asyncio
async def test_lookup_is_cached_per_offer(backend, offer):
    fake = LookupBackend()
    enrichment = OfferEnrichment(backend(fake))

    first = await enrichment.meals(offer)
    second = await enrichment.meals(offer)

    assert first.ok is True
    assert first.data[0].code == "VGML"
    assert first.data[0].currency == "PKR"
    assert second is first
    assert fake.paths == ["/api/flights/meals"]


@pytest.mark.asyncio
async def test_categories_fail_independently(backend, offer):
    fake = LookupBackend(failing={"baggage"})
    enrichment = OfferEnrichment(backend(fake))

    states = await enrichment.fetch_all(offer)

    assert states[EnrichmentCategory.BAGGAGE].ok is False
    assert states[EnrichmentCategory.BAGGAGE].error.code == "ENRICHMENT_FAILED"
    assert states[EnrichmentCategory.MEALS].ok is True
    assert [r.category for r in states[EnrichmentCategory.FARE_RULES].data] == ["CANCELLATION"]
    assert len(states[EnrichmentCategory.BRANDED_FARES].data) == 2


@pytest.mark.asyncio
async def test_failed_category_is_retried(backend, offer):
    fake = LookupBackend(failing={"baggage"})
    enrichment = OfferEnrichment(backend(fake))

    assert (await enrichment.baggage(offer)).ok is False

    fake.failing.clear()
    state = await enrichment.baggage(offer)

    assert state.ok is True
    assert state.data[0].price == 9000
    assert fake.paths.count("/api/flights/baggage") == 2


@pytest.mark.asyncio
async def test_inline_brands_need_no_call(backend, make_offer):
    fake = LookupBackend()
    offer = make_offer(brands=[{"brandId": "ECO", "total": 185000}, {"brandId": "FLEX", "total": 199000}])
    enrichment = OfferEnrichment(backend(fake))

    state = await enrichment.branded_fares(offer)

    assert [b.brand_id for b in state.data] == ["ECO", "FLEX"]
    assert fake.paths == []


@pytest.mark.asyncio
async def test_select_brand(backend, offer):
    enrichment = OfferEnrichment(backend(LookupBackend()))

    flex = await enrichment.select_brand(offer, "FLEX")
    default = await enrichment.select_brand(offer, "ECO")

    assert flex.fare.total == 199000
    assert flex.selected_brand == "FLEX"
    assert default is offer

    with pytest.raises(EnrichmentError):
        await enrichment.select_brand(offer, "FIRST")


@pytest.mark.asyncio
async def test_session_expiry_is_not_a_panel_error(backend, offer):
    enrichment = OfferEnrichment(backend(lambda request: httpx.Response(401)))

    with pytest.raises(SessionExpiredError):
        await enrichment.fare_rules(offer)
