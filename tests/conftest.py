import sys
from pathlib import Path
import copy

import pytest

# 1. Force the root directory into sys.path
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# 2. Mock environment variables for testing
import os
os.environ["FLIGHTDESK_API_BASE_URL"] = "http://backend.test"
os.environ["FLIGHTDESK_DEFAULT_CURRENCY"] = "PKR"

from flightdesk.core.session import AgencySession
from flightdesk.core.workspace import clear_workspaces
from flightdesk.models.flight_models import SearchParams
from flightdesk.services.flight.mappers.mapper import map_search_offer
from flightdesk.services.integration.backend.client import BackendClient


# KHI → JED, PIA, 185000 PKR, one adult
RAW_OFFER = {
    "fareSourceCode": "FSC-001",
    "supplierCode": 2,
    "refundable": True,
    "paxQuantity": {"adt": 1, "chd": 0, "inf": 0},
    "fare": {"baseFare": 160000, "tax": 25000, "total": 185000, "currency": "PKR"},
    "ondPairs": [
        {
            "origin": "KHI",
            "destination": "JED",
            "segments": [
                {
                    "airlineDetails": {"airlineCode": "PK", "airlineName": "PIA"},
                    "flightNumber": "741",
                    "origin": "KHI",
                    "destination": "JED",
                    "departureDateTime": "2026-12-01T03:00:00",
                    "arrivalDateTime": "2026-12-01T06:30:00",
                    "journeyDuration": 270,
                }
            ],
        }
    ],
}


@pytest.fixture
def raw_offer():
    return copy.deepcopy(RAW_OFFER)


@pytest.fixture
def session():
    return AgencySession(access_token="token-abc", agency_id="42", agency_name="Saeed Travels")


@pytest.fixture
def search_params():
    return SearchParams.one_way("KHI", "JED", "2026-12-01")


@pytest.fixture
def make_offer(raw_offer):
    """Factory: make_offer(total=..., brands=..., adt=..., index=...)"""
    def _make(total=185000, brands=None, adt=1, chd=0, inf=0, index=0, search_id="search-1"):
        raw = copy.deepcopy(raw_offer)
        raw["fare"]["total"] = total
        raw["paxQuantity"] = {"adt": adt, "chd": chd, "inf": inf}
        if brands is not None:
            raw["brands"] = brands
        return map_search_offer(raw, search_id, index)

    return _make


@pytest.fixture
def offer(make_offer):
    return make_offer()


@pytest.fixture
def backend(session):
    """Factory: backend(handler) → BackendClient talking to an httpx.MockTransport."""
    import httpx

    def _make(handler):
        return BackendClient(session, base_url="http://backend.test", transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture(autouse=True)
def _reset_workspaces():
    yield
    clear_workspaces()
