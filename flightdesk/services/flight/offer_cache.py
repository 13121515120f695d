from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from flightdesk.core import config
from flightdesk.models.flight_models import EnrichmentCategory, EnrichmentState, OfferKey, SearchResult

CacheKey = Tuple[OfferKey, EnrichmentCategory]


class EnrichmentCache:
    """
    In-memory per-offer enrichment records, keyed by (offer identity, category).

    Entries expire with the offer (OFFER_TTL_MINUTES). Only successful
    lookups are stored so a failed panel can be retried.
    """

    def __init__(self, ttl_minutes: Optional[int] = None):
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else config.OFFER_TTL_MINUTES)
        self._entries: Dict[CacheKey, Dict[str, Any]] = {}

    def store(self, offer_key: OfferKey, state: EnrichmentState) -> None:
        if not state.ok:
            return

        self._entries[(offer_key, state.category)] = {
            "state": state,
            "expires_at": datetime.utcnow() + self.ttl
        }

    def get(self, offer_key: OfferKey, category: EnrichmentCategory) -> Optional[EnrichmentState]:
        entry = self._entries.get((offer_key, category))
        if not entry:
            return None

        if datetime.utcnow() > entry["expires_at"]:
            del self._entries[(offer_key, category)]
            return None

        return entry["state"]

    def clear(self) -> None:
        self._entries.clear()

    def prune(self) -> int:
        now = datetime.utcnow()
        expired = [key for key, entry in self._entries.items() if now > entry["expires_at"]]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def size(self) -> int:
        return len(self._entries)


class SearchStore:
    """Search runs kept for follow-up calls (enrichment, booking)."""

    def __init__(self, ttl_minutes: Optional[int] = None):
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else config.OFFER_TTL_MINUTES)
        self._searches: Dict[str, SearchResult] = {}

    def store(self, result: SearchResult) -> None:
        self._searches[result.search_id] = result

    def get(self, search_id: str) -> Optional[SearchResult]:
        result = self._searches.get(search_id)
        if result is None:
            return None

        if datetime.utcnow() > result.created_at + self.ttl:
            del self._searches[search_id]
            return None

        return result

    def __contains__(self, search_id: str) -> bool:
        return self.get(search_id) is not None

    def prune(self) -> int:
        """Drop expired search runs."""
        now = datetime.utcnow()
        expired = [sid for sid, result in self._searches.items() if now > result.created_at + self.ttl]
        for sid in expired:
            del self._searches[sid]
        return len(expired)
