"""
Ancillary mapper - meals, baggage and fare rules.
"""
from typing import Any, List

from flightdesk.models.flight_models import Ancillary, FareRule


def _options(raw: Any, *keys: str) -> List[Any]:
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, dict):
        return []
    for key in keys:
        value = raw.get(key)
        if isinstance(value, list):
            return value
    return []


def _map_ancillaries(items: List[Any], kind: str, currency: str) -> List[Ancillary]:
    ancillaries: List[Ancillary] = []

    for s in items:
        if not isinstance(s, dict):
            continue

        ancillaries.append(
            Ancillary(
                type=kind,
                code=s.get("code") or s.get("ssrCode"),
                description=s.get("description") or s.get("name", ""),
                price=float(s.get("amount", s.get("price", 0)) or 0),
                currency=s.get("currency") or currency,
            )
        )

    return ancillaries


def map_meal_options(raw: Any, currency: str) -> List[Ancillary]:
    """
    Meal lookup payload → Ancillary list.
    Unexpected input safely maps to an empty list.
    """
    return _map_ancillaries(_options(raw, "meals", "mealOptions"), "MEAL", currency)


def map_baggage_options(raw: Any, currency: str) -> List[Ancillary]:
    return _map_ancillaries(_options(raw, "baggage", "baggageOptions"), "BAGGAGE", currency)


def map_fare_rules(raw: Any) -> List[FareRule]:
    rules: List[FareRule] = []

    for r in _options(raw, "fareRules", "rules"):
        if not isinstance(r, dict):
            continue

        text = r.get("text") or r.get("ruleText") or ""
        if not text:
            continue

        rules.append(FareRule(
            category=r.get("category") or r.get("title") or "GENERAL",
            text=text,
        ))

    return rules
