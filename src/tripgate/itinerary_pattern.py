"""
Helpers for a product's itinerary pattern.

A pattern is a JSON list of day entries:

    {"day": 1, "type": "Embarkation", "location": "Barcelona", "country": "ES",
     "countryName": "Spain", "currency": "EUR", "language": "es",
     "departure": "18:00"}

Stored patterns come from the back office and are not always clean, so the
helpers here tolerate strings, a {"days": [...]} wrapper and malformed entries.
"""
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

TYPE_CRUISING = 'Cruising'

PATTERN_FIELDS = ('location', 'country', 'currency', 'language', 'arrival', 'departure', 'time')


def normalize_pattern(raw: Any) -> list[dict[str, Any]]:
    """Return the valid day entries sorted by day. Invalid input yields []."""
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Itinerary pattern is not valid JSON; ignoring it")
            return []
    if isinstance(raw, dict):
        raw = raw.get('days', [])
    if not isinstance(raw, list):
        return []

    entries = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            day = int(item.get('day'))
        except (TypeError, ValueError):
            continue
        if day < 1 or not item.get('type'):
            continue
        entry = {'day': day, 'type': str(item['type'])}
        for key in PATTERN_FIELDS:
            entry[key] = item.get(key) or None
        entry['countryName'] = item.get('countryName') or None
        entries.append(entry)

    entries.sort(key=lambda e: e['day'])
    return entries


def extract_destinations(raw: Any) -> list[str]:
    """Ordered, de-duplicated port names (sea days skipped)."""
    destinations: list[str] = []
    for entry in normalize_pattern(raw):
        location = entry['location']
        if entry['type'] == TYPE_CRUISING or not location:
            continue
        if location not in destinations:
            destinations.append(location)
    return destinations


def extract_visited_countries(raw: Any) -> dict[str, str]:
    """Country code -> display name, in first-visit order."""
    countries: dict[str, str] = {}
    for entry in normalize_pattern(raw):
        code = entry['country']
        if entry['type'] == TYPE_CRUISING or not code or code in countries:
            continue
        countries[code] = entry['countryName'] or code
    return countries
