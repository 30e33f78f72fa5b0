import asyncio
import logging
from typing import Any, Dict, List

from ...cache import TTLCache
from ...places import PlacesClient
from .schemas import RemoteVenue

logger = logging.getLogger(__name__)

SEARCH_CACHE_TTL_SECONDS = 5 * 60

# Place types that describe regions rather than venues
UNWANTED_PLACE_TYPES = {
    "locality",
    "administrative_area_level_1",
    "administrative_area_level_2",
    "country",
    "political",
}

search_cache = TTLCache(ttl_seconds=SEARCH_CACHE_TTL_SECONDS)


def build_search_query(q: str = "", city: str = "") -> str:
    """Turn the raw search box + city picker into a provider text query ("" means no search)."""
    q = (q or "").strip()
    city = (city or "").strip()

    if q and city:
        return f"{q} in {city}"
    if q:
        return f"live music venues in {q}" if len(q.split()) == 1 else q
    if city:
        return f"live music venues in {city}"
    return ""


def map_place(place: Dict[str, Any]) -> RemoteVenue:
    address = place.get("formatted_address") or ""
    city = ""
    country = ""
    parts = [part.strip() for part in address.split(",")]
    if len(parts) >= 2:
        country = parts[-1]
        city = parts[-2]
    return RemoteVenue(
        id=place.get("place_id", ""),
        name=place.get("name", ""),
        city=city,
        country=country,
        address=address,
    )


def filter_and_map_places(places: List[Dict[str, Any]]) -> List[RemoteVenue]:
    return [
        map_place(place)
        for place in places
        if place.get("place_id") and not UNWANTED_PLACE_TYPES.intersection(place.get("types") or [])
    ]


async def search_venues(places: PlacesClient, q: str = "", city: str = "") -> List[RemoteVenue]:
    """Search the provider for venues, sharing results (and in-flight lookups) per query."""
    query = build_search_query(q, city)
    if not query:
        return []

    async def load() -> List[Dict[str, Any]]:
        raw = await asyncio.to_thread(places.text_search, query)
        logger.info(f"Places text search for {query!r} returned {len(raw)} results")
        return [venue.model_dump() for venue in filter_and_map_places(raw)]

    cached = await search_cache.get_or_load(f"search-venues:{query.lower()}", load)
    return [RemoteVenue(**item) for item in cached]
