from fastapi import APIRouter, HTTPException, Query, status

from ...config import load_pipeline_settings
from ...exceptions import ConfigurationError, PlacesApiError, PlacesRequestError
from ...logger import json_logger as logger
from ...places import PlacesClient
from .schemas import VenueSearchResponse
from .service import build_search_query, search_venues

venue_search_router = APIRouter()


def get_search_places_client() -> PlacesClient:
    settings = load_pipeline_settings()
    try:
        return PlacesClient(settings.places_api_key, settings.places_base_url, timeout=settings.request_timeout)
    except ConfigurationError as e:
        logger.error(f"Missing GOOGLE_PLACES_API_KEY env var: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Missing GOOGLE_PLACES_API_KEY")


@venue_search_router.get("/search-venues", response_model=VenueSearchResponse, tags=["Venue Search"])
async def search_venues_endpoint(
    q: str = Query("", description="Venue name or free text."),
    city: str = Query("", description="City to search in."),
):
    if not build_search_query(q, city):
        return VenueSearchResponse(results=[])

    places = get_search_places_client()
    try:
        results = await search_venues(places, q, city)
    except PlacesRequestError as e:
        logger.error(f"Google Places HTTP error: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Upstream error")
    except PlacesApiError as e:
        logger.error(f"Google Places API status: {e.status} {e.detail or ''}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Places API error")
    finally:
        places.close()

    logger.info(f"search-venues q={q!r} city={city!r} -> {len(results)} results")
    return VenueSearchResponse(results=results)
