import asyncio
import logging
from typing import Iterator, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...config import load_pipeline_settings
from ...exceptions import (
    ConfigurationError,
    NoPhotosAvailableError,
    PhotoBackfillError,
    PlacesRequestError,
    ValidationError,
    VenueStoreError,
)
from ...places import PlacesClient
from .schemas import (
    BackfillRequest,
    BackfillResponse,
    CacheVenuePhotoRequest,
    CacheVenuePhotoResponse,
    FetchVenuePhotoResponse,
)
from .service import VenuePhotoBackfill, build_backfill_pipeline, validate_venue_id

router = APIRouter()
logger = logging.getLogger(__name__)

FULL_SIZE_PHOTO_WIDTH = 1200


def get_photo_pipeline() -> Iterator[VenuePhotoBackfill]:
    try:
        pipeline = build_backfill_pipeline(load_pipeline_settings())
    except ConfigurationError as e:
        logger.error(f"Photo pipeline not configured: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    try:
        yield pipeline
    finally:
        pipeline.close()


def get_places_client() -> Iterator[PlacesClient]:
    settings = load_pipeline_settings()
    try:
        places = PlacesClient(settings.places_api_key, settings.places_base_url, timeout=settings.request_timeout)
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    try:
        yield places
    finally:
        places.close()


def get_backfill_venue_id(
    venueId: Optional[str] = Query(None, description="Process only this venue (UUID)."),
    payload: Optional[BackfillRequest] = Body(None),
) -> Optional[str]:
    """The venue to backfill, from the query string or (client-side callers) the JSON body.

    Must stay ahead of the pipeline dependency: a malformed id is a 400 even
    when credentials are missing.
    """
    venue_id = venueId or (payload.venueId if payload else None)
    try:
        validate_venue_id(venue_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return venue_id


@router.post("/backfill-venue-photos", response_model=BackfillResponse, response_model_exclude_none=True, tags=["Venue Photos"])
async def backfill_venue_photos_endpoint(
    limit: int = Query(10, description="Maximum number of venues to process."),
    ai: str = Query("1", description="Set to 0 to skip AI arbitration."),
    force: str = Query("0", description="Set to 1 to replace photos venues already have."),
    venueId: Optional[str] = Depends(get_backfill_venue_id),
    pipeline: VenuePhotoBackfill = Depends(get_photo_pipeline),
):
    """
    Finds venues with a google_place_id but no photo_url (or every venue with
    force=1), picks the best provider photo for each, caches it to storage and
    links it to the venue.
    """
    logger.info(f"Received backfill request limit={limit} venueId={venueId} ai={ai} force={force}")

    try:
        return await asyncio.to_thread(
            pipeline.backfill,
            limit=limit,
            venue_id=venueId,
            use_ai=None if ai != "0" else False,
            force=force == "1",
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except VenueStoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/fetch-venue-photo", response_model=FetchVenuePhotoResponse, tags=["Venue Photos"])
async def fetch_venue_photo_endpoint(
    placeId: Optional[str] = Query(None, description="The Google Place ID of the venue."),
    places: PlacesClient = Depends(get_places_client),
):
    """Returns the provider's most relevant photo for a place as a full-size photo URL."""
    if not placeId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="placeId is required")

    try:
        photo = await asyncio.to_thread(places.first_photo, placeId)
    except PlacesRequestError as e:
        logger.error(f"Failed to fetch place details for {placeId}: {e}")
        raise HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch place details")
    except PhotoBackfillError as e:
        logger.info(f"No photo for place {placeId}: {e}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(NoPhotosAvailableError()))

    return FetchVenuePhotoResponse(
        success=True,
        photoUrl=places.photo_url(photo.reference, FULL_SIZE_PHOTO_WIDTH),
        photoReference=photo.reference,
    )


@router.post("/cache-venue-photo", response_model=CacheVenuePhotoResponse, tags=["Venue Photos"])
async def cache_venue_photo_endpoint(
    payload: CacheVenuePhotoRequest,
    pipeline: VenuePhotoBackfill = Depends(get_photo_pipeline),
):
    """Copies one provider photo into storage and links it to the venue."""
    if not payload.photoUrl or not payload.venueId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="photoUrl and venueId are required")

    try:
        public_url = await asyncio.to_thread(pipeline.cache_photo_from_url, payload.venueId, payload.photoUrl)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PlacesRequestError as e:
        logger.error(f"Failed to fetch photo for venue {payload.venueId}: {e}")
        raise HTTPException(
            status_code=e.status_code or status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch photo from Google Places API",
        )
    except PhotoBackfillError as e:
        logger.error(f"Failed to cache photo for venue {payload.venueId}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return CacheVenuePhotoResponse(success=True, photoUrl=public_url, venueId=payload.venueId)
