"""Client for the Google Places web service (details, photos, text search)."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from .exceptions import (
    ConfigurationError,
    NoPhotosAvailableError,
    PlaceNotFoundError,
    PlacesApiError,
    PlacesRequestError,
)
from .models import FetchedPhoto, VenuePhotoCandidate

logger = logging.getLogger(__name__)

PLACE_REJECTED_STATUSES = {"NOT_FOUND", "INVALID_REQUEST"}
SEARCH_OK_STATUSES = {"OK", "ZERO_RESULTS"}


class PlacesClient:
    """Thin wrapper over the Places details/photo/textsearch endpoints.

    Every call is a single blocking request bounded by ``timeout``; nothing is
    retried here.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://maps.googleapis.com/maps/api/place",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ConfigurationError("GOOGLE_PLACES_API_KEY not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    def photo_url(self, reference: str, max_width: int) -> str:
        query = urlencode({"maxwidth": max_width, "photo_reference": reference, "key": self.api_key})
        return f"{self.base_url}/photo?{query}"

    def is_photo_url(self, url: str) -> bool:
        return url.startswith(f"{self.base_url}/photo")

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PlacesRequestError(f"Places request failed: {e}") from e
        if not response.ok:
            raise PlacesRequestError(
                f"Places request failed: {response.status_code}", status_code=response.status_code
            )
        return response

    def get_place_details(self, place_id: str, fields: str = "photos") -> Dict[str, Any]:
        response = self._get(
            f"{self.base_url}/details/json",
            params={"place_id": place_id, "fields": fields, "key": self.api_key},
        )
        try:
            return response.json()
        except ValueError as e:
            raise PlacesRequestError(f"Places details returned invalid JSON: {e}") from e

    def get_photo_candidates(self, place_id: str) -> List[VenuePhotoCandidate]:
        """Return the place's photo references in provider order.

        Raises PlaceNotFoundError for stale/fake ids, NoPhotosAvailableError when
        the place exists but has no photos, PlacesApiError for any other status.
        """
        if not place_id:
            raise ValueError("place_id must be a non-empty string")

        data = self.get_place_details(place_id)
        status = data.get("status")

        if status in PLACE_REJECTED_STATUSES:
            logger.warning({"event": "places:place_rejected", "place_id": place_id, "status": status})
            raise PlaceNotFoundError(place_id, status)
        if status != "OK":
            logger.error(f"Google Places API error for place_id {place_id}: {status} {data.get('error_message', '')}")
            raise PlacesApiError(status or "UNKNOWN", data.get("error_message"))

        photos = (data.get("result") or {}).get("photos") or []
        if not photos:
            raise NoPhotosAvailableError()

        candidates = []
        for photo in photos:
            if not isinstance(photo, dict):
                continue
            candidates.append(
                VenuePhotoCandidate(
                    reference=photo.get("photo_reference") or "",
                    width=photo.get("width") if isinstance(photo.get("width"), int) else None,
                    height=photo.get("height") if isinstance(photo.get("height"), int) else None,
                )
            )
        logger.debug(f"Place {place_id} returned {len(candidates)} photo candidates")
        return candidates

    def first_photo(self, place_id: str) -> VenuePhotoCandidate:
        """The provider's most relevant photo for a place (its first one)."""
        candidates = [c for c in self.get_photo_candidates(place_id) if c.reference]
        if not candidates:
            raise NoPhotosAvailableError()
        return candidates[0]

    def fetch_photo(self, reference: str, max_width: int) -> FetchedPhoto:
        """Download photo bytes for a reference (the endpoint redirects to the image)."""
        return self.download(self.photo_url(reference, max_width))

    def download(self, url: str) -> FetchedPhoto:
        response = self._get(url)
        content_type = response.headers.get("Content-Type") or "image/jpeg"
        return FetchedPhoto(content_type=content_type, data=response.content)

    def text_search(self, query: str) -> List[Dict[str, Any]]:
        response = self._get(
            f"{self.base_url}/textsearch/json",
            params={"query": query, "key": self.api_key},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise PlacesRequestError(f"Places text search returned invalid JSON: {e}") from e

        status = data.get("status")
        if status not in SEARCH_OK_STATUSES:
            logger.error(f"Google Places API status: {status} {data.get('error_message', '')}")
            raise PlacesApiError(status or "UNKNOWN", data.get("error_message"))
        return data.get("results") or []
