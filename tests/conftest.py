from unittest.mock import MagicMock

import pytest

from venue_reviews.config import PhotoPipelineSettings
from venue_reviews.exceptions import PlacesRequestError
from venue_reviews.models import FetchedPhoto, Venue, VenuePhotoCandidate

BIG_PHOTO = b"\xff\xd8" + b"x" * 30_000
TINY_PHOTO = b"\xff\xd8" + b"x" * 100

VENUE_ID = "3f1c2b7a-9d4e-4c1a-8b2f-6e5d4c3b2a10"
OTHER_VENUE_ID = "7a6b5c4d-3e2f-4a1b-9c8d-0e1f2a3b4c5d"


@pytest.fixture
def settings():
    return PhotoPipelineSettings(places_api_key="test-places-key")


@pytest.fixture
def ai_settings():
    return PhotoPipelineSettings(places_api_key="test-places-key", gemini_api_key="test-gemini-key")


def make_venue(venue_id=VENUE_ID, name="The Fillmore", place_id="ChIJ-fillmore"):
    return Venue(id=venue_id, name=name, google_place_id=place_id)


def make_places(candidates_by_place, photos):
    """MagicMock places client.

    ``candidates_by_place`` maps place id to a candidate list or an exception.
    ``photos`` maps a reference (or a ``(reference, max_width)`` pair) to bytes,
    a FetchedPhoto, or an exception.
    """
    places = MagicMock()

    def get_photo_candidates(place_id):
        value = candidates_by_place[place_id]
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_photo(reference, max_width):
        value = photos.get((reference, max_width), photos.get(reference))
        if value is None:
            raise PlacesRequestError("Places request failed: 404", status_code=404)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, bytes):
            return FetchedPhoto(content_type="image/jpeg", data=value)
        return value

    places.get_photo_candidates.side_effect = get_photo_candidates
    places.fetch_photo.side_effect = fetch_photo
    return places


def make_storage():
    storage = MagicMock()
    storage.public_url.side_effect = lambda key: f"https://cdn.test/storage/v1/object/public/venue-photos/{key}"
    return storage


def make_venue_store(venues):
    store = MagicMock()
    store.select_venues_needing_photos.return_value = venues
    return store


def candidates(*dims):
    return [
        VenuePhotoCandidate(reference=f"ref-{i}", width=w, height=h)
        for i, (w, h) in enumerate(dims)
    ]
