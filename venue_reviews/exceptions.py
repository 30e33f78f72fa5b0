"""Custom exceptions for the Venue Reviews service."""
from typing import Optional


class VenueReviewsError(Exception):
    """Base class for every error raised by this package."""
    pass


class ConfigurationError(VenueReviewsError):
    """Raised when a required credential or setting is missing."""
    pass


class ValidationError(VenueReviewsError):
    """Raised when caller input is malformed (e.g. a venue id that is not a UUID)."""
    pass


class PhotoBackfillError(VenueReviewsError):
    """Per-venue failure inside the photo pipeline. The message is the reason reported to callers."""
    pass


class PlacesRequestError(PhotoBackfillError):
    """The places provider could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PlaceNotFoundError(PhotoBackfillError):
    """The provider rejected the place id (NOT_FOUND / INVALID_REQUEST), usually stale or fake data."""

    def __init__(self, place_id: str, status: str):
        super().__init__(
            f"Invalid place_id: {status}. This venue likely has a fake place_id from test data."
        )
        self.place_id = place_id
        self.status = status


class PlacesApiError(PhotoBackfillError):
    """The provider answered with a status other than OK, NOT_FOUND or INVALID_REQUEST."""

    def __init__(self, status: str, detail: Optional[str] = None):
        super().__init__(f"Google API error: {status}")
        self.status = status
        self.detail = detail


class NoPhotosAvailableError(PhotoBackfillError):
    def __init__(self):
        super().__init__("No photos available for this venue")


class NoUsablePhotoError(PhotoBackfillError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Failed to fetch a usable photo (tried {attempts} candidates)"
        )
        self.attempts = attempts


class StorageUploadError(PhotoBackfillError):
    def __init__(self, detail: str):
        super().__init__(f"Failed to upload photo: {detail}")


class PublicUrlMissingError(PhotoBackfillError):
    def __init__(self):
        super().__init__("Failed to get public URL")


class VenueUpdateError(PhotoBackfillError):
    """The photo is stored but could not be linked to the venue record."""

    def __init__(self, detail: str):
        super().__init__(f"Failed to update venue: {detail}")


class VenueStoreError(VenueReviewsError):
    """Selecting venues from the record store failed; aborts the whole invocation."""
    pass
