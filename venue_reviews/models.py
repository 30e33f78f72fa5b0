from typing import Optional
from pydantic import BaseModel, Field


class Venue(BaseModel):
    """The slice of a `venues` row the photo pipeline reads and writes."""
    id: str
    name: str
    google_place_id: Optional[str] = None
    photo_url: Optional[str] = None


class VenuePhotoCandidate(BaseModel):
    """A provider photo reference that has not been fetched yet."""
    reference: str
    width: Optional[int] = None
    height: Optional[int] = None
    # Derived by the ranking pass, never persisted
    rank_score: Optional[int] = None


class FetchedPhoto(BaseModel):
    content_type: str = "image/jpeg"
    data: bytes


class AiCandidateSlot(BaseModel):
    """A labelled thumbnail offered to the vision model."""
    label: str = Field(..., min_length=1, max_length=1)
    mime_type: str
    image_bytes: bytes
    source_reference: str


class AiSelection(BaseModel):
    """Outcome of one arbitration attempt. `label is None` means the model had no usable opinion."""
    attempted: bool = False
    label: Optional[str] = None
    source_reference: Optional[str] = None
    reason: Optional[str] = None

    @property
    def selected(self) -> bool:
        return self.label is not None


class PickedPhoto(BaseModel):
    image_bytes: bytes
    content_type: str
    source_reference: str
    attempts: int = 1
