from pydantic import BaseModel, Field, model_validator
from typing import List, Optional


class VenuePhotoResult(BaseModel):
    venueId: str
    venueName: str
    success: bool
    photoUrl: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _url_xor_error(self):
        if self.success and (not self.photoUrl or self.error):
            raise ValueError("a successful result carries photoUrl and no error")
        if not self.success and (not self.error or self.photoUrl):
            raise ValueError("a failed result carries error and no photoUrl")
        return self


class BackfillRequest(BaseModel):
    venueId: Optional[str] = Field(None, description="Only process this venue (UUID)")


class BackfillResponse(BaseModel):
    success: bool = True
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    message: Optional[str] = None
    results: List[VenuePhotoResult] = []


class FetchVenuePhotoResponse(BaseModel):
    success: bool
    photoUrl: str = Field(..., description="Full-resolution photo URL from the places provider")
    photoReference: str


class CacheVenuePhotoRequest(BaseModel):
    photoUrl: Optional[str] = None
    venueId: Optional[str] = None


class CacheVenuePhotoResponse(BaseModel):
    success: bool
    photoUrl: str
    venueId: str
