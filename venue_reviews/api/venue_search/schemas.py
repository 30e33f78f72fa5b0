from pydantic import BaseModel
from typing import List


class RemoteVenue(BaseModel):
    id: str
    name: str
    city: str = ""
    country: str = ""
    address: str = ""


class VenueSearchResponse(BaseModel):
    results: List[RemoteVenue] = []
