import os
import dotenv
from typing import List, Optional
from pydantic import BaseModel, Field

# Load environment variables from .env file
dotenv.load_dotenv()

# Database / Storage Configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
VENUE_PHOTOS_BUCKET = os.getenv("VENUE_PHOTOS_BUCKET", "venue-photos")

# Google Places Configuration
GOOGLE_PLACES_API_KEY = os.getenv("GOOGLE_PLACES_API_KEY") or os.getenv("GOOGLE_MAPS_API_KEY")
PLACES_BASE_URL = os.getenv("PLACES_BASE_URL", "https://maps.googleapis.com/maps/api/place")

# Google AI Configuration
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

# Outbound HTTP
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))

# Redis Cache Configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_CACHE_ENABLED = os.getenv("REDIS_CACHE_ENABLED", "false").lower() == "true"

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"
LOG_FILE_PATH = os.getenv("LOG_FILE", "venue_reviews.log")

# CORS Origins
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    ).split(",")
    if origin.strip()
]


class PhotoPipelineSettings(BaseModel):
    """Credentials and tunables for the venue photo pipeline.

    Passed explicitly into the pipeline so nothing downstream reads the
    environment on its own.
    """

    places_api_key: Optional[str] = None
    places_base_url: str = "https://maps.googleapis.com/maps/api/place"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    bucket: str = "venue-photos"
    min_photo_bytes: int = Field(25_000, gt=0, description="Payloads below this are treated as icons/tiles")
    max_ranked_candidates: int = Field(8, gt=0)
    max_ai_candidates: int = Field(4, ge=2, le=4)
    thumbnail_max_width: int = Field(640, gt=0)
    photo_max_width: int = Field(1200, gt=0)
    request_timeout: float = Field(15.0, gt=0)

    @property
    def ai_configured(self) -> bool:
        return bool(self.gemini_api_key)


def load_pipeline_settings() -> PhotoPipelineSettings:
    """Build pipeline settings from the environment-backed constants above."""
    return PhotoPipelineSettings(
        places_api_key=GOOGLE_PLACES_API_KEY,
        places_base_url=PLACES_BASE_URL,
        gemini_api_key=GEMINI_API_KEY,
        gemini_model=GEMINI_MODEL,
        bucket=VENUE_PHOTOS_BUCKET,
        request_timeout=REQUEST_TIMEOUT_SECONDS,
    )
