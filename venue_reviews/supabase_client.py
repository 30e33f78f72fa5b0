"""Supabase access for the photo pipeline: the `venues` table and the venue photo bucket."""
import logging
from typing import Any, List, Optional

from supabase import Client, create_client

from .config import SUPABASE_KEY, SUPABASE_URL
from .exceptions import (
    ConfigurationError,
    PublicUrlMissingError,
    StorageUploadError,
    VenueStoreError,
    VenueUpdateError,
)
from .models import Venue

logger = logging.getLogger(__name__)

VENUES_TABLE = "venues"

_client: Optional[Client] = None


def get_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    """Return a process-wide Supabase client, creating it on first use."""
    global _client
    if url or key:
        if not url or not key:
            raise ConfigurationError("Supabase is not configured. Missing SUPABASE_URL and/or SUPABASE_KEY.")
        return create_client(url, key)
    if _client is None:
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise ConfigurationError("Supabase is not configured. Missing SUPABASE_URL and/or SUPABASE_KEY.")
        _client = create_client(SUPABASE_URL, SUPABASE_KEY)
        logging.info("Supabase client initialized.")
    return _client


class VenueStore:
    def __init__(self, client: Client):
        self.client = client

    def select_venues_needing_photos(
        self,
        limit: int = 10,
        venue_id: Optional[str] = None,
        include_photographed: bool = False,
    ) -> List[Venue]:
        """Venues that have a place id, ordered by name.

        Without ``include_photographed`` only venues lacking ``photo_url`` are returned.
        ``venue_id`` narrows to one venue and ignores ``limit``.
        """
        query = (
            self.client.table(VENUES_TABLE)
            .select("id, name, google_place_id, photo_url")
            .not_.is_("google_place_id", "null")
            .order("name")
        )
        if not include_photographed:
            query = query.is_("photo_url", "null")
        if venue_id:
            query = query.eq("id", venue_id)
        else:
            query = query.limit(limit)

        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error fetching venues: {e}")
            raise VenueStoreError(f"Failed to fetch venues: {e}") from e

        return [Venue(**row) for row in (response.data or [])]

    def update_photo_url(self, venue_id: str, photo_url: str) -> None:
        try:
            self.client.table(VENUES_TABLE).update({"photo_url": photo_url}).eq("id", venue_id).execute()
        except Exception as e:
            logger.error(f"Error updating venue photo_url for {venue_id}: {e}")
            raise VenueUpdateError(str(e)) from e


class PhotoStorage:
    def __init__(self, client: Client, bucket: str = "venue-photos"):
        self.client = client
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Upload without overwriting; an existing object at ``path`` is an error."""
        logger.info({
            "event": "photo_storage:upload",
            "bucket": self.bucket,
            "path": path,
            "content_type": content_type,
            "size": len(data),
        })
        try:
            response: Any = self.client.storage.from_(self.bucket).upload(
                path,
                data,
                file_options={"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            logger.error(f"Error uploading to Supabase Storage: {e}")
            raise StorageUploadError(str(e)) from e

        # Older storage clients report failures on the response instead of raising
        error = response.get("error") if isinstance(response, dict) else getattr(response, "error", None)
        if error:
            logger.error(f"Error uploading to Supabase Storage: {error}")
            raise StorageUploadError(str(error))

    def public_url(self, path: str) -> str:
        url = self.client.storage.from_(self.bucket).get_public_url(path)
        if isinstance(url, dict):
            url = url.get("publicUrl") or url.get("publicURL")
        if not url:
            raise PublicUrlMissingError()
        return url
