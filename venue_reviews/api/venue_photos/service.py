import logging
import re
import time
from typing import Iterator, List, Optional, Tuple

from ...config import PhotoPipelineSettings
from ...exceptions import (
    ConfigurationError,
    NoUsablePhotoError,
    PhotoBackfillError,
    PlacesRequestError,
    ValidationError,
    VenueUpdateError,
)
from ...models import AiCandidateSlot, AiSelection, FetchedPhoto, PickedPhoto, Venue, VenuePhotoCandidate
from ...photo_ranker import MIN_AI_OPTIONS, GeminiPhotoRanker
from ...places import PlacesClient
from ...supabase_client import PhotoStorage, VenueStore, get_supabase_client
from .schemas import BackfillResponse, VenuePhotoResult

logger = logging.getLogger(__name__)

LANDSCAPE_BONUS = 1_000_000_000
WIDTH_BONUS = 10_000

# RFC 4122 versions 1-5 only, matching the ids Supabase hands out
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid(value: str) -> bool:
    return bool(value) and bool(_UUID_RE.match(value))


def validate_venue_id(venue_id: Optional[str]) -> None:
    if venue_id and not is_uuid(venue_id):
        raise ValidationError(f'venueId must be a UUID. Received: "{venue_id}"')


def score_candidate(candidate: VenuePhotoCandidate, original_index: int) -> int:
    """Landscape first, then pixel area, then width; provider order breaks ties.

    Candidates without dimensions are treated as landscape with zero area.
    """
    width = candidate.width if candidate.width and candidate.width > 0 else 0
    height = candidate.height if candidate.height and candidate.height > 0 else 0
    known = width > 0 and height > 0
    is_landscape = width >= height if known else True
    area = width * height if known else 0
    return (LANDSCAPE_BONUS if is_landscape else 0) + area + width * WIDTH_BONUS - original_index


def rank_candidates(candidates: List[VenuePhotoCandidate], top_k: int = 8) -> List[VenuePhotoCandidate]:
    """Best-first copy of ``candidates`` capped at ``top_k``. Pure; inputs are not mutated."""
    scored = [
        candidate.model_copy(update={"rank_score": score_candidate(candidate, idx)})
        for idx, candidate in enumerate(candidates)
        if candidate.reference
    ]
    scored.sort(key=lambda c: c.rank_score, reverse=True)
    return scored[:top_k]


def attempt_order(ranked: List[VenuePhotoCandidate], chosen_reference: Optional[str] = None) -> List[str]:
    """References to try in order: the AI pick (if any) first, then the rest by rank."""
    rest = [c.reference for c in ranked if c.reference != chosen_reference]
    return [chosen_reference, *rest] if chosen_reference else rest


def build_storage_key(venue_id: str, content_type: str) -> str:
    extension = "png" if "png" in (content_type or "").lower() else "jpg"
    return f"{venue_id}-{time.time_ns()}.{extension}"


class VenuePhotoBackfill:
    """Discovers, ranks, optionally AI-arbitrates, fetches and stores one hero photo per venue.

    Venues are processed one at a time and every step within a venue runs in
    sequence. A failure for one venue is recorded in its result and never stops
    the batch.
    """

    def __init__(
        self,
        settings: PhotoPipelineSettings,
        places: PlacesClient,
        storage: PhotoStorage,
        venues: VenueStore,
        ranker: Optional[GeminiPhotoRanker] = None,
    ):
        self.settings = settings
        self.places = places
        self.storage = storage
        self.venues = venues
        self.ranker = ranker

    def close(self) -> None:
        self.places.close()

    # --- Batch entry point ---

    def backfill(
        self,
        limit: int = 10,
        venue_id: Optional[str] = None,
        use_ai: Optional[bool] = None,
        force: bool = False,
    ) -> BackfillResponse:
        validate_venue_id(venue_id)
        if limit < 1:
            raise ValidationError(f"limit must be a positive integer. Received: {limit}")

        if use_ai is None:
            use_ai = self.settings.ai_configured
        use_ai = use_ai and self.ranker is not None

        venues = self.venues.select_venues_needing_photos(
            limit=limit, venue_id=venue_id, include_photographed=force
        )
        logger.info({
            "event": "backfill:start",
            "venues": len(venues),
            "limit": limit,
            "venue_id": venue_id,
            "use_ai": use_ai,
            "force": force,
        })
        if not venues:
            return BackfillResponse(success=True, processed=0, message="No venues need photo backfilling")

        runnable = [venue for venue in venues if venue.google_place_id]
        results = [self.process_venue(venue, use_ai=use_ai) for venue in runnable]

        successful = sum(1 for r in results if r.success)
        summary = BackfillResponse(
            success=True,
            processed=len(results),
            successful=successful,
            failed=len(results) - successful,
            skipped=len(venues) - len(runnable),
            results=results,
        )
        logger.info({
            "event": "backfill:done",
            "processed": summary.processed,
            "successful": summary.successful,
            "failed": summary.failed,
            "skipped": summary.skipped,
        })
        return summary

    # --- Per venue ---

    def process_venue(self, venue: Venue, use_ai: bool = False) -> VenuePhotoResult:
        try:
            photo_url = self._process_venue(venue, use_ai)
        except PhotoBackfillError as e:
            logger.warning({"event": "backfill:venue_failed", "venue_id": venue.id, "error": str(e)})
            return VenuePhotoResult(venueId=venue.id, venueName=venue.name, success=False, error=str(e))
        except Exception as e:
            logger.exception(f"Error processing venue {venue.id}")
            return VenuePhotoResult(
                venueId=venue.id, venueName=venue.name, success=False, error=str(e) or "Unknown error"
            )

        logger.info({"event": "backfill:venue_done", "venue_id": venue.id, "photo_url": photo_url})
        return VenuePhotoResult(venueId=venue.id, venueName=venue.name, success=True, photoUrl=photo_url)

    def _process_venue(self, venue: Venue, use_ai: bool) -> str:
        candidates = self.places.get_photo_candidates(venue.google_place_id)
        ranked = rank_candidates(candidates, self.settings.max_ranked_candidates)

        chosen_reference = None
        if use_ai and len(ranked) > 1:
            selection = self.arbitrate(venue, ranked)
            chosen_reference = selection.source_reference

        picked = self.pick_photo(attempt_order(ranked, chosen_reference))
        logger.info({
            "event": "backfill:photo_picked",
            "venue_id": venue.id,
            "reference": picked.source_reference[:24],
            "attempts": picked.attempts,
            "ai_pick": picked.source_reference == chosen_reference,
        })
        return self.persist_photo(venue.id, picked)

    # --- AI arbitration ---

    def collect_ai_slots(self, ranked: List[VenuePhotoCandidate]) -> List[AiCandidateSlot]:
        """Thumbnails for the top candidates; failed or undersized fetches are skipped, not fatal."""
        slots = []
        for idx, candidate in enumerate(ranked[: self.settings.max_ai_candidates]):
            label = chr(ord("A") + idx)
            try:
                thumb = self.places.fetch_photo(candidate.reference, self.settings.thumbnail_max_width)
            except PlacesRequestError as e:
                logger.debug(f"Thumbnail fetch failed for option {label}: {e}")
                continue
            if len(thumb.data) < self.settings.min_photo_bytes:
                logger.debug(f"Thumbnail for option {label} too small ({len(thumb.data)} bytes)")
                continue
            slots.append(
                AiCandidateSlot(
                    label=label,
                    mime_type=thumb.content_type,
                    image_bytes=thumb.data,
                    source_reference=candidate.reference,
                )
            )
        return slots

    def arbitrate(self, venue: Venue, ranked: List[VenuePhotoCandidate]) -> AiSelection:
        if self.ranker is None:
            return AiSelection()
        try:
            slots = self.collect_ai_slots(ranked)
        except Exception as e:
            logger.warning({"event": "backfill:ai_slots_failed", "venue_id": venue.id, "error": str(e)})
            return AiSelection()
        if len(slots) < MIN_AI_OPTIONS:
            logger.info(f"Not enough viable thumbnails for AI arbitration of {venue.name!r} ({len(slots)})")
            return AiSelection()
        return self.ranker.choose(venue.name, slots)

    # --- Fetch, validate, persist ---

    def _attempts(self, references: List[str]) -> Iterator[Tuple[str, Optional[FetchedPhoto]]]:
        for reference in references:
            try:
                fetched = self.places.fetch_photo(reference, self.settings.photo_max_width)
            except PlacesRequestError as e:
                logger.debug(f"Photo fetch failed for {reference[:24]}...: {e}")
                yield reference, None
                continue
            if len(fetched.data) < self.settings.min_photo_bytes:
                logger.debug(f"Photo {reference[:24]}... too small ({len(fetched.data)} bytes)")
                yield reference, None
                continue
            yield reference, fetched

    def pick_photo(self, references: List[str]) -> PickedPhoto:
        """First reference whose full-size bytes download and clear the size gate."""
        tried = 0
        for reference, fetched in self._attempts(references):
            tried += 1
            if fetched is not None:
                return PickedPhoto(
                    image_bytes=fetched.data,
                    content_type=fetched.content_type,
                    source_reference=reference,
                    attempts=tried,
                )
        raise NoUsablePhotoError(tried)

    def store_photo(self, venue_id: str, image_bytes: bytes, content_type: str) -> str:
        """Upload under a fresh key and return its public URL. Old objects are never touched."""
        key = build_storage_key(venue_id, content_type)
        self.storage.upload(key, image_bytes, content_type)
        return self.storage.public_url(key)

    def persist_photo(self, venue_id: str, picked: PickedPhoto) -> str:
        public_url = self.store_photo(venue_id, picked.image_bytes, picked.content_type)
        # Raises VenueUpdateError: the photo is stored but not linked, which is still a failure
        self.venues.update_photo_url(venue_id, public_url)
        return public_url

    # --- Single photo caching ---

    def cache_photo_from_url(self, venue_id: str, photo_url: str) -> str:
        """Copy one provider photo URL into storage and link it; a failed link is only logged."""
        if not self.places.is_photo_url(photo_url):
            raise ValidationError("Invalid photo URL. Must be from Google Places API.")

        fetched = self.places.download(photo_url)
        public_url = self.store_photo(venue_id, fetched.data, fetched.content_type)
        try:
            self.venues.update_photo_url(venue_id, public_url)
        except VenueUpdateError as e:
            logger.error(f"Cached photo for venue {venue_id} but could not link it: {e}")
        return public_url


def build_backfill_pipeline(settings: PhotoPipelineSettings) -> VenuePhotoBackfill:
    """Wire the pipeline against the real providers. Raises ConfigurationError when a credential is missing."""
    places = PlacesClient(settings.places_api_key, settings.places_base_url, timeout=settings.request_timeout)
    try:
        client = get_supabase_client()
    except ConfigurationError:
        places.close()
        raise
    ranker = (
        GeminiPhotoRanker(settings.gemini_api_key, settings.gemini_model, timeout=settings.request_timeout)
        if settings.ai_configured
        else None
    )
    return VenuePhotoBackfill(
        settings=settings,
        places=places,
        storage=PhotoStorage(client, settings.bucket),
        venues=VenueStore(client),
        ranker=ranker,
    )
