"""
Tests for the venue photo backfill pipeline: discovery, arbitration, fetch/validate/persist
and per-venue result aggregation.
"""

from types import SimpleNamespace
import logging
from unittest.mock import MagicMock, call, patch

import pytest
from pydantic import ValidationError as SettingsError

from venue_reviews.api.venue_photos.service import VenuePhotoBackfill, build_backfill_pipeline
from venue_reviews.config import PhotoPipelineSettings
from venue_reviews.exceptions import (
    ConfigurationError,
    NoPhotosAvailableError,
    PlaceNotFoundError,
    PlacesRequestError,
    StorageUploadError,
    ValidationError,
    VenueUpdateError,
)
from venue_reviews.models import FetchedPhoto, Venue, VenuePhotoCandidate
from venue_reviews.photo_ranker import GeminiPhotoRanker

from conftest import (
    BIG_PHOTO,
    OTHER_VENUE_ID,
    TINY_PHOTO,
    VENUE_ID,
    candidates,
    make_places,
    make_storage,
    make_venue,
    make_venue_store,
)


def build_pipeline(settings, places, venues, storage=None, ranker=None):
    return VenuePhotoBackfill(
        settings=settings,
        places=places,
        storage=storage or make_storage(),
        venues=venues,
        ranker=ranker,
    )


def full_size_fetches(places, settings):
    return [
        c.args[0]
        for c in places.fetch_photo.call_args_list
        if c.args[1] == settings.photo_max_width
    ]


class TestBackfillScenarios:

    def test_single_venue_picks_largest_landscape(self, settings):
        places = make_places(
            {"ChIJ-fillmore": candidates((400, 300), (800, 400), (200, 200))},
            {"ref-0": BIG_PHOTO, "ref-1": BIG_PHOTO, "ref-2": BIG_PHOTO},
        )
        storage = make_storage()
        venues = make_venue_store([make_venue()])
        pipeline = build_pipeline(settings, places, venues, storage)

        summary = pipeline.backfill(use_ai=False)

        assert summary.processed == 1
        assert summary.successful == 1
        assert summary.failed == 0
        result = summary.results[0]
        assert result.success is True
        assert result.error is None
        assert result.photoUrl.startswith("https://cdn.test/")
        assert full_size_fetches(places, settings) == ["ref-1"]
        key, data, content_type = storage.upload.call_args.args
        assert key.startswith(f"{VENUE_ID}-") and key.endswith(".jpg")
        assert data == BIG_PHOTO
        assert content_type == "image/jpeg"
        venues.update_photo_url.assert_called_once_with(VENUE_ID, result.photoUrl)

    def test_place_not_found_is_reported_and_batch_continues(self, settings):
        places = make_places(
            {
                "ChIJ-stale": PlaceNotFoundError("ChIJ-stale", "NOT_FOUND"),
                "ChIJ-good": candidates((800, 600)),
            },
            {"ref-0": BIG_PHOTO},
        )
        venues = make_venue_store([
            make_venue(VENUE_ID, "Bottom of the Hill", "ChIJ-stale"),
            make_venue(OTHER_VENUE_ID, "The Chapel", "ChIJ-good"),
        ])
        pipeline = build_pipeline(settings, places, venues)

        summary = pipeline.backfill(use_ai=False)

        assert summary.processed == 2
        assert summary.successful == 1
        assert summary.failed == 1
        stale, good = summary.results
        assert stale.success is False
        assert "Invalid place_id: NOT_FOUND" in stale.error
        assert "fake place_id" in stale.error
        assert stale.photoUrl is None
        assert good.success is True

    def test_selection_excludes_photographed_venues_unless_forced(self, settings):
        venues = make_venue_store([])
        pipeline = build_pipeline(settings, make_places({}, {}), venues)

        summary = pipeline.backfill(limit=5)
        venues.select_venues_needing_photos.assert_called_once_with(
            limit=5, venue_id=None, include_photographed=False
        )
        assert summary.processed == 0
        assert summary.results == []
        assert summary.message == "No venues need photo backfilling"

        pipeline.backfill(limit=5, force=True)
        assert venues.select_venues_needing_photos.call_args == call(
            limit=5, venue_id=None, include_photographed=True
        )

    def test_ai_choice_is_first_fetch_attempt(self, ai_settings):
        places = make_places(
            {"ChIJ-fillmore": candidates((1600, 900), (1200, 800), (1000, 700), (900, 600))},
            {f"ref-{i}": BIG_PHOTO for i in range(4)},
        )
        genai_client = MagicMock()
        genai_client.models.generate_content.return_value = SimpleNamespace(text='```json\n{"choice":"B"}\n```')
        ranker = GeminiPhotoRanker(api_key="test-gemini-key", client=genai_client)
        venues = make_venue_store([make_venue()])
        pipeline = build_pipeline(ai_settings, places, venues, ranker=ranker)

        summary = pipeline.backfill()

        assert summary.results[0].success is True
        thumbnail_calls = [c.args for c in places.fetch_photo.call_args_list[:4]]
        assert thumbnail_calls == [(f"ref-{i}", ai_settings.thumbnail_max_width) for i in range(4)]
        slots_sent = genai_client.models.generate_content.call_args.kwargs["contents"][0].parts
        assert len(slots_sent) == 1 + 2 * 4
        assert full_size_fetches(places, ai_settings) == ["ref-1"]

    def test_upload_ok_but_venue_update_fails_is_a_failure(self, settings):
        places = make_places({"ChIJ-fillmore": candidates((800, 600))}, {"ref-0": BIG_PHOTO})
        storage = make_storage()
        venues = make_venue_store([make_venue()])
        venues.update_photo_url.side_effect = VenueUpdateError("permission denied for table venues")
        pipeline = build_pipeline(settings, places, venues, storage)

        summary = pipeline.backfill(use_ai=False)

        result = summary.results[0]
        assert result.success is False
        assert result.error == "Failed to update venue: permission denied for table venues"
        assert result.photoUrl is None
        storage.upload.assert_called_once()
        assert summary.failed == 1


class TestFetchValidatePersist:

    def test_falls_back_past_failed_and_undersized_candidates(self, settings):
        places = make_places(
            {"ChIJ-fillmore": candidates((1600, 900), (1200, 800), (1000, 700), (900, 600))},
            {
                "ref-0": PlacesRequestError("Places request failed: 500", status_code=500),
                "ref-1": TINY_PHOTO,
                "ref-2": FetchedPhoto(content_type="image/png", data=BIG_PHOTO),
                "ref-3": BIG_PHOTO,
            },
        )
        storage = make_storage()
        pipeline = build_pipeline(settings, places, make_venue_store([make_venue()]), storage)

        summary = pipeline.backfill(use_ai=False)

        assert summary.results[0].success is True
        assert full_size_fetches(places, settings) == ["ref-0", "ref-1", "ref-2"]
        key, _, content_type = storage.upload.call_args.args
        assert key.endswith(".png")
        assert content_type == "image/png"

    def test_picked_photo_is_logged_with_attempt_count(self, settings, caplog):
        places = make_places(
            {"ChIJ-fillmore": candidates((1600, 900), (1200, 800))},
            {"ref-0": TINY_PHOTO, "ref-1": BIG_PHOTO},
        )
        pipeline = build_pipeline(settings, places, make_venue_store([make_venue()]))

        with caplog.at_level(logging.INFO, logger="venue_reviews.api.venue_photos.service"):
            pipeline.backfill(use_ai=False)

        [picked] = [
            r.msg for r in caplog.records
            if isinstance(r.msg, dict) and r.msg.get("event") == "backfill:photo_picked"
        ]
        assert picked["venue_id"] == VENUE_ID
        assert picked["reference"] == "ref-1"
        assert picked["attempts"] == 2
        assert picked["ai_pick"] is False

    def test_exhausted_candidates_fail_without_upload(self, settings):
        places = make_places(
            {"ChIJ-fillmore": candidates((800, 600), (600, 400), (400, 300))},
            {"ref-0": TINY_PHOTO, "ref-1": TINY_PHOTO},
        )
        storage = make_storage()
        venues = make_venue_store([make_venue()])
        pipeline = build_pipeline(settings, places, venues, storage)

        summary = pipeline.backfill(use_ai=False)

        result = summary.results[0]
        assert result.success is False
        assert result.error == "Failed to fetch a usable photo (tried 3 candidates)"
        storage.upload.assert_not_called()
        venues.update_photo_url.assert_not_called()

    def test_pick_photo_is_lazy(self, settings):
        places = make_places({}, {"a": BIG_PHOTO, "b": BIG_PHOTO})
        pipeline = build_pipeline(settings, places, make_venue_store([]))

        picked = pipeline.pick_photo(["a", "b"])

        assert picked.source_reference == "a"
        assert picked.attempts == 1
        assert places.fetch_photo.call_count == 1

    def test_upload_failure_is_terminal_for_venue(self, settings):
        places = make_places({"ChIJ-fillmore": candidates((800, 600))}, {"ref-0": BIG_PHOTO})
        storage = make_storage()
        storage.upload.side_effect = StorageUploadError("The resource already exists")
        venues = make_venue_store([make_venue()])
        pipeline = build_pipeline(settings, places, venues, storage)

        result = pipeline.backfill(use_ai=False).results[0]

        assert result.success is False
        assert result.error == "Failed to upload photo: The resource already exists"
        storage.upload.assert_called_once()
        venues.update_photo_url.assert_not_called()

    def test_no_photos_available(self, settings):
        places = make_places({"ChIJ-fillmore": NoPhotosAvailableError()}, {})
        pipeline = build_pipeline(settings, places, make_venue_store([make_venue()]))

        result = pipeline.backfill(use_ai=False).results[0]

        assert result.success is False
        assert result.error == "No photos available for this venue"


class TestArbitration:

    def test_fewer_than_two_viable_thumbnails_skips_model(self, ai_settings):
        places = make_places(
            {"ChIJ-fillmore": candidates((1600, 900), (1200, 800), (1000, 700))},
            {
                ("ref-0", 640): BIG_PHOTO,
                ("ref-1", 640): TINY_PHOTO,
                ("ref-0", 1200): BIG_PHOTO,
            },
        )
        ranker = MagicMock()
        pipeline = build_pipeline(ai_settings, places, make_venue_store([make_venue()]), ranker=ranker)

        summary = pipeline.backfill()

        ranker.choose.assert_not_called()
        assert summary.results[0].success is True
        assert full_size_fetches(places, ai_settings) == ["ref-0"]

    def test_ai_disabled_flag_skips_thumbnails(self, ai_settings):
        places = make_places({"ChIJ-fillmore": candidates((800, 600), (600, 400))}, {"ref-0": BIG_PHOTO})
        ranker = MagicMock()
        pipeline = build_pipeline(ai_settings, places, make_venue_store([make_venue()]), ranker=ranker)

        pipeline.backfill(use_ai=False)

        ranker.choose.assert_not_called()
        assert all(c.args[1] == ai_settings.photo_max_width for c in places.fetch_photo.call_args_list)

    def test_ai_defaults_off_without_gemini_key(self, settings):
        places = make_places({"ChIJ-fillmore": candidates((800, 600), (600, 400))}, {"ref-0": BIG_PHOTO})
        ranker = MagicMock()
        pipeline = build_pipeline(settings, places, make_venue_store([make_venue()]), ranker=ranker)

        pipeline.backfill()

        ranker.choose.assert_not_called()

    def test_ranker_crash_never_aborts_venue(self, ai_settings):
        places = make_places(
            {"ChIJ-fillmore": candidates((800, 600), (600, 400))},
            {"ref-0": BIG_PHOTO, "ref-1": BIG_PHOTO},
        )
        places.fetch_photo.side_effect = [
            ValueError("unexpected payload"),
            FetchedPhoto(data=BIG_PHOTO),
        ]
        ranker = MagicMock()
        pipeline = build_pipeline(ai_settings, places, make_venue_store([make_venue()]), ranker=ranker)

        summary = pipeline.backfill()

        ranker.choose.assert_not_called()
        assert summary.results[0].success is True


class TestBatchBehaviour:

    def test_invalid_venue_id_rejected_before_any_work(self, settings):
        venues = make_venue_store([])
        pipeline = build_pipeline(settings, make_places({}, {}), venues)

        with pytest.raises(ValidationError, match="venueId must be a UUID"):
            pipeline.backfill(venue_id="not-a-uuid")
        venues.select_venues_needing_photos.assert_not_called()

    @pytest.mark.parametrize("venue_id", [
        "3f1c2b7a-9d4e-6c1a-8b2f-6e5d4c3b2a10",  # version nibble 6
        "3f1c2b7a-9d4e-4c1a-cb2f-6e5d4c3b2a10",  # variant nibble c
        "3f1c2b7a9d4e4c1a8b2f6e5d4c3b2a10",
    ])
    def test_uuid_shape_is_enforced(self, settings, venue_id):
        pipeline = build_pipeline(settings, make_places({}, {}), make_venue_store([]))
        with pytest.raises(ValidationError):
            pipeline.backfill(venue_id=venue_id)

    def test_single_venue_id_is_passed_to_store(self, settings):
        venues = make_venue_store([])
        pipeline = build_pipeline(settings, make_places({}, {}), venues)

        pipeline.backfill(venue_id=VENUE_ID.upper())

        venues.select_venues_needing_photos.assert_called_once_with(
            limit=10, venue_id=VENUE_ID.upper(), include_photographed=False
        )

    def test_non_positive_limit_rejected(self, settings):
        pipeline = build_pipeline(settings, make_places({}, {}), make_venue_store([]))
        with pytest.raises(ValidationError):
            pipeline.backfill(limit=0)

    def test_venue_without_place_id_is_skipped(self, settings):
        places = make_places({"ChIJ-good": candidates((800, 600))}, {"ref-0": BIG_PHOTO})
        venues = make_venue_store([
            Venue(id=VENUE_ID, name="Mystery Hall", google_place_id=None),
            make_venue(OTHER_VENUE_ID, "The Chapel", "ChIJ-good"),
        ])
        pipeline = build_pipeline(settings, places, venues)

        summary = pipeline.backfill(use_ai=False)

        assert summary.processed == 1
        assert summary.skipped == 1
        assert [r.venueId for r in summary.results] == [OTHER_VENUE_ID]

    def test_unexpected_error_is_isolated_to_its_venue(self, settings):
        places = make_places(
            {"ChIJ-boom": RuntimeError("socket closed"), "ChIJ-good": candidates((800, 600))},
            {"ref-0": BIG_PHOTO},
        )
        venues = make_venue_store([
            make_venue(VENUE_ID, "Boom Room", "ChIJ-boom"),
            make_venue(OTHER_VENUE_ID, "The Chapel", "ChIJ-good"),
        ])
        pipeline = build_pipeline(settings, places, venues)

        summary = pipeline.backfill(use_ai=False)

        assert [r.success for r in summary.results] == [False, True]
        assert summary.results[0].error == "socket closed"


class TestCachePhotoFromUrl:

    def test_caches_and_links(self, settings):
        places = MagicMock()
        places.is_photo_url.return_value = True
        places.download.return_value = FetchedPhoto(content_type="image/jpeg", data=BIG_PHOTO)
        storage = make_storage()
        venues = make_venue_store([])
        pipeline = build_pipeline(settings, places, venues, storage)

        url = pipeline.cache_photo_from_url(VENUE_ID, "https://maps.googleapis.com/maps/api/place/photo?x=1")

        assert VENUE_ID in url
        venues.update_photo_url.assert_called_once_with(VENUE_ID, url)

    def test_link_failure_still_returns_url(self, settings):
        places = MagicMock()
        places.is_photo_url.return_value = True
        places.download.return_value = FetchedPhoto(content_type="image/png", data=BIG_PHOTO)
        venues = make_venue_store([])
        venues.update_photo_url.side_effect = VenueUpdateError("timeout")
        pipeline = build_pipeline(settings, places, venues)

        url = pipeline.cache_photo_from_url(VENUE_ID, "https://maps.googleapis.com/maps/api/place/photo?x=1")

        assert url.endswith(".png")

    def test_rejects_non_provider_url(self, settings):
        places = MagicMock()
        places.is_photo_url.return_value = False
        pipeline = build_pipeline(settings, places, make_venue_store([]))

        with pytest.raises(ValidationError):
            pipeline.cache_photo_from_url(VENUE_ID, "https://example.com/cat.jpg")
        places.download.assert_not_called()


class TestPipelineWiring:

    def test_request_timeout_reaches_gemini_client(self, ai_settings):
        with patch("venue_reviews.api.venue_photos.service.get_supabase_client"), \
                patch("venue_reviews.api.venue_photos.service.GeminiPhotoRanker") as ranker_cls:
            pipeline = build_backfill_pipeline(ai_settings)

        ranker_cls.assert_called_once_with(
            "test-gemini-key", ai_settings.gemini_model, timeout=ai_settings.request_timeout
        )
        assert pipeline.places.timeout == ai_settings.request_timeout

    def test_places_session_closed_when_storage_unconfigured(self, settings):
        places = MagicMock()
        with patch("venue_reviews.api.venue_photos.service.PlacesClient", return_value=places), \
                patch(
                    "venue_reviews.api.venue_photos.service.get_supabase_client",
                    side_effect=ConfigurationError("Supabase URL and key must be configured"),
                ):
            with pytest.raises(ConfigurationError):
                build_backfill_pipeline(settings)

        places.close.assert_called_once()

    def test_close_releases_places_client(self, settings):
        places = make_places({}, {})
        pipeline = build_pipeline(settings, places, make_venue_store([]))

        pipeline.close()

        places.close.assert_called_once()

    def test_ai_candidates_capped_at_four(self):
        assert PhotoPipelineSettings(max_ai_candidates=4).max_ai_candidates == 4
        with pytest.raises(SettingsError):
            PhotoPipelineSettings(max_ai_candidates=5)
