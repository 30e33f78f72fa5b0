"""
Gemini-assisted choice of a venue "hero" photo among a few labelled thumbnails.

Arbitration is best-effort: every failure (missing key, transport error, blocked
response, unparsable or out-of-set answer) degrades to an AiSelection with no
label. Nothing in here raises to the caller.
"""

import json
import logging
import re
from typing import Any, List, Optional

from google import genai
from google.genai import types

from .models import AiCandidateSlot, AiSelection

logger = logging.getLogger(__name__)

MIN_AI_OPTIONS = 2

PHOTO_RANKING_PROMPT = """
You are choosing the best "hero" photo for a live music venue listing.

Venue: {venue_context}

Pick the ONE best image among the labeled options.
Prefer:
- A real venue exterior (signage) or interior (stage/room), not generic crowd shots.
- Clear, high-quality, not too dark, not blurry, not heavily watermarked.
- Not a logo, map, menu, food, random selfie, or artist promo.

Return ONLY strict JSON:
{{"choice":"A","reason":"..."}}
""".strip()

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)


def extract_first_json_object(text: str) -> Optional[Any]:
    """Pull the first JSON object out of model output, tolerating ```json fences and chatter."""
    if not text:
        return None
    trimmed = text.strip()
    fence = _FENCE_RE.search(trimmed)
    candidate = (fence.group(1) if fence else trimmed).strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(candidate[start:end + 1])
    except json.JSONDecodeError:
        logger.debug(f"extract_first_json_object: no parsable object in {candidate[:200]!r}")
        return None


def parse_choice(text: str, labels: List[str]) -> Optional[str]:
    """Return the upper-cased label the model chose, or None if it is missing or not offered."""
    parsed = extract_first_json_object(text)
    if not isinstance(parsed, dict):
        return None
    choice = parsed.get("choice")
    if not isinstance(choice, str):
        return None
    choice = choice.strip().upper()
    valid = {label.upper() for label in labels}
    return choice if choice in valid else None


def build_prompt(venue_name: str, venue_city: Optional[str] = None) -> str:
    venue_context = ", ".join(part for part in (venue_name, venue_city) if part)
    return PHOTO_RANKING_PROMPT.format(venue_context=venue_context)


class GeminiPhotoRanker:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        client: Optional[genai.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model
        if client is None:
            # HttpOptions.timeout is in milliseconds
            http_options = types.HttpOptions(timeout=int(timeout * 1000)) if timeout else None
            client = genai.Client(api_key=api_key, http_options=http_options)
        self.client = client

    def build_contents(self, venue_name: str, slots: List[AiCandidateSlot], venue_city: Optional[str] = None) -> List[types.Content]:
        parts = [types.Part.from_text(text=build_prompt(venue_name, venue_city))]
        for slot in slots:
            parts.append(types.Part.from_text(text=f"Option {slot.label}"))
            parts.append(types.Part.from_bytes(data=slot.image_bytes, mime_type=slot.mime_type))
        return [types.Content(role="user", parts=parts)]

    def choose(self, venue_name: str, slots: List[AiCandidateSlot], venue_city: Optional[str] = None) -> AiSelection:
        if len(slots) < MIN_AI_OPTIONS:
            logger.info(f"Skipping AI arbitration for {venue_name!r}: only {len(slots)} viable option(s)")
            return AiSelection(attempted=False)

        labels = [slot.label for slot in slots]
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=self.build_contents(venue_name, slots, venue_city),
                config=types.GenerateContentConfig(temperature=0, max_output_tokens=200),
            )
            text = response.text or ""
        except Exception as e:
            logger.warning({"event": "photo_ranker:model_error", "venue": venue_name, "error": str(e)})
            return AiSelection(attempted=True)

        label = parse_choice(text, labels)
        if not label:
            logger.info({"event": "photo_ranker:no_opinion", "venue": venue_name, "labels": labels, "raw": text[:200]})
            return AiSelection(attempted=True)

        parsed = extract_first_json_object(text) or {}
        reason = parsed.get("reason") if isinstance(parsed.get("reason"), str) else None
        chosen = next(slot for slot in slots if slot.label.upper() == label)
        logger.info({"event": "photo_ranker:choice", "venue": venue_name, "label": label, "reason": reason})
        return AiSelection(attempted=True, label=label, source_reference=chosen.source_reference, reason=reason)
