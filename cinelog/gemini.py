# cinelog/gemini.py
"""
Thin client for the Gemini generateContent REST endpoint.

Both calls degrade instead of raising: fetch_metadata returns None and
generate_review returns a fixed message when the key is missing or the
request fails.
"""
import json
import logging
from typing import Optional

import requests

from cinelog.models import MEDIA_MOVIE, MEDIA_TV, MovieMetadata

logger = logging.getLogger(__name__)

MISSING_KEY_REVIEW = "缺少 API Key。"
FAILED_REVIEW = "无法生成影评。"

METADATA_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING", "description": "Official Chinese title if available, otherwise original title"},
        "year": {"type": "STRING"},
        "country": {"type": "STRING", "description": "Country or region of origin in Chinese (e.g. 美国, 中国大陆)"},
        "genre": {"type": "STRING", "description": "Primary genre in Chinese (e.g., 科幻, 剧情)"},
        "director": {"type": "STRING", "description": "Director or Creator name in Chinese"},
        "summary": {"type": "STRING", "description": "A very short one-sentence plot summary in Chinese."},
        "suggestedColorHex": {"type": "STRING", "description": "A hex color code representing the mood."},
        "mediaType": {"type": "STRING", "enum": [MEDIA_MOVIE, MEDIA_TV],
                      "description": "Whether it is a movie or tv series"},
        "totalEpisodes": {"type": "INTEGER", "description": "Total episodes if TV series, otherwise 0 or null"},
        "duration": {"type": "INTEGER", "description": "Runtime in minutes (per episode for TV)"},
    },
    "required": ["title", "year", "country", "genre", "director", "summary", "suggestedColorHex", "mediaType"],
}


class GeminiClient:
    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, api_key: Optional[str], model: str = "gemini-2.5-flash",
                 timeout: float = 30, session: Optional[requests.Session] = None):
        self.api_key = api_key or ""
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def _generate(self, prompt: str, generation_config: Optional[dict] = None) -> str:
        url = f"{self.BASE_URL}/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        if generation_config:
            body["generationConfig"] = generation_config
        resp = self.session.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(p.get("text", "") for p in parts)

    def fetch_metadata(self, title: str) -> Optional[MovieMetadata]:
        if not self.api_key:
            logger.warning("No Gemini API key configured; skipping metadata fetch")
            return None
        prompt = (
            f'Provide metadata for the media title "{title}". Identify if it is a "movie" or "tv" series. '
            "Return JSON. ensure the summary, genre, country and director are in Chinese (Simplified). "
            "If it is a TV series, estimate the total number of episodes and the average runtime per "
            "episode (in minutes). If it is a movie, provide the runtime (in minutes)."
        )
        try:
            text = self._generate(prompt, {"responseMimeType": "application/json",
                                           "responseSchema": METADATA_SCHEMA})
            if not text:
                return None
            return parse_metadata(json.loads(text))
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Gemini metadata fetch failed for %r: %s", title, e)
            return None

    def generate_review(self, title: str, rating: float, media_type: str = MEDIA_MOVIE) -> str:
        if not self.api_key:
            return MISSING_KEY_REVIEW
        type_text = "TV series" if media_type == MEDIA_TV else "movie"
        prompt = (
            f'Write a short, casual, 2-sentence review for the {type_text} "{title}" in Chinese (Simplified) '
            f"giving it a rating of {rating}/5 stars. Focus on the vibe."
        )
        try:
            return self._generate(prompt)
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Gemini review generation failed for %r: %s", title, e)
            return FAILED_REVIEW


def _optional_int(value) -> Optional[int]:
    if value in (None, ""):
        return None
    return int(value)


def parse_metadata(data: dict) -> MovieMetadata:
    """Build MovieMetadata from the model's JSON; raises on missing required fields."""
    if not isinstance(data, dict):
        raise TypeError("metadata response is not an object")
    media_type = data.get("mediaType")
    if media_type not in (MEDIA_MOVIE, MEDIA_TV):
        raise ValueError(f"unexpected mediaType {media_type!r}")
    return MovieMetadata(
        title=str(data["title"]),
        year=str(data["year"]),
        country=str(data.get("country") or ""),
        genre=str(data["genre"]),
        director=str(data.get("director") or ""),
        summary=str(data.get("summary") or ""),
        suggested_color_hex=str(data.get("suggestedColorHex") or ""),
        media_type=media_type,
        total_episodes=_optional_int(data.get("totalEpisodes")),
        duration=_optional_int(data.get("duration")),
    )
