# cinelog/models.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import time
import uuid

STATUS_WATCHED = "已看"
STATUS_PLANNING = "想看"
STATUS_WATCHING = "在看"
STATUS_DROPPED = "弃坑"
STATUSES = (STATUS_WATCHED, STATUS_PLANNING, STATUS_DROPPED, STATUS_WATCHING)

MEDIA_MOVIE = "movie"
MEDIA_TV = "tv"
MEDIA_TYPES = (MEDIA_MOVIE, MEDIA_TV)

DEFAULT_POSTER_COLOR = "#4f46e5"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def to_local(ts_ms) -> datetime:
    """Epoch milliseconds -> naive local datetime."""
    return datetime.fromtimestamp(ts_ms / 1000)


def year_month(ts_ms) -> str:
    d = to_local(ts_ms)
    return f"{d.year}-{d.month:02d}"


@dataclass
class Record:
    id: str
    title: str
    year: str = ""
    genre: str = ""
    rating: float = 0  # 0-5, 0 -> unrated
    status: str = STATUS_WATCHED  # "已看", "想看", "在看", "弃坑"
    review: str = ""
    poster_color: str = DEFAULT_POSTER_COLOR
    added_at: int = field(default_factory=now_ms)  # the "watched date"
    last_updated: int = field(default_factory=now_ms)
    media_type: str = MEDIA_MOVIE
    country: Optional[str] = None
    director: Optional[str] = None
    poster_image: Optional[str] = None  # data URL
    current_episode: Optional[int] = None  # tv only
    total_episodes: Optional[int] = None  # tv only
    duration: Optional[float] = None  # minutes; per episode for tv

    @property
    def is_tv(self) -> bool:
        return self.media_type == MEDIA_TV

    def to_dict(self) -> dict:
        """Serialized (camelCase) form used by the JSON dump and the persisted blob."""
        out = {
            "id": self.id,
            "title": self.title,
            "year": self.year,
            "country": self.country,
            "genre": self.genre,
            "director": self.director,
            "rating": self.rating,
            "status": self.status,
            "review": self.review,
            "posterColor": self.poster_color,
            "posterImage": self.poster_image,
            "addedAt": self.added_at,
            "lastUpdated": self.last_updated,
            "mediaType": self.media_type,
            "currentEpisode": self.current_episode,
            "totalEpisodes": self.total_episodes,
            "duration": self.duration,
        }
        return {k: v for k, v in out.items() if v is not None}

    @classmethod
    def from_dict(cls, d: dict) -> "Record":
        rid = d.get("id")
        return cls(
            id=str(rid) if rid not in (None, "") else new_id(),
            title=str(d.get("title") or ""),
            year=str(d.get("year") or ""),
            country=d.get("country"),
            genre=str(d.get("genre") or ""),
            director=d.get("director"),
            rating=d.get("rating") or 0,
            status=d.get("status") or STATUS_WATCHED,
            review=d.get("review") or "",
            poster_color=d.get("posterColor") or DEFAULT_POSTER_COLOR,
            poster_image=d.get("posterImage"),
            added_at=d.get("addedAt") or now_ms(),
            last_updated=d.get("lastUpdated") or now_ms(),
            media_type=d.get("mediaType") or MEDIA_MOVIE,
            current_episode=d.get("currentEpisode"),
            total_episodes=d.get("totalEpisodes"),
            duration=d.get("duration"),
        )


@dataclass
class MovieMetadata:
    """What the metadata collaborator returns for a title."""
    title: str
    year: str
    country: str
    genre: str
    director: str
    summary: str
    suggested_color_hex: str
    media_type: str = MEDIA_MOVIE
    total_episodes: Optional[int] = None
    duration: Optional[int] = None
