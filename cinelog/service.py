# cinelog/service.py
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from datetime import datetime
import logging
import threading

from cinelog import codec
from cinelog.listing import FilterConfig, ListingState, Page, Paginator, SortConfig, country_options
from cinelog.models import (MEDIA_MOVIE, MEDIA_TV, MEDIA_TYPES, STATUS_WATCHED, STATUSES, MovieMetadata, Record,
                            new_id, now_ms)
from cinelog.repo import STORAGE_KEY, DebouncedSaver, load_records, save_records
from cinelog.stats import FRAME_ALL, Stats, compute_stats, date_options

logger = logging.getLogger(__name__)

# serialized key -> Record attribute, for fields a caller may set directly
EDITABLE_FIELDS = {
    "title": "title",
    "year": "year",
    "country": "country",
    "genre": "genre",
    "director": "director",
    "rating": "rating",
    "status": "status",
    "review": "review",
    "posterColor": "poster_color",
    "posterImage": "poster_image",
    "addedAt": "added_at",
    "mediaType": "media_type",
    "currentEpisode": "current_episode",
    "totalEpisodes": "total_episodes",
    "duration": "duration",
}


# Exceptions
class ValidationError(Exception):
    """Raised when input or business validation fails."""
    pass

class NotFoundError(Exception):
    """Raised when a record is not found."""
    pass


def _optional_count(value, name: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if n != float(value) or n < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return n


def _optional_number(value, name: str):
    if value in (None, ""):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if n < 0:
        raise ValidationError(f"{name} must be >= 0")
    return int(n) if n.is_integer() else n


def _watched_date_ms(value: str) -> int:
    try:
        d = datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        raise ValidationError("watchedDate must be YYYY-MM-DD")
    return int(d.timestamp() * 1000)


class CineLogService:
    """
    Owns the record list. Every mutation goes through this object, notifies
    subscribers and schedules a debounced save through the repository.
    """

    def __init__(self, repo, storage_key: str = STORAGE_KEY, save_delay: float = 0.5, ai_client=None):
        self.repo = repo
        self.storage_key = storage_key
        self.ai = ai_client
        self._lock = threading.RLock()
        self._records: List[Record] = load_records(repo, storage_key)
        self._subscribers: List[Callable[[List[Record]], None]] = []
        self.saver = DebouncedSaver(lambda recs: save_records(self.repo, recs, self.storage_key), save_delay)
        self.subscribe(self.saver.schedule)
        logger.debug("CineLogService initialized with repo %s (%d records)", type(repo).__name__, len(self._records))

    # ---- Subscriptions ----
    def subscribe(self, callback: Callable[[List[Record]], None]) -> Callable[[], None]:
        """Register callback(records) for every change; returns an unsubscribe function."""
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def _changed(self) -> None:
        snapshot = list(self._records)
        for cb in list(self._subscribers):
            cb(snapshot)

    # ---- Reads ----
    @property
    def records(self) -> List[Record]:
        return list(self._records)

    def get_record(self, record_id: str) -> Record:
        for r in self._records:
            if str(r.id) == str(record_id):
                return r
        logger.debug("get_record: record %s not found", record_id)
        raise NotFoundError("record not found")

    def list_records(self, filter_cfg: FilterConfig = FilterConfig(), sort_cfg: SortConfig = SortConfig(),
                     page: int = 1, per_page: int = 24, now: Optional[datetime] = None) -> Page:
        """A page of the filtered, sorted list; a page outside the result range yields page 1."""
        state = ListingState(filter=filter_cfg, sort=sort_cfg, paginator=Paginator(per_page))
        ordered = state.ordered(self._records, now)
        state.paginator.go_to(page, len(ordered))
        return state.paginator.page_of(ordered)

    def stats(self, time_frame: str = FRAME_ALL, selected_year: Optional[str] = None,
              selected_month: Optional[str] = None) -> Stats:
        try:
            return compute_stats(self._records, time_frame, selected_year, selected_month)
        except ValueError as e:
            raise ValidationError(str(e))

    def options(self) -> Dict[str, List[str]]:
        years, months = date_options(self._records)
        return {"countries": country_options(self._records), "years": years, "months": months,
                "statuses": list(STATUSES)}

    # ---- Validation ----
    def _apply_fields(self, record: Record, data: dict) -> None:
        for key, attr in EDITABLE_FIELDS.items():
            if key in data:
                setattr(record, attr, data[key])
        if data.get("watchedDate"):
            record.added_at = _watched_date_ms(data["watchedDate"])

        if not record.title or not str(record.title).strip():
            raise ValidationError("title required")
        record.title = str(record.title).strip()
        record.year = str(record.year or "")
        record.genre = str(record.genre or "")
        try:
            record.rating = float(record.rating or 0)
        except (TypeError, ValueError):
            raise ValidationError("rating must be a number")
        if record.rating < 0 or record.rating > 5:
            raise ValidationError("rating must be 0-5")
        if record.rating.is_integer():
            record.rating = int(record.rating)
        if record.status not in STATUSES:
            raise ValidationError(f"status must be one of {', '.join(STATUSES)}")
        if record.media_type not in MEDIA_TYPES:
            raise ValidationError("mediaType must be 'movie' or 'tv'")
        record.duration = _optional_number(record.duration, "duration")
        if record.media_type == MEDIA_TV:
            record.current_episode = _optional_count(record.current_episode, "currentEpisode")
            record.total_episodes = _optional_count(record.total_episodes, "totalEpisodes")
        else:
            record.current_episode = None
            record.total_episodes = None
        try:
            record.added_at = int(record.added_at)
        except (TypeError, ValueError):
            raise ValidationError("addedAt must be epoch milliseconds")

    # ---- Mutations ----
    def add_record(self, data: dict) -> Record:
        """Create a record from serialized-form data; it goes to the front of the list."""
        record = Record(id=new_id(), title="")
        self._apply_fields(record, data)
        record.last_updated = now_ms()
        with self._lock:
            self._records.insert(0, record)
            self._changed()
        logger.info("Added record id=%s title=%s", record.id, record.title)
        return record

    def update_record(self, record_id: str, data: dict) -> Record:
        with self._lock:
            current = self.get_record(record_id)
            # validate on a copy so a rejected edit leaves the record untouched
            edited = Record(**vars(current))
            self._apply_fields(edited, data)
            edited.last_updated = now_ms()
            vars(current).update(vars(edited))
            self._changed()
        logger.info("Updated record id=%s", record_id)
        return current

    def delete_record(self, record_id: str, confirm: bool = False) -> None:
        if not confirm:
            raise ValidationError("delete requires confirmation")
        with self._lock:
            record = self.get_record(record_id)
            self._records = [r for r in self._records if str(r.id) != str(record.id)]
            self._changed()
        logger.info("Deleted record id=%s", record_id)

    def bulk_delete(self, record_ids: Iterable[str], confirm: bool = False) -> int:
        ids = {str(i) for i in record_ids}
        if not ids:
            return 0
        if not confirm:
            raise ValidationError(f"deleting {len(ids)} records requires confirmation")
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if str(r.id) not in ids]
            removed = before - len(self._records)
            self._changed()
        logger.info("Bulk deleted %d records", removed)
        return removed

    def merge_import(self, candidates: List[Record]) -> codec.ImportResult:
        with self._lock:
            merged, result = codec.merge_records(self._records, candidates)
            if result.imported:
                self._records = merged
                self._changed()
        logger.info("Import merged: imported=%s skipped=%s", result.imported, result.skipped)
        return result

    # ---- Import / Export ----
    def import_file(self, filename: str, content: str) -> codec.ImportResult:
        """Parse an uploaded backup and merge it; file-level errors abort before any mutation."""
        candidates = codec.parse_import(filename, content)
        return self.merge_import(candidates)

    def export(self, fmt: str = "json") -> Tuple[str, str]:
        """Return (content, filename) for a full backup."""
        fmt = (fmt or "json").lower()
        if fmt == "json":
            content = codec.export_json(self._records)
        elif fmt == "csv":
            content = codec.export_csv(self._records)
        else:
            raise ValidationError("format must be json or csv")
        logger.info("Exported %d records as %s", len(self._records), fmt)
        return content, codec.export_filename(fmt)

    # ---- Draft helpers ----
    def suggest_from_history(self, title: str) -> Optional[dict]:
        """
        Pre-fill a new draft from the newest tv record with the same title,
        proposing the next episode.
        """
        wanted = (title or "").strip().lower()
        if len(wanted) < 2:
            return None
        matches = [r for r in self._records if r.is_tv and r.title.lower() == wanted]
        if not matches:
            return None
        match = max(matches, key=lambda r: r.added_at)
        draft = {
            "mediaType": MEDIA_TV,
            "year": match.year,
            "country": match.country or "",
            "genre": match.genre,
            "director": match.director or "",
            "posterColor": match.poster_color,
            "posterImage": match.poster_image or "",
            "totalEpisodes": match.total_episodes,
            "duration": match.duration,
        }
        if match.current_episode:
            draft["currentEpisode"] = match.current_episode + 1
        return draft

    def find_duplicate_title(self, title: str, exclude_id: Optional[str] = None) -> Optional[Record]:
        for r in self._records:
            if r.title == title and str(r.id) != str(exclude_id):
                return r
        return None

    def fetch_metadata(self, title: str) -> Optional[MovieMetadata]:
        if not title or self.ai is None:
            return None
        return self.ai.fetch_metadata(title)

    def generate_review(self, title: str, rating: float, media_type: str = MEDIA_MOVIE) -> Optional[str]:
        if not title or self.ai is None:
            return None
        return self.ai.generate_review(title, rating, media_type)

    def close(self) -> None:
        """Write any pending change now."""
        self.saver.close()


def apply_metadata(draft: dict, meta: Optional[MovieMetadata], is_new: bool = True) -> dict:
    """Merge AI metadata into a form draft; without metadata the draft is returned unchanged."""
    if meta is None:
        return dict(draft)
    out = dict(draft)
    out.update({
        "title": meta.title,
        "year": meta.year,
        "country": meta.country or "",
        "genre": meta.genre,
        "director": meta.director,
        "posterColor": meta.suggested_color_hex or out.get("posterColor"),
        "mediaType": meta.media_type,
    })
    if meta.duration:
        out["duration"] = meta.duration
    if meta.media_type == MEDIA_TV and meta.total_episodes:
        out["totalEpisodes"] = meta.total_episodes
        # a new entry marked watched is assumed finished
        if is_new and out.get("status", STATUS_WATCHED) == STATUS_WATCHED:
            out["currentEpisode"] = meta.total_episodes
    return out
