# cinelog/stats.py
import calendar
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from cinelog.models import Record, to_local, year_month
from cinelog.textmatch import split_tags

FRAME_ALL = "all"
FRAME_YEAR = "year"
FRAME_MONTH = "month"
TIME_FRAMES = (FRAME_ALL, FRAME_YEAR, FRAME_MONTH)

UNKNOWN_GENRE = "未知"
TOP_GENRES = 8


@dataclass
class SeriesRollup:
    max_episode: float = 0
    duration: float = 0


@dataclass
class Stats:
    total: int
    movie_count: int
    tv_count: int
    average_rating: float
    status_counts: List[Tuple[str, int]]
    rating_counts: List[Tuple[str, int]]
    genre_counts: List[Tuple[str, int]]
    trend: List[Tuple[str, int]]
    total_episodes_watched: float
    total_minutes: float
    series: Dict[str, SeriesRollup] = field(default_factory=dict)

    @property
    def duration_hours(self) -> int:
        return int(self.total_minutes // 60)

    @property
    def duration_minutes(self):
        return self.total_minutes % 60

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "movieCount": self.movie_count,
            "tvCount": self.tv_count,
            "averageRating": self.average_rating,
            "statusData": [{"name": n, "value": v} for n, v in self.status_counts],
            "ratingData": [{"name": n, "count": c} for n, c in self.rating_counts],
            "genreData": [{"name": n, "value": v} for n, v in self.genre_counts],
            "trendData": [{"name": n, "count": c} for n, c in self.trend],
            "totalEpisodesWatched": self.total_episodes_watched,
            "totalDuration": {"hours": self.duration_hours, "minutes": self.duration_minutes},
        }


def scope_records(records: Iterable[Record], time_frame: str = FRAME_ALL,
                  selected_year: Optional[str] = None, selected_month: Optional[str] = None) -> List[Record]:
    """Keep only records whose added_at falls in the selected year / year-month."""
    if time_frame == FRAME_YEAR:
        return [r for r in records if str(to_local(r.added_at).year) == str(selected_year)]
    if time_frame == FRAME_MONTH:
        return [r for r in records if year_month(r.added_at) == selected_month]
    return list(records)


def date_options(records: Iterable[Record]) -> Tuple[List[str], List[str]]:
    """Distinct years and year-months present, newest first."""
    years, months = set(), set()
    for r in records:
        years.add(str(to_local(r.added_at).year))
        months.add(year_month(r.added_at))
    return sorted(years, reverse=True), sorted(months, reverse=True)


def genre_histogram(records: Iterable[Record], top: int = TOP_GENRES) -> List[Tuple[str, int]]:
    counts: Dict[str, int] = {}
    for r in records:
        if not r.genre:
            counts[UNKNOWN_GENRE] = counts.get(UNKNOWN_GENRE, 0) + 1
            continue
        for g in dict.fromkeys(split_tags(r.genre)):
            counts[g] = counts.get(g, 0) + 1
    # sorted() is stable: equal counts keep first-seen order
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:top]


def rating_histogram(records: Iterable[Record]) -> List[Tuple[str, int]]:
    counts = Counter(r.rating for r in records if r.rating and r.rating > 0)
    return [(f"{star}星", counts.get(star, 0)) for star in range(1, 6)]


def status_histogram(records: Iterable[Record]) -> List[Tuple[str, int]]:
    counts: Dict[str, int] = {}
    for r in records:
        counts[r.status] = counts.get(r.status, 0) + 1
    return list(counts.items())


def series_rollups(records: Iterable[Record]) -> Dict[str, SeriesRollup]:
    """
    Fold tv entries by trimmed title: the highest current episode is what was
    watched, the last non-zero duration seen is the per-episode runtime.
    """
    rollups: Dict[str, SeriesRollup] = {}
    for r in records:
        if not r.is_tv:
            continue
        item = rollups.setdefault(r.title.strip(), SeriesRollup())
        item.max_episode = max(item.max_episode, r.current_episode or 0)
        item.duration = (r.duration or 0) or item.duration
    return rollups


def trend_series(records: List[Record], time_frame: str = FRAME_ALL,
                 selected_month: Optional[str] = None) -> List[Tuple[str, int]]:
    if time_frame == FRAME_MONTH:
        y, m = (int(p) for p in selected_month.split("-"))
        buckets = {day: 0 for day in range(1, calendar.monthrange(y, m)[1] + 1)}
        for r in records:
            day = to_local(r.added_at).day
            buckets[day] = buckets.get(day, 0) + 1
        return [(f"{d}日", c) for d, c in buckets.items()]
    if time_frame == FRAME_YEAR:
        buckets = {month: 0 for month in range(1, 13)}
        for r in records:
            buckets[to_local(r.added_at).month] += 1
        return [(f"{mo}月", c) for mo, c in buckets.items()]
    years = Counter(str(to_local(r.added_at).year) for r in records)
    return [(f"{y}年", years[y]) for y in sorted(years)]


def compute_stats(records: Iterable[Record], time_frame: str = FRAME_ALL,
                  selected_year: Optional[str] = None, selected_month: Optional[str] = None) -> Stats:
    if time_frame not in TIME_FRAMES:
        raise ValueError(f"unknown time frame {time_frame!r}")
    if time_frame == FRAME_MONTH and not selected_month:
        raise ValueError("month time frame needs selected_month (YYYY-MM)")
    if time_frame == FRAME_YEAR and not selected_year:
        raise ValueError("year time frame needs selected_year")

    scoped = scope_records(records, time_frame, selected_year, selected_month)

    rated = [r.rating for r in scoped if r.rating and r.rating > 0]
    average = round(sum(rated) / len(rated), 1) if rated else 0

    movies = [r for r in scoped if not r.is_tv]
    movie_minutes = sum(r.duration or 0 for r in movies)

    rollups = series_rollups(scoped)
    episodes = sum(s.max_episode for s in rollups.values())
    tv_minutes = sum(s.max_episode * s.duration for s in rollups.values())

    return Stats(
        total=len(scoped),
        movie_count=len(movies),
        tv_count=len(rollups),
        average_rating=average,
        status_counts=status_histogram(scoped),
        rating_counts=rating_histogram(scoped),
        genre_counts=genre_histogram(scoped),
        trend=trend_series(scoped, time_frame, selected_month),
        total_episodes_watched=episodes,
        total_minutes=movie_minutes + tv_minutes,
        series=rollups,
    )
