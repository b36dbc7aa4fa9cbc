# cinelog/listing.py
"""
Filtering, ordering and paging of the record list.

Everything here is a pure function of its inputs except Paginator and
ListingState, which hold the user's current page / filter / sort selection.
"""
import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from cinelog.models import Record, to_local, year_month
from cinelog.textmatch import collation_key, fuzzy_match, split_tags

ALL = "all"

SORT_FIELDS = ("addedAt", "rating", "year", "title")
SORT_ASC = "asc"
SORT_DESC = "desc"

_RECENT_WINDOWS = {"7d": 7, "30d": 30}
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class FilterConfig:
    search: str = ""
    status: str = ALL
    date_range: str = ALL  # "all", "7d", "30d", "year_2024", "month_2024-03"
    country: str = ALL


@dataclass(frozen=True)
class SortConfig:
    field: str = "addedAt"
    direction: str = SORT_DESC


@dataclass
class Page:
    items: List[Record]
    page: int
    total_pages: int
    total: int


def matches_date_range(added_at: int, date_range: str, now: Optional[datetime] = None) -> bool:
    if not date_range or date_range == ALL:
        return True
    movie_date = to_local(added_at)
    now = now or datetime.now()
    if date_range in _RECENT_WINDOWS:
        return movie_date >= now - timedelta(days=_RECENT_WINDOWS[date_range])
    if date_range.startswith("year_"):
        try:
            return movie_date.year == int(date_range.split("_", 1)[1])
        except ValueError:
            return False
    if date_range.startswith("month_"):
        return year_month(added_at) == date_range[len("month_"):]
    return True


def matches_filter(record: Record, cfg: FilterConfig, now: Optional[datetime] = None) -> bool:
    matches_search = fuzzy_match(record.title, cfg.search) or fuzzy_match(record.genre, cfg.search)
    matches_status = cfg.status == ALL or record.status == cfg.status
    matches_date = matches_date_range(record.added_at, cfg.date_range, now)
    matches_country = cfg.country == ALL or bool(record.country and cfg.country in record.country)
    return matches_search and matches_status and matches_date and matches_country


def filter_records(records: Iterable[Record], cfg: FilterConfig, now: Optional[datetime] = None) -> List[Record]:
    return [r for r in records if matches_filter(r, cfg, now)]


def parse_year(year) -> int:
    """Leading integer of a free-form year ("2010", "2010-2014", "约1999" -> 0)."""
    m = _LEADING_INT.match(str(year or ""))
    return int(m.group(1)) if m else 0


def _sort_key(field_name: str):
    if field_name == "year":
        return lambda r: parse_year(r.year)
    if field_name == "title":
        return lambda r: collation_key(r.title)
    if field_name == "rating":
        return lambda r: r.rating or 0
    return lambda r: r.added_at or 0


def sort_records(records: Iterable[Record], cfg: SortConfig) -> List[Record]:
    """
    Sort ascending on the chosen field; descending is the reversed ascending
    list, so records with equal keys appear in mirrored order.
    """
    data = sorted(records, key=_sort_key(cfg.field))
    if cfg.direction == SORT_ASC:
        return data
    data.reverse()
    return data


def total_pages(count: int, page_size: int) -> int:
    return math.ceil(count / page_size) if page_size > 0 else 0


def paginate(items: Sequence[Record], page_size: int, page: int) -> Page:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    start = (page - 1) * page_size
    chunk = list(items[max(start, 0):max(start + page_size, 0)])
    return Page(items=chunk, page=page, total_pages=total_pages(len(items), page_size), total=len(items))


class Paginator:
    def __init__(self, page_size: int = 24):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.page_size = page_size
        self.current_page = 1

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.page_size = page_size
        self.current_page = 1

    def go_to(self, page: int, item_count: int) -> bool:
        """Move to page if it exists; otherwise leave the current page alone."""
        if 1 <= page <= total_pages(item_count, self.page_size):
            self.current_page = page
            return True
        return False

    def reset(self) -> None:
        self.current_page = 1

    def page_of(self, items: Sequence[Record]) -> Page:
        return paginate(items, self.page_size, self.current_page)


@dataclass
class ListingState:
    """The list view's selection: filter + sort + current page."""
    filter: FilterConfig = field(default_factory=FilterConfig)
    sort: SortConfig = field(default_factory=SortConfig)
    paginator: Paginator = field(default_factory=Paginator)

    def update_filter(self, **changes) -> None:
        new = replace(self.filter, **changes)
        if new != self.filter:
            self.filter = new
            self.paginator.reset()

    def update_sort(self, field_name: Optional[str] = None, direction: Optional[str] = None) -> None:
        new = SortConfig(field=field_name or self.sort.field, direction=direction or self.sort.direction)
        if new != self.sort:
            self.sort = new
            self.paginator.reset()

    def ordered(self, records: Iterable[Record], now: Optional[datetime] = None) -> List[Record]:
        return sort_records(filter_records(records, self.filter, now), self.sort)

    def view(self, records: Iterable[Record], now: Optional[datetime] = None) -> Page:
        return self.paginator.page_of(self.ordered(records, now))


def country_options(records: Iterable[Record]) -> List[str]:
    countries = set()
    for r in records:
        countries.update(split_tags(r.country))
    return sorted(countries, key=collation_key)
