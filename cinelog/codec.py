# cinelog/codec.py
"""
JSON / CSV import and export of the record list.

The CSV layout (column names, BOM, date rendering, media type labels) is the
one spreadsheet users already have backups in, so it is fixed.
"""
import csv
import io
import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Sequence, Tuple

from dateutil import parser as date_parser

from cinelog.models import (DEFAULT_POSTER_COLOR, MEDIA_MOVIE, MEDIA_TV, Record,
                            new_id, now_ms, to_local)

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# (header, serialized key) in export order
CSV_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("ID", "id"),
    ("标题", "title"),
    ("年份", "year"),
    ("国家/地区", "country"),
    ("类型", "genre"),
    ("导演", "director"),
    ("评分", "rating"),
    ("状态", "status"),
    ("评价", "review"),
    ("添加时间", "addedAt"),
    ("最后更新", "lastUpdated"),
    ("媒体类型", "mediaType"),
    ("当前集数", "currentEpisode"),
    ("总集数", "totalEpisodes"),
    ("时长", "duration"),
)
HEADER_MAP = dict(CSV_COLUMNS)

NUMERIC_KEYS = {"rating", "currentEpisode", "totalEpisodes", "duration"}
TIMESTAMP_KEYS = {"addedAt", "lastUpdated"}
TEXT_KEYS = {"country", "director", "review", "status", "posterColor", "posterImage"}

TV_LABEL = "电视剧"
MOVIE_LABEL = "电影"

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


class ImportFormatError(Exception):
    """Raised when an uploaded file cannot be imported at all."""
    pass


@dataclass
class ImportResult:
    imported: int
    skipped: int

    @property
    def message(self) -> str:
        if self.imported == 0:
            return "没有发现新记录（所有记录已存在）。"
        return f"成功导入 {self.imported} 条新记录。{self.skipped} 条重复记录已跳过。"


# ---- Export ----
def export_json(records: Iterable[Record]) -> str:
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2)


def format_number(value) -> str:
    """Render 4.0 as "4" and 3.5 as "3.5"."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def format_timestamp(ts_ms) -> str:
    d = to_local(ts_ms)
    return f"{d.year}/{d.month}/{d.day} {d.hour:02d}:{d.minute:02d}:{d.second:02d}"


def _csv_row(r: Record) -> List[str]:
    return [
        r.id,
        r.title or "",
        r.year or "",
        r.country or "",
        r.genre or "",
        r.director or "",
        format_number(r.rating or 0),
        r.status or "",
        r.review or "",
        format_timestamp(r.added_at),
        format_timestamp(r.last_updated),
        TV_LABEL if r.is_tv else MOVIE_LABEL,
        format_number(r.current_episode) if r.current_episode else "",
        format_number(r.total_episodes) if r.total_episodes else "",
        format_number(r.duration) if r.duration else "",
    ]


def export_csv(records: Iterable[Record]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow([h for h, _ in CSV_COLUMNS])
    for r in records:
        writer.writerow(_csv_row(r))
    # no newline after the last row
    return BOM + output.getvalue()[:-1]


def export_filename(fmt: str, today: date = None) -> str:
    today = today or date.today()
    return f"cinelog_backup_{today.isoformat()}.{fmt}"


# ---- Import ----
def parse_number(val: str):
    """Leading number of val, 0 when there is none."""
    m = _LEADING_FLOAT.match(val or "")
    if not m:
        return 0
    n = float(m.group(0))
    return int(n) if n.is_integer() else n


def parse_timestamp(val: str) -> int:
    """Best-effort date parse to epoch ms; now when unparseable."""
    if not val:
        return now_ms()
    try:
        return int(date_parser.parse(val).timestamp() * 1000)
    except (ValueError, OverflowError) as e:
        logger.debug("unparseable timestamp %r: %s", val, e)
        return now_ms()


def _clamp(key: str, value):
    if key == "rating":
        return min(max(value, 0), 5)
    return max(value, 0)


def coerce_fields(data: dict) -> dict:
    """
    Best-effort typing of an imported row: numbers from text, timestamps
    from date strings, rating kept in 0-5 and counts non-negative.
    """
    out = dict(data)
    for key in NUMERIC_KEYS:
        value = out.get(key)
        if value is None or value == "":
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            value = parse_number(str(value))
        out[key] = _clamp(key, value)
    for key in TIMESTAMP_KEYS:
        value = out.get(key)
        if value is None or value == "":
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            out[key] = parse_timestamp(str(value))
        else:
            out[key] = int(value)
    for key in TEXT_KEYS:
        value = out.get(key)
        if value is not None and not isinstance(value, str):
            out[key] = str(value)
    return out


def parse_json(text: str) -> List[Record]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportFormatError(f"invalid JSON: {e}") from e
    if not isinstance(parsed, list):
        raise ImportFormatError("JSON must be a list of records")
    if not all(isinstance(item, dict) for item in parsed):
        raise ImportFormatError("JSON must be a list of records")
    return [Record.from_dict(coerce_fields(item)) for item in parsed]


def parse_csv(text: str) -> List[Record]:
    if text.startswith(BOM):
        text = text[1:]
    rows = [row for row in csv.reader(io.StringIO(text)) if "".join(row).strip() or len(row) > 1]
    if not rows:
        return []

    key_index = {i: HEADER_MAP[h] for i, h in enumerate(rows[0]) if h in HEADER_MAP}
    out: List[Record] = []
    for line_no, values in enumerate(rows[1:], start=2):
        if len(values) < 2:
            logger.debug("skipping csv line %d: too few fields", line_no)
            continue
        data = {"posterColor": DEFAULT_POSTER_COLOR}
        for idx, key in key_index.items():
            val = values[idx].strip() if idx < len(values) else ""
            if key in NUMERIC_KEYS:
                data[key] = parse_number(val)
            elif key in TIMESTAMP_KEYS:
                data[key] = parse_timestamp(val)
            elif key == "mediaType":
                data[key] = MEDIA_TV if val == TV_LABEL else MEDIA_MOVIE
            else:
                data[key] = val
        if data.get("mediaType") != MEDIA_TV:
            data.pop("currentEpisode", None)
            data.pop("totalEpisodes", None)
        if not data.get("id"):
            data["id"] = new_id()
        out.append(Record.from_dict(coerce_fields(data)))
    return out


def parse_import(filename: str, content: str) -> List[Record]:
    """Parse an uploaded backup, choosing the format by file extension."""
    name = (filename or "").lower()
    if name.endswith(".json"):
        return parse_json(content)
    if name.endswith(".csv"):
        return parse_csv(content)
    raise ImportFormatError("unsupported file type; upload a .json or .csv file")


def merge_records(existing: Sequence[Record], candidates: Iterable[Record]) -> Tuple[List[Record], ImportResult]:
    """
    Drop candidates whose id is already known and prepend the rest.
    Returns the merged list and the imported / skipped counts.
    """
    seen = {str(r.id) for r in existing}
    unique: List[Record] = []
    skipped = 0
    for c in candidates:
        if str(c.id) in seen:
            skipped += 1
            continue
        seen.add(str(c.id))
        unique.append(c)
    return unique + list(existing), ImportResult(imported=len(unique), skipped=skipped)
