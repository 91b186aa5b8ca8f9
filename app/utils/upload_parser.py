"""
Parsing for ALEKS "Time and Topic" progress exports.

ALEKS exports an ``.xlsx`` workbook; a copy saved as CSV is accepted too.
A few title rows may precede the header row; the
header repeats ``h:mm`` and ``added to pie`` once per day, so duplicate names
are suffixed the way spreadsheet exports do it (``h:mm``, ``h:mm_1``, ...).
Day ``n`` is read from ``h:mm_n`` / ``added to pie_n`` or from
``Day n Minutes`` / ``Day n Topics``.
"""

import csv
import datetime
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.utils.errors import MalformedRowError, UnreadableUploadError
from app.utils.helpers import normalize_student_id
from app.utils.progress import (
    CalendarDay,
    DEFAULT_THRESHOLDS,
    StudentProgress,
    Thresholds,
    coerce_count,
    process_student_activity,
)

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^(\d+):(\d{1,2})(?::\d{1,2})?$")

_MINUTES_PATTERNS = (
    re.compile(r"^h:mm_(\d+)$", re.IGNORECASE),
    re.compile(r"^(?:day\s*|d)(\d+)[\s_]*minutes$", re.IGNORECASE),
)
_TOPICS_PATTERNS = (
    re.compile(r"^added to pie_(\d+)$", re.IGNORECASE),
    re.compile(r"^(?:day\s*|d)(\d+)[\s_]*topics$", re.IGNORECASE),
)

_NAME_HEADERS = ("student", "name", "student name")
_ID_HEADERS = ("student id", "student_id", "studentid", "id")
_EMAIL_HEADERS = ("email", "student email", "e-mail")

# Column positions used when the identity headers are not recognized
_NAME_POSITION = 0
_ID_POSITION = 2
_EMAIL_POSITION = 3

# How far down the file to look for the header row
_HEADER_SCAN_LIMIT = 10


@dataclass
class StudentActivity:
    """Raw activity for one student as read from the upload."""
    student_id: str
    name: str
    email: str
    activity_by_day: Dict[int, Tuple[float, float]] = field(default_factory=dict)


@dataclass
class ParsedUpload:
    students: Dict[str, StudentActivity]
    observed_day_count: int
    skipped_rows: int = 0
    errors: List[str] = field(default_factory=list)


def time_to_minutes(value) -> int:
    """Convert an ``H:MM`` / ``HH:MM`` duration to minutes; anything else is 0."""
    if value is None:
        return 0
    match = _TIME_RE.match(str(value).strip())
    if not match:
        return 0
    hours, minutes = match.groups()
    return int(hours) * 60 + int(minutes)


def dedupe_headers(headers: Sequence[str]) -> List[str]:
    """Suffix repeated header names: ``a, a, a`` -> ``a, a_1, a_2``."""
    seen: Dict[str, int] = {}
    result = []
    for header in headers:
        name = (header or "").strip()
        if name in seen:
            seen[name] += 1
            result.append(f"{name}_{seen[name]}")
        else:
            seen[name] = 0
            result.append(name)
    return result


def _match_day(header: str, patterns) -> Optional[int]:
    for pattern in patterns:
        match = pattern.match(header)
        if match:
            return int(match.group(1))
    return None


def extract_day_columns(headers: Sequence[str]) -> Dict[int, Tuple[Optional[int], Optional[int]]]:
    """Map day number -> (minutes column index, topics column index)."""
    columns: Dict[int, List[Optional[int]]] = {}
    for index, header in enumerate(headers):
        day = _match_day(header, _MINUTES_PATTERNS)
        if day is not None:
            columns.setdefault(day, [None, None])[0] = index
            continue
        day = _match_day(header, _TOPICS_PATTERNS)
        if day is not None:
            columns.setdefault(day, [None, None])[1] = index
    return {day: (pair[0], pair[1]) for day, pair in columns.items() if day > 0}


def _looks_like_header(row: Sequence[str]) -> bool:
    cells = [(cell or "").strip().lower() for cell in row]
    if "h:mm" in cells:
        return True
    return any(_match_day(cell, _MINUTES_PATTERNS + _TOPICS_PATTERNS) for cell in cells)


def _find_column(headers: Sequence[str], candidates: Sequence[str], fallback: int) -> int:
    lowered = [header.lower() for header in headers]
    for candidate in candidates:
        if candidate in lowered:
            return lowered.index(candidate)
    return fallback


def _cell(row: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    return (row[index] or "").strip()


def parse_progress_csv(content: Union[bytes, str]) -> ParsedUpload:
    """
    Read an uploaded progress CSV into per-student raw activity.

    Rows without a student id or name are skipped and counted; they never
    abort the batch. A later row for the same student id replaces an earlier one.
    """
    if isinstance(content, bytes):
        # utf-8-sig strips the BOM spreadsheet exports add
        content = content.decode("utf-8-sig")
    return parse_progress_rows(csv.reader(io.StringIO(content, newline=None)))


def _workbook_cell(value) -> str:
    """Render a workbook cell the way the CSV export spells it."""
    if value is None:
        return ""
    if isinstance(value, datetime.timedelta):
        minutes = int(value.total_seconds() // 60)
        return f"{minutes // 60}:{minutes % 60:02d}"
    if isinstance(value, datetime.datetime):
        value = value.time()
    if isinstance(value, datetime.time):
        return f"{value.hour}:{value.minute:02d}"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_progress_xlsx(content: bytes) -> ParsedUpload:
    """
    Read the first worksheet of an ALEKS ``Time_and_Topic.xlsx`` workbook.

    Cells are rendered as text and go through the same header detection and
    row handling as a CSV upload. Duration cells stored as times become ``H:MM``.
    """
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
        raise UnreadableUploadError("Could not read the workbook. Upload the .xlsx file exported from ALEKS.") from e

    try:
        worksheet = workbook.worksheets[0]
        rows = [
            [_workbook_cell(value) for value in row]
            for row in worksheet.iter_rows(values_only=True)
        ]
    finally:
        workbook.close()

    return parse_progress_rows(rows)


def parse_progress_upload(filename: str, content: bytes) -> ParsedUpload:
    """Dispatch on the file extension: ``.xlsx`` workbooks, anything else as CSV."""
    if (filename or "").lower().endswith(".xlsx"):
        return parse_progress_xlsx(content)
    try:
        return parse_progress_csv(content)
    except UnicodeDecodeError as e:
        raise UnreadableUploadError("Could not read the file. Upload the .xlsx export or save it as UTF-8 CSV.") from e


def parse_progress_rows(rows: Iterable[Sequence[str]]) -> ParsedUpload:
    """Turn tabular rows (title rows, a header row, then students) into activity."""
    rows = list(rows)

    header_index = 0
    for index, row in enumerate(rows[:_HEADER_SCAN_LIMIT]):
        if _looks_like_header(row):
            header_index = index
            break

    if not rows:
        return ParsedUpload(students={}, observed_day_count=0)

    headers = dedupe_headers(rows[header_index])
    day_columns = extract_day_columns(headers)
    observed_day_count = max(day_columns) if day_columns else 0

    name_col = _find_column(headers, _NAME_HEADERS, _NAME_POSITION)
    id_col = _find_column(headers, _ID_HEADERS, _ID_POSITION)
    email_col = _find_column(headers, _EMAIL_HEADERS, _EMAIL_POSITION)

    parsed = ParsedUpload(students={}, observed_day_count=observed_day_count)

    for offset, row in enumerate(rows[header_index + 1:], start=header_index + 2):
        if not any((cell or "").strip() for cell in row):
            continue
        try:
            student = _parse_student_row(row, offset, name_col, id_col, email_col, day_columns)
        except MalformedRowError as e:
            logger.warning(f"{e}, skipping")
            parsed.skipped_rows += 1
            parsed.errors.append(str(e))
            continue
        parsed.students[student.student_id] = student

    return parsed


def _parse_student_row(row, row_number, name_col, id_col, email_col, day_columns) -> StudentActivity:
    student_id = normalize_student_id(_cell(row, id_col))
    name = _cell(row, name_col)
    if not student_id or not name:
        raise MalformedRowError(row_number)

    activity = {}
    for day, (minutes_col, topics_col) in day_columns.items():
        activity[day] = (
            time_to_minutes(_cell(row, minutes_col)),
            coerce_count(_cell(row, topics_col)),
        )

    return StudentActivity(
        student_id=student_id,
        name=name,
        email=_cell(row, email_col),
        activity_by_day=activity,
    )


def build_upload_progress(
    parsed: ParsedUpload,
    calendar_days: List[CalendarDay],
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Dict[str, Tuple[StudentActivity, StudentProgress]]:
    """Qualify and aggregate every parsed student against the period calendar."""
    results = {}
    for student_id, student in parsed.students.items():
        progress = process_student_activity(
            calendar_days,
            student.activity_by_day,
            parsed.observed_day_count,
            thresholds,
        )
        results[student_id] = (student, progress)
    return results
