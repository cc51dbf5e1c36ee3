# api/slipparser/parsers/dates.py
"""
Date/time normalization for slip timestamps.

Accepts Thai month abbreviations (ม.ค. - ธ.ค.) and full names, English
months, and day-first numeric dates, in Buddhist Era or Gregorian years.
Output is ISO-8601 with the fixed Bangkok offset (+07:00).
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .common import thai_digits_to_ascii
from .policy_loader import BankProfile, DateRules

BANGKOK = timezone(timedelta(hours=7))
BE_OFFSET = 543

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

_TH_MONTHS = {
    "ม.ค.": 1,
    "ก.พ.": 2,
    "มี.ค.": 3,
    "เม.ย.": 4,
    "พ.ค.": 5,
    "มิ.ย.": 6,
    "ก.ค.": 7,
    "ส.ค.": 8,
    "ก.ย.": 9,
    "ต.ค.": 10,
    "พ.ย.": 11,
    "ธ.ค.": 12,
    "มกราคม": 1,
    "กุมภาพันธ์": 2,
    "มีนาคม": 3,
    "เมษายน": 4,
    "พฤษภาคม": 5,
    "มิถุนายน": 6,
    "กรกฎาคม": 7,
    "สิงหาคม": 8,
    "กันยายน": 9,
    "ตุลาคม": 10,
    "พฤศจิกายน": 11,
    "ธันวาคม": 12,
}
_TH_LOOKUP = {key.replace(".", ""): month for key, month in _TH_MONTHS.items()}

_MON = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "sept": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}
MONTH_TOKEN = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"


def _thai_month_pattern(name: str) -> str:
    # "มี.ค." -> มี\.?\s?ค\.?  (OCR drops dots or adds a space after them)
    parts = [re.escape(p) for p in name.split(".") if p]
    tail = r"\.?" if name.endswith(".") else ""
    return r"\.?[ \t]?".join(parts) + tail


TH_MONTH_TOKEN = "(?:" + "|".join(
    _thai_month_pattern(name) for name in sorted(_TH_MONTHS, key=len, reverse=True)
) + ")"

_TIME = (
    r"(?:(?:[ \t]*(?:[-,]|เวลา|at)?[ \t]*"
    # or alone on the next line: "30 ส.ค. 2568\n12:11:36"
    r"|[ \t]*\n[ \t]*(?:เวลา[ \t]*)?(?=(?:[01]?\d|2[0-3]):\d{2}(?::\d{2})?(?:[ \t]*น\.?)?[ \t]*(?:\n|$)))"
    r"(?P<hour>\d{1,2})[:.](?P<minute>\d{2})(?:[:.](?P<second>\d{2}))?(?![\d])"
    r"(?:[ \t]*น\.?)?)?"
)

_LINE_BREAK = re.compile(r"[ \t]*\n[ \t]*")

_PATTERNS = {
    "thai": [
        re.compile(
            r"(?<!\d)(?P<day>\d{1,2})[ \t]*(?P<month>" + TH_MONTH_TOKEN + r")[ \t]*(?P<year>\d{2,4})(?!\d)" + _TIME
        ),
    ],
    "english": [
        re.compile(
            r"(?<!\d)(?P<day>\d{1,2})[ \t]*(?P<month>" + MONTH_TOKEN + r")[ \t,]*(?P<year>\d{2,4})(?!\d)" + _TIME,
            re.IGNORECASE,
        ),
        re.compile(
            r"(?<![A-Za-z])(?P<month>" + MONTH_TOKEN + r")[ \t]+(?P<day>\d{1,2}),?[ \t]+(?P<year>\d{4})(?!\d)" + _TIME,
            re.IGNORECASE,
        ),
    ],
    "numeric": [
        re.compile(
            r"(?<![\d\-/.])(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})(?![\d\-])" + _TIME
        ),
        re.compile(
            r"(?<![\d\-/.])(?P<day>\d{1,2})(?P<sep>[/.\-])(?P<month>\d{1,2})(?P=sep)(?P<year>\d{2,4})(?![\d\-/])" + _TIME
        ),
    ],
}


@dataclass(frozen=True)
class DateMatch:
    text: str
    start: int
    end: int
    vocabulary: str
    day: int
    month: int
    year_token: str
    hour: Optional[int] = None
    minute: Optional[int] = None
    second: Optional[int] = None


@dataclass(frozen=True)
class DateResult:
    iso: str = ""
    confidence: str = LOW


def _month_number(vocabulary: str, token: str) -> Optional[int]:
    if vocabulary == "thai":
        return _TH_LOOKUP.get(re.sub(r"[.\s]", "", token))
    if vocabulary == "english":
        key = token.lower().rstrip(".")
        return _MON.get(key[:4] if key.startswith("sept") else key[:3])
    try:
        value = int(token)
    except ValueError:
        return None
    return value if 1 <= value <= 12 else None


def _candidates(text: str, rules: DateRules) -> List[DateMatch]:
    scan = thai_digits_to_ascii(text)
    found: List[DateMatch] = []
    for vocabulary in rules.months:
        for pattern in _PATTERNS.get(vocabulary, []):
            for m in pattern.finditer(scan):
                month = _month_number(vocabulary, m.group("month"))
                day = int(m.group("day"))
                if month is None or not 1 <= day <= 31:
                    continue
                hour = m.group("hour")
                found.append(
                    DateMatch(
                        text=_LINE_BREAK.sub(" ", text[m.start() : m.end()]).strip(" \t,-"),
                        start=m.start(),
                        end=m.end(),
                        vocabulary=vocabulary,
                        day=day,
                        month=month,
                        year_token=m.group("year"),
                        hour=int(hour) if hour is not None else None,
                        minute=int(m.group("minute")) if hour is not None else None,
                        second=int(m.group("second")) if m.group("second") else None,
                    )
                )
    return found


def find_date(text: str, profile: BankProfile) -> Optional[DateMatch]:
    """Earliest date in the text; on a tie the longer (time-carrying) match wins."""
    found = _candidates(text or "", profile.date_rules)
    if not found:
        return None
    return min(found, key=lambda d: (d.start, -(d.end - d.start)))


def find_date_text(text: str, profile: BankProfile) -> str:
    match = find_date(text, profile)
    return match.text if match else ""


def _current_year() -> int:
    return datetime.now(BANGKOK).year


def _resolve_year(token: str, era: str, reference_year: int) -> Optional[int]:
    year = int(token)
    if len(token) == 4:
        return year - BE_OFFSET if year > reference_year + 50 else year
    if len(token) == 2:
        if era == "be":
            return 2500 + year - BE_OFFSET
        if era == "ad":
            return 2000 + year
    return None


def to_iso(match: DateMatch, rules: DateRules, reference_year: Optional[int] = None) -> DateResult:
    ref = reference_year if reference_year is not None else _current_year()
    year = _resolve_year(match.year_token, rules.era_for(match.vocabulary), ref)
    if year is None:
        return DateResult()
    try:
        dt = datetime(
            year,
            match.month,
            match.day,
            match.hour or 0,
            match.minute or 0,
            match.second or 0,
            tzinfo=BANGKOK,
        )
    except ValueError:
        return DateResult()
    return DateResult(iso=dt.isoformat(), confidence=HIGH if match.hour is not None else MEDIUM)


def normalize_date(
    text: str,
    profile: BankProfile,
    reference_year: Optional[int] = None,
) -> DateResult:
    """
    Parse a date-time string into (iso, confidence). Never raises.

    "high" means date and time were read, "medium" a date only (time set
    to 00:00:00), "low" nothing usable: iso is "" and the caller keeps the
    verbatim text.
    """
    match = find_date(text or "", profile)
    if match is None:
        return DateResult()
    return to_iso(match, profile.date_rules, reference_year)


def parse_iso(value: str) -> Dict[str, int]:
    """Civil components of an ISO timestamp produced by normalize_date."""
    dt = datetime.fromisoformat(value)
    return {
        "year": dt.year,
        "month": dt.month,
        "day": dt.day,
        "hour": dt.hour,
        "minute": dt.minute,
        "second": dt.second,
        "utcoffset_hours": int(dt.utcoffset().total_seconds() // 3600),
    }


__all__ = [
    "BANGKOK",
    "DateMatch",
    "DateResult",
    "HIGH",
    "MEDIUM",
    "LOW",
    "find_date",
    "find_date_text",
    "normalize_date",
    "parse_iso",
    "to_iso",
]
