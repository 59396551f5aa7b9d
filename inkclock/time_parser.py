#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import sys
import re
import json
from datetime import datetime
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta

from inkclock import (
    SECOND_UNITS, MINUTE_UNITS, HOUR_UNITS, TIME_COMPONENTS,
    build_unit_pattern, to_24_hour,
)
from inkclock.config import get_testing_mode
from inkclock.labels import extract_label, canonical_token
from inkclock.logger import setup_logger
from inkclock.models import ParsedTime

logger = setup_logger('time_parser', testing=get_testing_mode())

# (target, (start, end), is_duration, is_explicit_date)
RuleResult = Tuple[datetime, Tuple[int, int], bool, bool]

MAX_COMPOUND_HOURS = 48
MAX_DURATION_VALUE = 2880
DEFAULT_DATE_HOUR = 9

_c = TIME_COMPONENTS
_hour_units = build_unit_pattern(HOUR_UNITS)
_minute_units = build_unit_pattern(MINUTE_UNITS)
_all_units = build_unit_pattern(SECOND_UNITS, MINUTE_UNITS, HOUR_UNITS)
_compound_number = r'(\d{1,3}(?:\.\d+)?)'


class TimeParser:
    """Finds the first time expression in free text, in strict rule priority."""

    # 1h 30m, 1 hour 30 minutes, 2h30min
    compound_duration_pattern = re.compile(
        rf'(?<!\d){_compound_number}\s*{_hour_units}\s*{_compound_number}\s*{_minute_units}(?![^\W\d_])',
        re.IGNORECASE)
    # 30 min, 45m, 2h, 1 stunde, 90s, 1.5h
    duration_pattern = re.compile(
        rf'(?<!\d){_c["number"]}\s*({_all_units}){_c["end"]}',
        re.IGNORECASE)
    # 2:30 PM, 11.00am, 2:30 p.m.
    absolute_time_ampm_pattern = re.compile(
        rf'{_c["start"]}{_c["hours"]}{_c["separator"]}{_c["minutes"]}{_c["spaces"]}{_c["meridiem"]}{_c["end"]}',
        re.IGNORECASE)
    # 14:30, 9:05, 9.05
    absolute_time_pattern = re.compile(
        rf'{_c["start"]}{_c["hours"]}([:.]){_c["minutes"]}{_c["end"]}',
        re.IGNORECASE)
    # at 3, um 15, à 14:30, @ 3pm
    at_time_pattern = re.compile(
        rf'{_c["start"]}(?:at|@|um|à)\s+{_c["hours"]}(?:{_c["separator"]}{_c["minutes"]})?'
        rf'(?:{_c["spaces"]}{_c["meridiem"]})?{_c["end"]}',
        re.IGNORECASE)
    # 3pm, 11 am
    bare_hour_ampm_pattern = re.compile(
        rf'{_c["start"]}{_c["hours"]}{_c["spaces"]}{_c["meridiem"]}{_c["end"]}',
        re.IGNORECASE)
    # 03.02, 3/2, 03.02 14:30
    date_pattern = re.compile(
        rf'{_c["start"]}(\d{{1,2}})[./](\d{{1,2}})(?:\s+{_c["hours"]}{_c["separator"]}{_c["minutes"]})?(?=\s|$)',
        re.IGNORECASE)

    hour_units = frozenset(HOUR_UNITS)
    second_units = frozenset(SECOND_UNITS)

    def __init__(self):
        self.rules = (
            self.parse_compound_duration,
            self.parse_duration,
            self.parse_absolute_time_ampm,
            self.parse_absolute_time,
            self.parse_at_time,
            self.parse_bare_hour_ampm,
            self.parse_date_expression,
        )

    def parse(self, text: str, now: Optional[datetime] = None) -> Optional[ParsedTime]:
        """Parse the first recognized time expression, with span and label.

        Returns None when the text holds no time expression; that is the
        normal outcome for plain ink, not an error.
        """
        if not text:
            return None
        clean_text = text.strip()
        if not clean_text:
            return None
        offset = len(text) - len(text.lstrip())
        now = now or datetime.now()

        for rule in self.rules:
            result = rule(clean_text, now)
            if result:
                break
        else:
            return None

        target, (start, end), is_duration, is_explicit_date = result
        logger.debug(f"{rule.__name__} matched {clean_text[start:end]!r} in {clean_text!r}")
        return ParsedTime(
            target_time=target,
            match_span=(start + offset, end + offset),
            is_duration=is_duration,
            is_explicit_date=is_explicit_date,
            label=extract_label(clean_text, (start, end)),
        )

    def parse_compound_duration(self, text: str, now: datetime) -> Optional[RuleResult]:
        match = self.compound_duration_pattern.search(text)
        if not match:
            return None
        hours = float(match.group(1))
        minutes = float(match.group(2))
        if not (0 <= hours <= MAX_COMPOUND_HOURS and 0 <= minutes <= 59):
            return None
        total_seconds = int(round(hours * 3600 + minutes * 60))
        if total_seconds <= 0:
            return None
        return now + relativedelta(seconds=+total_seconds), match.span(), True, False

    def parse_duration(self, text: str, now: datetime) -> Optional[RuleResult]:
        match = self.duration_pattern.search(text)
        if not match:
            return None
        value = float(match.group(1))
        unit = match.group(2).lower()
        if not 0 < value <= MAX_DURATION_VALUE:
            return None

        if unit in self.hour_units:
            total_seconds = int(round(value * 3600))
        elif unit in self.second_units:
            total_seconds = int(round(value))
        else:
            total_seconds = int(round(value * 60))
        if total_seconds <= 0:
            return None
        return now + relativedelta(seconds=+total_seconds), match.span(), True, False

    def parse_absolute_time_ampm(self, text: str, now: datetime) -> Optional[RuleResult]:
        match = self.absolute_time_ampm_pattern.search(text)
        if not match:
            return None
        hour = int(match.group(1))
        minute = int(match.group(2))
        if not (1 <= hour <= 12 and 0 <= minute <= 59):
            return None
        hour = to_24_hour(hour, match.group(3))
        return self._next_time_of_day(now, hour, minute), match.span(), False, False

    def parse_absolute_time(self, text: str, now: datetime) -> Optional[RuleResult]:
        match = self.absolute_time_pattern.search(text)
        if not match:
            return None
        hour_text, separator, minute_text = match.groups()
        hour = int(hour_text)
        minute = int(minute_text)
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            return None
        if self._belongs_to_date(text, match):
            return None
        return self._next_time_of_day(now, hour, minute), match.span(), False, False

    def _belongs_to_date(self, text, match) -> bool:
        """True for "03.02" itself, or either half of "1.12 18:30" and "25/12 18:30"."""
        date_match = self.date_pattern.search(text)
        if not date_match:
            return False
        if not (1 <= int(date_match.group(1)) <= 31 and 1 <= int(date_match.group(2)) <= 12):
            return False
        has_time = date_match.group(3) is not None and (
            int(date_match.group(3)) <= 23 and int(date_match.group(4)) <= 59)
        if has_time and match.start() in (date_match.start(1), date_match.start(3)):
            return True
        hour_text, separator, _ = match.groups()
        return match.start() == date_match.start(1) and separator == '.' and hour_text.startswith('0')

    def parse_at_time(self, text: str, now: datetime) -> Optional[RuleResult]:
        match = self.at_time_pattern.search(text)
        if not match:
            return None
        hour = int(match.group(1))
        minute = int(match.group(2)) if match.group(2) else 0
        meridiem = match.group(3)

        if meridiem:
            if not 1 <= hour <= 12:
                return None
            hour = to_24_hour(hour, meridiem)
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            return None
        return self._next_time_of_day(now, hour, minute), (match.start(1), match.end()), False, False

    def parse_bare_hour_ampm(self, text: str, now: datetime) -> Optional[RuleResult]:
        match = self.bare_hour_ampm_pattern.search(text)
        if not match:
            return None
        hour = int(match.group(1))
        if not 1 <= hour <= 12:
            return None
        hour = to_24_hour(hour, match.group(2))
        return self._next_time_of_day(now, hour, 0), match.span(), False, False

    def parse_date_expression(self, text: str, now: datetime) -> Optional[RuleResult]:
        match = self.date_pattern.search(text)
        if not match:
            return None
        day = int(match.group(1))
        month = int(match.group(2))
        if not (1 <= day <= 31 and 1 <= month <= 12):
            return None

        hour, minute = DEFAULT_DATE_HOUR, 0
        end = match.end(2)
        if match.group(3) is not None:
            h = int(match.group(3))
            m = int(match.group(4))
            if 0 <= h <= 23 and 0 <= m <= 59:
                hour, minute = h, m
                end = match.end(4)

        target = self._next_date(now, day, month, hour, minute)
        if target is None:
            return None
        return target, (match.start(1), end), False, True

    def _next_time_of_day(self, now: datetime, hour: int, minute: int) -> datetime:
        """Today at hour:minute, or tomorrow when that is not after now"""
        target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if target <= now:
            target += relativedelta(days=+1)
        return target

    def _next_date(self, now: datetime, day: int, month: int, hour: int, minute: int) -> Optional[datetime]:
        """Next day/month at hour:minute after now; None for dates that never exist"""
        try:
            # 2000 is a leap year, so only truly impossible dates fail here
            datetime(2000, month, day)
        except ValueError:
            return None

        # 29.02 may have to wait for the next leap year
        for year in range(now.year, now.year + 9):
            try:
                target = now.replace(year=year, month=month, day=day,
                                     hour=hour, minute=minute, second=0, microsecond=0)
            except ValueError:
                continue
            if target > now:
                return target
        return None


_default_parser = TimeParser()


def parse(text: str, now: Optional[datetime] = None) -> Optional[ParsedTime]:
    """Parse text with the shared parser instance"""
    return _default_parser.parse(text, now)


def matched_token(text: str, now: Optional[datetime] = None) -> Optional[str]:
    """Canonical token of the time expression in text, e.g. "15min" or "1330"."""
    parsed = parse(text, now)
    if parsed is None:
        return None
    token = canonical_token(parsed.matched_text(text))
    return token or None


def main():
    from inkclock.preview import generate_items

    if len(sys.argv) < 2:
        print(json.dumps({
            "items": [{
                "title": "Write a time...",
                "subtitle": "e.g. \"Call Mom in 15 min\", \"2:30 PM\", \"03.02 14:30\"",
                "valid": False
            }]
        }))
        return

    query = " ".join(sys.argv[1:])
    print(json.dumps({"items": generate_items(query)}, ensure_ascii=False))


if __name__ == "__main__":
    main()
