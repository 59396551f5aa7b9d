#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from datetime import datetime, timedelta
from typing import List, Optional

from inkclock.config import get_testing_mode
from inkclock.logger import setup_logger
from inkclock.models import ParsedTime
from inkclock.time_parser import parse

logger = setup_logger('preview', testing=get_testing_mode())


def format_duration(seconds: int) -> str:
    """Compact countdown text: 45s, 15 min, 1h 30m"""
    if seconds < 60:
        return f"{seconds}s"
    minutes, _ = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if not hours:
        return f"{minutes} min"
    if not minutes:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def describe_target(parsed: ParsedTime, now: datetime) -> str:
    """Human description of when a parsed time fires"""
    target = parsed.target_time
    if parsed.is_duration:
        return f"in {format_duration(int(round((target - now).total_seconds())))}"

    time_str = target.strftime('%-I:%M %p')
    if target.date() == now.date():
        return f"Today at {time_str}"
    elif target.date() == (now + timedelta(days=1)).date():
        return f"Tomorrow at {time_str}"
    return target.strftime("%A, %B %-d at %-I:%M %p")


def generate_items(text: str, now: Optional[datetime] = None) -> List[dict]:
    """Generate preview items"""
    logger.debug(f"Generating preview for: {text}")
    now = now or datetime.now()
    parsed = parse(text, now)

    if parsed is None:
        return [{
            "title": text.strip() or "Write a time...",
            "subtitle": "No time found",
            "arg": text,
            "valid": False
        }]

    subtitle_parts = [describe_target(parsed, now)]
    if parsed.is_explicit_date:
        subtitle_parts.append("📅 date")

    return [{
        "title": parsed.label or parsed.matched_text(text),
        "subtitle": " • ".join(subtitle_parts),
        "arg": text,
        "valid": True,
        "target_time": parsed.target_time.isoformat(),
        "is_duration": parsed.is_duration,
        "is_explicit_date": parsed.is_explicit_date,
        "match": list(parsed.match_span),
    }]
