from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from dateutil import parser

from inkclock.geometry import Point, Rect


@dataclass(frozen=True)
class ParsedTime:
    """Result of finding a time expression inside a larger text."""

    target_time: datetime
    # Half-open (start, end) character range of the expression in the source text
    match_span: Tuple[int, int]
    is_duration: bool
    is_explicit_date: bool = False
    # "Call Mom" from "Call Mom in 15 min"; None when the text is only the expression
    label: Optional[str] = None

    def matched_text(self, source: str) -> str:
        start, end = self.match_span
        return source[start:end]


@dataclass(frozen=True)
class OCRObservation:
    """One recognized text line: ranked candidates plus a box normalized to the scan region."""

    candidates: Tuple[str, ...]
    bounding_box: Rect

    @classmethod
    def from_dict(cls, data: dict) -> 'OCRObservation':
        return cls(tuple(str(c) for c in data.get('candidates', ())),
                   Rect.from_dict(data.get('bounding_box', {})))


def new_timer_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Timer:
    original_text: str
    target_time: datetime
    anchor: Point
    text_rect: Rect = Rect(0, 0, 0, 0)
    is_duration: bool = True
    is_explicit_date: bool = False
    label: Optional[str] = None
    pen_color: str = '#000000'
    is_expired: bool = False
    is_dismissed: bool = False
    calendar_event_id: Optional[str] = None
    id: str = field(default_factory=new_timer_id)

    def moved_to(self, anchor: Point, text_rect: Rect) -> 'Timer':
        """Copy with new geometry; identity, countdown and user state are kept."""
        return replace(self, anchor=anchor, text_rect=text_rect)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'original_text': self.original_text,
            'target_time': self.target_time.isoformat(),
            'anchor_x': self.anchor.x,
            'anchor_y': self.anchor.y,
            'text_rect_x': self.text_rect.x,
            'text_rect_y': self.text_rect.y,
            'text_rect_w': self.text_rect.width,
            'text_rect_h': self.text_rect.height,
            'is_duration': self.is_duration,
            'is_explicit_date': self.is_explicit_date,
            'label': self.label,
            'pen_color': self.pen_color,
            'is_expired': self.is_expired,
            'is_dismissed': self.is_dismissed,
            'calendar_event_id': self.calendar_event_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Timer':
        """Build a timer from its dict form; optional keys fall back to defaults."""
        return cls(
            id=str(data['id']),
            original_text=data['original_text'],
            target_time=parser.isoparse(data['target_time']),
            anchor=Point(float(data['anchor_x']), float(data['anchor_y'])),
            text_rect=Rect(
                float(data.get('text_rect_x', 0)),
                float(data.get('text_rect_y', 0)),
                float(data.get('text_rect_w', 0)),
                float(data.get('text_rect_h', 0)),
            ),
            is_duration=data.get('is_duration', True),
            is_explicit_date=data.get('is_explicit_date', False),
            label=data.get('label'),
            pen_color=data.get('pen_color', '#000000'),
            is_expired=data.get('is_expired', False),
            is_dismissed=data.get('is_dismissed', False),
            calendar_event_id=data.get('calendar_event_id'),
        )


@dataclass(frozen=True)
class TimerMigration:
    timer_id: str
    anchor: Point
    text_rect: Rect

    def to_dict(self) -> dict:
        return {'timer_id': self.timer_id, 'anchor_x': self.anchor.x, 'anchor_y': self.anchor.y,
                'text_rect': self.text_rect.to_dict()}


@dataclass
class ReconcileDelta:
    """Changes one OCR pass implies for the caller's timer collection."""

    new_timers: List[Timer] = field(default_factory=list)
    migrated: List[TimerMigration] = field(default_factory=list)
    zombie_ids: Set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not (self.new_timers or self.migrated or self.zombie_ids)

    def migrated_by_id(self) -> Dict[str, TimerMigration]:
        return {m.timer_id: m for m in self.migrated}

    def to_dict(self) -> dict:
        return {
            'new_timers': [t.to_dict() for t in self.new_timers],
            'migrated': [m.to_dict() for m in self.migrated],
            'zombie_ids': sorted(self.zombie_ids),
        }
