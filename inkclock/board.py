from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from dateutil.relativedelta import relativedelta

from inkclock.config import get_testing_mode
from inkclock.logger import setup_logger
from inkclock.models import ReconcileDelta, Timer
from inkclock.time_parser import TimeParser

logger = setup_logger('board', testing=get_testing_mode())


class TimerTextError(ValueError):
    """Edited timer text is empty or holds no time expression."""


class CalendarSink(Protocol):
    """Calendar collaborator that owns events created for timers."""

    def delete_event(self, identifier: str) -> None:
        ...


class TimerBoard:
    """Authoritative timer collection that applies reconciliation deltas.

    Recognition passes run off the main path; each one takes a generation
    token from begin_recognition() and its delta is applied only if no newer
    pass has started since.
    """

    def __init__(self, timers: Iterable[Timer] = (), calendar: Optional[CalendarSink] = None,
                 parser: Optional[TimeParser] = None):
        self._timers: List[Timer] = list(timers)
        self.calendar = calendar
        self.parser = parser or TimeParser()
        self.generation = 0

    @property
    def timers(self) -> List[Timer]:
        return list(self._timers)

    def get(self, timer_id: str) -> Optional[Timer]:
        return next((t for t in self._timers if t.id == timer_id), None)

    def _index(self, timer_id: str) -> Optional[int]:
        return next((i for i, t in enumerate(self._timers) if t.id == timer_id), None)

    def _delete_calendar_events(self, timers: Iterable[Timer]):
        if self.calendar is None:
            return
        for timer in timers:
            if timer.calendar_event_id:
                self.calendar.delete_event(timer.calendar_event_id)

    # Recognition results

    def begin_recognition(self) -> int:
        """Start a recognition pass; older passes become stale"""
        self.generation += 1
        return self.generation

    def apply(self, delta: ReconcileDelta, token: Optional[int] = None,
              now: Optional[datetime] = None) -> bool:
        """Apply a delta as one swap; False when a newer pass superseded it"""
        if token is not None and token != self.generation:
            logger.debug(f"Discarding delta from pass {token}, current pass is {self.generation}")
            return False

        now = now or datetime.now()
        migrations = delta.migrated_by_id()
        removed = [t for t in self._timers if t.id in delta.zombie_ids]

        updated = []
        for timer in self._timers:
            if timer.id in delta.zombie_ids:
                continue
            migration = migrations.get(timer.id)
            if migration:
                timer = timer.moved_to(migration.anchor, migration.text_rect)
            updated.append(timer)
        updated.extend(delta.new_timers)
        self._timers = [replace(t, is_expired=t.target_time <= now) for t in updated]

        logger.debug(f"Applied delta: {len(delta.new_timers)} new, {len(migrations)} migrated, "
                     f"{len(removed)} removed")
        self._delete_calendar_events(removed)
        return True

    def clear_all(self):
        """Drop every timer, e.g. when the canvas has no strokes left"""
        removed, self._timers = self._timers, []
        self._delete_calendar_events(removed)

    def refresh_expiration(self, now: Optional[datetime] = None):
        now = now or datetime.now()
        self._timers = [replace(t, is_expired=t.target_time <= now) for t in self._timers]

    # User actions

    def dismiss(self, timer_id: str) -> bool:
        index = self._index(timer_id)
        if index is None:
            return False
        self._timers[index] = replace(self._timers[index], is_dismissed=True)
        return True

    def extend(self, timer_id: str, minutes: int, now: Optional[datetime] = None) -> bool:
        """Push the target back by minutes, counting from now if already expired"""
        index = self._index(timer_id)
        if index is None:
            return False
        now = now or datetime.now()
        timer = self._timers[index]
        base = timer.target_time if timer.target_time > now else now
        self._timers[index] = replace(timer, target_time=base + relativedelta(minutes=+minutes),
                                      is_expired=False, is_dismissed=False)
        return True

    def restart(self, timer_id: str, now: Optional[datetime] = None) -> bool:
        """Re-run the timer's original text from now"""
        index = self._index(timer_id)
        if index is None:
            return False
        timer = self._timers[index]
        parsed = self.parser.parse(timer.original_text, now or datetime.now())
        if parsed is None:
            return False
        self._timers[index] = replace(timer, target_time=parsed.target_time,
                                      is_expired=False, is_dismissed=False)
        return True

    def edit(self, timer_id: str, text: str, now: Optional[datetime] = None) -> Optional[Timer]:
        """Replace a timer's text and re-derive its target, label and date flag"""
        index = self._index(timer_id)
        if index is None:
            return None
        text = (text or '').strip()
        if not text:
            raise TimerTextError("Please enter a time value.")
        now = now or datetime.now()
        parsed = self.parser.parse(text, now)
        if parsed is None:
            raise TimerTextError(f'Could not parse "{text}". Try "15 min", "3pm", or "14:30".')

        edited = replace(
            self._timers[index],
            original_text=text,
            target_time=parsed.target_time,
            is_duration=parsed.is_duration,
            is_explicit_date=parsed.is_explicit_date,
            label=parsed.label,
            is_expired=parsed.target_time <= now,
            is_dismissed=False,
        )
        self._timers[index] = edited
        return edited

    def delete(self, timer_id: str) -> bool:
        timer = self.get(timer_id)
        if timer is None:
            return False
        self._timers = [t for t in self._timers if t.id != timer_id]
        self._delete_calendar_events([timer])
        return True

    def clear_expired(self, now: Optional[datetime] = None) -> List[Timer]:
        """Drop expired timers; their calendar events stay as history"""
        now = now or datetime.now()
        removed = [t for t in self._timers if t.target_time <= now]
        self._timers = [t for t in self._timers if t.target_time > now]
        return removed

    def dismiss_all_alerts(self, now: Optional[datetime] = None):
        now = now or datetime.now()
        self._timers = [replace(t, is_dismissed=True) if t.target_time <= now else t
                        for t in self._timers]
