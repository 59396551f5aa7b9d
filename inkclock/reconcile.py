#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Reconcile one OCR pass against the timers already on the board.

Three ordered phases turn a noisy, possibly partial OCR pass into a delta:

1. migration: a timer whose ink left its anchor but reappears, with the same
   text, somewhere else is moved in place instead of being recreated;
2. zombies: a timer anchored inside the scanned region with no matching ink
   is reported for removal;
3. new timers: parseable observations not already represented become timers.

Timers outside the scanned region are never touched.
"""

import sys
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence, Set

from inkclock.config import DEFAULT_SETTINGS, get_testing_mode, load_settings
from inkclock.geometry import Point, Rect
from inkclock.labels import canonical_token, normalize_text
from inkclock.logger import setup_logger
from inkclock.models import OCRObservation, ParsedTime, ReconcileDelta, Timer, TimerMigration
from inkclock.time_parser import TimeParser

logger = setup_logger('reconcile', testing=get_testing_mode())

PenColorSampler = Callable[[Rect], str]


@dataclass(frozen=True)
class RecognizedText:
    """An observation mapped to content space, with its comparison keys."""

    text: str
    normalized_candidates: FrozenSet[str]
    # Canonical token of the matched expression ("15min"); None when unparseable
    time_key: Optional[str]
    parsed: Optional[ParsedTime]
    center: Point
    text_rect: Rect


@dataclass(frozen=True)
class _TimerKeys:
    timer: Timer
    text: str
    time_key: Optional[str]


class ReconciliationEngine:
    def __init__(self, parser: Optional[TimeParser] = None, settings: Optional[dict] = None):
        self.parser = parser or TimeParser()
        settings = dict(DEFAULT_SETTINGS, **(settings if settings is not None else load_settings()))
        self.proximity_distance_squared = settings['proximity_distance_squared']
        self.candidate_limit = settings['candidate_limit']
        self.default_pen_color = settings['default_pen_color']

    # Preprocessing

    def recognize(self, observations: Iterable[OCRObservation], scan_region: Rect,
                  now: datetime) -> List[RecognizedText]:
        recognized = []
        for observation in observations:
            candidates = [c for c in list(observation.candidates)[:self.candidate_limit] if c.strip()]
            if not candidates:
                continue

            parsed_text, parsed = candidates[0], None
            for candidate in candidates:
                result = self.parser.parse(candidate, now)
                if result:
                    parsed_text, parsed = candidate, result
                    break

            time_key = None
            if parsed:
                time_key = canonical_token(parsed.matched_text(parsed_text)) or None

            rect = Rect.from_normalized(observation.bounding_box, scan_region)
            recognized.append(RecognizedText(
                text=parsed_text,
                normalized_candidates=frozenset(n for n in map(normalize_text, candidates) if n),
                time_key=time_key,
                parsed=parsed,
                center=rect.center,
                text_rect=rect,
            ))
        return recognized

    def default_pen_color_for(self, rect: Rect) -> str:
        return self.default_pen_color

    def timer_keys(self, timer: Timer, now: datetime) -> _TimerKeys:
        parsed = self.parser.parse(timer.original_text, now)
        time_key = None
        if parsed:
            time_key = canonical_token(parsed.matched_text(timer.original_text)) or None
        return _TimerKeys(timer, normalize_text(timer.original_text), time_key)

    # Matching

    def is_close(self, a: Point, b: Point) -> bool:
        return a.distance_squared(b) < self.proximity_distance_squared

    @staticmethod
    def text_equivalent(keys: _TimerKeys, recognized: RecognizedText) -> bool:
        if keys.text in recognized.normalized_candidates:
            return True
        return keys.time_key is not None and keys.time_key == recognized.time_key

    def matches(self, keys: _TimerKeys, recognized: RecognizedText) -> bool:
        return self.is_close(keys.timer.anchor, recognized.center) and self.text_equivalent(keys, recognized)

    @staticmethod
    def in_migration_scope(timer: Timer, scan_region: Rect) -> bool:
        return scan_region.contains(timer.anchor) or (
            not timer.text_rect.is_empty and timer.text_rect.intersects(scan_region))

    @staticmethod
    def in_zombie_scope(timer: Timer, scan_region: Rect) -> bool:
        return scan_region.contains(timer.anchor)

    # Phases

    def detect_migrations(self, timer_keys: Sequence[_TimerKeys], recognized: Sequence[RecognizedText],
                          scan_region: Rect, claimed: Set[int]) -> List[TimerMigration]:
        migrations = []
        for keys in timer_keys:
            timer = keys.timer
            if not self.in_migration_scope(timer, scan_region):
                continue
            if any(self.matches(keys, r) for r in recognized):
                continue

            best_index, best_distance = None, None
            for index, r in enumerate(recognized):
                if index in claimed or not self.text_equivalent(keys, r):
                    continue
                distance = timer.anchor.distance_squared(r.center)
                # Nearby ink was already handled by the in-place match
                if distance < self.proximity_distance_squared:
                    continue
                if best_distance is None or distance < best_distance:
                    best_index, best_distance = index, distance

            if best_index is not None:
                target = recognized[best_index]
                claimed.add(best_index)
                migrations.append(TimerMigration(timer.id, target.center, target.text_rect))
                logger.debug(f"Timer {timer.id} ({timer.original_text!r}) moved to {target.center}")
        return migrations

    def detect_zombies(self, timer_keys: Sequence[_TimerKeys], recognized: Sequence[RecognizedText],
                       scan_region: Rect, migrated_ids: Set[str]) -> Set[str]:
        zombie_ids = set()
        for keys in timer_keys:
            timer = keys.timer
            if timer.id in migrated_ids or not self.in_zombie_scope(timer, scan_region):
                continue
            if not any(self.matches(keys, r) for r in recognized):
                zombie_ids.add(timer.id)
                logger.debug(f"Timer {timer.id} ({timer.original_text!r}) lost its ink")
        return zombie_ids

    def create_timers(self, timer_keys: Sequence[_TimerKeys], recognized: Sequence[RecognizedText],
                      claimed: Set[int], migrations: Sequence[TimerMigration],
                      pen_color: PenColorSampler) -> List[Timer]:
        new_timers = []
        for index, r in enumerate(recognized):
            if r.parsed is None or index in claimed:
                continue
            if any(self.matches(keys, r) for keys in timer_keys):
                continue
            # A migrated timer already covers this spot
            if any(self.is_close(m.anchor, r.center) for m in migrations):
                continue

            new_timers.append(Timer(
                original_text=r.text,
                target_time=r.parsed.target_time,
                anchor=r.center,
                text_rect=r.text_rect,
                is_duration=r.parsed.is_duration,
                is_explicit_date=r.parsed.is_explicit_date,
                label=r.parsed.label,
                pen_color=pen_color(r.text_rect),
            ))
            logger.debug(f"New timer for {r.text!r} at {r.center}")
        return new_timers

    def reconcile(self, scan_region: Rect, observations: Iterable[OCRObservation],
                  existing_timers: Iterable[Timer], now: Optional[datetime] = None,
                  pen_color: Optional[PenColorSampler] = None) -> ReconcileDelta:
        """Compute the delta one OCR pass implies for the existing timers."""
        observations = list(observations)
        if scan_region.is_empty or not observations:
            logger.debug("Nothing recognized, empty delta")
            return ReconcileDelta()

        now = now or datetime.now()
        recognized = self.recognize(observations, scan_region, now)
        if not recognized:
            logger.debug("Observations carried no text, empty delta")
            return ReconcileDelta()
        if pen_color is None:
            pen_color = self.default_pen_color_for

        timer_keys = [self.timer_keys(t, now) for t in existing_timers]

        # Ink still sitting under a timer cannot be claimed by another timer's move
        claimed = {index for index, r in enumerate(recognized)
                   if any(self.matches(keys, r) for keys in timer_keys)}

        migrations = self.detect_migrations(timer_keys, recognized, scan_region, claimed)
        migrated_ids = {m.timer_id for m in migrations}
        zombie_ids = self.detect_zombies(timer_keys, recognized, scan_region, migrated_ids)
        new_timers = self.create_timers(timer_keys, recognized, claimed, migrations, pen_color)

        logger.debug(f"Reconciled {len(recognized)} observations: {len(new_timers)} new, "
                     f"{len(migrations)} migrated, {len(zombie_ids)} zombies")
        return ReconcileDelta(new_timers=new_timers, migrated=migrations, zombie_ids=zombie_ids)


_default_engine = None


def reconcile(scan_region: Rect, observations: Iterable[OCRObservation], existing_timers: Iterable[Timer],
              now: Optional[datetime] = None, pen_color: Optional[PenColorSampler] = None,
              settings: Optional[dict] = None) -> ReconcileDelta:
    """Reconcile with a shared engine, or a one-off engine for explicit settings"""
    global _default_engine
    if settings is not None:
        engine = ReconciliationEngine(settings=settings)
    else:
        if _default_engine is None:
            _default_engine = ReconciliationEngine()
        engine = _default_engine
    return engine.reconcile(scan_region, observations, existing_timers, now, pen_color)


def load_payload(data: dict):
    """Scan region, observations and timers from a JSON payload"""
    scan_region = Rect.from_dict(data['scan_region'])
    observations = [OCRObservation.from_dict(o) for o in data.get('observations', [])]
    timers = [Timer.from_dict(t) for t in data.get('timers', [])]
    return scan_region, observations, timers


def main():
    try:
        if len(sys.argv) > 1:
            with open(sys.argv[1], 'r') as f:
                data = json.load(f)
        else:
            data = json.load(sys.stdin)
        scan_region, observations, timers = load_payload(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error(f"Invalid reconcile payload: {e}")
        print(json.dumps({"error": str(e)}))
        sys.exit(1)

    delta = reconcile(scan_region, observations, timers)
    print(json.dumps(delta.to_dict(), ensure_ascii=False))


if __name__ == "__main__":
    main()
