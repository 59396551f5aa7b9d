import unittest
from datetime import datetime, timedelta
import os
import sys

# Add the parent directory to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from inkclock.board import TimerBoard
from inkclock.config import DEFAULT_SETTINGS
from inkclock.geometry import Point, Rect
from inkclock.ink import Stroke, StrokeColorSampler
from inkclock.models import OCRObservation, Timer
from inkclock.reconcile import ReconciliationEngine, load_payload, reconcile

PAGE = Rect(0, 0, 1000, 1000)


def observation(region, x, y, width, height, *candidates):
    """OCR observation for a content-space rect, boxed the way OCR reports it"""
    box = Rect(
        (x - region.x) / region.width,
        1 - (y - region.y + height) / region.height,
        width / region.width,
        height / region.height,
    )
    return OCRObservation(tuple(candidates), box)


class TestReconciliationEngine(unittest.TestCase):
    def setUp(self):
        """Set up test environment"""
        self.engine = ReconciliationEngine(settings=dict(DEFAULT_SETTINGS))
        self.now = datetime(2026, 3, 10, 14, 0)

    def timer(self, text, x, y, width=200, height=40, **kwargs):
        """Timer whose ink sits at the content rect (x, y, width, height)"""
        rect = Rect(x, y, width, height)
        parsed = self.engine.parser.parse(text, self.now)
        return Timer(original_text=text, target_time=parsed.target_time, anchor=rect.center,
                     text_rect=rect, is_duration=parsed.is_duration, label=parsed.label, **kwargs)

    def assertPointAlmostEqual(self, point, x, y):
        self.assertAlmostEqual(point.x, x, places=6)
        self.assertAlmostEqual(point.y, y, places=6)

    def test_new_timer(self):
        observations = [observation(PAGE, 100, 100, 200, 40, "Call Mom in 15 min")]
        delta = self.engine.reconcile(PAGE, observations, [], self.now)

        self.assertEqual(len(delta.new_timers), 1)
        self.assertEqual(delta.migrated, [])
        self.assertEqual(delta.zombie_ids, set())

        timer = delta.new_timers[0]
        self.assertEqual(timer.original_text, "Call Mom in 15 min")
        self.assertEqual(timer.label, "Call Mom")
        self.assertTrue(timer.is_duration)
        self.assertEqual(timer.target_time, self.now + timedelta(minutes=15))
        self.assertEqual(timer.pen_color, '#000000')
        self.assertPointAlmostEqual(timer.anchor, 200, 120)
        self.assertAlmostEqual(timer.text_rect.y, 100, places=6)
        self.assertAlmostEqual(timer.text_rect.height, 40, places=6)

    def test_unparseable_observation_creates_nothing(self):
        observations = [observation(PAGE, 100, 100, 200, 40, "groceries", "grocer1es")]
        delta = self.engine.reconcile(PAGE, observations, [], self.now)
        self.assertTrue(delta.is_empty)

    def test_lower_ranked_candidate(self):
        observations = [observation(PAGE, 100, 100, 200, 40, "Tea lS min", "Tea 15 min")]
        delta = self.engine.reconcile(PAGE, observations, [], self.now)

        self.assertEqual(len(delta.new_timers), 1)
        self.assertEqual(delta.new_timers[0].original_text, "Tea 15 min")

    def test_candidates_beyond_limit_are_ignored(self):
        observations = [observation(PAGE, 100, 100, 200, 40, "aa", "bb", "cc", "10 min")]
        delta = self.engine.reconcile(PAGE, observations, [], self.now)
        self.assertTrue(delta.is_empty)

    def test_reconcile_is_idempotent(self):
        board = TimerBoard()
        observations = [
            observation(PAGE, 100, 100, 200, 40, "Call Mom in 15 min"),
            observation(PAGE, 500, 700, 120, 40, "14:30"),
        ]

        board.apply(self.engine.reconcile(PAGE, observations, board.timers, self.now), now=self.now)
        self.assertEqual(len(board.timers), 2)

        second = self.engine.reconcile(PAGE, observations, board.timers, self.now)
        self.assertTrue(second.is_empty)

    def test_present_timer_untouched(self):
        existing = self.timer("Tea 15 min", 100, 100)
        observations = [observation(PAGE, 100, 100, 200, 40, "Tea 15 min")]
        delta = self.engine.reconcile(PAGE, observations, [existing], self.now)
        self.assertTrue(delta.is_empty)

    def test_migration(self):
        existing = self.timer("Tea 15 min", 100, 100)
        observations = [observation(PAGE, 600, 600, 200, 40, "Tea 15 min")]
        delta = self.engine.reconcile(PAGE, observations, [existing], self.now)

        self.assertEqual(delta.new_timers, [])
        self.assertEqual(delta.zombie_ids, set())
        self.assertEqual(len(delta.migrated), 1)
        migration = delta.migrated[0]
        self.assertEqual(migration.timer_id, existing.id)
        self.assertPointAlmostEqual(migration.anchor, 700, 620)
        self.assertAlmostEqual(migration.text_rect.x, 600, places=6)

    def test_migration_keeps_identity_on_board(self):
        existing = self.timer("Tea 15 min", 100, 100, is_dismissed=True, calendar_event_id="evt-1")
        board = TimerBoard([existing])
        observations = [observation(PAGE, 600, 600, 200, 40, "Tea 15 min")]

        board.apply(self.engine.reconcile(PAGE, observations, board.timers, self.now), now=self.now)

        self.assertEqual(len(board.timers), 1)
        moved = board.timers[0]
        self.assertEqual(moved.id, existing.id)
        self.assertEqual(moved.target_time, existing.target_time)
        self.assertTrue(moved.is_dismissed)
        self.assertEqual(moved.calendar_event_id, "evt-1")
        self.assertPointAlmostEqual(moved.anchor, 700, 620)

    def test_migration_by_time_token(self):
        """OCR spacing and case differences still identify the same timer"""
        existing = self.timer("Tea 15 min", 100, 100)
        observations = [observation(PAGE, 600, 600, 200, 40, "tea 15min")]
        delta = self.engine.reconcile(PAGE, observations, [existing], self.now)

        self.assertEqual([m.timer_id for m in delta.migrated], [existing.id])
        self.assertEqual(delta.new_timers, [])

    def test_migration_picks_nearest(self):
        existing = self.timer("Tea 15 min", 100, 100)
        observations = [
            observation(PAGE, 800, 850, 200, 40, "Tea 15 min"),
            observation(PAGE, 400, 100, 200, 40, "Tea 15 min"),
        ]
        delta = self.engine.reconcile(PAGE, observations, [existing], self.now)

        self.assertEqual(len(delta.migrated), 1)
        self.assertPointAlmostEqual(delta.migrated[0].anchor, 500, 120)
        # The far copy is a separate timer
        self.assertEqual(len(delta.new_timers), 1)
        self.assertPointAlmostEqual(delta.new_timers[0].anchor, 900, 870)

    def test_zombie_on_erase(self):
        existing = self.timer("Tea 15 min", 100, 100)
        observations = [observation(PAGE, 600, 600, 200, 40, "groceries")]
        delta = self.engine.reconcile(PAGE, observations, [existing], self.now)

        self.assertEqual(delta.zombie_ids, {existing.id})
        self.assertEqual(delta.new_timers, [])
        self.assertEqual(delta.migrated, [])

    def test_empty_observations_give_empty_delta(self):
        existing = self.timer("Tea 15 min", 100, 100)
        delta = self.engine.reconcile(PAGE, [], [existing], self.now)
        self.assertTrue(delta.is_empty)

    def test_observations_without_text_give_empty_delta(self):
        existing = self.timer("Tea 15 min", 100, 100)
        test_cases = [
            [OCRObservation((), Rect(0.1, 0.1, 0.1, 0.1))],
            [OCRObservation.from_dict({"candidates": [], "bounding_box": {"x": 0.5, "y": 0.5}})],
            [observation(PAGE, 600, 600, 200, 40, "", "   ")],
        ]

        for observations in test_cases:
            with self.subTest(observations=observations):
                delta = self.engine.reconcile(PAGE, observations, [existing], self.now)
                self.assertTrue(delta.is_empty)

    def test_default_pen_color_from_settings(self):
        engine = ReconciliationEngine(settings={'default_pen_color': '#123456'})
        observations = [observation(PAGE, 100, 100, 200, 40, "Tea 15 min")]
        delta = engine.reconcile(PAGE, observations, [], self.now)
        self.assertEqual(delta.new_timers[0].pen_color, '#123456')
        self.assertEqual(engine.default_pen_color_for(Rect(0, 0, 10, 10)), '#123456')

    def test_degenerate_region(self):
        existing = self.timer("Tea 15 min", 100, 100)
        observations = [observation(PAGE, 600, 600, 200, 40, "10 min")]
        for region in (Rect(0, 0, 0, 100), Rect(0, 0, 100, 0), Rect(0, 0, -5, 100)):
            with self.subTest(region=region):
                delta = self.engine.reconcile(region, observations, [existing], self.now)
                self.assertTrue(delta.is_empty)

    def test_partial_scan_leaves_outside_timers_alone(self):
        region = Rect(500, 500, 300, 300)
        far_away = self.timer("Tea 15 min", 80, 90, 40, 20)
        # Anchor just outside the region, ink overlapping it
        straddling = self.timer("Pasta 10 min", 400, 480, 150, 40)
        self.assertFalse(region.contains(straddling.anchor))
        self.assertTrue(straddling.text_rect.intersects(region))

        observations = [observation(region, 600, 600, 150, 40, "groceries")]
        delta = self.engine.reconcile(region, observations, [far_away, straddling], self.now)
        self.assertTrue(delta.is_empty)

    def test_straddling_timer_can_migrate_into_region(self):
        region = Rect(500, 500, 300, 300)
        straddling = self.timer("Pasta 10 min", 400, 480, 150, 40)
        observations = [observation(region, 600, 600, 150, 40, "Pasta 10 min")]
        delta = self.engine.reconcile(region, observations, [straddling], self.now)

        self.assertEqual([m.timer_id for m in delta.migrated], [straddling.id])
        self.assertPointAlmostEqual(delta.migrated[0].anchor, 675, 620)
        self.assertEqual(delta.new_timers, [])

    def test_identical_timers_one_erased(self):
        kept = self.timer("Tea 15 min", 100, 100)
        erased = self.timer("Tea 15 min", 600, 600)
        observations = [observation(PAGE, 100, 100, 200, 40, "Tea 15 min")]
        delta = self.engine.reconcile(PAGE, observations, [kept, erased], self.now)

        self.assertEqual(delta.zombie_ids, {erased.id})
        self.assertEqual(delta.migrated, [])
        self.assertEqual(delta.new_timers, [])

    def test_new_timer_near_migrated_anchor_is_dropped(self):
        existing = self.timer("Tea 15 min", 100, 100)
        observations = [
            observation(PAGE, 600, 600, 200, 40, "Tea 15 min"),
            observation(PAGE, 610, 610, 200, 40, "Pasta 10 min"),
        ]
        delta = self.engine.reconcile(PAGE, observations, [existing], self.now)

        self.assertEqual(len(delta.migrated), 1)
        self.assertEqual(delta.new_timers, [])

    def test_pen_color_sampler(self):
        strokes = [
            Stroke(Rect(100, 100, 50, 40), '#ff0000'),
            Stroke(Rect(160, 100, 50, 40), '#FF0000'),
            Stroke(Rect(220, 100, 50, 40), '#0000ff'),
            Stroke(Rect(800, 800, 50, 40), '#00ff00'),
        ]
        observations = [observation(PAGE, 100, 100, 200, 40, "Tea 15 min")]
        delta = self.engine.reconcile(PAGE, observations, [], self.now,
                                      pen_color=StrokeColorSampler(strokes, padding=20, default='#000000'))
        self.assertEqual(delta.new_timers[0].pen_color, '#FF0000')

    def test_custom_proximity_threshold(self):
        settings = dict(DEFAULT_SETTINGS, proximity_distance_squared=100)
        engine = ReconciliationEngine(settings=settings)
        existing = self.timer("Tea 15 min", 100, 100)
        # 20 units away: close by default, a move under the tighter threshold
        observations = [observation(PAGE, 120, 100, 200, 40, "Tea 15 min")]

        self.assertTrue(self.engine.reconcile(PAGE, observations, [existing], self.now).is_empty)
        delta = engine.reconcile(PAGE, observations, [existing], self.now)
        self.assertEqual([m.timer_id for m in delta.migrated], [existing.id])

    def test_module_reconcile_with_partial_settings(self):
        observations = [observation(PAGE, 100, 100, 200, 40, "groceries", "10 min")]
        self.assertEqual(len(reconcile(PAGE, observations, [], self.now).new_timers), 1)
        self.assertTrue(reconcile(PAGE, observations, [], self.now, settings={'candidate_limit': 1}).is_empty)


class TestReconcilePayload(unittest.TestCase):
    def test_load_payload(self):
        data = {
            "scan_region": {"x": 0, "y": 0, "width": 1000, "height": 1000},
            "observations": [
                {"candidates": ["Tea 15 min"], "bounding_box": {"x": 0.1, "y": 0.86, "width": 0.2, "height": 0.04}},
            ],
            "timers": [
                {"id": "t1", "original_text": "Tea 15 min", "target_time": "2026-03-10T14:15:00",
                 "anchor_x": 200, "anchor_y": 120},
            ],
        }
        region, observations, timers = load_payload(data)

        self.assertEqual(region, Rect(0, 0, 1000, 1000))
        self.assertEqual(observations[0].candidates, ("Tea 15 min",))
        self.assertEqual(timers[0].id, "t1")
        self.assertEqual(timers[0].anchor, Point(200, 120))
        self.assertEqual(timers[0].target_time, datetime(2026, 3, 10, 14, 15))

    def test_load_payload_requires_region(self):
        with self.assertRaises(KeyError):
            load_payload({"observations": []})


if __name__ == '__main__':
    unittest.main()
