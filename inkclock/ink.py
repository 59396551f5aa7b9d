import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from inkclock.config import get_testing_mode, load_settings
from inkclock.geometry import Rect, union_all
from inkclock.logger import setup_logger

logger = setup_logger('ink', testing=get_testing_mode())

_HEX_PATTERN = re.compile(r'^#?([0-9a-fA-F]{6})$')


def normalize_hex(value: str) -> Optional[str]:
    """'#ff0000' / 'FF0000' -> '#FF0000'; None when malformed"""
    match = _HEX_PATTERN.match((value or '').strip())
    if not match:
        return None
    return '#' + match.group(1).upper()


@dataclass(frozen=True)
class Stroke:
    bounds: Rect
    color: str


@dataclass(frozen=True)
class ScanPlan:
    region: Rect
    is_full_scan: bool


def plan_scan(strokes: Sequence[Stroke], last_recognized_count: int,
              padding: Optional[float] = None) -> Optional[ScanPlan]:
    """Pick the region to rescan after ink changes.

    Strokes only added since a previous pass: bounding box of the new
    strokes, padded so nearby context is included. Anything else (first
    pass, erase, lasso move): the bounds of the whole drawing.
    """
    if not strokes:
        return None
    if padding is None:
        padding = load_settings()['scan_padding']

    if 0 < last_recognized_count < len(strokes):
        region = union_all(s.bounds for s in strokes[last_recognized_count:]).inset(-padding, -padding)
        plan = ScanPlan(region, is_full_scan=False)
    else:
        plan = ScanPlan(union_all(s.bounds for s in strokes), is_full_scan=True)

    if plan.region.is_empty:
        logger.debug(f"Degenerate scan region {plan.region}")
        return None
    return plan


def dominant_stroke_color(rect: Rect, strokes: Sequence[Stroke], padding: Optional[float] = None,
                          default: Optional[str] = None) -> str:
    """Most common ink colour among strokes near rect"""
    settings = load_settings()
    if padding is None:
        padding = settings['ink_sample_padding']
    if default is None:
        default = settings['default_pen_color']

    expanded = rect.inset(-padding, -padding)
    counts: Dict[str, int] = {}
    for stroke in strokes:
        if not stroke.bounds.intersects(expanded):
            continue
        color = normalize_hex(stroke.color)
        if color:
            counts[color] = counts.get(color, 0) + 1

    if not counts:
        return default
    # max() keeps the first colour seen on ties
    return max(counts, key=counts.get)


class StrokeColorSampler:
    """Pen colour lookup over a stroke snapshot, usable as reconcile(pen_color=...)"""

    def __init__(self, strokes: Sequence[Stroke], padding: Optional[float] = None,
                 default: Optional[str] = None):
        self.strokes = list(strokes)
        self.padding = padding
        self.default = default

    def __call__(self, rect: Rect) -> str:
        return dominant_stroke_color(rect, self.strokes, self.padding, self.default)
