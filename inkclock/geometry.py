from dataclasses import dataclass


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def distance_squared(self, other: 'Point') -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return dx * dx + dy * dy


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in content space (y grows downward)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def contains(self, point: Point) -> bool:
        if self.is_empty:
            return False
        return self.x <= point.x < self.max_x and self.y <= point.y < self.max_y

    def intersects(self, other: 'Rect') -> bool:
        if self.is_empty or other.is_empty:
            return False
        return (self.x < other.max_x and other.x < self.max_x
                and self.y < other.max_y and other.y < self.max_y)

    def union(self, other: 'Rect') -> 'Rect':
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Rect(x, y, max(self.max_x, other.max_x) - x, max(self.max_y, other.max_y) - y)

    def inset(self, dx: float, dy: float) -> 'Rect':
        """Shrink by dx/dy on every side; negative values grow the rect."""
        return Rect(self.x + dx, self.y + dy, self.width - 2 * dx, self.height - 2 * dy)

    @classmethod
    def from_normalized(cls, box: 'Rect', region: 'Rect') -> 'Rect':
        """Map an OCR box normalized to the region (origin bottom-left) into content space."""
        return cls(
            region.x + box.x * region.width,
            region.y + (1 - box.y - box.height) * region.height,
            box.width * region.width,
            box.height * region.height,
        )

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}

    @classmethod
    def from_dict(cls, data: dict) -> 'Rect':
        return cls(float(data.get('x', 0)), float(data.get('y', 0)),
                   float(data.get('width', 0)), float(data.get('height', 0)))


def union_all(rects):
    """Union of the given rects, or None when there are none."""
    result = None
    for rect in rects:
        result = rect if result is None else result.union(rect)
    return result
