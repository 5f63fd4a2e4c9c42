from __future__ import annotations

import math
from dataclasses import dataclass

from posterkit.models import PhotoZone, Rect, TextZone


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def scale(value: float, target_size: int, canonical_size: int) -> int:
    """Map a canonical length or coordinate onto a target square of ``target_size`` pixels."""
    if canonical_size <= 0:
        raise ValueError(f"canonical size must be positive, got: {canonical_size}")
    return round_half_up(value * target_size / canonical_size)


@dataclass(slots=True, frozen=True)
class Scaler:
    """One scale factor per render; the system is always square-to-square."""

    target_size: int
    canonical_size: int

    @property
    def factor(self) -> float:
        return self.target_size / float(self.canonical_size)

    def __call__(self, value: float) -> int:
        return scale(value, self.target_size, self.canonical_size)

    def length(self, value: float) -> float:
        # Unrounded, for intermediate quantities such as growth steps.
        return value * self.factor

    def rect(self, rect: Rect) -> Rect:
        return Rect(self(rect.x), self(rect.y), self(rect.width), self(rect.height))

    def exact_rect(self, rect: Rect) -> Rect:
        return Rect(self.length(rect.x), self.length(rect.y), self.length(rect.width), self.length(rect.height))

    def photo_zone(self, zone: PhotoZone) -> PhotoZone:
        return PhotoZone(rect=self.rect(zone.rect), border_radius=self(zone.border_radius))

    def text_zone(self, zone: TextZone) -> TextZone:
        return TextZone(
            type=zone.type,
            rect=self.rect(zone.rect),
            font_size=max(1, self(zone.font_size)),
            font_family=zone.font_family,
            font_weight=zone.font_weight,
            color=zone.color,
            text_align=zone.text_align,
            text_transform=zone.text_transform,
        )


def rect_from_corners(corners: dict[str, dict[str, float]]) -> Rect:
    """Axis-aligned bounding box of a four-corner ``coordinates`` block."""
    xs: list[float] = []
    ys: list[float] = []
    for key in ("topLeft", "topRight", "bottomRight", "bottomLeft"):
        point = corners.get(key)
        if not isinstance(point, dict):
            raise ValueError(f"coordinates missing corner: {key}")
        xs.append(float(point["x"]))
        ys.append(float(point["y"]))
    left, top = min(xs), min(ys)
    return Rect(left, top, max(xs) - left, max(ys) - top)
