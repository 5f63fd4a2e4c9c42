"""Checks that preview and final layouts agree.

Preview and final renders share ``compute_layout``; these helpers catch
drift that still creeps in through rounding, tuning or the choice of
measurement backend.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from posterkit.models import DebugOverrides, LayoutTuning, Template, UserContent, ZoneLayoutResult
from posterkit.render.layout import compute_layout
from posterkit.render.typography import TextMeasurer

LOGGER = logging.getLogger("posterkit.consistency")


@dataclass(slots=True, frozen=True)
class Discrepancy:
    zone_type: str
    field: str
    expected: Any
    actual: Any

    def __str__(self) -> str:
        return f"{self.zone_type}.{self.field}: expected {self.expected!r}, got {self.actual!r}"


def rounding_tolerance(scale: float) -> float:
    # Half a pixel of rounding per side, plus a rounded font size of the
    # smaller layout carried into the stacked block positions.
    return abs(scale) + 0.5


def compare_layouts(
    a: list[ZoneLayoutResult],
    b: list[ZoneLayoutResult],
    scale: float,
    tolerance_px: float | None = None,
) -> list[Discrepancy]:
    """List the differences between ``b`` and ``a`` scaled by ``scale``.

    Line structure must match exactly. Origins and font sizes may differ by
    ``tolerance_px`` (default: the worst-case rounding error).
    """
    tolerance = rounding_tolerance(scale) if tolerance_px is None else float(tolerance_px)
    found: list[Discrepancy] = []
    zones_a = {result.zone_type: result for result in a}
    zones_b = {result.zone_type: result for result in b}
    if list(zones_a) != list(zones_b):
        return [Discrepancy("*", "zones", list(zones_a), list(zones_b))]

    for zone_type, left in zones_a.items():
        right = zones_b[zone_type]
        if len(left.lines) != len(right.lines):
            found.append(Discrepancy(zone_type, "line_count", len(left.lines), len(right.lines)))
        elif left.lines != right.lines:
            found.append(Discrepancy(zone_type, "lines", left.lines, right.lines))
        for attr in ("origin_x", "origin_y", "font_size_px"):
            expected = getattr(left, attr) * scale
            actual = getattr(right, attr)
            if abs(actual - expected) > tolerance:
                found.append(Discrepancy(zone_type, attr, round(expected, 2), actual))
    return found


def check_scale_consistency(
    template: Template,
    content: UserContent,
    sizes: Iterable[int],
    measurer: TextMeasurer,
    *,
    tuning: LayoutTuning | None = None,
    overrides: DebugOverrides | None = None,
    tolerance_px: float | None = None,
) -> dict[int, list[Discrepancy]]:
    """Lay out at every size and compare each against the first one."""
    sizes = [int(size) for size in sizes]
    if not sizes:
        return {}
    layouts = {
        size: compute_layout(template, content, size, measurer, tuning=tuning, overrides=overrides)
        for size in sizes
    }
    reference = sizes[0]
    report: dict[int, list[Discrepancy]] = {}
    for size in sizes[1:]:
        found = compare_layouts(layouts[reference], layouts[size], size / float(reference), tolerance_px)
        if found:
            LOGGER.warning(
                "template %s: layout at %d drifts from %d (%d discrepancies)",
                template.id,
                size,
                reference,
                len(found),
            )
        report[size] = found
    return report


def check_backend_consistency(
    template: Template,
    content: UserContent,
    size: int,
    exact: TextMeasurer,
    cheap: TextMeasurer,
    *,
    tuning: LayoutTuning | None = None,
) -> list[Discrepancy]:
    """Report where the cheap measurer breaks lines differently from the exact one."""
    expected = compute_layout(template, content, size, exact, tuning=tuning)
    actual = compute_layout(template, content, size, cheap, tuning=tuning)
    found: list[Discrepancy] = []
    cheap_by_zone = {result.zone_type: result for result in actual}
    for left in expected:
        right = cheap_by_zone.get(left.zone_type)
        if right is None:
            found.append(Discrepancy(left.zone_type, "zone", "present", "missing"))
            continue
        if left.lines != right.lines:
            found.append(Discrepancy(left.zone_type, "lines", left.lines, right.lines))
        if left.font_size_px != right.font_size_px:
            found.append(Discrepancy(left.zone_type, "font_size_px", left.font_size_px, right.font_size_px))
    if found:
        LOGGER.info("template %s: cheap measurer diverges at %d px", template.id, size)
    return found
