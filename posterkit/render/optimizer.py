from __future__ import annotations

from typing import Callable

from posterkit import constants
from posterkit.render.geometry import round_half_up
from posterkit.render.wrapping import split_words

SizedWidthFn = Callable[[str, int], float]

_EPSILON = 1e-9


def font_size_cap(base_size: float, cap_fraction: float) -> float:
    return base_size * (1.0 + cap_fraction)


def _candidate_sizes(base_size: float, step: float, cap: float) -> list[tuple[float, int]]:
    sizes: list[tuple[float, int]] = []
    index = 1
    last = round_half_up(base_size)
    while True:
        value = base_size + index * step
        if value > cap + _EPSILON:
            break
        size = round_half_up(value)
        if size > last:
            sizes.append((value, size))
            last = size
        index += 1
    return sizes


def grow_font_size(
    name: str,
    base_size: float,
    max_width: float,
    measure: SizedWidthFn,
    *,
    step: float = constants.FONT_GROWTH_STEP,
    cap_fraction: float = constants.FONT_GROWTH_CAP_FRACTION,
    single_word_margin: float = constants.SINGLE_WORD_FIT_MARGIN,
    break_word_margin: float = constants.BREAK_WORD_FIT_MARGIN,
) -> float:
    """Grow the name font from ``base_size`` while the intended break point survives.

    One token grows while it fills at most ``single_word_margin`` of the width.
    Several tokens grow while the whole name still fits, or while everything
    but the last word fits in ``break_word_margin`` of the width so that the
    last name wraps alone.

    ``base_size`` may be fractional (a scaled canonical size). Candidates are
    ``base_size + k * step``; each is measured at its rounded pixel size and
    the width is scaled back to the unrounded candidate, so the same name
    makes the same growth decisions at every target size. The unrounded
    winner is returned so that block geometry built from it scales linearly.
    """
    best = base_size
    words = split_words(name)
    if not words or max_width <= 0 or step <= 0:
        return best

    text = " ".join(words)
    head = " ".join(words[:-1])
    for value, size in _candidate_sizes(base_size, step, font_size_cap(base_size, cap_fraction)):
        ratio = value / size
        if len(words) == 1:
            if measure(text, size) * ratio > max_width * single_word_margin:
                break
        elif measure(text, size) * ratio > max_width and measure(head, size) * ratio > max_width * break_word_margin:
            break
        best = value
    return best


def optimize_font_size(name: str, base_size: float, max_width: float, measure: SizedWidthFn, **options: float) -> int:
    """Pixel font size for the name; stays within ``[round(base), round(base * (1 + cap_fraction))]``."""
    return max(1, round_half_up(grow_font_size(name, base_size, max_width, measure, **options)))
