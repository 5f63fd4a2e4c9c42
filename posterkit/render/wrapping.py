"""Line breaking for zone text.

``wrap`` is a pure function of its inputs: callers re-run it at different
widths or font sizes for what-if sizing.
"""
from __future__ import annotations

from typing import Callable

from posterkit import constants

WidthFn = Callable[[str], float]


def split_words(text: str) -> list[str]:
    return [word for word in (text or "").strip().split(" ") if word]


def break_long_word(word: str, max_width: float, measure: WidthFn) -> list[str]:
    """Split an unbreakable token into the fewest pieces that each fit ``max_width``.

    A single character wider than ``max_width`` is returned on its own.
    """
    pieces: list[str] = []
    current = ""
    for ch in word:
        candidate = current + ch
        if current and measure(candidate) > max_width:
            pieces.append(current)
            current = ch
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def _balanced_two_words(
    words: list[str],
    max_width: float,
    measure: WidthFn,
    balance_ratio: float,
) -> list[str] | None:
    first_width = measure(words[0])
    second_width = measure(words[1])
    if first_width > max_width or second_width > max_width:
        return None
    shorter = min(first_width, second_width)
    longer = max(first_width, second_width)
    if shorter <= 0 or longer / shorter >= balance_ratio:
        return None
    return [words[0], words[1]]


def _greedy(words: list[str], max_width: float, measure: WidthFn) -> list[str]:
    lines: list[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if measure(candidate) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        if measure(word) > max_width:
            pieces = break_long_word(word, max_width, measure)
            lines.extend(pieces[:-1])
            current = pieces[-1]
        else:
            current = word
    if current:
        lines.append(current)
    return lines


def wrap(
    text: str,
    max_width: float,
    measure: WidthFn,
    balance_ratio: float = constants.TWO_WORD_BALANCE_RATIO,
) -> list[str]:
    words = split_words(text)
    if not words:
        return [""]

    if len(words) == 1:
        word = words[0]
        if measure(word) <= max_width:
            return [word]
        return break_long_word(word, max_width, measure)

    if len(words) == 2:
        full = " ".join(words)
        if measure(full) <= max_width:
            return [full]
        # Two-word balance wins over greedy packing.
        balanced = _balanced_two_words(words, max_width, measure, balance_ratio)
        if balanced is not None:
            return balanced

    return _greedy(words, max_width, measure)
