from __future__ import annotations

import logging
import os
import platform
import re
import threading
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Protocol

from PIL import ImageFont

LOGGER = logging.getLogger("posterkit.typography")

_FONT_FILE_SUFFIXES = {".ttf", ".ttc", ".otf", ".otc"}
_WEIGHT_TOKENS = ("semibold", "extrabold", "bold", "regular", "medium", "book", "roman", "normal", "bd")


@dataclass(slots=True, frozen=True)
class FontSpec:
    family: str
    weight: str
    size: int

    @property
    def is_bold(self) -> bool:
        return str(self.weight).lower() in {"bold", "700", "800", "900", "bolder"}


class TextMeasurer(Protocol):
    def measure(self, text: str, font: FontSpec) -> float: ...


def _system_font_candidates(bold: bool = False) -> list[Path]:
    system = platform.system().lower()
    if "windows" in system:
        if bold:
            return [Path(r"C:\Windows\Fonts\arialbd.ttf"), Path(r"C:\Windows\Fonts\segoeuib.ttf")]
        return [Path(r"C:\Windows\Fonts\arial.ttf"), Path(r"C:\Windows\Fonts\segoeui.ttf")]
    if "darwin" in system:
        return [
            Path("/System/Library/Fonts/Supplemental/Arial Bold.ttf" if bold else "/System/Library/Fonts/Supplemental/Arial.ttf"),
            Path("/System/Library/Fonts/Helvetica.ttc"),
            Path("/Library/Fonts/Arial Unicode.ttf"),
        ]
    if bold:
        return [
            Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
            Path("/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf"),
            Path("/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf"),
        ]
    return [
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
        Path("/usr/share/fonts/dejavu/DejaVuSans.ttf"),
        Path("/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf"),
    ]


def _system_font_directories() -> list[Path]:
    system = platform.system().lower()
    roots: list[Path] = []
    if "windows" in system:
        windows_dir = Path(os.environ.get("WINDIR", r"C:\Windows"))
        roots.append(windows_dir / "Fonts")
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            roots.append(Path(local_app_data) / "Microsoft" / "Windows" / "Fonts")
    elif "darwin" in system:
        roots.extend(
            [
                Path("/System/Library/Fonts"),
                Path("/Library/Fonts"),
                Path.home() / "Library" / "Fonts",
            ]
        )
    else:
        roots.extend(
            [
                Path("/usr/share/fonts"),
                Path("/usr/local/share/fonts"),
                Path.home() / ".fonts",
                Path.home() / ".local" / "share" / "fonts",
            ]
        )
    return roots


@lru_cache(maxsize=8)
def list_available_font_paths(extra_dirs: tuple[str, ...] = ()) -> list[Path]:
    roots = [Path(item) for item in extra_dirs] + _system_font_directories()
    available: list[Path] = []
    seen: set[str] = set()

    for root in roots:
        try:
            if not root.exists() or not root.is_dir():
                continue
        except OSError:
            continue

        for dir_path, _dir_names, file_names in os.walk(root, onerror=lambda _err: None):
            for file_name in file_names:
                if Path(file_name).suffix.lower() not in _FONT_FILE_SUFFIXES:
                    continue
                candidate = Path(dir_path) / file_name
                key = str(candidate)
                if key in seen:
                    continue
                seen.add(key)
                available.append(candidate)

    # Configured directories keep priority; system fonts follow in name order.
    extra_count = sum(1 for path in available if any(str(path).startswith(d) for d in extra_dirs))
    head, tail = available[:extra_count], available[extra_count:]
    tail.sort(key=lambda path: (path.stem.lower(), str(path).lower()))
    return head + tail


def _normalize_font_key(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value or "").lower())


def _split_family_and_weight(stem: str) -> tuple[str, bool]:
    key = _normalize_font_key(stem)
    bold = "bold" in key or key.endswith("bd")
    family = key
    for token in _WEIGHT_TOKENS:
        if family.endswith(token) and len(family) > len(token):
            family = family[: -len(token)]
            break
    return family, bold


def load_font(font_path: Path | None, size: int, bold: bool = False) -> ImageFont.ImageFont:
    candidates: list[Path] = []
    if font_path:
        candidates.append(font_path)
    candidates.extend(_system_font_candidates(bold))
    for candidate in candidates:
        if candidate.exists():
            try:
                return ImageFont.truetype(str(candidate), size=max(1, int(size)))
            except OSError:
                continue
    return ImageFont.load_default(size=max(1, int(size)))


class FontResolver:
    """Maps a (family, weight) pair onto an installed font file.

    Unknown families resolve to the platform's default sans font, silently,
    the way a browser canvas substitutes its fallback face.
    """

    def __init__(self, font_dirs: Iterable[str | Path] = ()) -> None:
        self._font_dirs = tuple(str(Path(item).expanduser()) for item in font_dirs)
        self._index: dict[tuple[str, bool], Path] | None = None
        # FreeType faces are not shared between threads.
        self._local = threading.local()

    def _build_index(self) -> dict[tuple[str, bool], Path]:
        index: dict[tuple[str, bool], Path] = {}
        for path in list_available_font_paths(self._font_dirs):
            family, bold = _split_family_and_weight(path.stem)
            index.setdefault((family, bold), path)
        return index

    def resolve(self, family: str, bold: bool = False) -> Path | None:
        if self._index is None:
            self._index = self._build_index()
        for name in str(family or "").split(","):
            key = _normalize_font_key(name.strip().strip("'\""))
            if not key:
                continue
            hit = self._index.get((key, bold)) or self._index.get((key, not bold))
            if hit is not None:
                return hit
        return None

    def font(self, spec: FontSpec) -> ImageFont.ImageFont:
        cache = getattr(self._local, "fonts", None)
        if cache is None:
            cache = self._local.fonts = {}
        key = (spec.family, spec.is_bold, spec.size)
        font = cache.get(key)
        if font is None:
            path = self.resolve(spec.family, spec.is_bold)
            if path is None:
                LOGGER.debug("font family %r not installed, using fallback", spec.family)
            font = cache[key] = load_font(path, spec.size, bold=spec.is_bold)
        return font


class PillowMeasurer:
    """Exact advance widths from the same fonts the compositor draws with."""

    def __init__(self, resolver: FontResolver | None = None) -> None:
        self.resolver = resolver or FontResolver()

    def measure(self, text: str, font: FontSpec) -> float:
        if not text:
            return 0.0
        return float(self.resolver.font(font).getlength(text))


_NARROW_CHARS = set("iIl1.,:;'|!`() ")
_WIDE_CHARS = set("MWmw@%")


class ApproxMeasurer:
    """Cheap width estimate, linear in font size; no font files involved."""

    def __init__(self, bold_factor: float = 1.07) -> None:
        self.bold_factor = bold_factor

    @staticmethod
    def _char_ratio(ch: str) -> float:
        if ch in _NARROW_CHARS:
            return 0.28
        if ch in _WIDE_CHARS:
            return 0.86
        if ch.isupper():
            return 0.68
        if ch.isdigit():
            return 0.56
        if ch.islower():
            return 0.52
        return 0.6

    def measure(self, text: str, font: FontSpec) -> float:
        ratio = sum(self._char_ratio(ch) for ch in text)
        if font.is_bold:
            ratio *= self.bold_factor
        return ratio * font.size


def build_measurer(kind: str, resolver: FontResolver | None = None) -> TextMeasurer:
    kind = str(kind or "pillow").lower()
    if kind == "pillow":
        return PillowMeasurer(resolver)
    if kind == "approx":
        return ApproxMeasurer()
    raise ValueError(f"measurer must be pillow or approx, got: {kind!r}")
