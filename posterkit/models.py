from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from posterkit import constants


@dataclass(slots=True, frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def corners(self) -> dict[str, dict[str, float]]:
        right = self.x + self.width
        bottom = self.y + self.height
        return {
            "topLeft": {"x": self.x, "y": self.y},
            "topRight": {"x": right, "y": self.y},
            "bottomRight": {"x": right, "y": bottom},
            "bottomLeft": {"x": self.x, "y": bottom},
        }

    def offset(self, dx: float, dy: float) -> Rect:
        return Rect(self.x + dx, self.y + dy, self.width, self.height)


@dataclass(slots=True)
class PhotoZone:
    rect: Rect
    border_radius: float = 0.0

    @property
    def is_circular(self) -> bool:
        return self.border_radius > 0 and self.border_radius * 2 >= min(self.rect.width, self.rect.height)


@dataclass(slots=True)
class TextZone:
    type: str
    rect: Rect
    font_size: float
    font_family: str = "Arial"
    font_weight: str = "normal"
    color: str = "#FFFFFF"
    text_align: str = "left"
    text_transform: str | None = None


@dataclass(slots=True)
class LayoutConfig:
    photo_zones: list[PhotoZone] = field(default_factory=list)
    text_zones: list[TextZone] = field(default_factory=list)
    layout_style: str = constants.LAYOUT_STYLE_PHOTO_CENTER

    @property
    def photo_zone(self) -> PhotoZone | None:
        return self.photo_zones[0] if self.photo_zones else None

    def text_zone(self, zone_type: str) -> TextZone | None:
        for zone in self.text_zones:
            if zone.type == zone_type:
                return zone
        return None


@dataclass(slots=True)
class ImageUrls:
    full: str
    preview: str | None = None
    thumbnail: str | None = None


@dataclass(slots=True)
class Template:
    id: str
    name: str
    category: str
    image_urls: ImageUrls
    layout: LayoutConfig
    canonical_size: int = 2000
    schema_version: int = constants.CURRENT_SCHEMA_VERSION


@dataclass(slots=True)
class UserContent:
    name: str = ""
    title: str = ""
    photo: str | None = None


@dataclass(slots=True, frozen=True)
class DebugOverrides:
    """Manual nudges for visual tuning, in canonical units."""

    name_offset: tuple[float, float] = (0.0, 0.0)
    title_offset: tuple[float, float] = (0.0, 0.0)
    photo_offset: tuple[float, float] = (0.0, 0.0)
    spacing: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DebugOverrides:
        data = data or {}

        def _pair(key: str) -> tuple[float, float]:
            value = data.get(key) or (0, 0)
            return (float(value[0]), float(value[1]))

        spacing = data.get("spacing")
        return cls(
            name_offset=_pair("name_offset"),
            title_offset=_pair("title_offset"),
            photo_offset=_pair("photo_offset"),
            spacing=float(spacing) if spacing is not None else None,
        )


@dataclass(slots=True, frozen=True)
class LayoutTuning:
    growth_cap_fraction: float = constants.FONT_GROWTH_CAP_FRACTION
    growth_step: float = constants.FONT_GROWTH_STEP
    single_word_margin: float = constants.SINGLE_WORD_FIT_MARGIN
    break_word_margin: float = constants.BREAK_WORD_FIT_MARGIN
    two_word_balance_ratio: float = constants.TWO_WORD_BALANCE_RATIO
    name_line_height: float = constants.NAME_LINE_HEIGHT
    title_line_height: float = constants.TITLE_LINE_HEIGHT
    spacing_tight: float = constants.SPACING_TIGHT
    spacing_medium: float = constants.SPACING_MEDIUM
    spacing_generous: float = constants.SPACING_GENEROUS

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> LayoutTuning:
        defaults = cls()
        values: dict[str, float] = {}
        for key in cls.__dataclass_fields__:
            raw = (data or {}).get(key)
            values[key] = float(raw) if raw is not None else getattr(defaults, key)
        tuning = cls(**values)
        if not (tuning.spacing_tight < tuning.spacing_medium < tuning.spacing_generous):
            raise ValueError("layout spacing tiers must be strictly increasing (tight < medium < generous)")
        if tuning.growth_step <= 0:
            raise ValueError("layout growth_step must be positive")
        return tuning


@dataclass(slots=True)
class RenderRequest:
    template: Template
    content: UserContent
    target_size: int
    mode: str = "final"
    overrides: DebugOverrides | None = None


@dataclass(slots=True)
class ZoneLayoutResult:
    zone_type: str
    origin_x: int
    origin_y: int
    font_size_px: int
    lines: list[str]
    line_height_px: float
    color: str
    font_weight: str
    font_family: str
    text_align: str = "left"
    max_width_px: int = 0

    @property
    def block_height(self) -> float:
        return len(self.lines) * self.line_height_px

    def to_dict(self) -> dict[str, Any]:
        return {
            "zone_type": self.zone_type,
            "origin_x": self.origin_x,
            "origin_y": self.origin_y,
            "font_size_px": self.font_size_px,
            "lines": list(self.lines),
            "line_height_px": round(self.line_height_px, 3),
            "color": self.color,
            "font_weight": self.font_weight,
            "font_family": self.font_family,
            "text_align": self.text_align,
            "max_width_px": self.max_width_px,
        }
