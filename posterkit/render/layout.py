"""Zone layout: turns a template's text zones plus user strings into draw instructions.

The same code path serves the interactive preview and the final render;
the only parameters are the target size and the text measurer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from posterkit import constants
from posterkit.errors import InvalidTemplateConfigError
from posterkit.models import DebugOverrides, LayoutTuning, Rect, Template, TextZone, UserContent, ZoneLayoutResult
from posterkit.render.geometry import Scaler, round_half_up
from posterkit.render.optimizer import grow_font_size
from posterkit.render.typography import FontSpec, TextMeasurer
from posterkit.render.wrapping import wrap

LOGGER = logging.getLogger("posterkit.layout")


@dataclass(slots=True)
class _Block:
    zone: TextZone
    anchor: Rect
    font_size: int
    lines: list[str]
    line_height: float

    @property
    def height(self) -> float:
        return len(self.lines) * self.line_height


def apply_text_transform(text: str, transform: str | None) -> str:
    if transform == "uppercase":
        return text.upper()
    return text


def inter_field_spacing(name_line_count: int, tuning: LayoutTuning) -> float:
    """Canonical gap between the name block and the title block."""
    if name_line_count <= 1:
        return tuning.spacing_tight
    if name_line_count == 2:
        return tuning.spacing_medium
    return tuning.spacing_generous


def _sized_width(measurer: TextMeasurer, zone: TextZone):
    def _measure(text: str, size: int) -> float:
        return measurer.measure(text, FontSpec(zone.font_family, zone.font_weight, size))

    return _measure


def _fixed_width(measurer: TextMeasurer, zone: TextZone, size: int, exact_size: float):
    # Widths at the drawn pixel size, scaled to the unrounded size so that
    # line breaks do not depend on the target size.
    spec = FontSpec(zone.font_family, zone.font_weight, size)
    ratio = exact_size / size

    def _measure(text: str) -> float:
        return measurer.measure(text, spec) * ratio

    return _measure


def _name_block(
    text: str,
    source: TextZone,
    scaler: Scaler,
    measurer: TextMeasurer,
    tuning: LayoutTuning,
) -> _Block:
    zone = scaler.text_zone(source)
    exact_size = grow_font_size(
        text,
        scaler.length(source.font_size),
        scaler.length(source.rect.width),
        _sized_width(measurer, zone),
        step=scaler.length(tuning.growth_step),
        cap_fraction=tuning.growth_cap_fraction,
        single_word_margin=tuning.single_word_margin,
        break_word_margin=tuning.break_word_margin,
    )
    font_size = max(1, round_half_up(exact_size))
    lines = wrap(
        text,
        scaler.length(source.rect.width),
        _fixed_width(measurer, zone, font_size, exact_size),
        balance_ratio=tuning.two_word_balance_ratio,
    )
    return _Block(
        zone=zone,
        anchor=scaler.exact_rect(source.rect),
        font_size=font_size,
        lines=lines,
        line_height=exact_size * tuning.name_line_height,
    )


def _title_block(text: str, source: TextZone, scaler: Scaler, measurer: TextMeasurer, tuning: LayoutTuning) -> _Block:
    zone = scaler.text_zone(source)
    font_size = int(zone.font_size)
    exact_size = max(1.0, scaler.length(source.font_size))
    lines = wrap(
        text,
        scaler.length(source.rect.width),
        _fixed_width(measurer, zone, font_size, exact_size),
        balance_ratio=tuning.two_word_balance_ratio,
    )
    return _Block(
        zone=zone,
        anchor=scaler.exact_rect(source.rect),
        font_size=font_size,
        lines=lines,
        line_height=exact_size * tuning.title_line_height,
    )


def _required_zone(template: Template, zone_type: str) -> TextZone:
    zone = template.layout.text_zone(zone_type)
    if zone is None:
        raise InvalidTemplateConfigError(template.id, "missing text zone", zone=zone_type)
    return zone


def compute_layout(
    template: Template,
    content: UserContent,
    target_size: int,
    measurer: TextMeasurer,
    *,
    tuning: LayoutTuning | None = None,
    overrides: DebugOverrides | None = None,
) -> list[ZoneLayoutResult]:
    """Lay out the name and title zones at ``target_size``.

    Returns the name result then the title result; a field with empty
    content is left out. Block heights and anchors are kept unrounded
    until the final origins, so a layout at twice the size lands within
    a pixel of twice the origins.
    """
    if target_size <= 0:
        raise ValueError(f"target size must be positive, got: {target_size}")
    tuning = tuning or LayoutTuning()
    overrides = overrides or DebugOverrides()
    scaler = Scaler(target_size, template.canonical_size)

    name_source = _required_zone(template, "name")
    title_source = _required_zone(template, "title")
    name_text = apply_text_transform((content.name or "").strip(), name_source.text_transform)
    title_text = apply_text_transform((content.title or "").strip(), title_source.text_transform)

    name_block = _name_block(name_text, name_source, scaler, measurer, tuning) if name_text else None
    title_block = _title_block(title_text, title_source, scaler, measurer, tuning) if title_text else None
    if name_block is None and title_block is None:
        return []

    if overrides.spacing is not None:
        spacing = scaler.length(overrides.spacing)
    else:
        name_lines = len(name_block.lines) if name_block else 1
        spacing = scaler.length(inter_field_spacing(name_lines, tuning))
    total = sum(block.height for block in (name_block, title_block) if block is not None)
    if name_block is not None and title_block is not None:
        total += spacing

    style = template.layout.layout_style
    photo = template.layout.photo_zone
    if photo is not None:
        photo_rect = scaler.exact_rect(photo.rect).offset(
            scaler.length(overrides.photo_offset[0]), scaler.length(overrides.photo_offset[1])
        )
    if style in constants.PHOTO_ANCHORED_LAYOUT_STYLES and photo is None:
        LOGGER.debug("template %s has no photo zone, anchoring %s layout to the name zone", template.id, style)
        style = constants.LAYOUT_STYLE_ZONE

    if style == constants.LAYOUT_STYLE_PHOTO_CENTER:
        top = photo_rect.center[1] - total / 2.0
    elif style == constants.LAYOUT_STYLE_PHOTO_ABOVE:
        top = photo_rect.y - total - scaler.length(tuning.spacing_tight)
    else:
        top = (name_block or title_block).anchor.y

    results: list[ZoneLayoutResult] = []
    cursor = top
    if name_block is not None:
        results.append(_result(name_block, cursor, scaler, overrides.name_offset))
        cursor += name_block.height + spacing
    if title_block is not None:
        results.append(_result(title_block, cursor, scaler, overrides.title_offset))
    return results


def _result(block: _Block, top: float, scaler: Scaler, offset: tuple[float, float]) -> ZoneLayoutResult:
    zone = block.zone
    return ZoneLayoutResult(
        zone_type=zone.type,
        origin_x=round_half_up(block.anchor.x + scaler.length(offset[0])),
        origin_y=round_half_up(top + scaler.length(offset[1])),
        font_size_px=block.font_size,
        lines=list(block.lines),
        line_height_px=block.line_height,
        color=zone.color,
        font_weight=zone.font_weight,
        font_family=zone.font_family,
        text_align=zone.text_align,
        max_width_px=int(zone.rect.width),
    )
