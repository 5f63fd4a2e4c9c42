from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field

from PIL import Image, ImageChops, ImageDraw

from posterkit import constants
from posterkit.errors import TextRenderDegradation
from posterkit.models import DebugOverrides, LayoutTuning, Template, UserContent, ZoneLayoutResult
from posterkit.render.geometry import Scaler
from posterkit.render.image_modes import circle_mask, cover_fit, rounded_mask
from posterkit.render.layout import compute_layout
from posterkit.render.typography import FontResolver, FontSpec, TextMeasurer

LOGGER = logging.getLogger("posterkit.compositor")


@dataclass(slots=True)
class Composition:
    image: Image.Image
    layout: list[ZoneLayoutResult]
    degraded: list[TextRenderDegradation] = field(default_factory=list)


def _line_x(result: ZoneLayoutResult, line_width: float) -> float:
    if result.text_align == "center":
        return result.origin_x + (result.max_width_px - line_width) / 2.0
    if result.text_align == "right":
        return result.origin_x + result.max_width_px - line_width
    return float(result.origin_x)


def draw_zone_text(canvas: Image.Image, result: ZoneLayoutResult, fonts: FontResolver) -> None:
    """Rasterize one zone's lines onto ``canvas`` (top-left anchored per line)."""
    font = fonts.font(FontSpec(result.font_family, result.font_weight, result.font_size_px))
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    for index, line in enumerate(result.lines):
        if not line:
            continue
        y = result.origin_y + index * result.line_height_px
        x = _line_x(result, font.getlength(line))
        draw.text((x, y), line, font=font, fill=result.color, anchor="la")
    canvas.alpha_composite(layer)


def draw_placeholder(canvas: Image.Image, result: ZoneLayoutResult) -> None:
    left = result.origin_x
    top = result.origin_y
    right = left + max(1, result.max_width_px)
    bottom = top + max(1, int(round(result.block_height)))
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    ImageDraw.Draw(layer).rectangle((left, top, right - 1, bottom - 1), fill=constants.PLACEHOLDER_FILL)
    canvas.alpha_composite(layer)


def stamp_photo(
    canvas: Image.Image,
    photo: Image.Image,
    template: Template,
    scaler: Scaler,
    overrides: DebugOverrides,
) -> None:
    source_zone = template.layout.photo_zone
    if source_zone is None:
        return
    zone = scaler.photo_zone(source_zone)
    width, height = int(zone.rect.width), int(zone.rect.height)
    if width <= 0 or height <= 0:
        return
    fitted = cover_fit(photo, width, height).convert("RGBA")
    if zone.is_circular:
        mask = circle_mask(fitted.size)
    elif zone.border_radius > 0:
        mask = rounded_mask(fitted.size, int(zone.border_radius))
    else:
        mask = None
    if mask is not None:
        fitted.putalpha(ImageChops.multiply(fitted.getchannel("A"), mask))
    x = int(zone.rect.x) + scaler(overrides.photo_offset[0])
    y = int(zone.rect.y) + scaler(overrides.photo_offset[1])
    canvas.paste(fitted, (x, y), fitted)


def compose_poster(
    background: Image.Image,
    photo: Image.Image | None,
    template: Template,
    content: UserContent,
    target_size: int,
    measurer: TextMeasurer,
    fonts: FontResolver,
    *,
    tuning: LayoutTuning | None = None,
    overrides: DebugOverrides | None = None,
) -> Composition:
    """Background, then photo, then text; later steps draw over earlier ones.

    A zone whose glyphs cannot be rendered is replaced by a neutral
    rectangle and reported in ``Composition.degraded``.
    """
    overrides = overrides or DebugOverrides()
    scaler = Scaler(target_size, template.canonical_size)
    canvas = cover_fit(background, target_size, target_size).convert("RGBA")

    if photo is not None:
        stamp_photo(canvas, photo, template, scaler, overrides)

    layout = compute_layout(template, content, target_size, measurer, tuning=tuning, overrides=overrides)
    degraded: list[TextRenderDegradation] = []
    for result in layout:
        try:
            draw_zone_text(canvas, result, fonts)
        except (OSError, ValueError, UnicodeError) as exc:
            LOGGER.warning(
                "text zone %s of template %s degraded to placeholder: %s",
                result.zone_type,
                template.id,
                exc,
            )
            degraded.append(TextRenderDegradation(result.zone_type, f"{type(exc).__name__}: {exc}"))
            draw_placeholder(canvas, result)
    return Composition(image=canvas, layout=layout, degraded=degraded)


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()
