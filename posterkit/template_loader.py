from __future__ import annotations

import copy
import json
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from posterkit import constants
from posterkit.errors import InvalidTemplateConfigError
from posterkit.models import ImageUrls, LayoutConfig, PhotoZone, Rect, Template, TextZone
from posterkit.render.geometry import rect_from_corners, round_half_up

_REMOTE_PREFIXES = ("http://", "https://", "data:")


def list_builtin_templates() -> list[str]:
    files = resources.files("posterkit.templates")
    names = []
    for item in files.iterdir():
        if item.name.endswith((".yaml", ".yml", ".json")):
            names.append(Path(item.name).stem)
    return sorted(set(names))


def _parse_text(text: str, suffix: str, source: str) -> dict[str, Any]:
    if suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise InvalidTemplateConfigError(None, f"template file is not a mapping: {source}")
    return data


def load_template_file(path: Path) -> dict[str, Any]:
    return _parse_text(path.read_text(encoding="utf-8"), path.suffix.lower(), str(path))


def _load_builtin(name: str) -> dict[str, Any]:
    pkg = resources.files("posterkit.templates")
    for suffix in (".yaml", ".yml", ".json"):
        candidate = pkg / f"{name}{suffix}"
        if candidate.is_file():
            return _parse_text(candidate.read_text(encoding="utf-8"), suffix, name)
    raise FileNotFoundError(f"built-in template not found: {name}")


def schema_for_version(version: Any, template_id: str | None = None) -> tuple[int, int, str]:
    try:
        parsed = int(version)
    except (TypeError, ValueError):
        parsed = None
    if parsed not in constants.SCHEMA_VERSIONS:
        known = ", ".join(str(v) for v in sorted(constants.SCHEMA_VERSIONS))
        raise InvalidTemplateConfigError(
            template_id,
            f"missing or unknown schemaVersion {version!r} (known: {known}); pass the version explicitly",
        )
    canonical_size, font_unit = constants.SCHEMA_VERSIONS[parsed]
    return parsed, canonical_size, font_unit


def _number(value: Any, template_id: str | None, zone: str, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidTemplateConfigError(template_id, f"{key} must be a number, got {value!r}", zone=zone) from None


def _zone_rect(raw: dict[str, Any], template_id: str | None, zone: str) -> Rect:
    coordinates = raw.get("coordinates")
    if isinstance(coordinates, dict):
        try:
            rect = rect_from_corners(coordinates)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTemplateConfigError(template_id, f"malformed coordinates: {exc}", zone=zone) from exc
    else:
        rect = Rect(
            _number(raw.get("x"), template_id, zone, "x"),
            _number(raw.get("y"), template_id, zone, "y"),
            _number(raw.get("width"), template_id, zone, "width"),
            _number(raw.get("height"), template_id, zone, "height"),
        )
    if rect.width <= 0 or rect.height <= 0:
        raise InvalidTemplateConfigError(template_id, "width and height must be positive", zone=zone)
    return rect


def _normalize_photo_zone(raw: Any, index: int, template_id: str | None) -> PhotoZone:
    zone = f"photoZones[{index}]"
    if not isinstance(raw, dict):
        raise InvalidTemplateConfigError(template_id, "zone is not a mapping", zone=zone)
    rect = _zone_rect(raw, template_id, zone)
    radius = _number(raw.get("borderRadius") or 0, template_id, zone, "borderRadius")
    if radius < 0:
        raise InvalidTemplateConfigError(template_id, "borderRadius must not be negative", zone=zone)
    return PhotoZone(rect=rect, border_radius=radius)


def _normalize_text_zone(
    raw: Any,
    index: int,
    template_id: str | None,
    canonical_size: int,
    font_unit: str,
) -> TextZone:
    zone = f"textZones[{index}]"
    if not isinstance(raw, dict):
        raise InvalidTemplateConfigError(template_id, "zone is not a mapping", zone=zone)
    zone_type = str(raw.get("type") or "").strip().lower()
    if zone_type not in constants.ZONE_TYPES:
        raise InvalidTemplateConfigError(template_id, f"type must be name or title, got {zone_type!r}", zone=zone)
    zone = f"{zone} ({zone_type})"
    rect = _zone_rect(raw, template_id, zone)

    font_size = _number(raw.get("fontSize"), template_id, zone, "fontSize")
    if font_unit == constants.FONT_SIZE_UNIT_FRACTION:
        font_size *= canonical_size
    if font_size <= 0:
        raise InvalidTemplateConfigError(template_id, "fontSize must be positive", zone=zone)

    text_align = str(raw.get("textAlign") or "left").strip().lower()
    if text_align not in constants.TEXT_ALIGN_OPTIONS:
        raise InvalidTemplateConfigError(template_id, f"unsupported textAlign {text_align!r}", zone=zone)
    transform = str(raw.get("textTransform") or "").strip().lower() or None
    if transform == "none":
        transform = None
    if transform is not None and transform not in constants.TEXT_TRANSFORM_OPTIONS:
        raise InvalidTemplateConfigError(template_id, f"unsupported textTransform {transform!r}", zone=zone)

    weight = str(raw.get("fontWeight") or "normal").strip().lower()
    if weight not in constants.FONT_WEIGHT_OPTIONS and not weight.isdigit():
        raise InvalidTemplateConfigError(template_id, f"unsupported fontWeight {weight!r}", zone=zone)
    return TextZone(
        type=zone_type,
        rect=rect,
        font_size=font_size,
        font_family=str(raw.get("fontFamily") or "Arial"),
        font_weight=weight,
        color=str(raw.get("color") or "#FFFFFF"),
        text_align=text_align,
        text_transform=transform,
    )


def _resolve_image_ref(ref: Any, base_dir: Path | None) -> str | None:
    text = str(ref or "").strip()
    if not text:
        return None
    if text.startswith(_REMOTE_PREFIXES) or base_dir is None:
        return text
    path = Path(text)
    if path.is_absolute():
        return text
    return str((base_dir / path).resolve(strict=False))


def normalize_template_dict(
    data: dict[str, Any],
    *,
    schema_version: int | None = None,
    base_dir: Path | None = None,
) -> Template:
    """Validate a raw template record and convert it to the canonical model.

    ``fontSize`` becomes canonical pixels; four-corner ``coordinates`` become
    ``x/y/width/height``. The record's own canonical size is kept.
    """
    template_id = str(data.get("id") or data.get("name") or "") or None
    version, canonical_size, font_unit = schema_for_version(
        schema_version if schema_version is not None else data.get("schemaVersion"),
        template_id,
    )

    urls = data.get("imageUrls") or {}
    if not isinstance(urls, dict):
        raise InvalidTemplateConfigError(template_id, "imageUrls must be a mapping")
    full = _resolve_image_ref(urls.get("full"), base_dir)
    if not full:
        raise InvalidTemplateConfigError(template_id, "imageUrls.full is required")
    image_urls = ImageUrls(
        full=full,
        preview=_resolve_image_ref(urls.get("preview"), base_dir),
        thumbnail=_resolve_image_ref(urls.get("thumbnail"), base_dir),
    )

    layout_raw = data.get("layoutConfig") or {}
    if not isinstance(layout_raw, dict):
        raise InvalidTemplateConfigError(template_id, "layoutConfig must be a mapping")
    photo_zones = [
        _normalize_photo_zone(raw, index, template_id) for index, raw in enumerate(layout_raw.get("photoZones") or [])
    ]
    text_zones = [
        _normalize_text_zone(raw, index, template_id, canonical_size, font_unit)
        for index, raw in enumerate(layout_raw.get("textZones") or [])
    ]
    for zone_type in constants.ZONE_TYPES:
        count = sum(1 for zone in text_zones if zone.type == zone_type)
        if count == 0:
            raise InvalidTemplateConfigError(template_id, "required text zone is missing", zone=zone_type)
        if count > 1:
            raise InvalidTemplateConfigError(template_id, f"expected one text zone, found {count}", zone=zone_type)

    layout_style = str(layout_raw.get("layoutStyle") or constants.LAYOUT_STYLE_PHOTO_CENTER).strip().lower()
    if layout_style not in constants.LAYOUT_STYLES:
        raise InvalidTemplateConfigError(template_id, f"unsupported layoutStyle {layout_style!r}")
    if layout_style in constants.PHOTO_ANCHORED_LAYOUT_STYLES and not photo_zones:
        raise InvalidTemplateConfigError(template_id, f"layoutStyle {layout_style} needs a photo zone")

    return Template(
        id=template_id or "custom",
        name=str(data.get("name") or template_id or "custom"),
        category=str(data.get("category") or "General"),
        image_urls=image_urls,
        layout=LayoutConfig(photo_zones=photo_zones, text_zones=text_zones, layout_style=layout_style),
        canonical_size=canonical_size,
        schema_version=version,
    )


def load_template(template_name_or_path: str, *, schema_version: int | None = None) -> Template:
    path = Path(template_name_or_path)
    if path.exists():
        return normalize_template_dict(
            load_template_file(path),
            schema_version=schema_version,
            base_dir=path.resolve().parent,
        )
    return normalize_template_dict(_load_builtin(template_name_or_path), schema_version=schema_version)


def _migrate_zone(raw: dict[str, Any], rect: Rect, factor: float) -> dict[str, Any]:
    migrated = {key: value for key, value in raw.items() if key not in {"coordinates", "x", "y", "width", "height"}}
    migrated.update(
        {
            "x": round_half_up(rect.x * factor),
            "y": round_half_up(rect.y * factor),
            "width": round_half_up(rect.width * factor),
            "height": round_half_up(rect.height * factor),
        }
    )
    return migrated


def migrate_template_dict(data: dict[str, Any], *, schema_version: int | None = None) -> dict[str, Any]:
    """Rewrite a template record into the current schema (canonical 2000, pixel font sizes).

    The record is validated against its own schema first, so malformed zones
    fail with ``InvalidTemplateConfigError`` before anything is rewritten.
    """
    if not isinstance(data, dict):
        raise InvalidTemplateConfigError(None, "template record is not a mapping")
    template = normalize_template_dict(data, schema_version=schema_version)
    target_size, _ = constants.SCHEMA_VERSIONS[constants.CURRENT_SCHEMA_VERSION]
    factor = target_size / float(template.canonical_size)

    migrated = copy.deepcopy(data)
    layout = migrated.get("layoutConfig") or {}
    photo_zones = []
    for raw, zone in zip(layout.get("photoZones") or [], template.layout.photo_zones):
        photo = _migrate_zone(raw, zone.rect, factor)
        if zone.border_radius:
            photo["borderRadius"] = round_half_up(zone.border_radius * factor)
        photo_zones.append(photo)
    text_zones = []
    for raw, zone in zip(layout.get("textZones") or [], template.layout.text_zones):
        text = _migrate_zone(raw, zone.rect, factor)
        text["fontSize"] = round_half_up(zone.font_size * factor)
        text_zones.append(text)
    layout["photoZones"] = photo_zones
    layout["textZones"] = text_zones
    migrated["layoutConfig"] = layout
    migrated["schemaVersion"] = constants.CURRENT_SCHEMA_VERSION
    normalize_template_dict(migrated)
    return migrated


def dump_template_dict(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
