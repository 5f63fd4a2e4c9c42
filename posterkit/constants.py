ZONE_TYPES = ("name", "title")
TEXT_ALIGN_OPTIONS = ("left", "center", "right")
TEXT_TRANSFORM_OPTIONS = ("uppercase",)
FONT_WEIGHT_OPTIONS = ("normal", "bold")

RENDER_MODES = ("preview", "final")

LAYOUT_STYLE_PHOTO_CENTER = "photo_center"
LAYOUT_STYLE_PHOTO_ABOVE = "photo_above"
LAYOUT_STYLE_ZONE = "zone"
LAYOUT_STYLES = (LAYOUT_STYLE_PHOTO_CENTER, LAYOUT_STYLE_PHOTO_ABOVE, LAYOUT_STYLE_ZONE)
PHOTO_ANCHORED_LAYOUT_STYLES = {LAYOUT_STYLE_PHOTO_CENTER, LAYOUT_STYLE_PHOTO_ABOVE}

# schemaVersion -> (canonical square size, fontSize unit)
FONT_SIZE_UNIT_PX = "px"
FONT_SIZE_UNIT_FRACTION = "fraction"
SCHEMA_VERSIONS: dict[int, tuple[int, str]] = {
    1: (1080, FONT_SIZE_UNIT_FRACTION),
    2: (2000, FONT_SIZE_UNIT_PX),
}
CURRENT_SCHEMA_VERSION = 2

DEFAULT_PREVIEW_SIZE = 540
DEFAULT_FINAL_SIZE = 1080

# Font growth for the name field. Step and spacing tiers are canonical units.
FONT_GROWTH_CAP_FRACTION = 0.5
FONT_GROWTH_STEP = 4
SINGLE_WORD_FIT_MARGIN = 0.9
BREAK_WORD_FIT_MARGIN = 0.8
TWO_WORD_BALANCE_RATIO = 3.0

NAME_LINE_HEIGHT = 1.25
TITLE_LINE_HEIGHT = 1.3

SPACING_TIGHT = 25
SPACING_MEDIUM = 45
SPACING_GENEROUS = 75

PLACEHOLDER_FILL = (128, 128, 128, 160)
