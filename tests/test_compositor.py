from typing import Any

from PIL import Image, ImageChops

from posterkit.models import UserContent
from posterkit.render import compositor
from posterkit.render.compositor import compose_poster, encode_png
from posterkit.render.image_modes import circle_mask, cover_fit, rounded_mask
from posterkit.render.typography import ApproxMeasurer, FontResolver
from posterkit.template_loader import normalize_template_dict

BLUE = (0, 0, 255, 255)
RED = (255, 0, 0, 255)


def _template(border_radius: float) -> Any:
    return normalize_template_dict(
        {
            "id": "masking",
            "schemaVersion": 2,
            "imageUrls": {"full": "bg.png"},
            "layoutConfig": {
                "layoutStyle": "zone",
                "photoZones": [{"x": 0, "y": 0, "width": 1000, "height": 1000, "borderRadius": border_radius}],
                "textZones": [
                    {"type": "name", "x": 1000, "y": 400, "width": 900, "height": 300, "fontSize": 200},
                    {"type": "title", "x": 1000, "y": 800, "width": 900, "height": 200, "fontSize": 100},
                ],
            },
        }
    )


def _compose(template, content: UserContent, size: int = 200):
    background = Image.new("RGBA", (100, 100), BLUE)
    photo = Image.new("RGBA", (60, 80), RED)
    return compose_poster(background, photo, template, content, size, ApproxMeasurer(), FontResolver())


def test_circular_photo_zone_is_masked() -> None:
    composition = _compose(_template(border_radius=500), UserContent())
    image = composition.image

    assert image.size == (200, 200)
    assert composition.layout == []
    assert image.getpixel((1, 1)) == BLUE
    assert image.getpixel((98, 1)) == BLUE
    assert image.getpixel((50, 50)) == RED
    assert image.getpixel((50, 5)) == RED


def test_rounded_photo_zone_keeps_edges_and_clips_corners() -> None:
    image = _compose(_template(border_radius=200), UserContent()).image
    assert image.getpixel((0, 0)) == BLUE
    assert image.getpixel((50, 2)) == RED
    assert image.getpixel((2, 50)) == RED


def test_square_photo_zone_fills_rect() -> None:
    image = _compose(_template(border_radius=0), UserContent()).image
    assert image.getpixel((0, 0)) == RED
    assert image.getpixel((99, 99)) == RED
    assert image.getpixel((101, 101)) == BLUE


def test_text_is_drawn_inside_zone() -> None:
    composition = _compose(_template(border_radius=0), UserContent(name="Jo", title="Mayor"), size=400)
    background = Image.new("RGBA", (400, 400), BLUE)
    text_region = (200, 0, 400, 400)
    # Opaque RGBA diffs have zero alpha, and getbbox only reads alpha.
    diff = ImageChops.difference(
        composition.image.crop(text_region).convert("RGB"),
        background.crop(text_region).convert("RGB"),
    )
    assert diff.getbbox() is not None
    assert composition.degraded == []


def test_text_failure_degrades_to_placeholder(monkeypatch) -> None:
    def _broken(canvas, result, fonts) -> None:
        raise OSError("cannot open resource")

    monkeypatch.setattr(compositor, "draw_zone_text", _broken)
    composition = _compose(_template(border_radius=0), UserContent(name="Jo", title="Mayor"), size=400)

    assert [item.zone_type for item in composition.degraded] == ["name", "title"]
    assert "cannot open resource" in composition.degraded[0].reason
    name = composition.layout[0]
    pixel = composition.image.getpixel((name.origin_x + 1, name.origin_y + 1))
    assert pixel != BLUE


def test_missing_photo_leaves_background() -> None:
    template = _template(border_radius=500)
    background = Image.new("RGBA", (100, 100), BLUE)
    composition = compose_poster(background, None, template, UserContent(), 120, ApproxMeasurer(), FontResolver())
    assert composition.image.getpixel((30, 30)) == BLUE


def test_cover_fit_crops_to_target_ratio() -> None:
    image = Image.new("RGB", (400, 100), "white")
    image.paste((0, 0, 0), (0, 0, 150, 100))
    fitted = cover_fit(image, 50, 50)
    assert fitted.size == (50, 50)
    # The black left strip lies outside the centred square crop.
    assert fitted.getpixel((25, 25)) == (255, 255, 255)


def test_masks_are_opaque_in_the_middle_and_clear_in_corners() -> None:
    circle = circle_mask((64, 64))
    assert circle.getpixel((32, 32)) == 255
    assert circle.getpixel((0, 0)) == 0

    rounded = rounded_mask((64, 32), 14)
    assert rounded.getpixel((32, 16)) == 255
    assert rounded.getpixel((0, 0)) == 0
    assert rounded_mask((10, 10), 0).getpixel((0, 0)) == 255


def test_encode_png_is_lossless_png() -> None:
    data = encode_png(Image.new("RGBA", (8, 8), RED))
    assert data.startswith(b"\x89PNG\r\n\x1a\n")
