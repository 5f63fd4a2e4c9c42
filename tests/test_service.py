import asyncio
import io
from pathlib import Path

import pytest
from PIL import Image

from posterkit.config import DEFAULT_CONFIG
from posterkit.errors import AssetFetchError, RenderStateError
from posterkit.models import RenderRequest, UserContent
from posterkit.render.typography import ApproxMeasurer
from posterkit.service import PosterRenderer, RenderJob, RenderStage, render_poster
from posterkit.template_loader import normalize_template_dict


def _write_png(path: Path, size: tuple[int, int], color: tuple[int, int, int]) -> Path:
    Image.new("RGB", size, color).save(path, format="PNG")
    return path


def _template(tmp_path: Path, background: str | None = None):
    if background is None:
        background = str(_write_png(tmp_path / "bg.png", (300, 300), (0, 0, 255)))
    return normalize_template_dict(
        {
            "id": "service-test",
            "schemaVersion": 2,
            "imageUrls": {"full": background},
            "layoutConfig": {
                "layoutStyle": "photo_center",
                "photoZones": [{"x": 100, "y": 1400, "width": 400, "height": 400, "borderRadius": 200}],
                "textZones": [
                    {"type": "name", "x": 600, "y": 1450, "width": 1200, "height": 200, "fontSize": 90},
                    {"type": "title", "x": 600, "y": 1650, "width": 1200, "height": 150, "fontSize": 50},
                ],
            },
        }
    )


def _renderer(**config) -> PosterRenderer:
    cfg = dict(DEFAULT_CONFIG, max_workers=1, **config)
    approx = ApproxMeasurer()
    return PosterRenderer(cfg, measurers={"preview": approx, "final": approx})


def test_render_produces_png_of_target_size(tmp_path: Path) -> None:
    template = _template(tmp_path)
    photo = _write_png(tmp_path / "photo.png", (120, 90), (255, 0, 0))
    renderer = _renderer()
    try:
        result = asyncio.run(
            renderer.render(RenderRequest(template, UserContent("Jo Smith", "Mayor", str(photo)), 200))
        )
    finally:
        renderer.close()

    image = Image.open(io.BytesIO(result.png))
    assert image.format == "PNG"
    assert image.size == (200, 200)
    assert [zone.zone_type for zone in result.layout] == ["name", "title"]
    assert not result.degraded
    assert result.stage_history == [
        RenderStage.PENDING,
        RenderStage.FETCHING_ASSETS,
        RenderStage.COMPOSITING,
        RenderStage.ENCODING,
        RenderStage.DONE,
    ]
    # Centre of the circular photo zone (x 10..50, y 140..180 at 200px).
    assert image.convert("RGB").getpixel((30, 160)) == (255, 0, 0)


def test_render_without_photo_skips_photo_fetch(tmp_path: Path) -> None:
    template = _template(tmp_path)
    renderer = _renderer()
    try:
        result = asyncio.run(renderer.render(RenderRequest(template, UserContent("Jo", ""), 100, "preview")))
    finally:
        renderer.close()
    assert result.mode == "preview"
    assert [zone.zone_type for zone in result.layout] == ["name"]


def test_missing_background_fails_render(tmp_path: Path) -> None:
    template = _template(tmp_path, background=str(tmp_path / "nope.png"))
    renderer = _renderer()
    try:
        with pytest.raises(AssetFetchError) as excinfo:
            asyncio.run(renderer.render(RenderRequest(template, UserContent("Jo", "Mayor"), 200)))
    finally:
        renderer.close()
    assert excinfo.value.kind == "template"


def test_missing_photo_fails_render(tmp_path: Path) -> None:
    template = _template(tmp_path)
    renderer = _renderer()
    content = UserContent("Jo", "Mayor", str(tmp_path / "missing-photo.jpg"))
    try:
        with pytest.raises(AssetFetchError) as excinfo:
            asyncio.run(renderer.render(RenderRequest(template, content, 200)))
    finally:
        renderer.close()
    assert excinfo.value.kind == "photo"


def test_unknown_mode_is_rejected(tmp_path: Path) -> None:
    renderer = _renderer()
    with pytest.raises(ValueError, match="render mode"):
        asyncio.run(renderer.render(RenderRequest(_template(tmp_path), UserContent("Jo"), 200, "draft")))


def test_render_pair_fetches_background_once(tmp_path: Path) -> None:
    template = _template(tmp_path)
    renderer = _renderer(preview_size=100, final_size=200)
    try:
        pair = asyncio.run(renderer.render_pair(template, UserContent("Jo", "Mayor")))
    finally:
        renderer.close()

    assert pair.preview.size == 100
    assert pair.final.size == 200
    assert Image.open(io.BytesIO(pair.final.png)).size == (200, 200)
    assert renderer.cache is not None and renderer.cache.loads == 1
    assert pair.final.layout[0].font_size_px >= pair.preview.layout[0].font_size_px


def test_concurrent_renders_share_one_template_load(tmp_path: Path) -> None:
    template = _template(tmp_path)
    renderer = _renderer()

    async def _run():
        requests = [RenderRequest(template, UserContent(f"Name {index}", "Title"), 120) for index in range(4)]
        return await asyncio.gather(*(renderer.render(request) for request in requests))

    try:
        results = asyncio.run(_run())
    finally:
        renderer.close()
    assert len(results) == 4
    assert renderer.cache.loads == 1


def test_render_poster_returns_png_bytes(tmp_path: Path) -> None:
    template = _template(tmp_path)
    data = render_poster(template, UserContent("Jo", "Mayor"), 150, config=dict(DEFAULT_CONFIG, final_measurer="approx"))
    assert Image.open(io.BytesIO(data)).size == (150, 150)


def test_render_job_enforces_transitions() -> None:
    job = RenderJob("demo")
    with pytest.raises(RenderStateError):
        job.advance(RenderStage.COMPOSITING)
    job.advance(RenderStage.FETCHING_ASSETS)
    job.advance(RenderStage.FAILED)
    with pytest.raises(RenderStateError):
        job.advance(RenderStage.DONE)
    assert job.history == [RenderStage.PENDING, RenderStage.FETCHING_ASSETS, RenderStage.FAILED]
