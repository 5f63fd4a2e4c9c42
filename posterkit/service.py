from __future__ import annotations

import asyncio
import enum
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from PIL import Image

from posterkit import constants
from posterkit.assets import AssetFetcher, TemplateImageCache
from posterkit.config import DEFAULT_CONFIG, layout_tuning_from_config
from posterkit.errors import RenderStateError, TextRenderDegradation
from posterkit.models import DebugOverrides, LayoutTuning, RenderRequest, Template, UserContent, ZoneLayoutResult
from posterkit.render.compositor import compose_poster, encode_png
from posterkit.render.typography import FontResolver, TextMeasurer, build_measurer

LOGGER = logging.getLogger("posterkit.service")


class RenderStage(str, enum.Enum):
    PENDING = "pending"
    FETCHING_ASSETS = "fetching_assets"
    COMPOSITING = "compositing"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[RenderStage, set[RenderStage]] = {
    RenderStage.PENDING: {RenderStage.FETCHING_ASSETS, RenderStage.FAILED},
    RenderStage.FETCHING_ASSETS: {RenderStage.COMPOSITING, RenderStage.FAILED},
    RenderStage.COMPOSITING: {RenderStage.ENCODING, RenderStage.FAILED},
    RenderStage.ENCODING: {RenderStage.DONE, RenderStage.FAILED},
    RenderStage.DONE: set(),
    RenderStage.FAILED: set(),
}


@dataclass(slots=True)
class RenderJob:
    label: str
    stage: RenderStage = RenderStage.PENDING
    history: list[RenderStage] = field(default_factory=lambda: [RenderStage.PENDING])

    def advance(self, stage: RenderStage) -> None:
        if stage not in _TRANSITIONS[self.stage]:
            raise RenderStateError(f"{self.label}: illegal transition {self.stage.value} -> {stage.value}")
        LOGGER.debug("%s: %s -> %s", self.label, self.stage.value, stage.value)
        self.stage = stage
        self.history.append(stage)


@dataclass(slots=True)
class RenderResult:
    png: bytes
    size: int
    mode: str
    layout: list[ZoneLayoutResult]
    degraded_zones: list[TextRenderDegradation]
    stage_history: list[RenderStage]
    elapsed: float = 0.0

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_zones)


@dataclass(slots=True)
class PosterPair:
    preview: RenderResult
    final: RenderResult


class PosterRenderer:
    """Authoritative render path: fetch assets, lay out, composite, encode.

    Renders are independent of one another; the only shared state is the
    optional read-only template background cache and the font caches.
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        fonts: FontResolver | None = None,
        measurers: dict[str, TextMeasurer] | None = None,
        cache: TemplateImageCache | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.config = dict(config or DEFAULT_CONFIG)
        self.tuning: LayoutTuning = layout_tuning_from_config(self.config)
        self.fonts = fonts or FontResolver(self.config.get("font_dirs") or [])
        self.measurers = measurers or {
            "preview": build_measurer(str(self.config.get("preview_measurer", "pillow")), self.fonts),
            "final": build_measurer(str(self.config.get("final_measurer", "pillow")), self.fonts),
        }
        if cache is None and self.config.get("cache_templates", True):
            cache = TemplateImageCache()
        self.cache = cache
        self._executor = executor
        self._owns_executor = executor is None

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            workers = int(self.config.get("max_workers") or 1)
            self._executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="posterkit")
        return self._executor

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def measurer_for(self, mode: str) -> TextMeasurer:
        if mode not in constants.RENDER_MODES:
            raise ValueError(f"render mode must be one of {constants.RENDER_MODES}, got: {mode!r}")
        return self.measurers[mode]

    async def _load_background(self, template: Template, fetcher: AssetFetcher) -> Image.Image:
        async def _load() -> Image.Image:
            return await fetcher.fetch_image(template.image_urls.full, "template")

        if self.cache is None:
            return await _load()
        return await self.cache.get(template.id, _load)

    async def fetch_assets(
        self,
        template: Template,
        content: UserContent,
        fetcher: AssetFetcher,
    ) -> tuple[Image.Image, Image.Image | None]:
        """Fetch the template background and the user photo concurrently."""
        wants_photo = bool(content.photo) and template.layout.photo_zone is not None
        tasks = [asyncio.ensure_future(self._load_background(template, fetcher))]
        if wants_photo:
            tasks.append(asyncio.ensure_future(fetcher.fetch_image(str(content.photo), "photo")))
        try:
            images = await asyncio.gather(*tasks)
        except BaseException:
            # First failure wins; abandon the sibling fetch.
            for task in tasks:
                task.cancel()
            raise
        background = images[0]
        photo = images[1] if wants_photo else None
        return background, photo

    async def _compose_and_encode(
        self,
        job: RenderJob,
        request: RenderRequest,
        background: Image.Image,
        photo: Image.Image | None,
    ) -> RenderResult:
        loop = asyncio.get_running_loop()
        started = time.perf_counter()
        job.advance(RenderStage.COMPOSITING)
        composition = await loop.run_in_executor(
            self.executor,
            lambda: compose_poster(
                background,
                photo,
                request.template,
                request.content,
                request.target_size,
                self.measurer_for(request.mode),
                self.fonts,
                tuning=self.tuning,
                overrides=request.overrides,
            ),
        )
        job.advance(RenderStage.ENCODING)
        png = await loop.run_in_executor(self.executor, encode_png, composition.image)
        job.advance(RenderStage.DONE)
        return RenderResult(
            png=png,
            size=request.target_size,
            mode=request.mode,
            layout=composition.layout,
            degraded_zones=composition.degraded,
            stage_history=list(job.history),
            elapsed=time.perf_counter() - started,
        )

    async def render(self, request: RenderRequest, fetcher: AssetFetcher | None = None) -> RenderResult:
        """Render one request into PNG bytes.

        Asset failures raise ``AssetFetchError`` and no image is returned.
        Cancelling the awaiting task abandons in-flight fetches and discards
        any partially composited canvas.
        """
        self.measurer_for(request.mode)
        job = RenderJob(label=f"{request.template.id}@{request.target_size}/{request.mode}")
        own_fetcher = fetcher is None
        fetcher = fetcher or AssetFetcher(timeout=self.config.get("fetch_timeout"))
        try:
            job.advance(RenderStage.FETCHING_ASSETS)
            background, photo = await self.fetch_assets(request.template, request.content, fetcher)
            result = await self._compose_and_encode(job, request, background, photo)
        except BaseException:
            if job.stage is not RenderStage.DONE:
                job.advance(RenderStage.FAILED)
            raise
        finally:
            if own_fetcher:
                await fetcher.close()
        if result.degraded:
            LOGGER.warning("%s finished with %d degraded text zone(s)", job.label, len(result.degraded_zones))
        LOGGER.info("%s rendered in %.2fs", job.label, result.elapsed)
        return result

    async def render_pair(
        self,
        template: Template,
        content: UserContent,
        *,
        overrides: DebugOverrides | None = None,
    ) -> PosterPair:
        """Preview and final renders from one fetch of the template and photo."""
        preview_size = int(self.config.get("preview_size") or constants.DEFAULT_PREVIEW_SIZE)
        final_size = int(self.config.get("final_size") or constants.DEFAULT_FINAL_SIZE)
        preview_job = RenderJob(label=f"{template.id}@{preview_size}/preview")
        final_job = RenderJob(label=f"{template.id}@{final_size}/final")
        jobs = (preview_job, final_job)
        async with AssetFetcher(timeout=self.config.get("fetch_timeout")) as fetcher:
            try:
                for job in jobs:
                    job.advance(RenderStage.FETCHING_ASSETS)
                background, photo = await self.fetch_assets(template, content, fetcher)
                preview = await self._compose_and_encode(
                    preview_job,
                    RenderRequest(template, content, preview_size, "preview", overrides),
                    background,
                    photo,
                )
                final = await self._compose_and_encode(
                    final_job,
                    RenderRequest(template, content, final_size, "final", overrides),
                    background,
                    photo,
                )
            except BaseException:
                for job in jobs:
                    if job.stage is not RenderStage.DONE:
                        job.advance(RenderStage.FAILED)
                raise
        return PosterPair(preview=preview, final=final)


def render_poster(
    template: Template,
    content: UserContent,
    target_size: int,
    *,
    mode: str = "final",
    config: dict[str, Any] | None = None,
    overrides: DebugOverrides | None = None,
) -> bytes:
    """Blocking convenience entry point returning PNG bytes."""
    renderer = PosterRenderer(config)
    try:
        result = asyncio.run(renderer.render(RenderRequest(template, content, target_size, mode, overrides)))
    finally:
        renderer.close()
    return result.png
