from __future__ import annotations

from dataclasses import dataclass


class PosterError(Exception):
    """Base class for every failure a render caller can act on."""


class AssetFetchError(PosterError):
    """A template or photo image could not be fetched or decoded."""

    def __init__(self, ref: str, kind: str, reason: str) -> None:
        self.ref = ref
        self.kind = kind
        self.reason = reason
        super().__init__(f"{kind} asset {_short_ref(ref)!r} unavailable: {reason}")


class InvalidTemplateConfigError(PosterError):
    def __init__(self, template_id: str | None, message: str, zone: str | None = None) -> None:
        self.template_id = template_id
        self.zone = zone
        where = f"template {template_id or '<unknown>'}"
        if zone:
            where = f"{where}, zone {zone}"
        super().__init__(f"{where}: {message}")


class RenderStateError(PosterError):
    """Raised on an illegal render state transition."""


@dataclass(slots=True)
class TextRenderDegradation:
    zone_type: str
    reason: str


def _short_ref(ref: str, limit: int = 70) -> str:
    text = str(ref or "")
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
