"""Asset fetching for renders.

ImageRefs may be http(s) URLs, local file paths, ``data:image/...;base64,``
URIs or bare base64. Every failure surfaces as ``AssetFetchError``; nothing
is retried here, retry policy belongs to the caller.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable

import aiofiles
import aiohttp
from PIL import Image

from posterkit.decoders.image_decoder import decode_image_bytes
from posterkit.errors import AssetFetchError

LOGGER = logging.getLogger("posterkit.assets")

_BASE64_PAYLOAD = re.compile(r"[A-Za-z0-9+/=\s]{64,}")


def _decode_base64(payload: str) -> bytes:
    compact = "".join(payload.split())
    return base64.b64decode(compact + "=" * (-len(compact) % 4), validate=True)


def _is_file(path: Path) -> bool:
    # Base64 payloads can exceed the OS path length limit.
    try:
        return path.is_file()
    except (OSError, ValueError):
        return False


class AssetFetcher:
    """Fetches and decodes template and photo images.

    Use as an async context manager so all HTTP fetches of one render batch
    share a single ``aiohttp.ClientSession``.
    """

    def __init__(self, timeout: float | None = None, session: aiohttp.ClientSession | None = None) -> None:
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> AssetFetcher:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout) if self.timeout else None
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def _fetch_http(self, ref: str, kind: str) -> bytes:
        try:
            async with self._client().get(ref) as response:
                if response.status >= 400:
                    raise AssetFetchError(ref, kind, f"HTTP {response.status}")
                return await response.read()
        except asyncio.TimeoutError as exc:
            raise AssetFetchError(ref, kind, "timed out") from exc
        except aiohttp.ClientError as exc:
            raise AssetFetchError(ref, kind, f"{type(exc).__name__}: {exc}") from exc

    async def fetch_bytes(self, ref: str, kind: str) -> bytes:
        ref = str(ref or "").strip()
        if not ref:
            raise AssetFetchError(ref, kind, "empty image reference")
        try:
            if ref.startswith(("http://", "https://")):
                return await self._fetch_http(ref, kind)
            if ref.startswith("data:"):
                header, _, encoded = ref.partition(",")
                if ";base64" not in header:
                    raise AssetFetchError(ref, kind, "only base64 data URIs are supported")
                return _decode_base64(encoded)
            path = Path(ref).expanduser()
            if _is_file(path):
                async with aiofiles.open(path, "rb") as handle:
                    return await handle.read()
            if _BASE64_PAYLOAD.fullmatch(ref):
                return _decode_base64(ref)
            raise AssetFetchError(ref, kind, "file not found")
        except AssetFetchError:
            LOGGER.warning("failed to fetch %s asset %r", kind, ref[:70])
            raise
        except (binascii.Error, ValueError) as exc:
            LOGGER.warning("failed to fetch %s asset %r", kind, ref[:70])
            raise AssetFetchError(ref, kind, "malformed base64 payload") from exc
        except OSError as exc:
            LOGGER.warning("failed to fetch %s asset %r", kind, ref[:70])
            raise AssetFetchError(ref, kind, f"{type(exc).__name__}: {exc}") from exc

    async def fetch_image(self, ref: str, kind: str) -> Image.Image:
        data = await self.fetch_bytes(ref, kind)
        return await asyncio.to_thread(decode_image_bytes, data, ref=ref, kind=kind)


class TemplateImageCache:
    """Read-only cache of decoded template backgrounds keyed by template id.

    Concurrent misses on one key share a single in-flight load. Failed loads
    are dropped so the next request tries again. Cached images must not be
    mutated by callers.
    """

    def __init__(self) -> None:
        self._entries: dict[str, asyncio.Future[Image.Image]] = {}
        self.loads = 0

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.done() and not entry.cancelled() and entry.exception() is None

    def clear(self) -> None:
        self._entries.clear()

    async def get(self, key: str, loader: Callable[[], Awaitable[Image.Image]]) -> Image.Image:
        if key in self:
            return self._entries[key].result()
        entry = self._entries.get(key)
        if entry is None:
            self.loads += 1
            entry = asyncio.ensure_future(loader())
            self._entries[key] = entry
            entry.add_done_callback(lambda done, key=key: self._forget_failed(key, done))
        return await asyncio.shield(entry)

    def _forget_failed(self, key: str, done: asyncio.Future[Image.Image]) -> None:
        if done.cancelled() or done.exception() is not None:
            if self._entries.get(key) is done:
                del self._entries[key]
