from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')


def sanitize_token(value: str | None, fallback: str = "NA") -> str:
    text = (value or "").strip()
    if not text:
        text = fallback
    text = INVALID_FILENAME_CHARS.sub("_", text)
    text = re.sub(r"\s+", "_", text)
    text = text.strip(" ._")
    return text or fallback


def sanitize_filename(value: str, fallback: str = "poster") -> str:
    text = INVALID_FILENAME_CHARS.sub("_", value).strip()
    text = text.strip(" .")
    return text or fallback


def format_timestamp(moment: datetime | None = None) -> str:
    moment = moment or datetime.now()
    return moment.strftime("%Y%m%d_%H%M%S")


def build_output_name(
    name_template: str,
    session_id: str | None,
    mode: str,
    size: int,
    template_name: str | None = None,
    timestamp: datetime | str | None = None,
    extension: str = "png",
) -> str:
    ext = extension.lower().lstrip(".")
    if isinstance(timestamp, datetime) or timestamp is None:
        stamp = format_timestamp(timestamp)
    else:
        stamp = str(timestamp)
    values = {
        "session": sanitize_token(session_id, fallback="anonymous"),
        "mode": sanitize_token(mode, fallback="final"),
        "size": str(int(size)),
        "template": sanitize_token(template_name, fallback="poster"),
        "timestamp": sanitize_token(stamp),
        "ext": ext,
    }
    try:
        rendered = name_template.format(**values)
    except KeyError as exc:
        missing = str(exc).strip("'")
        raise ValueError(f"name template contains unknown key: {missing}") from exc

    rendered = sanitize_filename(rendered, fallback=f"{values['session']}_{values['mode']}.{ext}")
    if not Path(rendered).suffix:
        rendered = f"{rendered}.{ext}"
    return rendered
