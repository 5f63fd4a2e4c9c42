from __future__ import annotations

import copy
import os
import platform
from pathlib import Path
from typing import Any

import yaml

from posterkit import constants
from posterkit.models import LayoutTuning


def default_workers() -> int:
    cpu_count = os.cpu_count() or 2
    return max(1, min(4, cpu_count - 1))


DEFAULT_CONFIG: dict[str, Any] = {
    "preview_size": constants.DEFAULT_PREVIEW_SIZE,
    "final_size": constants.DEFAULT_FINAL_SIZE,
    "fetch_timeout": 30.0,
    "font_dirs": [],
    "preview_measurer": "pillow",
    "final_measurer": "pillow",
    "cache_templates": True,
    "max_workers": default_workers(),
    "name_template": "{session}_{mode}_{timestamp}.{ext}",
    "layout": {},
}


def get_user_data_dir() -> Path:
    system_name = platform.system().lower()
    if system_name == "windows":
        base = (
            os.environ.get("APPDATA")
            or os.environ.get("LOCALAPPDATA")
            or str(Path.home() / "AppData" / "Roaming")
        )
        return Path(base) / "posterkit"
    if system_name == "darwin":
        return Path.home() / "Library" / "Application Support" / "posterkit"

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / "posterkit"
    return Path.home() / ".config" / "posterkit"


def get_config_path() -> Path:
    return get_user_data_dir() / "config.yaml"


def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    if not cfg_path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    text = cfg_path.read_text(encoding="utf-8")
    loaded = yaml.safe_load(text) or {}
    if not isinstance(loaded, dict):
        loaded = {}
    cfg = _deep_merge(DEFAULT_CONFIG, loaded)
    if not cfg.get("max_workers"):
        cfg["max_workers"] = default_workers()
    return cfg


def layout_tuning_from_config(cfg: dict[str, Any]) -> LayoutTuning:
    return LayoutTuning.from_dict(cfg.get("layout") or {})


def write_default_config(path: Path | None = None, force: bool = False) -> Path:
    cfg_path = path or get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg_path.exists() and not force:
        return cfg_path
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["layout"] = {key: getattr(LayoutTuning(), key) for key in LayoutTuning.__dataclass_fields__}
    cfg_path.write_text(yaml.safe_dump(cfg, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return cfg_path
