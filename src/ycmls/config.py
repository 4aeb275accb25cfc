from __future__ import annotations

import sys
from datetime import date, datetime, time
from pathlib import Path
from typing import List, TypeAlias
import tomllib

from pydantic import BaseModel, Field, ValidationError

from ycmls.exceptions import ConfigurationError

DEFAULT_CONFIG_NAME = "ycmls.toml"
INVALID_PATH_MESSAGE = "Invalid ycm path"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


class YcmdSettings(BaseModel):
    path: str = Field(min_length=1)
    debug: bool = False
    use_imprecise_get_type: bool = False
    python: str = Field(default_factory=lambda: sys.executable)
    idle_suicide_seconds: int = 0
    startup_timeout_seconds: float = 10.0
    global_ycm_extra_conf: str = ""
    extra_conf_globlist: List[str] = []


class Settings(BaseModel):
    ycmd: YcmdSettings


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def ycmd_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("ycmd", {})
    return section if isinstance(section, dict) else {}


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def has_ycmd_path(raw: object) -> bool:
    if not isinstance(raw, dict):
        return False
    section = raw.get("ycmd")
    if not isinstance(section, dict):
        return False
    path = section.get("path")
    return isinstance(path, str) and bool(path.strip())


def validate_settings(raw: object, defaults: TomlTable | None = None) -> Settings:
    """Validate client settings of the form ``{"ycmd": {"path": ...}}``.

    The path must come from the client; workspace defaults only fill in the
    optional keys.
    """
    if not has_ycmd_path(raw):
        raise ConfigurationError(INVALID_PATH_MESSAGE)
    section = merge_payload(raw["ycmd"], defaults or {})
    try:
        return Settings(ycmd=YcmdSettings.model_validate(section))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid ycmd settings: {exc}") from exc
