from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

SETTING_API_KEY = "api_key"
SETTING_API_BASE_URL = "api_base_url"
SETTING_DEBUG_LOGS = "debug_logs"

DEFAULT_CONFIG_NAME = "testaustime.toml"
CONFIG_SECTION = "testaustime"

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]


def _as_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _as_bool(value: object) -> bool | None:
    return value if isinstance(value, bool) else None


@dataclass(frozen=True)
class Settings:
    """User settings delivered through ``initializationOptions``.

    Every field is optional; an unset field is a valid state, not an error.
    Instances are never mutated, a new configuration replaces the old one
    wholesale.
    """

    api_key: str | None = None
    api_base_url: str | None = None
    debug_logs: bool | None = None

    @classmethod
    def from_init_options(cls, value: object) -> Settings:
        if not isinstance(value, Mapping):
            return cls()
        return cls(
            api_key=_as_str(value.get(SETTING_API_KEY)),
            api_base_url=_as_str(value.get(SETTING_API_BASE_URL)),
            debug_logs=_as_bool(value.get(SETTING_DEBUG_LOGS)),
        )

    def to_init_options(self) -> JSONObject:
        options: JSONObject = {}
        if self.api_key is not None:
            options[SETTING_API_KEY] = self.api_key
        if self.api_base_url is not None:
            options[SETTING_API_BASE_URL] = self.api_base_url
        if self.debug_logs is not None:
            options[SETTING_DEBUG_LOGS] = self.debug_logs
        return options

    def merged_over(self, defaults: Settings) -> Settings:
        values = {}
        for item in fields(self):
            value = getattr(self, item.name)
            values[item.name] = getattr(defaults, item.name) if value is None else value
        return Settings(**values)

    @property
    def debug_enabled(self) -> bool:
        return bool(self.debug_logs)


def _load_toml(path: Path) -> dict[str, object]:
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


def load_settings_file(path: Path | None = None, root: Path | None = None) -> Settings:
    """Read fallback settings from a TOML file.

    Keys may sit in a ``[testaustime]`` table or at the top level. A missing
    or unreadable file yields default settings.
    """
    if path is None:
        base = root if root is not None else Path.cwd()
        path = base / DEFAULT_CONFIG_NAME
    data = _load_toml(path)
    section = data.get(CONFIG_SECTION, data)
    return Settings.from_init_options(section)
