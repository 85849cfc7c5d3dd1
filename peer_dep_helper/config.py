"""Configuration — one explicit struct, merged from file, environment and flags.

Precedence (lowest to highest): defaults < config file < environment < CLI flags.
Only keys actually set at a layer override the layers below it.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from peer_dep_helper.exceptions import ConfigError

log = structlog.get_logger("peer_dep_helper.config")

CONFIG_KEY = "peer-dep-helper"
RC_FILES = (
    ".peer-dep-helperrc",
    ".peer-dep-helperrc.json",
    ".peer-dep-helperrc.yaml",
    ".peer-dep-helperrc.yml",
)

ENV_PREFIX = "PEER_DEP_HELPER_"
# env var suffix -> (field name, kind)
_ENV_FIELDS: dict[str, tuple[str, str]] = {
    "STRATEGY": ("strategy", "str"),
    "IGNORE": ("ignore", "list"),
    "ONLY": ("only", "list"),
    "DRY_RUN": ("dry_run", "bool"),
    "FAIL_ON_ISSUES": ("fail_on_issues", "bool"),
    "WRITE": ("write", "bool"),
    "JSON": ("json_output", "bool"),
    "SILENT": ("silent", "bool"),
    "NO_CACHE": ("use_cache", "not_bool"),
    "REGISTRY": ("registry_url", "str"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _split_names(value: Any) -> Any:
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    if isinstance(value, (list, tuple)):
        out: list[str] = []
        for item in value:
            out.extend(_split_names(item) if isinstance(item, str) else [item])
        return out
    return value


class Config(BaseModel):
    """Every option the tool recognizes."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    cwd: Path = Field(default_factory=Path.cwd)
    strategy: Literal["strict", "compatible", "latest"] = "compatible"
    dry_run: bool = False
    fail_on_issues: bool = False
    ignore: list[str] = Field(default_factory=list)
    only: list[str] = Field(default_factory=list)
    write: bool = False
    json_output: bool = Field(default=False, alias="json")
    silent: bool = False
    use_cache: bool = True
    registry_url: str = "https://registry.npmjs.org"
    registry_timeout: float = 10.0

    @field_validator("ignore", "only", mode="before")
    @classmethod
    def _comma_lists(cls, v: Any) -> Any:
        return [] if v is None else _split_names(v)

    @field_validator("cwd", mode="after")
    @classmethod
    def _absolute(cls, v: Path) -> Path:
        return v.expanduser().resolve()


def _field_names() -> dict[str, str]:
    """alias-or-name -> field name."""
    names: dict[str, str] = {}
    for name, info in Config.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def _normalize_keys(data: Mapping[str, Any], source: str) -> dict[str, Any]:
    names = _field_names()
    out: dict[str, Any] = {}
    for key, value in data.items():
        field_name = names.get(key)
        if field_name is None:
            log.debug("config.unknown_key", key=key, source=source)
            continue
        out[field_name] = value
    return out


# ── config file ──────────────────────────────────────────────────────────


def _load_rc(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read {path}: {exc.strerror or exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Could not read {path}: not valid UTF-8 ({exc.reason} at byte {exc.start})") from exc
    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            # YAML is a superset of JSON, so this also covers the bare rc file.
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Could not parse {path}: expected a mapping")
    return data


def _from_package_json(path: Path) -> dict[str, Any] | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    section = data.get(CONFIG_KEY) if isinstance(data, dict) else None
    return section if isinstance(section, dict) else None


def find_config_file(start: Path) -> tuple[Path, dict[str, Any]] | None:
    """Search *start* and its parents; the first config found wins."""
    for directory in (start, *start.parents):
        package_json = directory / "package.json"
        if package_json.is_file():
            section = _from_package_json(package_json)
            if section is not None:
                return package_json, section
        for name in RC_FILES:
            candidate = directory / name
            if candidate.is_file():
                return candidate, _load_rc(candidate)
    return None


# ── environment ──────────────────────────────────────────────────────────


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def config_from_env(env: Mapping[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if env is None else env
    out: dict[str, Any] = {}
    for suffix, (field_name, kind) in _ENV_FIELDS.items():
        var = ENV_PREFIX + suffix
        if var not in env:
            continue
        raw = env[var]
        if kind == "bool":
            out[field_name] = _parse_bool(var, raw)
        elif kind == "not_bool":
            out[field_name] = not _parse_bool(var, raw)
        elif kind == "list":
            out[field_name] = _split_names(raw)
        else:
            out[field_name] = raw
    return out


# ── merge ────────────────────────────────────────────────────────────────


def load_config(
    flags: Mapping[str, Any] | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Build a :class:`Config` from file, environment and *flags*.

    *flags* uses field names; a value of None means "not given on the
    command line" and does not override lower layers.
    """
    given = {k: v for k, v in (flags or {}).items() if v is not None}
    cwd = Path(given.get("cwd") or Path.cwd()).expanduser().resolve()

    merged: dict[str, Any] = {}
    found = find_config_file(cwd)
    if found is not None:
        path, data = found
        log.debug("config.file_loaded", path=str(path))
        merged.update(_normalize_keys(data, str(path)))
    merged.update(config_from_env(env))
    merged.update(_normalize_keys(given, "flags"))
    merged["cwd"] = cwd

    try:
        return Config.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
