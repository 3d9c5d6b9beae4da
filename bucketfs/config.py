from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .listing import DEFAULT_BUFFER_SIZE

CONFIG_ENV = "BUCKETFS_CONFIG"
CONFIG_FILE_NAME = "bucketfs.conf"


@dataclass(frozen=True)
class RemoteConfig:
    type: str = "s3"
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = ""
    endpoint: str = ""
    location_constraint: str = ""
    acl: str = ""
    checkers: int = DEFAULT_BUFFER_SIZE


def config_base_dir() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        base = Path(config_home).expanduser()
    else:
        base = Path.home() / ".config"
    return base / "bucketfs"


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return config_base_dir() / CONFIG_FILE_NAME


def _section_to_config(cp: configparser.RawConfigParser, sec: str) -> RemoteConfig:
    values: dict[str, object] = {}
    for field in fields(RemoteConfig):
        raw = cp.get(sec, field.name, fallback=None)
        if raw is None:
            continue
        raw = raw.strip()
        if field.name == "checkers":
            try:
                values[field.name] = max(1, int(raw))
            except ValueError as exc:
                raise ConfigError(f"[{sec}] checkers must be an integer") from exc
            continue
        values[field.name] = raw
    return RemoteConfig(**values)


def load_remotes(path: Optional[Path] = None) -> dict[str, RemoteConfig]:
    path = path or default_config_path()
    cp = configparser.RawConfigParser()
    try:
        cp.read(path)
    except configparser.Error as exc:
        raise ConfigError(f"Couldn't read config file {path}: {exc}") from exc
    return {sec: _section_to_config(cp, sec) for sec in cp.sections()}


def parse_remote(value: str) -> tuple[str, str]:
    """Split ``name:bucket/path`` into the remote name and the path."""
    name, sep, path = value.partition(":")
    if not sep or not name:
        raise ConfigError(f"Expected REMOTE:PATH, got {value!r}")
    return name, path
