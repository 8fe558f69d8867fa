from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .models import Credential

TELEMETRY_PATH = "/fulldata.dat?a=100&b=100&c=0&d=100&e=0&f=en"

DEFAULT_LOGINS: tuple[Credential, ...] = (
    Credential("agri", "7008"),
    Credential("agri", "stor"),
    Credential("btu", "7564"),
    Credential("frontdoor", "backdoor"),
    Credential("backdoor", "frontdoor"),
)


@dataclass(slots=True)
class PathsConfig:
    db: Path
    log: Path


@dataclass(slots=True)
class ProbeConfig:
    path: str = TELEMETRY_PATH
    timeout_seconds: float = 11.0
    ipv4_only: bool = True


@dataclass(slots=True)
class DispatchConfig:
    exhaust_logins: bool = False


@dataclass(slots=True)
class AppConfig:
    paths: PathsConfig
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    default_logins: tuple[Credential, ...] = DEFAULT_LOGINS


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def _load_default_logins(raw: object) -> tuple[Credential, ...]:
    if not isinstance(raw, list) or not raw:
        raise ValueError("`default_logins` must be a non-empty list")
    logins: list[Credential] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"`default_logins[{idx}]` must be a mapping")
        logins.append(
            Credential(
                username=str(_require(item, "username", f"default_logins[{idx}]")),
                password=str(_require(item, "password", f"default_logins[{idx}]")),
            )
        )
    return tuple(logins)


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    paths_raw = _require(raw, "paths", "root")
    probe_raw = raw.get("probe", {})
    dispatch_raw = raw.get("dispatch", {})

    if not isinstance(paths_raw, dict):
        raise ValueError("`paths` must be a mapping")
    if not isinstance(probe_raw, dict):
        raise ValueError("`probe` must be a mapping")
    if not isinstance(dispatch_raw, dict):
        raise ValueError("`dispatch` must be a mapping")

    def to_path(key: str) -> Path:
        value = _require(paths_raw, key, "paths")
        output = Path(str(value)).expanduser()
        if not output.is_absolute():
            output = config_path.parent / output
        return output

    paths = PathsConfig(db=to_path("db"), log=to_path("log"))

    probe = ProbeConfig(
        path=str(probe_raw.get("path", TELEMETRY_PATH)),
        timeout_seconds=float(probe_raw.get("timeout_seconds", 11)),
        ipv4_only=bool(probe_raw.get("ipv4_only", True)),
    )
    if probe.timeout_seconds <= 0:
        raise ValueError("`probe.timeout_seconds` must be > 0")
    if not probe.path.startswith("/"):
        raise ValueError("`probe.path` must start with `/`")

    dispatch = DispatchConfig(exhaust_logins=bool(dispatch_raw.get("exhaust_logins", False)))

    default_logins = DEFAULT_LOGINS
    if "default_logins" in raw:
        default_logins = _load_default_logins(raw["default_logins"])

    return AppConfig(paths=paths, probe=probe, dispatch=dispatch, default_logins=default_logins)


def ensure_local_paths(config: AppConfig) -> None:
    config.paths.db.parent.mkdir(parents=True, exist_ok=True)
    config.paths.log.parent.mkdir(parents=True, exist_ok=True)
