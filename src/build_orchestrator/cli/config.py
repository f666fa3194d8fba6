from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from build_orchestrator.domain.entities import ProjectSpec
from build_orchestrator.logging_utils import LOG_LEVELS


DEFAULT_CONFIG_FILE = ".build.json"


@dataclass(slots=True)
class AppConfig:
    config_path: Path
    raw_config: bytes
    working_dir: Path
    home_dir: Path
    async_mode: bool
    max_workers: int | None
    stop_on_error: bool
    log_level: str
    plugins: tuple[str, ...]
    projects: tuple[ProjectSpec, ...]


def load_config(args, env: Mapping[str, str], *, cwd: Path | None = None) -> AppConfig:
    """Resolve configuration from CLI args, environment and the JSON config file.

    Precedence per setting: CLI flag, environment variable, config file, default.

    Raises:
        ValueError: The file is unreadable or invalid, or a value has the wrong type.
    """
    working_dir = (cwd or Path.cwd()).resolve()

    config_raw = (
        _normalize_empty(getattr(args, "config", None))
        or _normalize_empty(env.get("BUILD_CONFIG"))
        or DEFAULT_CONFIG_FILE
    )
    config_path = Path(config_raw).expanduser()
    if not config_path.is_absolute():
        config_path = working_dir / config_path

    try:
        raw_config = config_path.read_bytes()
    except OSError as error:
        raise ValueError(f"Cannot read configuration file {config_path}: {error.strerror or error}") from error

    try:
        document = json.loads(raw_config)
    except (json.JSONDecodeError, UnicodeDecodeError) as error:
        raise ValueError(f"Configuration file {config_path} is not valid JSON: {error}") from error

    if not isinstance(document, dict):
        raise ValueError("Configuration document must be a JSON object")

    home_raw = (
        _normalize_empty(getattr(args, "home", None))
        or _normalize_empty(env.get("BUILD_HOME"))
        or _normalize_empty(_optional_str(document, "home", "home"))
    )
    home_dir = _resolve_home(home_raw, working_dir)

    async_mode = _resolve_bool(getattr(args, "async_mode", None), env.get("BUILD_ASYNC"), document, "async", "BUILD_ASYNC")
    stop_on_error = _resolve_bool(
        getattr(args, "stop_on_error", None) or None,
        env.get("BUILD_STOP_ON_ERROR"),
        document,
        "stop_on_error",
        "BUILD_STOP_ON_ERROR",
    )

    max_workers = document.get("max_workers")
    if max_workers is not None:
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers <= 0:
            raise ValueError("max_workers must be a positive integer")

    log_section = document.get("log") or {}
    if not isinstance(log_section, dict):
        raise ValueError("log must be an object")
    if getattr(args, "verbose", False):
        log_level = "DEBUG"
    else:
        log_level = (
            _normalize_empty(env.get("LOG_LEVEL"))
            or _normalize_empty(_optional_str(log_section, "level", "log.level"))
            or "INFO"
        ).upper()
    if log_level not in LOG_LEVELS:
        valid = ", ".join(LOG_LEVELS)
        raise ValueError(f"Unsupported log level '{log_level}'. Allowed values: {valid}")

    plugins = _string_list(document.get("plugins", []), "plugins")

    raw_projects = document.get("projects", [])
    if not isinstance(raw_projects, list):
        raise ValueError("projects must be a list")
    projects = tuple(_parse_project(index, item) for index, item in enumerate(raw_projects))

    seen: set[str] = set()
    for project in projects:
        if project.path in seen:
            raise ValueError(f"Duplicate project path '{project.path}'")
        seen.add(project.path)

    return AppConfig(
        config_path=config_path,
        raw_config=raw_config,
        working_dir=working_dir,
        home_dir=home_dir,
        async_mode=async_mode,
        max_workers=max_workers,
        stop_on_error=stop_on_error,
        log_level=log_level,
        plugins=tuple(plugins),
        projects=projects,
    )


def parse_bool(value: str, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false)")


def _parse_project(index: int, item: Any) -> ProjectSpec:
    label = f"projects[{index}]"
    if not isinstance(item, dict):
        raise ValueError(f"{label} must be an object")

    url = _normalize_empty(_optional_str(item, "url", f"{label}.url"))
    path = _normalize_empty(_optional_str(item, "path", f"{label}.path"))
    artifacts = _normalize_empty(_optional_str(item, "artifacts", f"{label}.artifacts"))

    if not url:
        raise ValueError(f"Missing {label}.url")
    if not path:
        raise ValueError(f"Missing {label}.path")
    if Path(path).is_absolute() or ".." in Path(path).parts:
        raise ValueError(f"{label}.path must be a relative path inside the home directory")
    if not artifacts:
        raise ValueError(f"Missing {label}.artifacts")

    branches = _string_list(item.get("branches", []), f"{label}.branches")
    if not branches:
        raise ValueError(f"{label}.branches must list at least one branch (or \"*\")")

    shell = item.get("shell", False)
    if not isinstance(shell, bool):
        raise ValueError(f"{label}.shell must be a boolean")

    return ProjectSpec(
        url=url,
        path=path,
        artifacts=artifacts,
        branches=tuple(branches),
        scripts=tuple(_string_list(item.get("scripts", []), f"{label}.scripts")),
        plugins=tuple(_string_list(item.get("plugins", []), f"{label}.plugins")),
        shell=shell,
    )


def _resolve_home(value: str | None, working_dir: Path) -> Path:
    if not value or value == "./":
        return working_dir
    home = Path(value).expanduser()
    if not home.is_absolute():
        home = working_dir / home
    return home.resolve()


def _resolve_bool(
    arg_value: bool | None,
    env_value: str | None,
    document: Mapping[str, Any],
    key: str,
    env_name: str,
) -> bool:
    if arg_value is not None:
        return bool(arg_value)
    normalized_env = _normalize_empty(env_value)
    if normalized_env is not None:
        return parse_bool(normalized_env, env_name)
    value = document.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def _optional_str(document: Mapping[str, Any], key: str, label: str) -> str | None:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string")
    return value


def _string_list(value: Any, label: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{label} must be a list of strings")
    return [item.strip() for item in value if item.strip()]


def _normalize_empty(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None
