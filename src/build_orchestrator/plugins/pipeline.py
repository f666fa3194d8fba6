from __future__ import annotations
"""Plugin loading, registry and isolated hook firing."""

import importlib
import importlib.util
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Iterable, Sequence

from build_orchestrator.domain.errors import BuildError, FaultKind

from .base import BuildPlugin, LifecycleHook


LOGGER = logging.getLogger(__name__)

DEFAULT_PLUGIN_SYMBOL = "build_plugin"

BUILTIN_PLUGINS: dict[str, str] = {
    "all-branches": "build_orchestrator.plugins.all_branches:AllBranchesPlugin",
    "clean-branches": "build_orchestrator.plugins.clean_branches:CleanBranchesPlugin",
}


class PluginLoadError(BuildError):
    default_kind = FaultKind.RECOVERABLE


@dataclass(frozen=True, slots=True)
class HookFailure:
    plugin_name: str
    hook: LifecycleHook
    error: str


class PluginPipeline:
    """Ordered, read-only registry of initialized plugins.

    Hooks fire synchronously across plugins in load order. An exception raised
    by one plugin is logged and recorded; it never reaches the caller or the
    remaining plugins.
    """

    def __init__(self, plugins: Sequence[BuildPlugin] = ()) -> None:
        self._plugins = tuple(plugins)

    @property
    def plugins(self) -> tuple[BuildPlugin, ...]:
        return self._plugins

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(plugin.name for plugin in self._plugins)

    def for_project(self, allow_list: Iterable[str]) -> PluginPipeline:
        """Return a view restricted to `allow_list`; an empty list keeps every plugin."""
        allowed = {name.strip() for name in allow_list if name.strip()}
        if not allowed:
            return self
        return PluginPipeline([plugin for plugin in self._plugins if plugin.name in allowed])

    def fire(
        self,
        hook: LifecycleHook,
        *args: Any,
        project: str | None = None,
        branch: str | None = None,
    ) -> list[HookFailure]:
        failures: list[HookFailure] = []
        for plugin in self._plugins:
            try:
                getattr(plugin, hook.value)(*args)
            except (Exception, SystemExit) as error:  # noqa: BLE001
                LOGGER.exception(
                    "plugin hook failed",
                    extra={
                        "event": "plugin.hook.failed",
                        "plugin": plugin.name,
                        "hook": hook.value,
                        "project": project,
                        "branch": branch,
                        "error": str(error),
                    },
                )
                failures.append(HookFailure(plugin_name=plugin.name, hook=hook, error=str(error)))
        return failures


def load_plugins(
    references: Sequence[str],
    *,
    raw_config: bytes,
    core_version: str,
    build_time: str,
) -> PluginPipeline:
    """Resolve, initialize and register configured plugins, then fire `post_load`.

    A reference that cannot be resolved, or whose plugin fails `init`, is logged
    and skipped; loading never aborts the run.
    """
    if not references:
        LOGGER.info("no plugins configured", extra={"event": "plugins.load.none"})
        return PluginPipeline()

    resolved = 0
    initialized: list[BuildPlugin] = []
    for reference in references:
        try:
            plugin = resolve_plugin(reference)
        except PluginLoadError as error:
            LOGGER.error(
                "plugin could not be loaded",
                extra={"event": "plugins.load.failed", "reference": reference, "error": str(error)},
            )
            continue
        resolved += 1

        try:
            plugin.init(raw_config, core_version)
        except Exception as error:  # noqa: BLE001
            LOGGER.exception(
                "plugin loaded but failed to initialise",
                extra={
                    "event": "plugins.init.failed",
                    "reference": reference,
                    "plugin": plugin.name,
                    "error": str(error),
                },
            )
            continue
        initialized.append(plugin)

    LOGGER.info(
        "plugins initialised",
        extra={
            "event": "plugins.load.completed",
            "configured": len(references),
            "resolved": resolved,
            "initialised": len(initialized),
            "plugins": [plugin.name for plugin in initialized],
        },
    )

    pipeline = PluginPipeline(initialized)
    pipeline.fire(LifecycleHook.POST_LOAD, core_version, build_time)
    return pipeline


def resolve_plugin(reference: str) -> BuildPlugin:
    """Turn a configured reference into a plugin instance.

    Accepted forms:
    - built-in name: `all-branches`, `clean-branches`
    - import reference: `package.module` or `package.module:attribute`
    - file path: `plugins/my_plugin.py` or `plugins/my_plugin.py:attribute`

    The attribute defaults to `build_plugin`. It may be a `BuildPlugin`
    instance or a `BuildPlugin` subclass, which is instantiated.
    """
    reference = reference.strip()
    if not reference:
        raise PluginLoadError("Empty plugin reference")

    target = BUILTIN_PLUGINS.get(reference, reference)
    location, attribute = _split_reference(target)
    module = _load_module(location)

    if not hasattr(module, attribute):
        raise PluginLoadError(f"Plugin module '{location}' exports no '{attribute}' symbol")
    candidate = getattr(module, attribute)

    if isinstance(candidate, type) and issubclass(candidate, BuildPlugin):
        try:
            candidate = candidate()
        except Exception as error:  # noqa: BLE001
            raise PluginLoadError(f"Plugin class '{attribute}' could not be instantiated: {error}") from error

    if not isinstance(candidate, BuildPlugin):
        raise PluginLoadError(f"Symbol '{attribute}' in '{location}' is not a BuildPlugin")
    return candidate


def _split_reference(reference: str) -> tuple[str, str]:
    location, separator, attribute = reference.rpartition(":")
    # Guard against Windows drive letters such as `C:\plugins\x.py`.
    if not separator or not attribute or "/" in attribute or "\\" in attribute or len(location) <= 1:
        return reference, DEFAULT_PLUGIN_SYMBOL
    return location, attribute


def _load_module(location: str) -> ModuleType:
    if location.endswith(".py"):
        return _load_module_from_file(Path(location).expanduser())
    try:
        return importlib.import_module(location)
    except Exception as error:  # noqa: BLE001
        raise PluginLoadError(f"Plugin module '{location}' could not be imported: {error}") from error


def _load_module_from_file(path: Path) -> ModuleType:
    if not path.is_file():
        raise PluginLoadError(f"Plugin file does not exist: {path}")

    module_name = f"buildyard_plugin_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Plugin file could not be loaded: {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as error:  # noqa: BLE001
        sys.modules.pop(module_name, None)
        raise PluginLoadError(f"Plugin file '{path}' failed to execute: {error}") from error
    return module
