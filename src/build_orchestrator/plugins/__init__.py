"""Lifecycle-hook plugins."""

from .all_branches import AllBranchesPlugin
from .base import BuildPlugin, LifecycleHook
from .clean_branches import CleanBranchesPlugin
from .pipeline import HookFailure, PluginLoadError, PluginPipeline, load_plugins, resolve_plugin

__all__ = [
	"AllBranchesPlugin",
	"BuildPlugin",
	"CleanBranchesPlugin",
	"HookFailure",
	"LifecycleHook",
	"PluginLoadError",
	"PluginPipeline",
	"load_plugins",
	"resolve_plugin",
]
