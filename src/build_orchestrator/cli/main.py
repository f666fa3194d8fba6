from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path

from build_orchestrator.adapters.filesystem.local_filesystem import LocalFileSystemAdapter
from build_orchestrator.adapters.git_client.shell_git_client import ShellGitClientAdapter
from build_orchestrator.adapters.scripts.subprocess_script_runner import SubprocessScriptRunner
from build_orchestrator.application.use_cases.artifact_publisher import ArtifactPublisher
from build_orchestrator.application.use_cases.project_builder import ProjectBuilder
from build_orchestrator.application.use_cases.project_scheduler import ProjectScheduler
from build_orchestrator.application.use_cases.vcs_synchronizer import VcsSynchronizer
from build_orchestrator.cli.config import AppConfig, load_config
from build_orchestrator.domain.entities import BuildRunSummary, RunContext
from build_orchestrator.logging_utils import configure_logging
from build_orchestrator.plugins import PluginPipeline, load_plugins
from build_orchestrator.version import BUILD_TIME, __version__


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_SHORT_CIRCUIT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildyard",
        description="Clone, update, build and publish artifacts for every configured project branch.",
        add_help=False,
    )

    parser.add_argument(
        "-c",
        "--config",
        required=False,
        help="Path to the JSON configuration file. Falls back to BUILD_CONFIG, then .build.json.",
    )
    parser.add_argument(
        "--home",
        required=False,
        help="Home directory holding projects/ and artifacts/. Falls back to BUILD_HOME, then the config file.",
    )
    parser.add_argument(
        "--async",
        dest="async_mode",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Build projects in parallel. Falls back to BUILD_ASYNC, then the config file.",
    )
    parser.add_argument(
        "--stop-on-error",
        action="store_true",
        default=None,
        help="Sequential mode only: stop after the first failed project. Falls back to BUILD_STOP_ON_ERROR.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Force DEBUG logging.")
    parser.add_argument("--version", action="store_true", help="Print the version and exit.")
    parser.add_argument("-h", "--help", action="store_true", help="Show this help message and exit.")

    return parser


def main(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> int:
    env = os.environ if env is None else env
    configure_logging(env.get("LOG_LEVEL", "INFO") or "INFO")
    logger = logging.getLogger(__name__)

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help()
        return EXIT_SHORT_CIRCUIT
    if args.version:
        print(f"buildyard {__version__} (built {BUILD_TIME})")
        return EXIT_SHORT_CIRCUIT

    try:
        config = load_config(args=args, env=env)
    except ValueError as error:
        logger.error("invalid configuration", extra={"event": "cli.config.invalid", "error": str(error)})
        print(f"buildyard: error: {error}", file=sys.stderr)
        return EXIT_FATAL

    configure_logging(config.log_level)
    logger.info(
        "cli configuration resolved",
        extra={
            "event": "cli.config.resolved",
            "config_path": str(config.config_path),
            "home_dir": str(config.home_dir),
            "async": config.async_mode,
            "max_workers": config.max_workers,
            "stop_on_error": config.stop_on_error,
            "plugins": list(config.plugins),
            "project_count": len(config.projects),
        },
    )

    try:
        context = _build_context(config)
        plugins = load_plugins(
            config.plugins,
            raw_config=config.raw_config,
            core_version=context.core_version,
            build_time=context.build_time,
        )
        scheduler = _build_scheduler(config, context, plugins)
        summary = scheduler.run(config.projects)
    except Exception:  # noqa: BLE001
        logger.exception("cli execution failed", extra={"event": "cli.execution.failed"})
        return EXIT_FATAL

    _print_summary(summary)
    if summary.fatal:
        logger.error("run aborted by a fatal fault", extra={"event": "cli.execution.fatal"})
        return EXIT_FATAL
    return EXIT_OK


def _build_context(config: AppConfig) -> RunContext:
    return RunContext(
        home_dir=config.home_dir,
        working_dir=config.working_dir,
        async_mode=config.async_mode,
        core_version=__version__,
        build_time=BUILD_TIME,
        build_timestamp=datetime.now(timezone.utc),
    )


def _build_scheduler(config: AppConfig, context: RunContext, plugins: PluginPipeline) -> ProjectScheduler:
    filesystem = LocalFileSystemAdapter()
    filesystem.ensure_directory(context.projects_dir)
    filesystem.ensure_directory(context.artifacts_dir)

    builder = ProjectBuilder(
        synchronizer=VcsSynchronizer(vcs=ShellGitClientAdapter(), context=context),
        script_runner=SubprocessScriptRunner(),
        publisher=ArtifactPublisher(filesystem=filesystem, context=context),
        filesystem=filesystem,
        plugins=plugins,
    )
    return ProjectScheduler(
        builder=builder,
        plugins=plugins,
        context=context,
        max_workers=config.max_workers,
        stop_on_error=config.stop_on_error,
    )


def _print_summary(summary: BuildRunSummary) -> None:
    mode = "ASYNC" if summary.async_mode else "SEQUENTIAL"
    print(f"[{mode}] Home: {summary.home_dir}")
    print(f"Projects processed: {len(summary.projects)}")
    print(f"Successful projects: {summary.successful_projects}")
    print(f"Failed projects: {summary.failed_projects}")
    if summary.halted:
        print("Run halted before every project was processed")

    for item in summary.projects:
        if item.success:
            origin = "cloned" if item.fresh_clone else "updated"
            print(f"- {item.project}: {origin} [ok] in {item.duration_seconds}s")
        else:
            print(f"- {item.project}: [failed] in {item.duration_seconds}s")
        for branch in item.branches:
            action = branch.sync_action.value if branch.sync_action else "unknown"
            target = _display_path(branch.artifact_path) if branch.artifacts_published else "(no artifacts)"
            print(f"  {branch.branch}: {action} -> {target}")
        if item.error:
            print(f"  error: {item.error}")


def _display_path(path: Path | None) -> str:
    return str(path) if path is not None else "-"
