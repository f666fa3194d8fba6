from __future__ import annotations

import logging
import sys
from types import SimpleNamespace

import pytest

from build_orchestrator.domain.entities import ProjectHookData
from build_orchestrator.plugins import (
    AllBranchesPlugin,
    BuildPlugin,
    CleanBranchesPlugin,
    LifecycleHook,
    PluginLoadError,
    PluginPipeline,
    load_plugins,
    resolve_plugin,
)
from build_orchestrator.plugins.all_branches import parse_ls_remote_heads


class Recorder(BuildPlugin):
    def __init__(self, label: str = "recorder", events: list[str] | None = None) -> None:
        self.label = label
        self.events = events if events is not None else []

    @property
    def name(self) -> str:
        return self.label

    def init(self, raw_config, core_version):
        self.events.append(f"{self.label}:init:{core_version}")

    def post_load(self, core_version, build_time):
        self.events.append(f"{self.label}:post_load:{build_time}")

    def pre_branch(self, project_dir, branch, description):
        self.events.append(f"{self.label}:pre_branch:{branch}")


class Exploding(BuildPlugin):
    def init(self, raw_config, core_version):
        raise RuntimeError("cannot init")

    def pre_branch(self, project_dir, branch, description):
        raise RuntimeError("hook exploded")


def _hook_data(branches: list[str]) -> ProjectHookData:
    return ProjectHookData(url="https://example.com/p1.git", path="p1", artifacts="out", branches=branches, scripts=[])


def test_hook_failure_is_contained_and_other_plugins_still_run(
    tmp_path, caplog: pytest.LogCaptureFixture
) -> None:
    events: list[str] = []
    pipeline = PluginPipeline([Exploding(), Recorder(events=events)])
    caplog.set_level(logging.ERROR)

    failures = pipeline.fire(LifecycleHook.PRE_BRANCH, tmp_path, "main", "", project="p1", branch="main")

    assert events == ["recorder:pre_branch:main"]
    assert [(failure.plugin_name, failure.hook) for failure in failures] == [("Exploding", LifecycleHook.PRE_BRANCH)]
    assert failures[0].error == "hook exploded"
    assert any(getattr(record, "event", None) == "plugin.hook.failed" for record in caplog.records)


def test_hook_calling_sys_exit_is_contained(tmp_path) -> None:
    class Quitter(BuildPlugin):
        def pre_branch(self, project_dir, branch, description):
            sys.exit(4)

    events: list[str] = []
    pipeline = PluginPipeline([Quitter(), Recorder(events=events)])

    failures = pipeline.fire(LifecycleHook.PRE_BRANCH, tmp_path, "main", "")

    assert events == ["recorder:pre_branch:main"]
    assert [(failure.plugin_name, failure.error) for failure in failures] == [("Quitter", "4")]


def test_hooks_fire_in_plugin_load_order(tmp_path) -> None:
    events: list[str] = []
    pipeline = PluginPipeline([Recorder("first", events), Recorder("second", events)])

    pipeline.fire(LifecycleHook.PRE_BRANCH, tmp_path, "dev", "")

    assert events == ["first:pre_branch:dev", "second:pre_branch:dev"]


def test_allow_list_restricts_plugins_and_empty_list_keeps_all() -> None:
    pipeline = PluginPipeline([Recorder("a"), Recorder("b")])

    assert pipeline.for_project(["b"]).names == ("b",)
    assert pipeline.for_project([]) is pipeline
    assert pipeline.for_project(["unknown"]).names == ()


def test_load_plugins_skips_plugins_failing_init_and_fires_post_load(monkeypatch) -> None:
    events: list[str] = []
    module = SimpleNamespace(build_plugin=Recorder(events=events), broken=Exploding())
    monkeypatch.setitem(sys.modules, "fake_build_plugins", module)

    pipeline = load_plugins(
        ["fake_build_plugins", "fake_build_plugins:broken", "no_such_module_for_plugins"],
        raw_config=b"{}",
        core_version="1.2.3",
        build_time="yesterday",
    )

    assert pipeline.names == ("recorder",)
    assert events == ["recorder:init:1.2.3", "recorder:post_load:yesterday"]


def test_load_plugins_without_references_returns_empty_pipeline() -> None:
    pipeline = load_plugins([], raw_config=b"{}", core_version="1", build_time="now")

    assert pipeline.plugins == ()


def test_init_receives_raw_configuration_bytes(monkeypatch) -> None:
    seen: list[bytes] = []

    class ConfigReader(BuildPlugin):
        def init(self, raw_config, core_version):
            seen.append(raw_config)

    monkeypatch.setitem(sys.modules, "config_reader_plugin", SimpleNamespace(build_plugin=ConfigReader))

    load_plugins(["config_reader_plugin"], raw_config=b'{"projects": []}', core_version="1", build_time="now")

    assert seen == [b'{"projects": []}']


def test_resolve_builtin_plugins_by_name() -> None:
    assert isinstance(resolve_plugin("all-branches"), AllBranchesPlugin)
    assert isinstance(resolve_plugin("clean-branches"), CleanBranchesPlugin)
    assert resolve_plugin("clean-branches").name == "clean-branches"


def test_resolve_plugin_from_file_path(tmp_path) -> None:
    plugin_file = tmp_path / "notify.py"
    plugin_file.write_text(
        "from build_orchestrator.plugins import BuildPlugin\n"
        "\n"
        "class Notify(BuildPlugin):\n"
        "    pass\n"
        "\n"
        "build_plugin = Notify()\n",
        encoding="utf-8",
    )

    assert resolve_plugin(str(plugin_file)).name == "Notify"
    assert resolve_plugin(f"{plugin_file}:Notify").name == "Notify"


def test_resolve_plugin_rejects_bad_references(tmp_path) -> None:
    plugin_file = tmp_path / "bad.py"
    plugin_file.write_text("build_plugin = object()\n", encoding="utf-8")

    with pytest.raises(PluginLoadError, match="is not a BuildPlugin"):
        resolve_plugin(str(plugin_file))
    with pytest.raises(PluginLoadError, match="exports no 'missing' symbol"):
        resolve_plugin(f"{plugin_file}:missing")
    with pytest.raises(PluginLoadError, match="does not exist"):
        resolve_plugin(str(tmp_path / "absent.py"))
    with pytest.raises(PluginLoadError, match="could not be imported"):
        resolve_plugin("no_such_module_for_plugins")
    with pytest.raises(PluginLoadError, match="Empty plugin reference"):
        resolve_plugin("  ")


def test_parse_ls_remote_heads() -> None:
    output = "1111\trefs/heads/main\n2222\trefs/heads/feature/login\n3333\trefs/tags/v1\n\n"

    assert parse_ls_remote_heads(output) == ["main", "feature/login"]


def test_all_branches_rewrites_wildcard_from_remote(run_context) -> None:
    calls: list[tuple[list[str], str]] = []

    def fake_run(command, **kwargs):
        calls.append((command, kwargs["cwd"]))
        return SimpleNamespace(returncode=0, stdout="1111\trefs/heads/main\n2222\trefs/heads/develop\n", stderr="")

    (run_context.projects_dir / "p1").mkdir(parents=True)
    plugin = AllBranchesPlugin(runner=fake_run)
    plugin.pre_projects(run_context)
    project = _hook_data(["*"])

    plugin.pre_project(project)

    assert project.branches == ["main", "develop"]
    assert calls == [(["git", "ls-remote", "--heads", "-q", "origin"], str(run_context.projects_dir / "p1"))]


def test_all_branches_leaves_explicit_lists_and_fresh_projects_alone(run_context) -> None:
    def fake_run(command, **kwargs):
        raise AssertionError("git must not be called")

    plugin = AllBranchesPlugin(runner=fake_run)
    plugin.pre_projects(run_context)

    explicit = _hook_data(["main"])
    plugin.pre_project(explicit)
    fresh = _hook_data(["*"])
    plugin.pre_project(fresh)

    assert explicit.branches == ["main"]
    assert fresh.branches == ["*"]


def test_all_branches_keeps_wildcard_when_ls_remote_fails(run_context) -> None:
    (run_context.projects_dir / "p1").mkdir(parents=True)
    plugin = AllBranchesPlugin(runner=lambda command, **kwargs: SimpleNamespace(returncode=128, stdout="", stderr="fatal"))
    plugin.pre_projects(run_context)
    project = _hook_data(["*"])

    plugin.pre_project(project)

    assert project.branches == ["*"]


def test_clean_branches_runs_git_clean_in_project_dir(tmp_path) -> None:
    calls: list[tuple[list[str], str]] = []

    def fake_run(command, **kwargs):
        calls.append((command, kwargs["cwd"]))
        return SimpleNamespace(returncode=0, stdout="", stderr="")

    CleanBranchesPlugin(runner=fake_run).pre_branch(tmp_path, "main", "heads/main-0-gabc")

    assert calls == [(["git", "clean", "-d", "-f"], str(tmp_path))]


def test_clean_branches_logs_failures_without_raising(tmp_path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING)
    plugin = CleanBranchesPlugin(runner=lambda command, **kwargs: SimpleNamespace(returncode=1, stdout="", stderr="nope"))

    plugin.pre_branch(tmp_path, "main", "")

    assert any(getattr(record, "event", None) == "plugin.clean_branches.failed" for record in caplog.records)


def test_clean_branches_removes_untracked_files_in_real_repository(make_remote, tmp_path, run_git) -> None:
    remote = make_remote()
    work = tmp_path / "work"
    run_git(tmp_path, "clone", remote.url, str(work))
    (work / "stale").mkdir()
    (work / "stale" / "leftover.o").write_text("x", encoding="utf-8")

    CleanBranchesPlugin().pre_branch(work, "main", "")

    assert not (work / "stale").exists()
    assert (work / "README.md").exists()
