from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Any, List, Optional, Tuple

from . import __version__
from .daemon.watcher import WatcherManager
from .errors import PacksyncError
from .kernel.compiler import TscCompiler
from .kernel.deployment import clean_deployment, deployment_for, list_deployed_packs, resolve_deployment_root
from .kernel.drift import analyze_drift
from .kernel.libraries import list_libraries
from .kernel.orchestrator import BuildOrchestrator, last_cycle
from .kernel.project import ProjectTree, list_projects, resolve_project
from .kernel.scanner import scan_library_usage
from .kernel.settings import WorkspaceSettings, load_settings, load_workspace_settings, update_settings
from .util.obslog import resolve_level, setup_console_logging, setup_root_json_logging


logger = logging.getLogger("packsync.cli")

_SETTINGS_KEYS = (
    "workspace_root",
    "libraries_root",
    "deployment_root",
    "product",
    "compiler_command",
    "compile_timeout_seconds",
    "log_level",
)


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _project(settings: WorkspaceSettings, name: str) -> ProjectTree:
    return resolve_project(name, projects_dir=settings.projects_dir)


def _orchestrator(settings: WorkspaceSettings, project: ProjectTree) -> BuildOrchestrator:
    # Resolved before any mutation: a missing root fails the whole command.
    root = resolve_deployment_root(settings)
    compiler = TscCompiler(
        settings.compiler_command,
        cwd=settings.workspace_root,
        timeout_seconds=settings.compile_timeout_seconds,
    )
    return BuildOrchestrator(project, deployment_for(project, root), settings.effective_libraries_root, compiler)


def _prepare(args: argparse.Namespace) -> Tuple[WorkspaceSettings, ProjectTree, BuildOrchestrator]:
    settings = load_workspace_settings()
    project = _project(settings, getattr(args, "project", "") or "")
    return settings, project, _orchestrator(settings, project)


def cmd_build(args: argparse.Namespace) -> int:
    _settings, _project_tree, orch = _prepare(args)
    cycle = orch.run_cycle("build")
    _print_json({"ok": cycle.state == "succeeded", "result": cycle.model_dump(mode="json")})
    return 0 if cycle.state == "succeeded" else 1


def cmd_watch(args: argparse.Namespace) -> int:
    settings = load_workspace_settings()
    names: List[str] = list(args.projects or [""])
    pairs = []
    for name in names:
        project = _project(settings, name)
        pairs.append((project, _orchestrator(settings, project)))

    manager = WatcherManager()
    for project, orch in pairs:
        manager.start(project, orch)
    print(f"packsync: watching {', '.join(manager.active())} (Ctrl-C to stop)")
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        manager.stop_all()
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    _settings, project, orch = _prepare(args)
    report = analyze_drift(project, orch.deployment)
    out: dict = {"ok": True, "result": {**report.model_dump(mode="json"), "needs_sync": report.needs_sync}}
    if args.apply and report.needs_sync:
        clean_deployment(orch.deployment)
        cycle = orch.run_cycle("check --apply")
        out["result"]["cycle"] = cycle.model_dump(mode="json")
        out["ok"] = cycle.state == "succeeded"
    _print_json(out)
    if not out["ok"]:
        return 1
    return 1 if (report.needs_sync and not args.apply) else 0


def cmd_scan(args: argparse.Namespace) -> int:
    target = Path(args.dir).expanduser()
    if not target.is_dir():
        _print_json({"ok": False, "error": {"code": "not_found", "message": f"not a directory: {target}"}})
        return 2
    _print_json({"ok": True, "result": {"dir": str(target.resolve()), "libraries": sorted(scan_library_usage(target))}})
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    settings = load_workspace_settings()
    projects = [
        {"name": p.name, "path": str(p.root), "compiled": p.has_compiled_source, "valid": p.is_valid()}
        for p in list_projects(settings.projects_dir)
    ]
    result: dict = {"projects_dir": str(settings.projects_dir), "projects": projects}
    if args.deployed:
        result["deployed"] = list_deployed_packs(resolve_deployment_root(settings))
    _print_json({"ok": True, "result": result})
    return 0


def cmd_libraries(args: argparse.Namespace) -> int:
    settings = load_workspace_settings()
    root = settings.effective_libraries_root
    _print_json({"ok": True, "result": {"libraries_root": str(root), "libraries": list_libraries(root)}})
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    settings = load_workspace_settings()
    project = _project(settings, args.project or "")
    cycle = last_cycle(project.name)
    if cycle is None:
        _print_json({"ok": False, "error": {"code": "no_cycle", "message": f"no recorded cycle for {project.name}"}})
        return 1
    _print_json({"ok": True, "result": cycle.model_dump(mode="json")})
    return 0


def cmd_clean(args: argparse.Namespace) -> int:
    settings = load_workspace_settings()
    project = _project(settings, args.project or "")
    root = resolve_deployment_root(settings)
    removed = clean_deployment(deployment_for(project, root))
    _print_json({"ok": True, "result": {"removed": [str(p) for p in removed]}})
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    if args.action == "show":
        settings = load_workspace_settings()
        _print_json({"ok": True, "result": {"file": load_settings(), "effective": settings.model_dump(mode="json")}})
        return 0
    if args.action == "set":
        if args.key not in _SETTINGS_KEYS:
            _print_json({"ok": False, "error": {"code": "unknown_key", "message": f"unknown setting: {args.key}"}})
            return 2
        value: Any = args.value
        if args.key == "compiler_command":
            value = str(args.value).split()
        elif args.key == "compile_timeout_seconds":
            try:
                value = float(args.value) if str(args.value).strip() else None
            except ValueError:
                _print_json({"ok": False, "error": {"code": "invalid_value", "message": f"not a number: {args.value}"}})
                return 2
        _print_json({"ok": True, "result": update_settings(**{args.key: value})})
        return 0
    if args.action == "unset":
        _print_json({"ok": True, "result": update_settings(**{args.key: None})})
        return 0
    return 2


def cmd_version(args: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="packsync", description="Mirror add-on projects into the game's development folders")
    p.add_argument("--log-level", default="", help="DEBUG, INFO, WARNING, ERROR (default: settings or INFO)")
    p.add_argument("--log-format", choices=["text", "json"], default="text", help="Log output format (default: text)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_watch = sub.add_parser("watch", help="Build, sync, then rebuild on every change until interrupted")
    p_watch.add_argument("projects", nargs="*", help="Project names (default: current directory)")
    p_watch.set_defaults(func=cmd_watch)

    p_build = sub.add_parser("build", help="Run one compile + sync cycle")
    p_build.add_argument("project", nargs="?", default="", help="Project name (default: current directory)")
    p_build.set_defaults(func=cmd_build)

    p_check = sub.add_parser("check", help="Compare a project with its deployed packs")
    p_check.add_argument("project", nargs="?", default="", help="Project name (default: current directory)")
    p_check.add_argument("--apply", action="store_true", help="Clean the deployed packs and rebuild when out of sync")
    p_check.set_defaults(func=cmd_check)

    p_scan = sub.add_parser("scan", help="List shared libraries imported under a directory")
    p_scan.add_argument("dir", help="Directory to scan")
    p_scan.set_defaults(func=cmd_scan)

    p_list = sub.add_parser("list", help="List workspace projects")
    p_list.add_argument("--deployed", action="store_true", help="Also list packs in the deployment root")
    p_list.set_defaults(func=cmd_list)

    p_libs = sub.add_parser("libraries", help="List shared libraries")
    p_libs.set_defaults(func=cmd_libraries)

    p_status = sub.add_parser("status", help="Show the last recorded cycle of a project")
    p_status.add_argument("project", nargs="?", default="", help="Project name (default: current directory)")
    p_status.set_defaults(func=cmd_status)

    p_clean = sub.add_parser("clean", help="Remove a project's deployed packs")
    p_clean.add_argument("project", nargs="?", default="", help="Project name (default: current directory)")
    p_clean.set_defaults(func=cmd_clean)

    p_config = sub.add_parser("config", help="Show or edit settings.yaml")
    config_sub = p_config.add_subparsers(dest="action", required=True)
    config_sub.add_parser("show", help="Show file and effective settings").set_defaults(func=cmd_config)
    p_set = config_sub.add_parser("set", help="Set a key")
    p_set.add_argument("key", help=f"One of: {', '.join(_SETTINGS_KEYS)}")
    p_set.add_argument("value", help="New value")
    p_set.set_defaults(func=cmd_config)
    p_unset = config_sub.add_parser("unset", help="Remove a key")
    p_unset.add_argument("key", help="Setting key")
    p_unset.set_defaults(func=cmd_config)

    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = resolve_level(args.log_level, str(load_settings().get("log_level") or ""))
    if args.log_format == "json":
        setup_root_json_logging(component="packsync", level=level)
    else:
        setup_console_logging(level=level)

    try:
        return int(args.func(args))
    except PacksyncError as e:
        logger.error("%s", e.message)
        _print_json({"ok": False, "error": e.to_dict()})
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
