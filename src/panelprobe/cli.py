from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .app_logging import log_with_fields, setup_logger
from .config import AppConfig, ensure_local_paths, load_config
from .dispatcher import Dispatcher, SchedulerState
from .models import Panel
from .probe import ProbeExecutor
from .store import Store, StoreError

REPORT_LABELS = [
    ("initial", "Initial jobs"),
    ("auth_error", "Auth error jobs"),
    ("unknown_login", "Unknown login jobs"),
    ("timed_out", "Timeout jobs"),
    ("host_unreachable", "Host unreachable"),
    ("connection_refused", "Connection refused"),
    ("success", "Success jobs"),
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="panelprobe", description="Storage monitor panel login prober")
    parser.add_argument("--config", required=True, help="Path to panelprobe YAML config")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Probe every stored panel and record the results")
    subparsers.add_parser("status", help="Show stored result counts per bucket")

    load_panels = subparsers.add_parser("load-panels", help="Insert or update panels from a YAML file")
    load_panels.add_argument("--file", required=True, help="YAML list of panel records")
    return parser


def load_panels_file(path: str | Path) -> list[Panel]:
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or []
    if not isinstance(raw, list):
        raise ValueError("Panels file root must be a list")
    panels: list[Panel] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"`panels[{idx}]` must be a mapping")
        missing = [key for key in ("storage_name", "storage_id", "storage_code", "url", "panel_id") if key not in item]
        if missing:
            raise ValueError(f"`panels[{idx}]` is missing {', '.join(missing)}")
        logins = item.get("logins") or []
        if not isinstance(logins, list):
            raise ValueError(f"`panels[{idx}].logins` must be a list")
        panels.append(
            Panel(
                storage_name=str(item["storage_name"]),
                storage_id=str(item["storage_id"]),
                storage_code=str(item["storage_code"]),
                url=str(item["url"]),
                logins=tuple(str(login) for login in logins),
                panel_id=int(item["panel_id"]),
            )
        )
    return panels


def print_report(state: SchedulerState) -> None:
    counts = state.counts()
    for key, label in REPORT_LABELS:
        print(f"{label:24} {counts[key]}")
    print(f"{'Attempts':24} {state.attempted}")
    if state.dropped:
        print(f"{'Dropped (unknown error)':24} {state.dropped}")


def _open_store(config: AppConfig) -> Store:
    ensure_local_paths(config)
    store = Store(config.paths.db)
    store.init_schema()
    return store


def cmd_run(config: AppConfig) -> int:
    store = _open_store(config)
    logger = setup_logger(config.paths.log)
    try:
        with ProbeExecutor(config.probe) as probe:
            dispatcher = Dispatcher(config=config, store=store, probe=probe, logger=logger)
            state = dispatcher.run()
        print_report(state)
        return 0
    except StoreError as exc:
        log_with_fields(logger, logging.ERROR, "panel_list_unavailable", error=str(exc))
        print(f"cannot read panel list: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        log_with_fields(logger, logging.INFO, "shutdown", reason="keyboard_interrupt")
        return 130
    finally:
        store.close()


def cmd_status(config: AppConfig) -> int:
    store = _open_store(config)
    try:
        counts = store.summary_counts()
        print("Results:")
        for key, label in REPORT_LABELS[1:]:
            print(f"  {label:20} {counts.get(key, 0)}")
        return 0
    finally:
        store.close()


def cmd_load_panels(config: AppConfig, panels_file: str) -> int:
    try:
        panels = load_panels_file(panels_file)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"cannot load panels: {exc}", file=sys.stderr)
        return 2
    store = _open_store(config)
    try:
        for panel in panels:
            store.add_panel(panel)
        print(f"loaded {len(panels)} panels")
        return 0
    finally:
        store.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"invalid config: {exc}", file=sys.stderr)
        return 2

    if args.command == "run":
        return cmd_run(config)
    if args.command == "status":
        return cmd_status(config)
    if args.command == "load-panels":
        return cmd_load_panels(config, args.file)
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
