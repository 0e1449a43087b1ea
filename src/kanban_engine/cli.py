from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .board.state import empty_board, replace_all
from .board.views import board_counts, find_done_stage, pending_approval_view
from .config import (
    EngineSettings,
    default_config_path,
    load_engine_config,
    settings_from_config,
    write_engine_config,
)
from .constants import USER_HEADER
from .domain.models import ProjectSnapshot
from .errors import KanbanError, NotFound
from .logging_utils import configure_logging
from .remote.http import HttpRemoteStore

PRIORITY_STYLES = {
    "urgent": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "green",
    "none": "dim",
}


def _settings(args: argparse.Namespace) -> EngineSettings:
    path = Path(args.config).expanduser() if args.config else None
    config, err = load_engine_config(path)
    if err:
        sys.stderr.write(f"Ignoring config: {err}\n")
    settings = settings_from_config(config)
    configure_logging(args.log_level or settings.log_level)
    return settings


def _serve(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'kanban-engine[server]'\n")
        return 1

    from .devserver import DEMO_OWNER_ID, MemoryBackend, create_app, seed_demo

    _settings(args)
    backend = MemoryBackend()
    project_id = None if args.empty else seed_demo(backend)
    app = create_app(backend, default_user_id=args.user or DEMO_OWNER_ID)
    if project_id:
        sys.stdout.write(f"Seeded demo project: {project_id}\n")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


async def _fetch(settings: EngineSettings, base_url: str, project_id: str, user: Optional[str]) -> ProjectSnapshot:
    headers = {USER_HEADER: user} if user else None
    async with HttpRemoteStore(base_url, timeout=settings.timeout, headers=headers) as remote:
        return await remote.fetch_project(project_id)


def render_board(snapshot: ProjectSnapshot, *, pending_only: bool = False, done_stage_id: Optional[str] = None) -> Table:
    """Render a project snapshot as one rich table column per stage."""
    project = snapshot.project
    state = replace_all(empty_board(project.stage_ids), snapshot.tasks_by_stage)
    done = find_done_stage(project.stages, done_stage_id)
    columns = pending_approval_view(state, done) if pending_only else {
        sid: list(state.tasks(sid)) for sid in state.stage_ids
    }
    counts = board_counts(state, done)

    table = Table(
        title=f"{project.name or project.id} ({project.role or 'no access'})",
        caption=f"{counts['tasks_count']} tasks, {counts['completed_tasks_count']} completed, "
        f"{counts['pending_approval_count']} awaiting approval",
    )
    for stage in project.stages:
        table.add_column(f"{stage.name or stage.id} [{len(columns.get(stage.id, []))}]", style=stage.color)
    depth = max((len(tasks) for tasks in columns.values()), default=0)
    for row in range(depth):
        cells = []
        for stage in project.stages:
            tasks = columns.get(stage.id, [])
            if row >= len(tasks):
                cells.append("")
                continue
            task = tasks[row]
            style = PRIORITY_STYLES.get(task.priority, "")
            label = f"[{style}]{escape(task.title)}[/]" if style else escape(task.title)
            if task.approval_status not in (None, "none"):
                label += f" ({task.approval_status})"
            cells.append(label)
        table.add_row(*cells)
    return table


def _board(args: argparse.Namespace) -> int:
    settings = _settings(args)
    base_url = args.base_url or settings.base_url
    try:
        snapshot = asyncio.run(_fetch(settings, base_url, args.project_id, args.user))
    except NotFound:
        sys.stderr.write(f"Project not found: {args.project_id}\n")
        return 1
    except KanbanError as exc:
        sys.stderr.write(f"Failed to load project: {exc}\n")
        return 1

    if args.json:
        payload = {
            "project": snapshot.project.to_dict(),
            "tasks_by_stage": {sid: [t.to_dict() for t in tasks] for sid, tasks in snapshot.tasks_by_stage.items()},
            "counts": snapshot.counts,
        }
        sys.stdout.write(json.dumps(payload, indent=2) + "\n")
        return 0

    Console().print(render_board(snapshot, pending_only=args.pending, done_stage_id=settings.done_stage_id))
    return 0


def _config_init(args: argparse.Namespace) -> int:
    path = Path(args.config).expanduser() if args.config else default_config_path()
    if path.exists() and not args.force:
        sys.stderr.write(f"Config already exists: {path} (use --force to overwrite)\n")
        return 1
    write_engine_config(path, EngineSettings())
    sys.stdout.write(f"{path}\n")
    return 0


def _config_show(args: argparse.Namespace) -> int:
    settings = _settings(args)
    sys.stdout.write(json.dumps(settings.to_config(), indent=2) + "\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Collaborative Kanban engine developer CLI')
    parser.add_argument('--config', default=None, help='Config file (default: ~/.config/kanban-engine/config.yaml)')
    parser.add_argument('--log-level', default=None, help='Override the configured log level')
    subparsers = parser.add_subparsers(dest='command', required=True)

    serve = subparsers.add_parser('serve', help='Run the in-memory reference server')
    serve.add_argument('--host', default='127.0.0.1')
    serve.add_argument('--port', default=8000, type=int)
    serve.add_argument('--user', default=None, help='Acting user when requests carry no X-User-Id')
    serve.add_argument('--empty', action='store_true', help='Do not seed the demo project')
    serve.set_defaults(func=_serve)

    board = subparsers.add_parser('board', help='Fetch a project and print its board')
    board.add_argument('project_id')
    board.add_argument('--base-url', default=None)
    board.add_argument('--user', default=None, help='Value sent as X-User-Id')
    board.add_argument('--pending', action='store_true', help='Only tasks awaiting approval')
    board.add_argument('--json', action='store_true', help='Print the raw snapshot as JSON')
    board.set_defaults(func=_board)

    config = subparsers.add_parser('config', help='Manage the engine config file')
    config_sub = config.add_subparsers(dest='config_cmd', required=True)
    cinit = config_sub.add_parser('init', help='Write a config file with the defaults')
    cinit.add_argument('--force', action='store_true')
    cinit.set_defaults(func=_config_init)
    cshow = config_sub.add_parser('show', help='Print the resolved settings')
    cshow.set_defaults(func=_config_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    return int(handler(args) or 0)


if __name__ == '__main__':
    raise SystemExit(main())
