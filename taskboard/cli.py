#!/usr/bin/env python3
"""
Taskboard command-line front-end.

Every invocation is its own execution context over the shared SQLite file,
so a session opened by one command can be used by the next via --session.

Usage:
    taskboard register alice alice@example.com pw
    taskboard login alice pw
    taskboard sessions
    taskboard board --session <id>
    taskboard add-task --session <id> col-1 "Write spec" --priority high
    taskboard move --session <id> <task-id> col-2
    taskboard theme toggle
    taskboard watch --session <id>     # redraw whenever another process writes
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from .board import tasks_in_column
from .client import ClientContext, Services, open_services
from .config import Config
from .errors import DuplicateUser, InvalidCredentials, StorageUnavailable
from .schema import Board, Column, Task

logger = logging.getLogger(__name__)


def render_board(columns: List[Column], tasks: List[Task]) -> str:
    """Plain-text rendering: one block per column, tasks in insertion order."""
    board = Board(columns=list(columns), tasks=list(tasks))
    lines = []
    for column in columns:
        in_column = tasks_in_column(board, column.id)
        lines.append(f"{column.title} [{column.id}] ({len(in_column)})")
        if not in_column:
            lines.append("  (empty)")
        for t in in_column:
            lines.append(f"  - {t.title} [{t.id}] {t.priority.value} {t.progress}%")
            if t.description:
                lines.append(f"      {t.description}")
    return "\n".join(lines)


def _context(services: Services, session_id: Optional[str]) -> Optional[ClientContext]:
    ctx = ClientContext(services)
    ctx.startup()
    if session_id and not ctx.switch_session(session_id):
        print(f"Session {session_id} not found (logged out elsewhere?)", file=sys.stderr)
        return None
    if ctx.current_session_id is None:
        print("No session selected. Pass --session <id>.", file=sys.stderr)
        return None
    return ctx


def _cmd_register(services, args) -> int:
    ctx = ClientContext(services)
    session = ctx.signup(args.username, args.email, args.password)
    print(session.id)
    return 0


def _cmd_login(services, args) -> int:
    ctx = ClientContext(services)
    session = ctx.login(args.username, args.password)
    print(session.id)
    return 0


def _cmd_sessions(services, args) -> int:
    for s in services.sessions.list_all():
        flag = " (expired)" if services.sessions.is_expired(s) else ""
        print(f"{s.id}\t{s.username}{flag}")
    return 0


def _cmd_logout(services, args) -> int:
    if args.all:
        services.sessions.delete_all()
        return 0
    if not args.session:
        print("Pass --session <id> or --all.", file=sys.stderr)
        return 2
    services.sessions.delete(args.session)
    return 0


def _cmd_board(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    print(render_board(ctx.columns, ctx.tasks))
    return 0


def _cmd_add_column(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    column = ctx.add_column(args.title)
    if column is None:
        return 1
    print(column.id)
    return 0


def _cmd_rename_column(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    ctx.rename_column(args.column_id, args.title)
    return 0


def _cmd_delete_column(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    ctx.delete_column(args.column_id)
    return 0


def _cmd_add_task(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    task = ctx.add_task(args.column_id, args.title, args.description, args.priority)
    if task is None:
        return 1
    print(task.id)
    return 0


def _cmd_move(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    ctx.move_task(args.task_id, args.column_id)
    return 0


def _cmd_progress(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    ctx.update_progress(args.task_id, args.value)
    return 0


def _cmd_delete_task(services, args) -> int:
    ctx = _context(services, args.session)
    if ctx is None:
        return 1
    ctx.delete_task(args.task_id)
    return 0


def _cmd_theme(services, args) -> int:
    if args.value == "toggle":
        theme = services.theme.toggle()
    elif args.value:
        theme = services.theme.set(args.value)
    else:
        theme = services.theme.get()
    print(theme.value)
    return 0


def _cmd_watch(services, args) -> int:
    ctx = ClientContext(services)
    ctx.startup()
    if args.session:
        ctx.switch_session(args.session)

    def _redraw(_event):
        print(f"\n── sync #{ctx.sync_count} ({ctx.theme.value}) ──")
        if ctx.current_session_id is None:
            print("(no session selected)")
        else:
            print(render_board(ctx.columns, ctx.tasks))

    # Subscribed after the context so it draws the already-reloaded state
    services.signal.subscribe(_redraw)
    watcher = services.watcher()
    if watcher is None:
        print("watch needs the SQLite backend", file=sys.stderr)
        return 1
    watcher.start()
    print(f"Watching {services.config.db_path}. Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        watcher.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="taskboard", description="Personal kanban board")
    ap.add_argument("--config", default=None, help="Path to config.yaml")
    ap.add_argument("--db", default=None, help="SQLite file (overrides config)")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("register", help="Create an account and log in")
    p.add_argument("username")
    p.add_argument("email")
    p.add_argument("password")
    p.set_defaults(func=_cmd_register)

    p = sub.add_parser("login", help="Open a new session")
    p.add_argument("username")
    p.add_argument("password")
    p.set_defaults(func=_cmd_login)

    p = sub.add_parser("sessions", help="List open sessions")
    p.set_defaults(func=_cmd_sessions)

    p = sub.add_parser("logout", help="Close one session or all of them")
    p.add_argument("--session", default=None)
    p.add_argument("--all", action="store_true")
    p.set_defaults(func=_cmd_logout)

    def with_session(name, func, help_text):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--session", default=None, help="Session id (optional if only one)")
        sp.set_defaults(func=func)
        return sp

    with_session("board", _cmd_board, "Print the board")

    p = with_session("add-column", _cmd_add_column, "Append a column")
    p.add_argument("title")

    p = with_session("rename-column", _cmd_rename_column, "Rename a column")
    p.add_argument("column_id")
    p.add_argument("title")

    p = with_session("delete-column", _cmd_delete_column, "Delete a column and its tasks")
    p.add_argument("column_id")

    p = with_session("add-task", _cmd_add_task, "Add a task to a column")
    p.add_argument("column_id")
    p.add_argument("title")
    p.add_argument("--description", default="")
    p.add_argument("--priority", choices=["low", "medium", "high"], default="medium")

    p = with_session("move", _cmd_move, "Move a task to another column")
    p.add_argument("task_id")
    p.add_argument("column_id")

    p = with_session("progress", _cmd_progress, "Set a task's progress (0-100)")
    p.add_argument("task_id")
    p.add_argument("value", type=int)

    p = with_session("delete-task", _cmd_delete_task, "Delete a task")
    p.add_argument("task_id")

    p = sub.add_parser("theme", help="Show or change the theme")
    p.add_argument("value", nargs="?", choices=["light", "dark", "toggle"])
    p.set_defaults(func=_cmd_theme)

    with_session("watch", _cmd_watch, "Redraw the board when another process writes")

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    cfg = Config.load(args.config)
    if args.db:
        cfg.db_path = str(Path(args.db).expanduser())

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.debug("Using database %s", cfg.db_path)
    try:
        services = open_services(cfg)
        return args.func(services, args)
    except (DuplicateUser, InvalidCredentials, StorageUnavailable, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
