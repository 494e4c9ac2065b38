from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

from loguru import logger

from .board.model import ProjectRole, TaskStatus
from .board.service import OrderCommitService
from .config import get_logging_config, load_board_config
from .constants import STATE_DIR_NAME
from .errors import BoardError
from .logging_utils import configure_logging, pretty, summarize_event


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _service(args: argparse.Namespace) -> OrderCommitService:
    return OrderCommitService.for_state_dir(_resolve_project_dir(args.project_dir) / STATE_DIR_NAME)


def _project_create(args: argparse.Namespace) -> int:
    project = _service(args).create_project(args.owner, args.name, project_id=args.project_id)
    sys.stdout.write(pretty({"project": project.to_dict()}) + "\n")
    return 0


def _member_add(args: argparse.Namespace) -> int:
    _service(args).add_member(args.caller, args.project_id, args.user_id, ProjectRole(args.role))
    sys.stdout.write(pretty({"project_id": args.project_id, "user_id": args.user_id, "role": args.role}) + "\n")
    return 0


def _member_remove(args: argparse.Namespace) -> int:
    removed = _service(args).remove_member(args.caller, args.project_id, args.user_id)
    sys.stdout.write(pretty({"removed": removed, "user_id": args.user_id}) + "\n")
    return 0


def _member_list(args: argparse.Namespace) -> int:
    members = _service(args).list_members(args.caller, args.project_id)
    sys.stdout.write(pretty({"project_id": args.project_id, "members": [m.to_dict() for m in members]}) + "\n")
    return 0


def _task_create(args: argparse.Namespace) -> int:
    task = _service(args).create_task(args.caller, args.project_id, args.title, status=TaskStatus(args.status))
    sys.stdout.write(pretty({"task": task.to_dict()}) + "\n")
    return 0


def _task_delete(args: argparse.Namespace) -> int:
    task = _service(args).delete_task(args.caller, args.task_id)
    sys.stdout.write(pretty({"deleted": task.id, "project_id": task.project_id}) + "\n")
    return 0


def _board_show(args: argparse.Namespace) -> int:
    columns = _service(args).get_board(args.caller, args.project_id)
    for status, tasks in columns.items():
        sys.stdout.write(f"{status.value} ({len(tasks)})\n")
        for task in tasks:
            sys.stdout.write(f"  {task.position:>3}  {task.id}  {task.title}\n")
    return 0


def _check(args: argparse.Namespace) -> int:
    violations = _service(args).check_positions()
    for (project_id, status), positions in sorted(violations.items()):
        sys.stdout.write(f"{project_id} {status.value}: {positions}\n")
    if violations:
        return 1
    sys.stdout.write("All columns are densely numbered.\n")
    return 0


def _events(args: argparse.Namespace) -> int:
    for event in _service(args).get_recent_events(limit=args.limit):
        sys.stdout.write(summarize_event(event) + "\n")
    return 0


def _token_issue(args: argparse.Namespace) -> int:
    from .server.auth import create_access_token

    expires = timedelta(minutes=args.minutes) if args.minutes else None
    sys.stdout.write(create_access_token(args.user_id, expires_delta=expires) + "\n")
    return 0


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'taskboard[server]'\n")
        return 1

    from .server import create_app

    app = create_app(project_dir=_resolve_project_dir(args.project_dir))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Taskboard kanban CLI")
    parser.add_argument("--project-dir", default=None, help="Directory holding .taskboard/ (default: current working directory)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    server = subparsers.add_parser("server", help="Start the web server")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", default=8000, type=int)
    server.set_defaults(func=_server)

    project = subparsers.add_parser("project", help="Manage projects")
    project_sub = project.add_subparsers(dest="project_cmd", required=True)
    pcreate = project_sub.add_parser("create", help="Create a project")
    pcreate.add_argument("name")
    pcreate.add_argument("--owner", required=True, help="User id that becomes the project lead")
    pcreate.add_argument("--project-id", default=None)
    pcreate.set_defaults(func=_project_create)

    member = subparsers.add_parser("member", help="Manage project membership")
    member_sub = member.add_subparsers(dest="member_cmd", required=True)
    madd = member_sub.add_parser("add", help="Add or re-role a member")
    madd.add_argument("project_id")
    madd.add_argument("user_id")
    madd.add_argument("--role", default="MEMBER", choices=[r.value for r in ProjectRole])
    madd.add_argument("--as", dest="caller", default=None, help="Acting lead (omit to bootstrap)")
    madd.set_defaults(func=_member_add)
    mremove = member_sub.add_parser("remove", help="Remove a member")
    mremove.add_argument("project_id")
    mremove.add_argument("user_id")
    mremove.add_argument("--as", dest="caller", default=None)
    mremove.set_defaults(func=_member_remove)
    mlist = member_sub.add_parser("list", help="List project members")
    mlist.add_argument("project_id")
    mlist.add_argument("--as", dest="caller", required=True)
    mlist.set_defaults(func=_member_list)

    task = subparsers.add_parser("task", help="Manage tasks")
    task_sub = task.add_subparsers(dest="task_cmd", required=True)
    tcreate = task_sub.add_parser("create", help="Append a task to a column")
    tcreate.add_argument("project_id")
    tcreate.add_argument("title")
    tcreate.add_argument("--status", default="TODO", choices=[s.value for s in TaskStatus])
    tcreate.add_argument("--as", dest="caller", required=True)
    tcreate.set_defaults(func=_task_create)
    tdelete = task_sub.add_parser("delete", help="Delete a task and close its column gap")
    tdelete.add_argument("task_id")
    tdelete.add_argument("--as", dest="caller", required=True)
    tdelete.set_defaults(func=_task_delete)

    board = subparsers.add_parser("board", help="Show a project's board")
    board.add_argument("project_id")
    board.add_argument("--as", dest="caller", required=True)
    board.set_defaults(func=_board_show)

    check = subparsers.add_parser("check", help="Verify every column is numbered 0..n-1")
    check.set_defaults(func=_check)

    events = subparsers.add_parser("events", help="Show recent board events")
    events.add_argument("--limit", default=20, type=int)
    events.set_defaults(func=_events)

    token = subparsers.add_parser("token", help="Issue an access token")
    token.add_argument("user_id")
    token.add_argument("--minutes", default=None, type=int)
    token.set_defaults(func=_token_issue)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config, err = load_board_config(_resolve_project_dir(args.project_dir))
    configure_logging(args.log_level or get_logging_config(config)["level"])
    if err:
        logger.warning("Ignoring unreadable config: {}", err)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except BoardError as exc:
        sys.stderr.write(f"error: {exc.message}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
