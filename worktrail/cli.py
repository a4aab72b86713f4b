"""Command-line interface for WorkTrail.

Every command operates on one workspace (``--workdir``, default: the current
directory). Loads .env from the workspace if present, then initializes the
config manager from the WorkTrail home directory before dispatching.
"""

from __future__ import annotations

import asyncio
import os
import sys
from argparse import SUPPRESS, ArgumentParser, Namespace
from pathlib import Path

YES_HELP = "Answer yes to every confirmation"


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="worktrail",
        description="Append-only snapshot history for a working directory",
    )
    parser.add_argument(
        "--workdir",
        default=".",
        help="Workspace to operate on (default: current directory)",
    )
    parser.add_argument(
        "--home",
        help="WorkTrail home holding config.json and snapshot stores. "
        "Overrides WORKTRAIL_HOME.",
    )
    parser.add_argument(
        "--log-format",
        choices=["pretty", "json"],
        help="Log format (pretty or json). Overrides config and LOG_FORMAT env var.",
    )
    parser.add_argument(
        "--log-colors",
        type=lambda x: x.lower() in ("true", "1", "yes", "on"),
        help="Enable colored logs (true/false). Overrides LOG_COLORS env var.",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help=YES_HELP,
    )

    sub = parser.add_subparsers(dest="command", required=True)

    snapshot = sub.add_parser("snapshot", help="Capture the workspace")
    snapshot.add_argument("-m", "--prompt", help="Note stored with the snapshot")

    timeline = sub.add_parser("timeline", help="List snapshots, newest first")
    timeline.add_argument("-n", "--limit", type=int, help="Show at most N snapshots")

    diff = sub.add_parser("diff", help="Compare two snapshots")
    diff.add_argument("older")
    diff.add_argument("newer")
    diff.add_argument("--file", help="Show the diff of a single file")
    diff.add_argument("--patch", action="store_true", help="Print unified diff text")

    show = sub.add_parser("show", help="Print a file as it was in a snapshot")
    show.add_argument("snapshot")
    show.add_argument("path")

    restore = sub.add_parser("restore", help="Restore the workspace to a snapshot")
    restore.add_argument("snapshot")
    restore.add_argument(
        "-y", "--yes", action="store_true", default=SUPPRESS, help=YES_HELP
    )

    sub.add_parser("repair", help="Repair the history store")
    sub.add_parser("health", help="Report history store health")

    summarize = sub.add_parser("summarize", help="Summarize changes with an LLM")
    summarize.add_argument("older")
    summarize.add_argument("newer")

    serve = sub.add_parser("serve", help="Serve the HTTP API for the workspace")
    serve.add_argument("--host", help="Bind address (default from config)")
    serve.add_argument("--port", type=int, help="Port (default from config)")
    return parser


def make_confirm(assume_yes: bool):
    def confirm(question: str) -> bool:
        if assume_yes:
            return True
        try:
            answer = input(f"{question} [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")

    return confirm


async def _snapshot(engine, args: Namespace, confirm) -> None:
    result = await engine.capture(args.prompt, confirm=confirm)
    if result.committed and result.snapshot:
        verified = "" if result.verified else " (unverified)"
        print(f"Snapshot {result.snapshot.short_hash} saved{verified}")
    else:
        print("No changes since the last snapshot")
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)


async def _timeline(engine, args: Namespace, confirm) -> None:
    entries = await engine.timeline(max_count=args.limit)
    if not entries:
        print("No snapshots yet")
        return
    for entry in entries:
        snap = entry.snapshot
        when = snap.date.strftime("%Y-%m-%d %H:%M:%S")
        line = f"{snap.short_hash}  {when}  {entry.summary}"
        if snap.prompt:
            line += f"  [{snap.prompt}]"
        print(line)


async def _diff(engine, args: Namespace, confirm) -> None:
    from worktrail.services.analysis import summarize_changes

    if args.file:
        print(await engine.file_diff(args.older, args.newer, args.file), end="")
        return
    stats = await engine.diff_stats(args.older, args.newer)
    print(summarize_changes(stats))
    for record in stats.file_details:
        print(
            f"  {record.description:<8} {record.filename} "
            f"(+{record.lines_added} -{record.lines_removed})"
        )
    if args.patch:
        print(await engine.diff_text(args.older, args.newer), end="")


async def _show(engine, args: Namespace, confirm) -> None:
    content = await engine.file_at(args.snapshot, args.path)
    sys.stdout.buffer.write(content)
    sys.stdout.flush()


async def _restore(engine, args: Namespace, confirm) -> None:
    result = await engine.restore(args.snapshot, confirm=confirm)
    print(f"Workspace restored to {result.restored_to[:8]}")
    if result.new_snapshot:
        print(f"Recorded as snapshot {result.new_snapshot[:8]}")
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)


async def _repair(engine, args: Namespace, confirm) -> None:
    report = await engine.repair()
    print(f"Store is {report.state.value}")
    for action in report.actions:
        print(f"  {action}")
    for warning in report.warnings:
        print(f"warning: {warning}", file=sys.stderr)


async def _health(engine, args: Namespace, confirm) -> None:
    report = await engine.check_health()
    line = f"Store is {report.state.value}"
    if report.reason:
        line += f": {report.reason}"
    print(line)


async def _summarize(engine, args: Namespace, confirm) -> None:
    result = await engine.summarize(args.older, args.newer)
    print(f"Summary: {result.summary}")
    print(f"Risk: {result.risk}")


COMMANDS = {
    "snapshot": _snapshot,
    "timeline": _timeline,
    "diff": _diff,
    "show": _show,
    "restore": _restore,
    "repair": _repair,
    "health": _health,
    "summarize": _summarize,
}


def _serve(args: Namespace, workdir: Path, config_manager) -> None:
    import uvicorn

    from worktrail.api.app import create_app
    from worktrail.config import settings
    from worktrail.config.logging_config import get_logging_config
    from worktrail.utils.logger import get_logger

    host = args.host or settings.server_host
    port = args.port or settings.server_port
    app = create_app(workspace=workdir)
    app.state.config_manager = config_manager

    get_logger("server.startup").info(
        "Starting WorkTrail server",
        server_url=f"http://{host}:{port}",
        docs_url=f"http://{host}:{port}/docs",
        workdir=str(workdir),
    )
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=get_logging_config(),
        lifespan="on",
        timeout_graceful_shutdown=5,
    )
    asyncio.run(uvicorn.Server(config).serve())


def main(argv: list[str] | None = None) -> int:
    # Parse arguments before any config loading so --help always works
    args = build_parser().parse_args(argv)

    # Logging env vars must be set before the logger module is imported
    if args.log_format:
        os.environ["LOG_FORMAT"] = args.log_format
    if args.log_colors is not None:
        os.environ["LOG_COLORS"] = "true" if args.log_colors else "false"
    if args.home:
        os.environ["WORKTRAIL_HOME"] = str(Path(args.home).expanduser())

    from dotenv import load_dotenv

    from worktrail.config import create_config_manager, get_default_config, settings
    from worktrail.errors import IntegrityError, OperationCancelled, WorkTrailError
    from worktrail.services.engine import get_engine
    from worktrail.utils.logger import get_logger

    cli_logger = get_logger("cli")

    workdir = Path(args.workdir).expanduser().resolve()
    env_file = workdir / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=env_file, override=False)
        cli_logger.debug("Loaded .env file", path=str(env_file))

    try:
        config_manager = create_config_manager(
            settings.home, defaults=get_default_config()
        )
        asyncio.run(config_manager.initialize())
        settings.attach(config_manager)
    except Exception as e:
        cli_logger.error("Failed to initialize configuration", error=str(e))
        print(f"error: configuration could not be loaded: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "serve":
            _serve(args, workdir, config_manager)
            return 0
        engine = get_engine(workdir)
        handler = COMMANDS[args.command]
        asyncio.run(handler(engine, args, make_confirm(args.yes)))
    except OperationCancelled as e:
        print(str(e), file=sys.stderr)
        return 2
    except IntegrityError as e:
        print(f"error: {e}", file=sys.stderr)
        print("hint: run `worktrail repair` to fix the history store", file=sys.stderr)
        return 1
    except WorkTrailError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
