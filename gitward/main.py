"""CLI entry point for gitward."""

import asyncio
import sys

import structlog

from gitward.app import build_service
from gitward.core.config import GitwardConfig
from gitward.git import formatter
from gitward.git.models import Result
from gitward.git.service import GitService

logger = structlog.get_logger()


def split_path_option(argv: list[str]) -> tuple[str, list[str]]:
    """Pull ``--path DIR`` / ``--path=DIR`` out of *argv*; default is the cwd."""
    path = "."
    rest: list[str] = []
    it = iter(argv)
    for arg in it:
        if arg == "--path":
            path = next(it, path)
        elif arg.startswith("--path="):
            path = arg.split("=", 1)[1]
        else:
            rest.append(arg)
    return path, rest


def _usage(text: str) -> Result:
    return Result.failure(f"usage: gitward {text}")


async def dispatch(service: GitService, path: str, argv: list[str]) -> Result:
    """Route a CLI subcommand to the matching service operation."""
    subcommand = argv[0] if argv else "status"
    args = argv[1:]

    match subcommand:
        case "status":
            return await service.get_status(path)
        case "progress" | "conflicts":
            return await service.get_progress_state(path)
        case "branches":
            return await service.branches(path)
        case "log":
            count = int(args[0]) if args and args[0].isdigit() else 20
            return await service.log(path, max_count=count)
        case "fetch":
            return await service.fetch(path, args[0] if args else None)
        case "pull":
            return await service.pull(path, *args[:2])
        case "push":
            return await service.push(path, *args[:2])
        case "commit":
            if not args:
                return _usage("commit <message>")
            return await service.commit(path, " ".join(args), add_all_before_commit=True)
        case "sync":
            return await service.sync(path, *args[:2])
        case "autosync":
            return await service.safe_auto_sync(path)
        case "merge":
            if not args:
                return _usage("merge <ref>")
            return await service.merge(path, args[0])
        case "rebase":
            if not args:
                return _usage("rebase <upstream>")
            return await service.rebase_start(path, args[0])
        case "ours" | "theirs" | "resolve" | "unresolve" | "discard":
            if not args:
                return _usage(f"{subcommand} <file>")
            operation = {
                "ours": service.choose_ours,
                "theirs": service.choose_theirs,
                "resolve": service.mark_resolved,
                "unresolve": service.revert_resolution,
                "discard": service.discard_file,
            }[subcommand]
            return await operation(path, args[0])
        case "mergetool":
            return await service.open_mergetool(path, args[0] if args else None)
        case "continue":
            return await service.continue_any(path, " ".join(args) or None)
        case "abort":
            progress = await service.get_progress_state(path)
            if progress.ok and progress.data is not None and progress.data.in_rebase:
                return await service.rebase_abort(path)
            return await service.merge_abort(path)
        case _:
            return Result.failure(f"Unknown command: {subcommand}")


async def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0] in ("help", "-h", "--help"):
        print(formatter.format_help())
        return 0

    try:
        config = GitwardConfig()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    service = build_service(config)
    path, rest = split_path_option(argv)
    result = await dispatch(service, path, rest)
    output = formatter.format_result(result)
    print(output, file=sys.stdout if result.ok else sys.stderr)
    return 0 if result.ok else 1


def run() -> None:
    sys.exit(asyncio.run(main()))
