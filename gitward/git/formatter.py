"""Pure functions to render engine results for a terminal."""

from gitward.git.models import (
    AutoSyncOutcome,
    BranchList,
    CommandOutput,
    CommitSummary,
    LogEntry,
    MergeOutcome,
    ProgressState,
    RepositoryStatus,
    Result,
    SyncOutcome,
)
from gitward.git.normalize import FileCategory

_CATEGORY_MARK: dict[FileCategory, str] = {
    "modified": "M",
    "added": "A",
    "deleted": "D",
    "renamed": "R",
    "conflicted": "U",
    "untracked": "?",
    "ignored": "!",
    "unknown": "*",
}

_SECTION_ORDER: tuple[tuple[FileCategory, str], ...] = (
    ("conflicted", "Conflicted"),
    ("added", "Added"),
    ("modified", "Modified"),
    ("renamed", "Renamed"),
    ("deleted", "Deleted"),
    ("untracked", "Untracked"),
    ("unknown", "Other"),
    ("ignored", "Ignored"),
)

_AUTO_SYNC_REASONS = {
    "not_a_repo": "No git repository found at the configured path.",
    "no_status": "Could not read git status.",
    "no_tracking": "No tracking branch set, auto-sync skipped.",
    "local_changes": "Local changes detected, auto-sync skipped.",
    "ahead": "Branch is ahead of its remote, auto-sync skipped.",
    "uptodate": "Repository is up to date.",
}


def format_status(status: RepositoryStatus) -> str:
    branch = status.current_branch or "(detached HEAD)"
    branch_line = f"Branch: {branch}"
    if status.tracking_branch:
        tracking_parts = [f"tracking {status.tracking_branch}"]
        if status.ahead:
            tracking_parts.append(f"{status.ahead} ahead")
        if status.behind:
            tracking_parts.append(f"{status.behind} behind")
        branch_line += f" ({', '.join(tracking_parts)})"
    lines = [branch_line]

    if status.clean:
        lines.append("")
        lines.append("Working tree clean")
        return "\n".join(lines)

    for category, title in _SECTION_ORDER:
        entries = [f for f in status.files if f.category == category]
        if not entries:
            continue
        lines.append("")
        lines.append(f"{title}:")
        mark = _CATEGORY_MARK[category]
        for entry in entries:
            path = entry.path
            if entry.original_path:
                path = f"{entry.original_path} -> {entry.path}"
            lines.append(f"  {mark} {path}")
    return "\n".join(lines)


def format_progress(state: ProgressState) -> str:
    phases = []
    if state.in_rebase:
        phases.append("rebase")
    if state.in_cherry_pick:
        phases.append("cherry-pick")
    elif state.in_merge:
        phases.append("merge")
    head = f"In progress: {' + '.join(phases)}" if phases else "No merge or rebase in progress"
    if not state.conflicted:
        return head
    n = len(state.conflicted)
    lines = [head, f"{n} conflicted file(s):"]
    lines.extend(f"  U {path}" for path in state.conflicted)
    return "\n".join(lines)


def format_branches(branches: BranchList, max_display: int = 30) -> str:
    if not branches.branches:
        return "No branches found."
    lines: list[str] = ["Branches:"]
    for branch in branches.branches[:max_display]:
        marker = "* " if branch.is_current else "  "
        lines.append(f"{marker}{branch.name}")
    if len(branches.branches) > max_display:
        lines.append(f"... and {len(branches.branches) - max_display} more")
    return "\n".join(lines)


def format_log(entries: list[LogEntry], max_entries: int = 20) -> str:
    if not entries:
        return "No commits found."
    lines: list[str] = ["Recent commits:"]
    for entry in entries[:max_entries]:
        lines.append(f"  {entry.short_hash} {entry.message}")
        lines.append(f"    {entry.author}, {entry.date}")
    return "\n".join(lines)


def format_merge_outcome(outcome: MergeOutcome) -> str:
    if outcome.success:
        return outcome.message
    lines = [outcome.message]
    lines.extend(f"  U {f}" for f in outcome.conflicted_files)
    if outcome.had_conflicts:
        lines.append("")
        lines.append("Resolve with: ours/theirs/resolve <file>, then: continue")
    return "\n".join(lines)


def format_sync_outcome(outcome: SyncOutcome) -> str:
    if outcome.needs_resolution:
        lines = ["Sync stopped: conflicts need resolution."]
        if outcome.status:
            lines.extend(f"  U {p}" for p in outcome.status.paths("conflicted"))
        return "\n".join(lines)
    return "Sync complete." if outcome.pushed else "Nothing to push."


def format_auto_sync(outcome: AutoSyncOutcome) -> str:
    if outcome.skipped:
        return _AUTO_SYNC_REASONS[outcome.skipped]
    return "Pull complete."


def format_data(data: object) -> str:
    """Render whatever payload a successful operation returned."""
    match data:
        case None:
            return "Not a git repository."
        case RepositoryStatus():
            return format_status(data)
        case ProgressState():
            return format_progress(data)
        case BranchList():
            return format_branches(data)
        case MergeOutcome():
            return format_merge_outcome(data)
        case SyncOutcome():
            return format_sync_outcome(data)
        case AutoSyncOutcome():
            return format_auto_sync(data)
        case CommitSummary():
            return f"[{data.branch or '?'} {data.commit}] {data.summary}"
        case CommandOutput():
            return f"{data.message}\n{data.details}" if data.details else data.message
        case bool():
            return "yes" if data else "no"
        case list() if data and all(isinstance(e, LogEntry) for e in data):
            return format_log(data)
        case list():
            return "\n".join(str(e) for e in data) if data else "(none)"
        case _:
            return str(data)


def format_result(result: Result) -> str:
    if not result.ok:
        return f"error: {result.error}"
    return format_data(result.data)


def format_help() -> str:
    return (
        "usage: gitward <command> [args] [--path DIR]\n"
        "\n"
        "  status                 Show working tree status\n"
        "  progress               Show merge/rebase progress and conflicts\n"
        "  branches               List branches\n"
        "  log [N]                Recent commits\n"
        "  fetch [remote]         Fetch from remote\n"
        "  pull [remote] [branch] Pull from remote\n"
        "  push [remote] [branch] Push to remote\n"
        "  commit <message>       Stage everything and commit\n"
        "  sync [remote] [branch] Fetch, rebase-pull, and push unless conflicted\n"
        "  autosync               Pull only when clean and behind\n"
        "  merge <ref>            Merge a branch\n"
        "  rebase <upstream>      Rebase onto upstream\n"
        "  ours <file>            Resolve a conflict with our version\n"
        "  theirs <file>          Resolve a conflict with their version\n"
        "  resolve <file>         Mark a manually edited file resolved\n"
        "  unresolve <file>       Restore the conflicted version of a file\n"
        "  mergetool [file]       Run the configured merge tool\n"
        "  continue [message]     Continue the merge or rebase in progress\n"
        "  abort                  Abort the merge or rebase in progress\n"
        "  discard <file>         Drop local changes to a file\n"
        "  help                   This message"
    )
