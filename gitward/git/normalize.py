"""Map porcelain index/worktree codes to a file change category."""

from typing import Literal

FileCategory = Literal[
    "ignored",
    "untracked",
    "conflicted",
    "renamed",
    "added",
    "deleted",
    "modified",
    "unknown",
]

UNMERGED_PAIRS: frozenset[str] = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})


def normalize_status(index_code: str, worktree_code: str) -> FileCategory:
    """Classify a file from its two porcelain status codes.

    Rules are evaluated in order and the first match wins. Unmerged pairs are
    checked before the single-letter rules so that ``AA`` and ``DD`` come out
    as conflicted instead of added/deleted.
    """
    x = index_code or " "
    y = worktree_code or " "
    codes = (x, y)

    if "!" in codes:
        return "ignored"
    if "?" in codes:
        return "untracked"
    if "U" in codes or x + y in UNMERGED_PAIRS:
        return "conflicted"
    if "R" in codes:
        return "renamed"
    if "A" in codes:
        return "added"
    if "D" in codes:
        return "deleted"
    if "M" in codes:
        return "modified"
    return "unknown"
