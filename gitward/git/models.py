"""Data models for repository state and operation results."""

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, computed_field, model_validator

from gitward.git.normalize import FileCategory, normalize_status

T = TypeVar("T")


class FileStatusEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    index_code: str = " "
    worktree_code: str = " "
    original_path: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def category(self) -> FileCategory:
        return normalize_status(self.index_code, self.worktree_code)


class RepositoryStatus(BaseModel):
    """Snapshot of ``git status`` for one repository."""

    model_config = ConfigDict(frozen=True)

    current_branch: str | None = None
    tracking_branch: str | None = None
    ahead: int = 0
    behind: int = 0
    files: list[FileStatusEntry] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def clean(self) -> bool:
        return len(self.files) == 0

    @property
    def has_unmerged(self) -> bool:
        return any(f.category == "conflicted" for f in self.files)

    def paths(self, category: FileCategory) -> list[str]:
        return [f.path for f in self.files if f.category == category]


class ProgressState(BaseModel):
    """Merge/rebase progress and the set of conflicted paths."""

    model_config = ConfigDict(frozen=True)

    in_merge: bool = False
    in_rebase: bool = False
    in_cherry_pick: bool = False
    conflicted: list[str] = []


class CommandOutput(BaseModel):
    """Output of a git mutation that has no richer payload."""

    model_config = ConfigDict(frozen=True)

    message: str
    details: str = ""


class CommitSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    commit: str
    branch: str | None = None
    summary: str = ""


class Branch(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    is_current: bool = False
    is_remote: bool = False


class BranchList(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: str | None = None
    branches: list[Branch] = []


class Remote(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    fetch_url: str = ""
    push_url: str = ""


class RemoteInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    remotes: list[Remote] = []
    remote_branches: list[str] = []


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    hash: str
    short_hash: str
    author: str
    email: str
    date: str
    message: str


class StashEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    ref: str
    message: str


class DiscardOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    action: Literal["deleted", "restored"]


class MergeOutcome(BaseModel):
    """Result of a merge or rebase start; distinguishes clean runs from conflicts."""

    model_config = ConfigDict(frozen=True)

    success: bool
    had_conflicts: bool = False
    conflicted_files: list[str] = []
    message: str
    details: str = ""


class SyncOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    needs_resolution: bool
    pushed: bool = False
    status: RepositoryStatus | None = None
    details: str = ""


AutoSyncSkip = Literal[
    "not_a_repo", "no_status", "no_tracking", "local_changes", "ahead", "uptodate"
]


class AutoSyncOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    pulled: bool = False
    skipped: AutoSyncSkip | None = None
    details: str = ""


class Result(BaseModel, Generic[T]):
    """Uniform envelope returned by every public operation.

    Either ``ok=True`` with ``data``, or ``ok=False`` with a non-empty ``error``.
    """

    model_config = ConfigDict(frozen=True)

    ok: bool
    data: T | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> "Result[T]":
        if self.ok and self.error is not None:
            raise ValueError("successful result cannot carry an error")
        if not self.ok and not self.error:
            raise ValueError("failed result requires an error message")
        if not self.ok and self.data is not None:
            raise ValueError("failed result cannot carry data")
        return self

    @classmethod
    def success(cls, data: Any = None) -> "Result[Any]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str) -> "Result[Any]":
        return cls(ok=False, error=error or "Unknown error")
