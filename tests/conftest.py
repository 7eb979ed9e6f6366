"""Shared fixtures: environment isolation, real git repositories, and a scripted runner."""

from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
from pathlib import Path

import pytest

from gitward.core.config import GitwardConfig
from gitward.git.runner import GitRunner
from gitward.git.service import GitService

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not available"
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Prevent .env file and shell env from leaking into tests."""
    monkeypatch.setitem(GitwardConfig.model_config, "env_file", None)
    for key in list(os.environ):
        if key.startswith("GITWARD_"):
            monkeypatch.delenv(key, raising=False)


# ── Real git repositories ─────────────────────────────────────────────


def git(cwd: Path, *args: str, check: bool = True) -> str:
    proc = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=False
    )
    if check and proc.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed: {proc.stderr}")
    return proc.stdout


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    target = repo / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(repo, "add", "--", name)
    git(repo, "commit", "-q", "-m", message)


def init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    return path


@pytest.fixture
def git_env(tmp_path_factory, monkeypatch):
    """Hermetic git identity and configuration."""
    home = tmp_path_factory.mktemp("home")
    (home / ".gitconfig").write_text(
        "[user]\n\tname = Test User\n\temail = test@example.com\n"
        "[commit]\n\tgpgsign = false\n"
        "[init]\n\tdefaultBranch = main\n"
        "[advice]\n\tdetachedHead = false\n"
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    for key in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(key, raising=False)
    return home


@pytest.fixture
def repo(tmp_path, git_env) -> Path:
    path = init_repo(tmp_path / "repo")
    commit_file(path, "a.txt", "base\n", "initial")
    return path


@pytest.fixture
def conflicted_repo(repo) -> Path:
    """``repo`` stopped mid-merge with ``a.txt`` conflicted."""
    git(repo, "checkout", "-q", "-b", "feature")
    commit_file(repo, "a.txt", "theirs\n", "feature change")
    git(repo, "checkout", "-q", "main")
    commit_file(repo, "a.txt", "ours\n", "main change")
    git(repo, "merge", "feature", check=False)
    return repo


@pytest.fixture
def remote_pair(tmp_path, git_env) -> tuple[Path, Path, Path]:
    """Two clones (``a``, ``b``) of one bare remote, both on ``main``."""
    bare = tmp_path / "remote.git"
    bare.mkdir()
    git(bare, "init", "-q", "--bare")
    git(bare, "symbolic-ref", "HEAD", "refs/heads/main")

    seed = init_repo(tmp_path / "seed")
    commit_file(seed, "a.txt", "base\n", "initial")
    git(seed, "remote", "add", "origin", str(bare))
    git(seed, "push", "-q", "origin", "main")

    a = tmp_path / "a"
    b = tmp_path / "b"
    git(tmp_path, "clone", "-q", str(bare), str(a))
    git(tmp_path, "clone", "-q", str(bare), str(b))
    return a, b, bare


@pytest.fixture
def service() -> GitService:
    return GitService(GitwardConfig())


# ── Scripted runner ───────────────────────────────────────────────────


def nul(text: str) -> str:
    """Turn newline-separated git output into its ``-z`` form."""
    return text.replace("\n", "\0")


def _strip_config(args: tuple[str, ...]) -> tuple[str, ...]:
    while len(args) >= 2 and args[0] == "-c":
        args = args[2:]
    return args


class FakeRunner(GitRunner):
    """GitRunner that answers from a table of argument prefixes.

    The longest matching prefix wins; unmatched commands succeed silently.
    Prefixes registered with ``block`` pause until their event is set.
    """

    def __init__(self) -> None:
        super().__init__("git")
        self.calls: list[tuple[tuple[str, ...], Path]] = []
        self.inputs: dict[tuple[str, ...], str] = {}
        self.timeline: list[tuple[str, tuple[str, ...], str]] = []
        self._responses: dict[tuple[str, ...], tuple[int, str, str]] = {}
        self._blockers: dict[tuple[str, ...], asyncio.Event] = {}

    def on(self, *prefix: str, code: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._responses[prefix] = (code, stdout, stderr)

    def block(self, *prefix: str) -> asyncio.Event:
        event = asyncio.Event()
        self._blockers[prefix] = event
        return event

    def commands(self) -> list[tuple[str, ...]]:
        return [_strip_config(args) for args, _ in self.calls]

    def ran(self, *prefix: str) -> bool:
        return any(cmd[: len(prefix)] == prefix for cmd in self.commands())

    async def run(
        self,
        *args: str,
        cwd: Path,
        timeout: float | None = None,
        unbounded: bool = False,
        stdin_text: str | None = None,
    ) -> tuple[int, str, str]:
        self.calls.append((args, cwd))
        key = _strip_config(args)
        if stdin_text is not None:
            self.inputs[key] = stdin_text
        for prefix, event in self._blockers.items():
            if key[: len(prefix)] == prefix:
                self.timeline.append(("start", key, str(cwd)))
                await event.wait()
                self.timeline.append(("end", key, str(cwd)))
        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if key[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return 0, "", ""
        return self._responses[best]


@pytest.fixture
def fake_root(tmp_path) -> Path:
    root = (tmp_path / "work").resolve()
    (root / ".git").mkdir(parents=True)
    return root


@pytest.fixture
def fake_runner(fake_root) -> FakeRunner:
    runner = FakeRunner()
    runner.on("rev-parse", "--show-toplevel", stdout=f"{fake_root}\n")
    runner.on("rev-parse", "--absolute-git-dir", stdout=f"{fake_root / '.git'}\n")
    runner.on(
        "status",
        stdout=nul("# branch.head main\n# branch.upstream origin/main\n# branch.ab +0 -0\n"),
    )
    return runner


@pytest.fixture
def fake_service(fake_runner) -> GitService:
    return GitService(GitwardConfig(), runner=fake_runner)
