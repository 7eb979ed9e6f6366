"""Tests for the composite sync sequence and the reload auto-sync policy."""

import pytest

from gitward.core.events import CONFLICTS_DETECTED, REPO_MUTATED
from gitward.git.models import FileStatusEntry, ProgressState, RepositoryStatus
from gitward.git.sync import auto_sync_decision, status_signature

CONFLICT_LINE = "u UU N... 100644 100644 100644 100644 h1 h2 h3 a.txt\0"


def _status(branch="main", upstream="origin/main", ahead=0, behind=0, extra=""):
    text = f"# branch.head {branch}\0"
    if upstream:
        text += f"# branch.upstream {upstream}\0# branch.ab +{ahead} -{behind}\0"
    return text + extra


class TestSync:
    async def test_clean_sync_pushes(self, fake_runner, fake_service, fake_root):
        result = await fake_service.sync(fake_root)
        assert result.ok is True
        assert result.data.pushed is True
        assert result.data.needs_resolution is False
        commands = fake_runner.commands()
        assert ("fetch", "origin") in commands
        assert ("pull", "--rebase", "--autostash", "origin", "main") in commands
        assert ("push",) in commands
        assert commands.index(("fetch", "origin")) < commands.index(("push",))

    async def test_conflicts_stop_before_push(self, fake_runner, fake_service, fake_root):
        fake_runner.on("pull", code=1, stderr="CONFLICT (content): Merge conflict in a.txt")
        fake_runner.on("status", stdout=_status(extra=CONFLICT_LINE))
        (fake_root / ".git" / "rebase-merge").mkdir()

        received = []

        async def handler(event):
            received.append(event)

        fake_service.event_bus.subscribe(CONFLICTS_DETECTED, handler)
        result = await fake_service.sync(fake_root)

        assert result.ok is True
        assert result.data.needs_resolution is True
        assert result.data.pushed is False
        assert result.data.status.has_unmerged is True
        assert not fake_runner.ran("push")
        assert received[0].data == {"conflicted": ["a.txt"]}

    async def test_pull_failure_without_conflicts_still_pushes(
        self, fake_runner, fake_service, fake_root
    ):
        fake_runner.on("pull", code=1, stderr="fatal: couldn't find remote ref main")
        result = await fake_service.sync(fake_root)
        assert result.ok is True
        assert fake_runner.ran("push")

    async def test_missing_remote_branch_skips_pull(self, fake_runner, fake_service, fake_root):
        fake_runner.on("rev-parse", "--verify", code=1)
        fake_runner.on("status", stdout=_status(branch="feature", upstream=None))
        result = await fake_service.sync(fake_root)
        assert result.ok is True
        assert not fake_runner.ran("pull")
        assert fake_runner.ran("push", "-u", "origin", "feature")

    async def test_explicit_remote_and_branch(self, fake_runner, fake_service, fake_root):
        await fake_service.sync(fake_root, "upstream", "release/1.0")
        assert fake_runner.ran("fetch", "upstream")
        assert fake_runner.ran("pull", "--rebase", "--autostash", "upstream", "release/1.0")

    async def test_detached_head(self, fake_runner, fake_service, fake_root):
        fake_runner.on("status", stdout="# branch.oid abc\0# branch.head (detached)\0")
        result = await fake_service.sync(fake_root)
        assert result.ok is False
        assert "Detached HEAD" in result.error
        assert not fake_runner.ran("fetch")

    async def test_fetch_failure(self, fake_runner, fake_service, fake_root):
        fake_runner.on("fetch", code=128, stderr="fatal: could not read from remote")
        result = await fake_service.sync(fake_root)
        assert result.ok is False
        assert "could not read" in result.error
        assert not fake_runner.ran("push")

    async def test_push_failure(self, fake_runner, fake_service, fake_root):
        fake_runner.on("push", code=1, stderr="! [rejected] (non-fast-forward)")
        result = await fake_service.sync(fake_root)
        assert result.ok is False
        assert "non-fast-forward" in result.error

    async def test_emits_mutated_after_sync(self, fake_service, fake_root):
        names = []

        async def handler(event):
            names.append(event.name)

        fake_service.event_bus.subscribe(REPO_MUTATED, handler)
        await fake_service.sync(fake_root)
        assert names == [REPO_MUTATED]


class TestSafeAutoSync:
    async def test_pulls_when_strictly_behind(self, fake_runner, fake_service, fake_root):
        fake_runner.on("status", stdout=_status(behind=3))
        fake_runner.on("pull", stdout="Fast-forward\n")
        result = await fake_service.safe_auto_sync(fake_root)
        assert result.data.pulled is True
        assert result.data.skipped is None
        assert fake_runner.ran("pull")

    @pytest.mark.parametrize(
        ("status_text", "reason"),
        [
            (_status(upstream=None), "no_tracking"),
            (_status(behind=1, extra="? new.txt\0"), "local_changes"),
            (_status(ahead=1, behind=1), "ahead"),
            (_status(), "uptodate"),
        ],
    )
    async def test_skips(self, fake_runner, fake_service, fake_root, status_text, reason):
        fake_runner.on("status", stdout=status_text)
        result = await fake_service.safe_auto_sync(fake_root)
        assert result.ok is True
        assert result.data.skipped == reason
        assert not fake_runner.ran("pull")

    async def test_status_failure(self, fake_runner, fake_service, fake_root):
        fake_runner.on("status", code=128, stderr="fatal: index file corrupt")
        result = await fake_service.safe_auto_sync(fake_root)
        assert result.ok is True
        assert result.data.skipped == "no_status"


class TestAutoSyncDecision:
    def test_safe(self):
        status = RepositoryStatus(current_branch="main", tracking_branch="origin/main", behind=2)
        assert auto_sync_decision(status) is None

    def test_tracking_checked_first(self):
        status = RepositoryStatus(
            files=[FileStatusEntry(path="a", index_code="M")], ahead=1
        )
        assert auto_sync_decision(status) == "no_tracking"


class TestStatusSignature:
    def test_stable(self):
        status = RepositoryStatus(ahead=1)
        progress = ProgressState(conflicted=["a.txt"])
        assert status_signature(status, progress) == status_signature(status, progress)
        assert len(status_signature(status, progress)) == 16

    def test_changes_with_state(self):
        base = status_signature(RepositoryStatus(), ProgressState())
        assert status_signature(RepositoryStatus(behind=1), ProgressState()) != base
        assert status_signature(RepositoryStatus(), ProgressState(in_merge=True)) != base
        assert (
            status_signature(RepositoryStatus(), ProgressState(conflicted=["a.txt"])) != base
        )

    def test_handles_missing_inputs(self):
        assert status_signature(None, None) == status_signature(
            RepositoryStatus(), ProgressState()
        )
