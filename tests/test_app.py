"""Tests for the build_service() bootstrap function."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest
import structlog

from gitward.app import build_service, configure_logging
from gitward.core.config import GitwardConfig
from gitward.core.events import EventBus
from gitward.git.service import GitService


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _patched_build_service(**kwargs):
    """Call build_service with logging setup patched to avoid side effects."""
    with patch("gitward.app.configure_logging"):
        return build_service(**kwargs)


class TestBuildService:
    def test_returns_service(self):
        service = _patched_build_service(config=GitwardConfig())
        assert isinstance(service, GitService)
        assert service.event_bus is not None
        assert len(service.locks) == 0

    def test_runner_uses_config(self):
        config = GitwardConfig(git_binary="/usr/bin/git", command_timeout_seconds=7)
        service = _patched_build_service(config=config)
        assert service._runner.git_binary == "/usr/bin/git"
        assert service._runner.timeout == 7

    def test_shared_event_bus(self):
        bus = EventBus()
        service = _patched_build_service(config=GitwardConfig(), event_bus=bus)
        assert service.event_bus is bus

    def test_skip_logging_setup(self):
        with patch("gitward.app.configure_logging") as mock_setup:
            build_service(GitwardConfig(), setup_logging=False)
        mock_setup.assert_not_called()


class TestConfigureLogging:
    def test_console_only(self, restore_logging):
        configure_logging(GitwardConfig(log_level="warning"))
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_json_file_handler(self, restore_logging, tmp_path):
        log_dir = tmp_path / "logs"
        configure_logging(GitwardConfig(log_level="DEBUG"), log_dir=log_dir)
        structlog.get_logger("test").info("git_operation", root="/r", operation="commit")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = (log_dir / "gitward.log").read_text().splitlines()
        record = json.loads(lines[-1])
        assert record["event"] == "git_operation"
        assert record["operation"] == "commit"
        assert record["level"] == "info"
