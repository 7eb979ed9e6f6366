"""Async execution of the git executable."""

import asyncio
import contextlib
import os
from pathlib import Path

import structlog

from gitward.exceptions import GitCommandError

logger = structlog.get_logger()

_DEFAULT_TIMEOUT = 30.0

# Never block on credential prompts or commit-message editors.
_NON_INTERACTIVE_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_EDITOR": "true",
    "GIT_MERGE_AUTOEDIT": "no",
}


class GitRunner:
    """Run git commands via ``asyncio.create_subprocess_exec``.

    ``run`` never raises: failures come back as a non-zero exit code with the
    reason in stderr. ``check`` raises :class:`GitCommandError` instead.
    """

    def __init__(
        self, git_binary: str = "git", *, timeout: float = _DEFAULT_TIMEOUT
    ) -> None:
        self.git_binary = git_binary
        self.timeout = timeout

    async def run(
        self,
        *args: str,
        cwd: Path,
        timeout: float | None = None,
        unbounded: bool = False,
        stdin_text: str | None = None,
    ) -> tuple[int, str, str]:
        """Execute ``git *args`` in *cwd* and return (code, stdout, stderr).

        *stdin_text* is fed to the process; otherwise stdin is closed.
        """
        if not cwd.is_dir():
            return 1, "", f"Directory does not exist: {cwd}"

        limit = None if unbounded else (timeout or self.timeout)
        cmd = (self.git_binary, *args)
        logger.debug("git_exec", command=cmd, cwd=str(cwd), timeout=limit)

        proc: asyncio.subprocess.Process | None = None
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=cwd,
                stdin=(
                    asyncio.subprocess.DEVNULL
                    if stdin_text is None
                    else asyncio.subprocess.PIPE
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **_NON_INTERACTIVE_ENV},
            )
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(
                    None if stdin_text is None else stdin_text.encode("utf-8")
                ),
                timeout=limit,
            )
        except TimeoutError:
            logger.warning("git_exec_timeout", command=cmd, timeout=limit)
            if proc is not None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(ProcessLookupError):
                    await proc.wait()
            return 1, "", f"Command timed out after {limit}s"
        except FileNotFoundError:
            return 1, "", f"{self.git_binary} is not installed or not in PATH"
        except OSError as e:
            logger.error("git_exec_error", command=cmd, error=str(e))
            return 1, "", str(e)

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        code = proc.returncode or 0
        if code != 0:
            logger.debug("git_exec_failed", command=cmd, code=code, stderr=stderr.strip())
        return code, stdout, stderr

    async def check(
        self,
        *args: str,
        cwd: Path,
        timeout: float | None = None,
        unbounded: bool = False,
        stdin_text: str | None = None,
    ) -> str:
        """Execute ``git *args`` and return stdout, raising on a non-zero exit."""
        code, stdout, stderr = await self.run(
            *args,
            cwd=cwd,
            timeout=timeout,
            unbounded=unbounded,
            stdin_text=stdin_text,
        )
        if code != 0:
            raise GitCommandError(args, code, stderr or stdout)
        return stdout
