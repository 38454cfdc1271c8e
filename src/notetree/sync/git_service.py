"""Git synchronization for the note root.

git is treated as an opaque external tool: each operation runs the executable
with a fixed argument list and reports a coarse success flag plus a message. No
git state is modelled here, and failures are returned, never raised.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from loguru import logger

DEFAULT_COMMIT_MESSAGE = "Update notes"


@dataclass
class GitResult:
    """Outcome of one git invocation (or a sequence of them)."""

    success: bool
    message: str = ""
    stdout: str = ""


class GitService:
    """Runs git commands against the note root."""

    def __init__(
        self,
        repo_path: Path,
        executable: str = "git",
        remote_name: str = "origin",
        branch: Optional[str] = None,
        timeout: float = 60.0,
        remote_url: Optional[str] = None,
    ):
        self.repo_path = repo_path
        self.executable = executable
        self.remote_name = remote_name
        self.branch = branch
        self.timeout = timeout
        # applied by sync when the repository has no remote yet
        self.remote_url = remote_url

    async def _run(self, *args: str) -> GitResult:
        """Run ``git <args>`` in the note root."""
        command = [self.executable, *args]
        logger.debug(f"Running git command: {' '.join(command)} (cwd={self.repo_path})")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.repo_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error(f"git executable not found: {self.executable}")
            return GitResult(False, f"git executable not found: {self.executable}")
        except OSError as e:
            logger.error(f"Failed to start git: {e}")
            return GitResult(False, f"Failed to start git: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"git {args[0]} timed out after {self.timeout}s")
            return GitResult(False, f"git {args[0]} timed out after {self.timeout}s")

        out = stdout.decode(errors="replace").strip()
        err = stderr.decode(errors="replace").strip()

        if process.returncode != 0:
            message = err or out or f"git {args[0]} exited with code {process.returncode}"
            logger.warning(f"git {args[0]} failed: returncode={process.returncode}, message={message}")
            return GitResult(False, message, out)

        logger.info(f"git {args[0]} completed")
        return GitResult(True, out or err, out)

    def is_repository(self) -> bool:
        return (self.repo_path / ".git").exists()

    async def init(self) -> GitResult:
        """Initialize a repository in the note root unless one exists."""
        if self.is_repository():
            return GitResult(True, "Already a git repository")
        return await self._run("init")

    async def configure_remote(self, url: str) -> GitResult:
        """Point the configured remote at ``url``, adding it when missing."""
        if not url.strip():
            return GitResult(False, "Remote URL must not be empty")

        init_result = await self.init()
        if not init_result.success:
            return init_result

        existing = await self._run("remote", "get-url", self.remote_name)
        if existing.success:
            return await self._run("remote", "set-url", self.remote_name, url)
        return await self._run("remote", "add", self.remote_name, url)

    async def ensure_remote(self, url: str) -> GitResult:
        """Add the configured remote with ``url`` unless it already exists.

        Unlike ``configure_remote`` an existing remote is left as it is.
        """
        init_result = await self.init()
        if not init_result.success:
            return init_result

        existing = await self._run("remote", "get-url", self.remote_name)
        if existing.success:
            return GitResult(True, f"Remote {self.remote_name} already set", existing.stdout)
        logger.info(f"Adding remote from saved configuration: name={self.remote_name}, url={url}")
        return await self._run("remote", "add", self.remote_name, url)

    async def stage_all(self) -> GitResult:
        return await self._run("add", "-A")

    async def has_changes(self) -> bool:
        result = await self._run("status", "--porcelain")
        return result.success and bool(result.stdout)

    async def commit(self, message: str = DEFAULT_COMMIT_MESSAGE) -> GitResult:
        """Commit staged changes. An empty commit is reported as success."""
        result = await self._run("commit", "-m", message)
        if not result.success and "nothing to commit" in (result.stdout or result.message):
            return GitResult(True, "Nothing to commit", result.stdout)
        return result

    async def current_branch(self) -> Optional[str]:
        if self.branch:
            return self.branch
        result = await self._run("rev-parse", "--abbrev-ref", "HEAD")
        if not result.success or not result.stdout or result.stdout == "HEAD":
            return None
        return result.stdout

    async def _remote_args(self) -> List[str]:
        branch = await self.current_branch()
        return [self.remote_name, branch] if branch else [self.remote_name]

    async def push(self) -> GitResult:
        return await self._run("push", *await self._remote_args())

    async def pull(self) -> GitResult:
        result = await self._run("pull", "--no-edit", *await self._remote_args())
        # a freshly created remote has no branch to pull from until the first push
        if not result.success and "couldn't find remote ref" in result.message:
            return GitResult(True, "Remote branch does not exist yet", result.stdout)
        return result

    async def sync(self, message: str = DEFAULT_COMMIT_MESSAGE) -> GitResult:
        """Stage everything, commit if needed, pull, then push.

        Stops at the first failing step and reports it. With a saved
        ``remote_url`` the repository and its remote are set up first when
        missing.
        """
        if self.remote_url and self.remote_url.strip():
            remote = await self.ensure_remote(self.remote_url.strip())
            if not remote.success:
                return GitResult(False, f"Remote setup failed: {remote.message}")

        if not self.is_repository():
            return GitResult(False, f"Not a git repository: {self.repo_path}")

        steps: List[str] = []

        staged = await self.stage_all()
        if not staged.success:
            return GitResult(False, f"Stage failed: {staged.message}")

        if await self.has_changes():
            committed = await self.commit(message)
            if not committed.success:
                return GitResult(False, f"Commit failed: {committed.message}")
            steps.append("committed")

        pulled = await self.pull()
        if not pulled.success:
            return GitResult(False, f"Pull failed: {pulled.message}")
        steps.append("pulled")

        pushed = await self.push()
        if not pushed.success:
            return GitResult(False, f"Push failed: {pushed.message}")
        steps.append("pushed")

        logger.info(f"Git sync completed: {', '.join(steps)}")
        return GitResult(True, f"Synced ({', '.join(steps)})")
