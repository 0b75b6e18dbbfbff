"""Scoped external command execution handed to tools through their context."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from agentloop.core.models import AgentPermissions, CommandResult

logger = logging.getLogger(__name__)


class CommandSandbox:
    """Runs executables without a shell, confined to the project root.

    Commands are refused for agents lacking terminal access and killed once
    ``timeout`` elapses.
    """

    def __init__(
        self,
        project_root: Path,
        permissions: AgentPermissions,
        *,
        timeout: float = 60.0,
        max_output: int = 20_000,
    ) -> None:
        self._root = project_root.resolve()
        self._permissions = permissions
        self._timeout = timeout
        self._max_output = max_output

    def _resolve_cwd(self, cwd: Optional[str]) -> Path:
        if not cwd:
            return self._root
        candidate = (self._root / cwd).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise PermissionError(f"Working directory '{cwd}' is outside the project root")
        return candidate

    async def run(self, command: str, args: Sequence[str] = (), cwd: Optional[str] = None) -> CommandResult:
        if not self._permissions.terminal_access:
            raise PermissionError("Agent is not permitted to run terminal commands")
        workdir = self._resolve_cwd(cwd)
        logger.info(f"[CommandSandbox] Running {command} {' '.join(args)} in {workdir}")

        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(workdir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult(stdout="", stderr=f"Command timed out after {self._timeout}s", exit_code=None)
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        return CommandResult(
            stdout=stdout.decode(errors="replace")[: self._max_output],
            stderr=stderr.decode(errors="replace")[: self._max_output],
            exit_code=process.returncode,
        )
