from __future__ import annotations

import asyncio
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Optional, Sequence

from app.core.errors import DerivationError, ToolUnavailableError
from app.core.logging import get_logger

logger = get_logger(component="tooling")

_STDERR_TAIL = 2000


@dataclass(slots=True)
class ToolResult:
    returncode: int
    stdout: bytes
    stderr: bytes


def resolve_tool(binary: str) -> Optional[str]:
    """Return the executable path for ``binary``; looked up on every call, never cached."""
    return shutil.which(binary)


def tool_available(*binaries: str) -> bool:
    return all(resolve_tool(binary) is not None for binary in binaries)


async def run_tool(args: Sequence[str], *, timeout: float, label: str | None = None) -> ToolResult:
    """Run an external binary to completion.

    The child process is killed and reaped on timeout and on cancellation of the
    awaiting task, so no orphaned transcodes outlive the request.

    Raises:
        ToolUnavailableError: the binary cannot be resolved.
        DerivationError: the process timed out or exited non-zero.
    """
    binary = args[0]
    executable = resolve_tool(binary)
    name = label or Path(binary).name
    if executable is None:
        raise ToolUnavailableError(f"{name} is not available", details=binary)

    process = await asyncio.create_subprocess_exec(
        executable,
        *args[1:],
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _terminate(process)
        logger.warning("tool_timeout", tool=name, timeout_s=timeout)
        raise DerivationError(f"{name} timed out after {timeout:g}s", error_code="tool_timeout")
    except asyncio.CancelledError:
        await _terminate(process)
        logger.info("tool_cancelled", tool=name)
        raise

    if process.returncode != 0:
        tail = stderr.decode("utf-8", errors="replace").strip()[-_STDERR_TAIL:]
        logger.warning("tool_failed", tool=name, returncode=process.returncode, stderr=tail)
        raise DerivationError(f"{name} exited with status {process.returncode}", details=tail or None)
    return ToolResult(returncode=process.returncode or 0, stdout=stdout, stderr=stderr)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


class ToolWorkspace:
    """Scoped temporary directory for one tool invocation, removed on every exit path."""

    def __init__(self, prefix: str = "ingest-"):
        self.prefix = prefix
        self.path: Path | None = None

    def __enter__(self) -> "ToolWorkspace":
        self.path = Path(tempfile.mkdtemp(prefix=self.prefix))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.path is not None:
            shutil.rmtree(self.path, ignore_errors=True)
            self.path = None

    def file(self, name: str) -> Path:
        if self.path is None:
            raise RuntimeError("workspace is not open")
        return self.path / name

    def write(self, name: str, payload: bytes) -> Path:
        target = self.file(name)
        target.write_bytes(payload)
        return target

    def read_output(self, name: str) -> bytes:
        """Read a tool's output file; a missing or empty file counts as a failed derivation."""
        target = self.file(name)
        if not target.exists():
            raise DerivationError(f"{name} was not produced", error_code="empty_output")
        data = target.read_bytes()
        if not data:
            raise DerivationError(f"{name} is empty", error_code="empty_output")
        return data


__all__ = ["ToolResult", "ToolWorkspace", "resolve_tool", "run_tool", "tool_available"]
