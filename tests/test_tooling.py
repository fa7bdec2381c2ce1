from __future__ import annotations

import asyncio
import shutil

import pytest

from app.core.errors import DerivationError, ToolUnavailableError
from app.ingest.tooling import ToolWorkspace, run_tool, tool_available


def test_missing_binary_is_reported_as_unavailable():
    assert tool_available("definitely-not-a-real-binary") is False
    with pytest.raises(ToolUnavailableError):
        asyncio.run(run_tool(["definitely-not-a-real-binary", "-version"], timeout=1))


@pytest.mark.skipif(shutil.which("sleep") is None, reason="sleep not installed")
def test_timeout_kills_the_process():
    with pytest.raises(DerivationError) as excinfo:
        asyncio.run(run_tool(["sleep", "5"], timeout=0.2))
    assert excinfo.value.error_code == "tool_timeout"


@pytest.mark.skipif(shutil.which("false") is None, reason="false not installed")
def test_non_zero_exit_is_a_derivation_error():
    with pytest.raises(DerivationError) as excinfo:
        asyncio.run(run_tool(["false"], timeout=5))
    assert "status 1" in excinfo.value.message


@pytest.mark.skipif(shutil.which("echo") is None, reason="echo not installed")
def test_stdout_is_captured():
    result = asyncio.run(run_tool(["echo", "hello"], timeout=5))
    assert result.returncode == 0
    assert result.stdout.strip() == b"hello"


def test_workspace_is_removed_on_every_exit_path():
    with ToolWorkspace() as workspace:
        written = workspace.write("a.bin", b"data")
        root = workspace.path
        assert written.read_bytes() == b"data"
    assert not root.exists()

    with pytest.raises(RuntimeError):
        with ToolWorkspace() as workspace:
            root = workspace.path
            raise RuntimeError("derivation crashed")
    assert not root.exists()


def test_missing_or_empty_output_is_a_failure():
    with ToolWorkspace() as workspace:
        with pytest.raises(DerivationError):
            workspace.read_output("never-written.mp4")
        workspace.write("empty.mp4", b"")
        with pytest.raises(DerivationError) as excinfo:
            workspace.read_output("empty.mp4")
        assert excinfo.value.error_code == "empty_output"
