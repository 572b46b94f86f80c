"""Tests for subprocess and template helpers."""

import subprocess

import pytest

from rhagent.utils.process import run_command
from rhagent.utils.templates import render_template


@pytest.mark.asyncio
class TestRunCommand:
    """Test run_command against real binaries."""

    async def test_captures_stdout(self):
        result = await run_command(["echo", "hello"])

        assert result.returncode == 0
        assert result.stdout == "hello\n"

    async def test_feeds_stdin(self):
        result = await run_command(["cat"], input=b"payload")

        assert result.stdout == "payload"

    async def test_failure_raises_when_checked(self):
        with pytest.raises(subprocess.CalledProcessError):
            await run_command(["false"])

    async def test_failure_returned_when_unchecked(self):
        result = await run_command(["false"], check=False)

        assert result.returncode != 0


def test_render_template_keeps_trailing_newline():
    assert render_template("nameserver {{ ns }}\n", ns="10.10.10.1") == "nameserver 10.10.10.1\n"
