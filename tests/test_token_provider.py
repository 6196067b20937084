import asyncio
import os
import sys

import pytest

from index_control.core.errors import CredentialRefreshError
from index_control.integrations.credentials.token_provider import CommandAccessTokenProvider


@pytest.mark.asyncio
async def test_returns_trimmed_stdout():
    provider = CommandAccessTokenProvider([sys.executable, "-c", "print('  ya29.token  ')"])
    assert await provider() == "ya29.token"


@pytest.mark.asyncio
async def test_non_zero_exit_is_a_refresh_error():
    provider = CommandAccessTokenProvider([sys.executable, "-c", "import sys; sys.exit(3)"])
    with pytest.raises(CredentialRefreshError):
        await provider.fetch_token()


@pytest.mark.asyncio
async def test_empty_output_is_a_refresh_error():
    provider = CommandAccessTokenProvider([sys.executable, "-c", "pass"])
    with pytest.raises(CredentialRefreshError):
        await provider.fetch_token()


@pytest.mark.asyncio
async def test_missing_binary_is_a_refresh_error():
    provider = CommandAccessTokenProvider("definitely-not-an-installed-binary print-access-token")
    with pytest.raises(CredentialRefreshError):
        await provider.fetch_token()


def test_empty_command_is_rejected():
    with pytest.raises(ValueError):
        CommandAccessTokenProvider("")


@pytest.mark.asyncio
async def test_cancelled_refresh_kills_the_command(tmp_path):
    pid_file = tmp_path / "pid"
    script = f"import os, time; open({str(pid_file)!r}, 'w').write(str(os.getpid())); time.sleep(30)"
    provider = CommandAccessTokenProvider([sys.executable, "-c", script])

    task = asyncio.create_task(provider.fetch_token())
    for _ in range(100):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
