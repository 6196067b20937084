from __future__ import annotations

import asyncio
import shlex
from typing import List, Sequence, Union

from index_control.core.errors import CredentialRefreshError
from index_control.logging.logger import get_logger

log = get_logger(__name__)


class CommandAccessTokenProvider:
    """
    Obtain a short-lived storage access token by running an external command
    (by default `gcloud auth print-access-token`) and reading its stdout.

    The token itself is never logged.
    """

    def __init__(self, command: Union[str, Sequence[str]]) -> None:
        argv: List[str] = shlex.split(command) if isinstance(command, str) else list(command)
        if not argv:
            raise ValueError("Access token command must not be empty.")
        self._argv = argv

    async def __call__(self) -> str:
        return await self.fetch_token()

    async def fetch_token(self) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *self._argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CredentialRefreshError(f"Failed to start '{self._argv[0]}': {exc}") from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise CredentialRefreshError(
                f"'{self._argv[0]}' exited with status {process.returncode}: {detail[:256]}"
            )

        token = stdout.decode("utf-8", errors="replace").strip()
        if not token:
            raise CredentialRefreshError(f"'{self._argv[0]}' produced an empty access token")
        log.debug("[CREDENTIALS] Obtained a fresh access token (%d chars)", len(token))
        return token
