# Gemini CLI provider: subprocess delegation to the `gemini` binary.
# Created: 2026-03-05
#
# The CLI keeps its own OAuth session (`gemini auth login`), so this provider
# only checks that the session exists and never handles tokens itself.

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from gemini_bridge.exceptions import AuthError, ProviderInvocationError
from gemini_bridge.models import AuthType, ToolCall
from gemini_bridge.providers.base import BaseProvider, build_prompt

logger = logging.getLogger(__name__)

CLI_SESSION = "cli-session"
DEFAULT_CREDS_FILE = Path.home() / ".gemini" / "oauth_creds.json"


class GeminiCliProvider(BaseProvider):
    """Delegates to ``gemini -m <model> -p <instruction>`` with files on stdin."""

    name = "gemini-cli"
    auth_type = AuthType.CLI

    def __init__(
        self,
        model: str,
        *,
        binary: str = "gemini",
        creds_file: Path | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.model = model
        self.binary = binary
        self.creds_file = creds_file or DEFAULT_CREDS_FILE

    def _binary_path(self) -> str | None:
        return shutil.which(self.binary)

    def is_available(self) -> bool:
        return self._binary_path() is not None

    def validate_auth(self) -> bool:
        return self.is_available() and self.creds_file.exists()

    async def authenticate(self) -> str:
        if not self.is_available():
            raise AuthError(f"Gemini CLI '{self.binary}' not found on PATH")
        if not self.creds_file.exists():
            raise AuthError("Gemini CLI is not logged in. Run: gemini auth login")
        return CLI_SESSION

    async def invoke(self, tool_call: ToolCall, token: str, timeout: float) -> str:
        binary = self._binary_path()
        if binary is None:
            raise ProviderInvocationError(f"Gemini CLI '{self.binary}' not found on PATH")

        prompt = build_prompt(tool_call)
        try:
            proc = await asyncio.create_subprocess_exec(
                binary,
                "-m",
                self.model,
                "-p",
                prompt.instruction,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(tool_call.working_directory),
            )
        except OSError as e:
            raise ProviderInvocationError(f"Failed to start Gemini CLI: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(input=prompt.context.encode()), timeout=timeout
            )
        except TimeoutError as e:
            raise ProviderInvocationError(f"Gemini CLI timed out after {timeout}s") from e
        finally:
            # Also runs when an outer timeout cancels us
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        output = stdout.decode("utf-8", errors="replace").strip()
        if proc.returncode:
            error = stderr.decode("utf-8", errors="replace").strip()
            raise ProviderInvocationError(
                f"Gemini CLI exited with {proc.returncode}: {error or 'no output'}"
            )
        if not output:
            raise ProviderInvocationError("Gemini CLI returned an empty response")
        return output
