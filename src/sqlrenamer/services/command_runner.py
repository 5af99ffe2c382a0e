"""Subprocess execution service for SQLRenamer."""

import subprocess
from typing import Iterable, List, Optional

from sqlrenamer.constants import SECRET_MASK
from sqlrenamer.errors import RenamerError


class CommandRunner:
    """Runs external commands (sqlcmd, net, reg) with consistent error handling."""

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    @staticmethod
    def mask(text: str, secrets: Iterable[str]) -> str:
        for secret in secrets:
            if secret:
                text = text.replace(secret, SECRET_MASK)
        return text

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        secrets: Optional[Iterable[str]] = None,
    ) -> subprocess.CompletedProcess:
        hidden = [secret for secret in (secrets or []) if secret]
        cmd_str = self.mask(" ".join(cmd), hidden)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = subprocess.run(
                cmd,
                text=True,
                errors="replace",
                capture_output=capture_output,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise RenamerError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise RenamerError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except Exception as exc:
            raise RenamerError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", self.mask(result.stdout.strip(), hidden))

        if result.returncode == 0:
            return result

        output = ""
        if capture_output:
            output = ((result.stderr or "").strip() or (result.stdout or "").strip())
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if output:
            message = f"{message}\n{self.mask(output, hidden)}"

        if check:
            raise RenamerError(message)

        self.logger.debug(message)
        return result
