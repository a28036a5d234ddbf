"""External command execution for hawkradeploy."""

import subprocess
import time
from typing import List, Optional

from hawkradeploy.errors import DeployError


class CommandRunner:
    """Runs package-manager, Docker and system commands.

    Missing binaries, timeouts and (with ``check``) non-zero exits surface as
    ``DeployError``. With ``check=False`` the failed ``CompletedProcess`` is
    returned so callers can decide whether the failure matters.
    """

    def __init__(self, logger):
        self.logger = logger

    def _execute(self, cmd: List[str], capture_output: bool, timeout, input_text):
        try:
            return subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=timeout,
                input=input_text,
            )
        except FileNotFoundError as exc:
            raise DeployError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except OSError as exc:
            raise DeployError(f"Failed to execute command: {' '.join(cmd)}. {exc}") from exc

    @staticmethod
    def _failure_message(cmd_str: str, result: subprocess.CompletedProcess, capture_output: bool) -> str:
        message = f"Command failed ({result.returncode}): {cmd_str}"
        stderr = (result.stderr or "").strip() if capture_output else ""
        return f"{message}\n{stderr}" if stderr else message

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        input_text: Optional[str] = None,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        quiet: bool = False,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        attempts = max(1, retry_count + 1)

        for attempt in range(1, attempts + 1):
            self.logger.debug("Executing (%s/%s): %s", attempt, attempts, cmd_str)
            last_attempt = attempt == attempts

            try:
                result = self._execute(cmd, capture_output, timeout, input_text)
            except subprocess.TimeoutExpired as exc:
                if last_attempt:
                    raise DeployError(f"Command timed out after {timeout}s: {cmd_str}") from exc
                self.logger.warning("Command timed out, retrying in %.1fs: %s", retry_backoff_seconds, cmd_str)
                time.sleep(retry_backoff_seconds)
                continue

            if capture_output and result.stdout:
                self.logger.debug("Command output: %s", result.stdout.strip())
            if result.returncode == 0:
                return result

            message = self._failure_message(cmd_str, result, capture_output)
            if not last_attempt:
                self.logger.warning("%s\nRetrying in %.1fs.", message, retry_backoff_seconds)
                time.sleep(retry_backoff_seconds)
                continue
            if check:
                raise DeployError(message)

            if quiet:
                self.logger.debug(message)
            else:
                self.logger.warning(message)
            return result

        raise DeployError(f"Command failed after retries: {cmd_str}")
