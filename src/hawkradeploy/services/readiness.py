"""Backend readiness polling and admin credential extraction."""

import re
import time
from typing import Callable, Optional

from hawkradeploy.constants import CRASH_LOG_LINES, LOG_TAIL_LINES, POLL_INTERVAL, READINESS_TIMEOUT
from hawkradeploy.models import ReadinessOutcome, ReadinessResult

_READY_PATTERN = re.compile(r"admin.*password|password.*admin", re.IGNORECASE)
_PASSWORD_VALUE = re.compile(r"password:\s(.+)")
_PASSWORD_FALLBACK = re.compile(r".*password[: ]*", re.IGNORECASE)
CRASH_STATES = ("exited", "dead")


class ReadinessService:
    """Waits for the backend to log its generated admin credential.

    ``logs`` and ``state`` are callables returning the backend log tail and
    its lifecycle state. A crash ends the wait at once; a timeout does not
    mean failure, the service may simply be slow to start.
    """

    def __init__(self, logger, console, sleep: Callable[[float], None] = time.sleep):
        self.logger = logger
        self.console = console
        self.sleep = sleep

    def wait(
        self,
        logs: Callable[[Optional[int]], str],
        state: Callable[[], Optional[str]],
        timeout: int = READINESS_TIMEOUT,
        interval: int = POLL_INTERVAL,
    ) -> ReadinessResult:
        self.console.print(
            f"[blue]Waiting for backend to become ready (up to {timeout}s)...[/blue]"
        )
        elapsed = 0
        while elapsed < timeout:
            if _READY_PATTERN.search(logs(LOG_TAIL_LINES) or ""):
                self.console.print("[green]Backend is ready.[/green]")
                return ReadinessResult(ReadinessOutcome.READY, elapsed)

            current = state()
            if current in CRASH_STATES:
                self.console.print("")
                self.logger.error("Backend container is %s after %ss", current, elapsed)
                return ReadinessResult(
                    ReadinessOutcome.CRASHED,
                    elapsed,
                    state=current,
                    logs=logs(CRASH_LOG_LINES) or "",
                )

            self.sleep(interval)
            elapsed += interval
            self.console.print(f"    ... {elapsed}s elapsed", end="\r")

        self.console.print("")
        self.logger.warning("Backend did not produce credentials within %ss", timeout)
        return ReadinessResult(ReadinessOutcome.TIMED_OUT, elapsed)

    @staticmethod
    def extract_admin_password(logs: str) -> Optional[str]:
        line = next(
            (candidate for candidate in (logs or "").splitlines() if "password" in candidate.lower()),
            None,
        )
        if line is None:
            return None

        match = _PASSWORD_VALUE.search(line)
        if match:
            value = match.group(1).strip()
        else:
            value = _PASSWORD_FALLBACK.sub("", line, count=1).strip()
        return value or None
