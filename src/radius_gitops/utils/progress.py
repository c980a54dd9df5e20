"""Progress spinner and bounded polling."""

from __future__ import annotations

import time
from typing import Callable, Optional

from rich.console import Console
from rich.status import Status


class Spinner:
    """Status line shown while a long external command runs.

    Wraps :meth:`rich.console.Console.status`; nothing is shown when the
    console is not a terminal.
    """

    def __init__(
        self,
        message: str,
        console: Optional[Console] = None,
        spinner: str = "dots",
    ) -> None:
        self.message = message
        self.console = console or Console(stderr=True)
        self.spinner = spinner
        self._status: Optional[Status] = None

    @property
    def running(self) -> bool:
        return self._status is not None

    def start(self) -> "Spinner":
        if self._status is None and self.console.is_terminal:
            status = self.console.status(self.message, spinner=self.spinner)
            self._status = status.__enter__()
        return self

    def stop(self) -> None:
        status, self._status = self._status, None
        if status is not None:
            status.__exit__(None, None, None)

    def __enter__(self) -> "Spinner":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float = 2.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds have passed.

    Returns False on timeout; the caller reports that as information rather
    than an error.
    """
    deadline = clock() + timeout
    while True:
        if predicate():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining))
