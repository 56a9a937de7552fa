"""Background progress reporting for a running crawl."""

from __future__ import annotations

import logging
import sys
import threading
import time


def format_progress(stats, elapsed: float) -> str:
    line = (
        f"[{stats.sectors_done.load()}/{stats.sectors_total} sectors] "
        f"{stats.businesses_found.load()} businesses | {stats.businesses_stored.load()} stored | "
        f"{stats.errors.load()} errors"
    )
    rate_limits = stats.rate_limits.load()
    if rate_limits:
        line += f" | {rate_limits} rate-limited"
    return f"{line} | {int(elapsed)}s"


class ProgressReporter:
    """Sidecar thread that polls ``Stats`` without touching the workers.

    Writes a self-overwriting status line to stderr every ``tick`` seconds
    (unless suppressed) and a ``PROGRESS`` line to the session log every
    ``log_interval`` seconds.
    """

    def __init__(
        self,
        stats,
        session_log: logging.Logger,
        suppress_stderr: bool = False,
        tick: float = 2.0,
        log_interval: float = 10.0,
        stream=None,
    ):
        self.stats = stats
        self.session_log = session_log
        self.suppress_stderr = suppress_stderr
        self.tick = tick
        self.log_interval = log_interval
        self.stream = stream if stream is not None else sys.stderr
        self.started_at = time.monotonic()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._loop, name="geotap-progress", daemon=True)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def start(self) -> None:
        self.started_at = time.monotonic()
        self._thread.start()

    def stop(self) -> None:
        self._done.set()
        if self._thread.is_alive():
            self._thread.join(timeout=self.tick + 1)
        if not self.suppress_stderr:
            self.stream.write("\r" + format_progress(self.stats, self.elapsed) + "\n")
            self.stream.flush()

    def log_progress(self) -> None:
        s = self.stats
        self.session_log.info(
            "PROGRESS sectors=%d/%d found=%d stored=%d errors=%d rate_limits=%d elapsed=%ds",
            s.sectors_done.load(),
            s.sectors_total,
            s.businesses_found.load(),
            s.businesses_stored.load(),
            s.errors.load(),
            s.rate_limits.load(),
            int(self.elapsed),
        )

    def _loop(self) -> None:
        next_log = time.monotonic() + self.log_interval
        while not self._done.wait(self.tick):
            if not self.suppress_stderr:
                self.stream.write("\r" + format_progress(self.stats, self.elapsed))
                self.stream.flush()
            if time.monotonic() >= next_log:
                self.log_progress()
                next_log = time.monotonic() + self.log_interval
