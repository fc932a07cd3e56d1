"""Estimated progress for a task while its remote call is in flight."""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

PROGRESS_CEILING = 90


class ProgressTicker:
    """Emit rising progress estimates at a fixed cadence until stopped.

    Estimates never exceed ``ceiling``; only a completed task reaches 100.
    """

    def __init__(
        self,
        *,
        interval_s: float,
        on_tick: Callable[[int], None],
        ceiling: int = PROGRESS_CEILING,
        rng: random.Random | None = None,
    ) -> None:
        self.interval_s = interval_s
        self.ceiling = ceiling
        self.progress = 0
        self._on_tick = on_tick
        self._rng = rng or random.Random()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> ProgressTicker:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="progress-ticker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            if self.progress >= self.ceiling:
                continue
            self.progress = min(self.ceiling, self.progress + self._rng.randint(1, 11))
            try:
                self._on_tick(self.progress)
            except Exception as exc:  # noqa: BLE001
                logger.warning("progress_ticker event=tick_failed reason=%s", exc)
