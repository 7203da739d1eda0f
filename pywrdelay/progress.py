# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation; either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.
#
# See LICENSE for more details.
#
# Copyright (c) 2026 ScyllaDB

import logging
import threading


logger = logging.getLogger(__name__)


class AtomicCounter:
    """Integer counter shared by all worker threads."""

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = threading.Lock()

    def increment(self, delta: int = 1) -> int:
        with self._lock:
            self._value += delta
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class ProgressMonitor(threading.Thread):
    """Background thread reporting completion milestones.

    Every ``interval`` seconds the counter is turned into an integer
    percentage of ``total_tasks``; a line is logged whenever that percentage
    is above the last one reported. Percentages the counter jumps over
    between two polls are not reported.
    """

    def __init__(self, counter: AtomicCounter, total_tasks: int, interval: float = 0.1):
        super().__init__(name="progress-monitor", daemon=True)
        self.counter = counter
        self.total_tasks = total_tasks
        self.interval = interval
        self.last_reported = 0
        self.reported = []
        self._stop_event = threading.Event()

    def poll(self):
        """Report the current percentage if it is a new milestone; returns it or None."""
        if self.total_tasks <= 0:
            return None
        pct = 100 * self.counter.value // self.total_tasks
        if pct <= self.last_reported:
            return None
        self.last_reported = pct
        self.reported.append(pct)
        logger.info(f"{pct}% completed")
        return pct

    def run(self):
        while not self._stop_event.wait(self.interval):
            self.poll()
        # the workers are joined by now, so this catches the final milestone
        self.poll()

    def stop(self, timeout: float | None = None):
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout=timeout)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
