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
import time

from hdrh.histogram import HdrHistogram

from pywrdelay.progress import AtomicCounter
from pywrdelay.storage import STORAGE_ERRORS, table_name


logger = logging.getLogger(__name__)

# 1ns .. 1h, 3 significant digits
HISTOGRAM_ARGS = (1, 60 * 60 * 1_000_000_000, 3)


def new_histogram() -> HdrHistogram:
    return HdrHistogram(*HISTOGRAM_ARGS)


def histogram_stats(histogram):
    """Extract latency stats from histogram as dict (values in ms)."""
    if histogram.get_total_count() > 0:
        return {
            "mean": histogram.get_mean_value() / 1_000_000.0,
            "median": histogram.get_value_at_percentile(50.0) / 1_000_000.0,
            "p95": histogram.get_value_at_percentile(95.0) / 1_000_000.0,
            "p99": histogram.get_value_at_percentile(99.0) / 1_000_000.0,
            "p999": histogram.get_value_at_percentile(99.9) / 1_000_000.0,
            "max": histogram.get_max_value() / 1_000_000.0,
            "count": histogram.get_total_count(),
        }
    return {"mean": 0.0, "median": 0.0, "p95": 0.0, "p99": 0.0, "p999": 0.0, "max": 0.0, "count": 0}


def _elapsed_ns(t0: float) -> int:
    return max(1, int((time.perf_counter() - t0) * 1_000_000_000))


class TaskExecutor:
    """Runs one task: a LOGGED batch write to every table, then one read per table.

    The adapter needs ``execute_batch(rows)`` and ``execute_read(table, key)``
    (first row or None). ``completed`` counts every task whose write and reads
    were all attempted, read misses included.

    With ``fail_fast`` a storage error escapes ``execute`` and ends the calling
    worker's range. Otherwise the error is logged, counted in ``failures``, and
    the task is not counted as completed.
    """

    def __init__(self, adapter, completed: AtomicCounter | None = None, fail_fast: bool = False):
        self.adapter = adapter
        self.completed = completed or AtomicCounter()
        self.fail_fast = fail_fast
        self.failures = AtomicCounter()
        self.read_misses = AtomicCounter()

        self.lock = threading.Lock()
        self.write_histogram = new_histogram()
        self.read_histogram = new_histogram()
        self.task_histogram = new_histogram()

    def _record(self, write_ns, read_ns, task_ns):
        with self.lock:
            self.write_histogram.record_value(write_ns)
            for latency in read_ns:
                self.read_histogram.record_value(latency)
            self.task_histogram.record_value(task_ns)

    def _perform_io(self, unit):
        task_start = time.perf_counter()
        self.adapter.execute_batch(unit.rows)
        write_ns = _elapsed_ns(task_start)

        read_ns = []
        for table in unit.read_keys:
            t0 = time.perf_counter()
            row = self.adapter.execute_read(table, table)
            read_ns.append(_elapsed_ns(t0))
            if row is None:
                self.read_misses.increment()
                logger.warning(f"Select failed for index {unit.index} on table {table_name(table)}")

        self._record(write_ns, read_ns, _elapsed_ns(task_start))

    def execute(self, idx: int, generator) -> bool:
        """Run task ``idx`` with units from ``generator``; returns False if it failed."""
        unit = generator.generate(idx)
        try:
            self._perform_io(unit)
        except STORAGE_ERRORS as e:
            if self.fail_fast:
                raise
            self.failures.increment()
            logger.error(f"Task {idx} failed: {e!r}")
            return False
        self.completed.increment()
        return True

    def latency_stats(self):
        with self.lock:
            return {
                "write": histogram_stats(self.write_histogram),
                "read": histogram_stats(self.read_histogram),
                "task": histogram_stats(self.task_histogram),
            }
