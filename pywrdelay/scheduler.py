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
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import timedelta
from typing import NamedTuple


logger = logging.getLogger(__name__)


class RunResult(NamedTuple):
    elapsed: timedelta
    total_tasks: int
    threads: int
    completed: int
    failures: int
    read_misses: int


def partition(total_tasks: int, total_workers: int) -> list[range]:
    """Split ``[0, total_tasks)`` into one contiguous range per worker.

    Every worker gets ``total_tasks // total_workers`` indices; the remainder
    at the end of the index space is not assigned to anyone.
    """
    if total_workers <= 0:
        raise ValueError(f"total_workers must be positive, got {total_workers}")
    per_worker = total_tasks // total_workers
    return [range(i * per_worker, i * per_worker + per_worker) for i in range(total_workers)]


def unscheduled_tasks(total_tasks: int, total_workers: int) -> int:
    return total_tasks - total_workers * (total_tasks // total_workers)


class RunTimer:
    """Wall clock around the pool run."""

    def __init__(self):
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.end_time = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.perf_counter()

    @property
    def elapsed(self) -> timedelta:
        if self.start_time is None:
            return timedelta(0)
        end_time = self.end_time if self.end_time is not None else time.perf_counter()
        return timedelta(seconds=end_time - self.start_time)


class WorkerPool:
    """Fixed set of worker threads, each running its own index range in order.

    ``generator_factory(worker_id)`` returns the workload generator that the
    worker uses for all of its tasks. ``stop_event`` is checked between tasks.
    """

    def __init__(self, executor, generator_factory, stop_event: threading.Event | None = None):
        self.executor = executor
        self.generator_factory = generator_factory
        self.stop_event = stop_event or threading.Event()
        self.aborted_workers = []
        self.scheduled = 0
        self.timer = RunTimer()

    def _run_range(self, worker_id: int, indices: range):
        generator = self.generator_factory(worker_id)
        for idx in indices:
            if self.stop_event.is_set():
                logger.debug(f"Worker {worker_id} stopped before task {idx}")
                return
            self.executor.execute(idx, generator)

    def run(self, total_tasks: int, total_workers: int):
        ranges = partition(total_tasks, total_workers)
        dropped = unscheduled_tasks(total_tasks, total_workers)
        if dropped:
            logger.warning(
                f"{total_tasks} tasks don't divide over {total_workers} threads, "
                f"the last {dropped} tasks will not run"
            )

        self.aborted_workers = []
        self.scheduled = sum(len(indices) for indices in ranges)
        self.timer = RunTimer()
        with self.timer, ThreadPoolExecutor(max_workers=total_workers, thread_name_prefix="wrdelay-worker") as pool:
            futures = {
                pool.submit(self._run_range, worker_id, indices): worker_id
                for worker_id, indices in enumerate(ranges)
            }
            try:
                wait(futures)
            except KeyboardInterrupt:
                logger.warning("Interrupted, stopping workers after their current task")
                self.stop_event.set()
                wait(futures)

        for future, worker_id in sorted(futures.items(), key=lambda item: item[1]):
            if (error := future.exception()) is not None:
                self.aborted_workers.append(worker_id)
                logger.error(f"Worker {worker_id} aborted its remaining tasks: {error!r}")

        return self.timer.elapsed
