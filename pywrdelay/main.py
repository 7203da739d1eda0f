#!/usr/bin/env python3

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

"""
pywrdelay - measures write-then-read delay and throughput against a Cassandra/ScyllaDB cluster.

Usage:
    pywrdelay 192.168.1.10 [username password]
    pywrdelay n=100000 cl=LOCAL_QUORUM -rate threads=20 -node 192.168.1.10

Note:
    Tasks are split evenly over the threads; when n doesn't divide by the
    thread count the trailing remainder is not executed.
"""

import logging
import sys
import threading
from datetime import datetime

from cassandra import consistency_value_to_name

from pywrdelay.config import ConfigError, HELP_TEXT, parse_cli_args
from pywrdelay.executor import TaskExecutor
from pywrdelay.progress import AtomicCounter, ProgressMonitor
from pywrdelay.scheduler import RunResult, WorkerPool
from pywrdelay.storage import STORAGE_ERRORS, CqlStorageAdapter
from pywrdelay.workload import WorkloadGenerator, make_rng


logger = logging.getLogger(__name__)


class TimestampFormatter(logging.Formatter):
    """Formats asctime as 'YYYY-MM-DD HH:MM:SS.ffffff' (local time)."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created).strftime(datefmt or "%Y-%m-%d %H:%M:%S.%f")


def setup_logging(level=logging.INFO):
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(TimestampFormatter("%(asctime)s - %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)


class WriteReadDelay:
    def __init__(self, config, adapter_factory=CqlStorageAdapter):
        self.config = config
        self.adapter_factory = adapter_factory
        self.stop_event = threading.Event()
        self.executor = None

    def _generator_factory(self, worker_id):
        return WorkloadGenerator(
            tables=self.config.tables,
            id_columns=self.config.id_columns,
            payload_size=self.config.payload_size,
            rng=make_rng(self.config.seed, worker_id),
        )

    def run_workload(self, adapter) -> RunResult:
        """Run all tasks against an already prepared adapter."""
        completed = AtomicCounter()
        self.executor = TaskExecutor(adapter, completed=completed, fail_fast=self.config.fail_fast)
        pool = WorkerPool(self.executor, self._generator_factory, stop_event=self.stop_event)

        with ProgressMonitor(completed, self.config.num_tasks, interval=self.config.progress_interval):
            elapsed = pool.run(self.config.num_tasks, self.config.threads)

        return RunResult(
            elapsed=elapsed,
            total_tasks=self.config.num_tasks,
            threads=self.config.threads,
            completed=completed.value,
            failures=self.executor.failures.value,
            read_misses=self.executor.read_misses.value,
        )

    def run(self) -> RunResult | None:
        adapter = self.adapter_factory(self.config)
        try:
            try:
                adapter.connect()
                adapter.setup_schema()
                adapter.prepare_statements()
            except STORAGE_ERRORS as e:
                logger.error(f"Setup failed; aborting run: {e}")
                return None

            logger.info(
                f"Running test: {self.config.threads} threads x {self.config.tasks_per_thread} tasks, "
                f"CL={consistency_value_to_name(self.config.consistency_level)}, tables={self.config.tables}"
            )
            result = self.run_workload(adapter)
        finally:
            adapter.shutdown()

        logger.info("Done")
        self.print_summary(result)
        return result

    def print_summary(self, result: RunResult):
        logger.info(f"{result.total_tasks} tasks executed in {result.elapsed} using {result.threads} threads")
        logger.info(f"Completed: {result.completed}, failed: {result.failures}, read misses: {result.read_misses}")

        seconds = result.elapsed.total_seconds()
        task_rate = result.completed / seconds if seconds > 0 else 0
        stats = self.executor.latency_stats()
        w, r, t = stats["write"], stats["read"], stats["task"]

        print(f"""\
Task rate                 : {task_rate:,.0f} task/s
Latency mean              :  {t["mean"]:.1f} ms [WRITE: {w["mean"]:.1f} ms, READ: {r["mean"]:.1f} ms]
Latency median            :  {t["median"]:.1f} ms [WRITE: {w["median"]:.1f} ms, READ: {r["median"]:.1f} ms]
Latency 95th percentile   :  {t["p95"]:.1f} ms [WRITE: {w["p95"]:.1f} ms, READ: {r["p95"]:.1f} ms]
Latency 99th percentile   :  {t["p99"]:.1f} ms [WRITE: {w["p99"]:.1f} ms, READ: {r["p99"]:.1f} ms]
Latency 99.9th percentile :  {t["p999"]:.1f} ms [WRITE: {w["p999"]:.1f} ms, READ: {r["p999"]:.1f} ms]
Latency max               :  {t["max"]:,.1f} ms [WRITE: {w["max"]:,.1f} ms, READ: {r["max"]:,.1f} ms]""")


def wait_for_enter():
    logger.info("Press ENTER to exit")
    try:
        input()
    except EOFError:
        pass


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    setup_logging()

    if not argv:
        print(__doc__)
        return 1
    if "--help" in argv or "-h" in argv:
        print(HELP_TEXT)
        return 0

    try:
        config = parse_cli_args(argv)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    result = WriteReadDelay(config).run()
    if result is None:
        return 1

    if config.wait_for_enter:
        wait_for_enter()
    return 0


if __name__ == "__main__":
    sys.exit(main())
