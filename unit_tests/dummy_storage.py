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

import threading

from cassandra import OperationTimedOut


class DummyStorageAdapter:
    """In-memory stand-in for CqlStorageAdapter.

    ``missing`` holds (index, table) pairs whose read returns no row,
    ``fail_on`` holds task indices whose batch write raises OperationTimedOut.
    """

    def __init__(self, config=None, missing=(), fail_on=()):
        self.config = config
        self.missing = set(missing)
        self.fail_on = set(fail_on)
        self.batches = []
        self.reads = []
        self.calls = []
        self._lock = threading.Lock()
        self._current = threading.local()

    def connect(self):
        self.calls.append("connect")

    def setup_schema(self):
        self.calls.append("setup_schema")

    def prepare_statements(self):
        self.calls.append("prepare_statements")

    def shutdown(self):
        self.calls.append("shutdown")

    def execute_batch(self, rows):
        index = rows[0].ids[0]
        self._current.index = index
        if index in self.fail_on:
            raise OperationTimedOut(f"write of task {index} timed out")
        with self._lock:
            self.batches.append((index, tuple(rows)))

    def execute_read(self, table, key):
        index = self._current.index
        with self._lock:
            self.reads.append((index, table, key))
        if (index, table) in self.missing:
            return None
        return {"id": key}
