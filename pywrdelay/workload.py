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

import base64
import random
from datetime import datetime, timezone
from typing import NamedTuple


class TableRow(NamedTuple):
    table: int
    ids: tuple[int, ...]
    payload: str
    written_at: datetime

    @property
    def bind_values(self) -> tuple:
        """Values for the prepared insert: id0..idN, name, client_date."""
        return (*self.ids, self.payload, self.written_at)


class WorkloadUnit(NamedTuple):
    """Everything one task writes and reads, built from its index."""

    index: int
    rows: tuple[TableRow, ...]

    @property
    def read_keys(self) -> tuple[int, ...]:
        # Reads look up the table number, not the index that was just written.
        return tuple(range(len(self.rows)))


def make_rng(seed: int, worker_id: int) -> random.Random:
    """Independent random source for one worker thread."""
    return random.Random(seed + worker_id)


class WorkloadGenerator:
    """Builds WorkloadUnits; not thread-safe, give every worker its own instance."""

    def __init__(self, tables: int, id_columns: int = 10, payload_size: int = 1000, rng: random.Random | None = None):
        self.tables = tables
        self.id_columns = id_columns
        self.payload_size = payload_size
        self.rng = rng or random.Random()

    def _payload(self) -> str:
        return base64.b64encode(self.rng.randbytes(self.payload_size)).decode("ascii")

    def generate(self, idx: int) -> WorkloadUnit:
        ids = tuple(range(idx, idx + self.id_columns))
        rows = tuple(
            TableRow(table=table, ids=ids, payload=self._payload(), written_at=datetime.now(timezone.utc))
            for table in range(self.tables)
        )
        return WorkloadUnit(index=idx, rows=rows)
