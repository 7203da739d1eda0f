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
from unittest.mock import MagicMock

import pytest
from cassandra import ConsistencyLevel
from cassandra.query import BatchType

from pywrdelay import storage
from pywrdelay.config import parse_cli_args
from pywrdelay.storage import CqlStorageAdapter, create_table_cql, insert_cql, select_cql
from pywrdelay.workload import WorkloadGenerator


@pytest.fixture
def config():
    return parse_cli_args(["10.0.0.1", "cl=QUORUM", "-nowait"])


@pytest.fixture
def cluster(monkeypatch):
    cluster = MagicMock()
    monkeypatch.setattr(storage, "create_cluster_connection", MagicMock(return_value=cluster))
    return cluster


@pytest.fixture
def adapter(config, cluster):
    adapter = CqlStorageAdapter(config)
    adapter.connect()
    return adapter


def test_cql_text():
    assert select_cql(3) == "SELECT * FROM test3 WHERE id3 = ?"

    insert = insert_cql(0, 10)
    assert insert.startswith("INSERT INTO test0 (id0, id1, id2, id3, id4, id5, id6, id7, id8, id9, name, client_date,")
    assert insert.count("?") == 12
    assert insert.endswith("toUnixTimestamp(now()), now())")

    table = create_table_cql(2, 10)
    assert table.startswith("CREATE TABLE test2 (")
    assert "id9          int," in table
    assert "PRIMARY KEY (id2)" in table


def test_connect_uses_config(config, cluster):
    adapter = CqlStorageAdapter(config)
    adapter.connect()

    storage.create_cluster_connection.assert_called_once_with(
        nodes=["10.0.0.1"],
        user="dummy",
        password="dummy",
        consistency_level=ConsistencyLevel.QUORUM,
        request_timeout=None,
    )
    assert adapter.session is cluster.connect.return_value


def test_setup_schema_recreates_keyspace_and_tables(adapter):
    adapter.setup_schema()

    statements = [c.args[0] for c in adapter.session.execute.call_args_list]
    assert statements[0] == "DROP KEYSPACE IF EXISTS test1"
    assert statements[1].startswith("CREATE KEYSPACE IF NOT EXISTS test1 WITH replication = {'class': 'SimpleStrategy'")
    assert [s.split("(")[0].strip() for s in statements[2:]] == [f"CREATE TABLE test{t}" for t in range(5)]
    adapter.session.set_keyspace.assert_called_once_with("test1")


def test_setup_schema_keep_existing(cluster):
    adapter = CqlStorageAdapter(parse_cli_args(["10.0.0.1", "-schema", "keep"]))
    adapter.connect()
    adapter.setup_schema()

    statements = [c.args[0] for c in adapter.session.execute.call_args_list]
    assert not any(s.startswith("DROP") for s in statements)
    assert all(s.startswith("CREATE TABLE IF NOT EXISTS") for s in statements[1:])


def test_prepare_statements_sets_consistency(adapter):
    adapter.prepare_statements()

    assert adapter.session.prepare.call_count == 10
    assert len(adapter.prepared_insert) == len(adapter.prepared_select) == 5
    for statement in adapter.prepared_insert + adapter.prepared_select:
        assert statement.consistency_level == ConsistencyLevel.QUORUM


def test_execute_requires_prepared_statements(adapter):
    with pytest.raises(RuntimeError):
        adapter.execute_read(0, 0)
    with pytest.raises(RuntimeError):
        adapter.execute_batch([])


def test_execute_batch_is_logged_and_ordered(adapter, monkeypatch):
    batch_cls = MagicMock()
    monkeypatch.setattr(storage, "BatchStatement", batch_cls)
    prepared = [MagicMock(name=f"insert{t}") for t in range(5)]
    adapter.prepared_insert = prepared
    adapter.prepared_select = [MagicMock() for _ in range(5)]
    unit = WorkloadGenerator(tables=5).generate(42)

    adapter.execute_batch(unit.rows)

    batch_cls.assert_called_once_with(batch_type=BatchType.LOGGED, consistency_level=ConsistencyLevel.QUORUM)
    batch = batch_cls.return_value
    assert [c.args for c in batch.add.call_args_list] == [(prepared[row.table], row.bind_values) for row in unit.rows]
    adapter.session.execute_async.assert_called_once_with(batch)
    adapter.session.execute_async.return_value.result.assert_called_once_with()


def test_execute_read_returns_first_row(adapter):
    adapter.prepared_insert = [MagicMock() for _ in range(5)]
    adapter.prepared_select = [MagicMock(name=f"select{t}") for t in range(5)]
    result_set = adapter.session.execute_async.return_value.result.return_value
    result_set.one.return_value = None

    assert adapter.execute_read(3, 3) is None
    adapter.session.execute_async.assert_called_once_with(adapter.prepared_select[3], (3,))


def test_shutdown(adapter, cluster):
    adapter.shutdown()
    adapter.shutdown()

    cluster.shutdown.assert_called_once_with()
    assert adapter.session is None


def test_setup_logs_status_lines(config, cluster, caplog):
    adapter = CqlStorageAdapter(config)

    with caplog.at_level(logging.INFO, logger="pywrdelay.storage"):
        adapter.connect()
        adapter.setup_schema()
        adapter.prepare_statements()

    tables = [line for t in range(5) for line in (f"Creating table test{t}...", "Created")]
    assert [r.getMessage() for r in caplog.records] == [
        "Connecting to Cassandra...",
        "Connected",
        *tables,
        "Creating prepared statements...",
        "Created",
    ]
