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

from cassandra import ConsistencyLevel, DriverException, OperationTimedOut
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, ExecutionProfile, EXEC_PROFILE_DEFAULT, NoHostAvailable
from cassandra.policies import ConstantReconnectionPolicy, DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra.query import BatchStatement, BatchType


logger = logging.getLogger(__name__)

# Errors the driver (or the socket layer under it) raises for a failed request.
STORAGE_ERRORS = (DriverException, NoHostAvailable, OperationTimedOut, OSError)


def table_name(table: int) -> str:
    return f"test{table}"


def create_table_cql(table: int, id_columns: int) -> str:
    ids = "".join(f"    id{i}          int,\n" for i in range(id_columns))
    return (
        f"CREATE TABLE {table_name(table)} (\n"
        f"{ids}"
        "    name         text,\n"
        "    client_date  timestamp,\n"
        "    server_date  timestamp,\n"
        "    tuuid        timeuuid,\n"
        f"    PRIMARY KEY (id{table})\n"
        ")"
    )


def insert_cql(table: int, id_columns: int) -> str:
    id_names = ", ".join(f"id{i}" for i in range(id_columns))
    placeholders = ", ".join(["?"] * id_columns)
    return (
        f"INSERT INTO {table_name(table)} ({id_names}, name, client_date, server_date, tuuid) "
        f"VALUES ({placeholders}, ?, ?, toUnixTimestamp(now()), now())"
    )


def select_cql(table: int) -> str:
    return f"SELECT * FROM {table_name(table)} WHERE id{table} = ?"


def create_cluster_connection(
    nodes: list,
    user: str | None = None,
    password: str | None = None,
    consistency_level=ConsistencyLevel.LOCAL_QUORUM,
    request_timeout: float | None = None,
) -> Cluster:
    """Create a Cluster instance with common configuration.

    Args:
        nodes: List of contact point IP addresses
        user: Authentication username (optional)
        password: Authentication password (optional)
        consistency_level: CQL consistency level
        request_timeout: Request timeout in seconds (default: 12s like cassandra-stress)

    Returns:
        Configured Cluster instance (not connected)
    """
    auth_provider = None
    if user and password:
        auth_provider = PlainTextAuthProvider(username=user, password=password)

    profile = ExecutionProfile(
        load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
        consistency_level=consistency_level,
        request_timeout=request_timeout or 12.0,
    )

    return Cluster(
        contact_points=nodes,
        execution_profiles={EXEC_PROFILE_DEFAULT: profile},
        protocol_version=4,
        auth_provider=auth_provider,
        compression=True,
        reconnection_policy=ConstantReconnectionPolicy(delay=0.1),
        connect_timeout=11,
        control_connection_timeout=6,
    )


class CqlStorageAdapter:
    """One shared Session plus per-table prepared statements.

    All statements are prepared by prepare_statements() before any worker
    starts; after that the adapter is only read, so worker threads share it.
    """

    def __init__(self, config):
        self.config = config
        self.cluster = None
        self.session = None
        self.prepared_insert = []
        self.prepared_select = []

    def connect(self):
        logger.info("Connecting to Cassandra...")
        self.cluster = create_cluster_connection(
            nodes=self.config.nodes,
            user=self.config.user,
            password=self.config.password,
            consistency_level=self.config.consistency_level,
            request_timeout=self.config.request_timeout,
        )
        self.session = self.cluster.connect()
        logger.info("Connected")

    def _replication(self):
        return (
            f"{{'class': '{self.config.replication_strategy}', "
            f"'replication_factor': {self.config.replication_factor}}}"
        )

    def setup_schema(self):
        """(Re)create the keyspace and one table per test table."""
        keyspace_name = self.config.keyspace_name
        if self.config.drop_keyspace:
            self.session.execute(f"DROP KEYSPACE IF EXISTS {keyspace_name}")
        self.session.execute(
            f"CREATE KEYSPACE IF NOT EXISTS {keyspace_name} WITH replication = {self._replication()}"
        )
        self.session.set_keyspace(keyspace_name)

        for table in range(self.config.tables):
            logger.info(f"Creating table {table_name(table)}...")
            cql = create_table_cql(table, self.config.id_columns)
            if not self.config.drop_keyspace:
                cql = cql.replace("CREATE TABLE", "CREATE TABLE IF NOT EXISTS", 1)
            self.session.execute(cql)
            logger.info("Created")

    def prepare_statements(self):
        logger.info("Creating prepared statements...")
        consistency_level = self.config.consistency_level
        self.prepared_insert = []
        self.prepared_select = []
        for table in range(self.config.tables):
            insert = self.session.prepare(insert_cql(table, self.config.id_columns))
            insert.consistency_level = consistency_level
            select = self.session.prepare(select_cql(table))
            select.consistency_level = consistency_level
            self.prepared_insert.append(insert)
            self.prepared_select.append(select)
        logger.info("Created")

    def _check_prepared(self):
        if not self.prepared_insert or not self.prepared_select:
            raise RuntimeError("prepare_statements() must run before executing requests")

    def execute_batch(self, rows):
        """Write one row per table as a single LOGGED batch and wait for it."""
        self._check_prepared()
        batch = BatchStatement(batch_type=BatchType.LOGGED, consistency_level=self.config.consistency_level)
        for row in rows:
            batch.add(self.prepared_insert[row.table], row.bind_values)
        return self.session.execute_async(batch).result()

    def execute_read(self, table: int, key: int):
        """Return the first row matching ``id{table} = key``, or None."""
        self._check_prepared()
        return self.session.execute_async(self.prepared_select[table], (key,)).result().one()

    def shutdown(self):
        if self.cluster:
            self.cluster.shutdown()
            self.cluster = None
            self.session = None
