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

"""Command line parsing for pywrdelay.

Accepts the cassandra-stress style of arguments (``key=value`` mixed with
``-flags``) as well as the short legacy form ``<ip> [<username> <password>]``.
"""

import logging
import re

from cassandra import ConsistencyLevel


logger = logging.getLogger(__name__)

DEFAULT_CREDENTIAL = "dummy"


class ConfigError(ValueError):
    """Raised when the command line can't be turned into a runnable config."""


class WrDelayConfig:
    def __init__(self):
        self.num_tasks = 100_000  # n=
        self.threads = 20
        self.tables = 5
        self.id_columns = 10
        self.payload_size = 1000  # random bytes per row, stored base64-encoded
        self.seed = 123
        self.consistency_level = ConsistencyLevel.LOCAL_QUORUM
        self.nodes = []
        self.user = DEFAULT_CREDENTIAL
        self.password = DEFAULT_CREDENTIAL
        self.keyspace_name = "test1"
        self.replication_strategy = "SimpleStrategy"
        self.replication_factor = 1
        self.drop_keyspace = True
        self.progress_interval = 0.1  # seconds between progress polls
        self.request_timeout = None  # seconds, None = driver default
        self.fail_fast = False
        self.wait_for_enter = True

    @property
    def tasks_per_thread(self):
        return self.num_tasks // self.threads

    def validate(self):
        if not self.nodes:
            raise ConfigError("No node address given (use -node <ip> or pass it as first argument)")
        if self.num_tasks <= 0:
            raise ConfigError(f"n must be positive, got {self.num_tasks}")
        if self.threads <= 0:
            raise ConfigError(f"threads must be positive, got {self.threads}")
        if not 1 <= self.tables <= self.id_columns:
            raise ConfigError(f"tables must be within 1..{self.id_columns}, got {self.tables}")
        if self.payload_size <= 0:
            raise ConfigError(f"payload must be positive, got {self.payload_size}")
        if self.progress_interval <= 0:
            raise ConfigError(f"progress interval must be positive, got {self.progress_interval}s")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigError(f"request timeout must be positive, got {self.request_timeout}s")
        return self


def parse_metric_suffix(val_str):
    """Parses suffixes like 100M, 1k."""
    multiplier = 1
    val_str = val_str.upper()
    if val_str.endswith("M"):
        multiplier = 1_000_000
        val_str = val_str[:-1]
    elif val_str.endswith("K"):
        multiplier = 1_000
        val_str = val_str[:-1]
    elif val_str.endswith("B"):
        multiplier = 1_000_000_000
        val_str = val_str[:-1]
    return int(val_str) * multiplier


def parse_interval(val_str):
    """
    Parses interval strings like '10s', '100ms', or '1' (seconds).
    """
    val_str = val_str.lower()
    if val_str.endswith("ms"):
        return int(val_str[:-2]) / 1000.0
    elif val_str.endswith("s"):
        return float(val_str[:-1])
    return float(val_str)


def parse_schema_option(schema_str):
    """
    Parse cassandra-stress style schema options.

    Format:
        replication(strategy=? replication_factor=?)
        keyspace=?
        keep

    ``keep`` leaves an existing keyspace in place instead of dropping it.
    """
    result = {
        "keyspace": "test1",
        "replication_strategy": "SimpleStrategy",
        "replication_factor": 1,
        "drop_keyspace": True,
    }

    replication_match = re.search(r"replication\s*\(([^)]+)\)", schema_str, re.IGNORECASE)
    if replication_match:
        repl_content = replication_match.group(1)
        strategy_match = re.search(r"strategy\s*=\s*([\w.]+)", repl_content, re.IGNORECASE)
        if strategy_match:
            if "NetworkTopologyStrategy" in strategy_match.group(1):
                result["replication_strategy"] = "NetworkTopologyStrategy"
            else:
                result["replication_strategy"] = "SimpleStrategy"
        factor_match = re.search(r"replication_factor\s*=\s*(\d+)", repl_content, re.IGNORECASE)
        if factor_match:
            result["replication_factor"] = int(factor_match.group(1))

    keyspace_match = re.search(r"keyspace\s*=\s*([a-zA-Z0-9_]+)", schema_str, re.IGNORECASE)
    if keyspace_match:
        result["keyspace"] = keyspace_match.group(1)

    if re.search(r"(^|\s)keep(\s|$)", schema_str, re.IGNORECASE):
        result["drop_keyspace"] = False

    return result


def _parse_key_value_arg(config, key, val):
    """Parse a key=value argument and update config."""
    try:
        if key == "n":
            config.num_tasks = parse_metric_suffix(val)
        elif key == "tables":
            config.tables = int(val)
        elif key == "seed":
            config.seed = int(val)
        elif key == "payload":
            config.payload_size = parse_metric_suffix(val)
        elif key == "cl":
            try:
                config.consistency_level = getattr(ConsistencyLevel, val.upper())
            except AttributeError:
                logger.warning(f"Unknown CL {val}, keeping LOCAL_QUORUM")
        else:
            logger.warning(f"Ignoring unknown argument {key}={val}")
    except ValueError as e:
        raise ConfigError(f"Bad value for {key}: {val}") from e


def _parse_rate_args(config, args, start_idx):
    """Parse -rate arguments, returns next index to process."""
    i = start_idx
    while i < len(args) and not args[i].startswith("-"):
        for part in args[i].replace(",", " ").split():
            if part.startswith("threads="):
                try:
                    config.threads = int(part.split("=", 1)[1])
                except ValueError as e:
                    raise ConfigError(f"Bad thread count: {part}") from e
        i += 1
    return i


def _parse_schema_args(config, args, start_idx):
    """Parse -schema arguments, returns next index to process."""
    i = start_idx
    schema_parts = []
    while i < len(args) and not args[i].startswith("-"):
        schema_parts.append(args[i])
        i += 1
    if schema_parts:
        parsed = parse_schema_option(" ".join(schema_parts))
        config.keyspace_name = parsed["keyspace"]
        config.replication_strategy = parsed["replication_strategy"]
        config.replication_factor = parsed["replication_factor"]
        config.drop_keyspace = parsed["drop_keyspace"]
    return i


def _parse_log_args(config, args, start_idx):
    """Parse -log arguments, returns next index to process."""
    i = start_idx
    while i < len(args) and not args[i].startswith("-"):
        for part in args[i].replace(",", " ").split():
            if part.startswith("interval="):
                try:
                    config.progress_interval = parse_interval(part.split("=", 1)[1])
                except ValueError as e:
                    raise ConfigError(f"Bad interval: {part}") from e
        i += 1
    return i


def _parse_mode_arg(config, mode_arg):
    mode_arg_lower = mode_arg.lower()
    if mode_arg_lower.startswith("user="):
        config.user = mode_arg.split("=", 1)[1]
    elif mode_arg_lower.startswith("password="):
        config.password = mode_arg.split("=", 1)[1]
    elif mode_arg_lower.startswith("requesttimeout="):
        # given in milliseconds like cassandra-stress, the driver wants seconds
        try:
            config.request_timeout = int(mode_arg.split("=", 1)[1]) / 1000.0
        except ValueError as e:
            raise ConfigError(f"Bad request timeout: {mode_arg}") from e
    elif mode_arg_lower == "failfast":
        config.fail_fast = True


def parse_cli_args(args):
    """
    Parses cassandra-stress style arguments manually since argparse
    doesn't handle `key=value` mixed with `-flags` well.

    Bare words (no '=' and no leading '-') fill the legacy positional
    slots in order: node address, username, password. When -node is
    given the node slot is taken and bare words start at the username.
    """
    config = WrDelayConfig()
    positional = []

    i = 0
    while i < len(args):
        arg = args[i]

        if "=" in arg and not arg.startswith("-"):
            key, val = arg.split("=", 1)
            _parse_key_value_arg(config, key, val)
            i += 1
        elif arg == "-rate":
            i = _parse_rate_args(config, args, i + 1)
        elif arg == "-node":
            i += 1
            if i < len(args):
                config.nodes = [node for node in args[i].split(",") if node]
            i += 1
        elif arg == "-schema":
            i = _parse_schema_args(config, args, i + 1)
        elif arg == "-log":
            i = _parse_log_args(config, args, i + 1)
        elif arg == "-mode":
            i += 1
            while i < len(args) and not args[i].startswith("-"):
                _parse_mode_arg(config, args[i])
                i += 1
        elif arg == "-nowait":
            config.wait_for_enter = False
            i += 1
        elif not arg.startswith("-"):
            positional.append(arg)
            i += 1
        else:
            logger.warning(f"Skipping unknown option {arg}")
            i += 1

    if positional and not config.nodes:
        config.nodes = [positional.pop(0)]
    if len(positional) > 2:
        raise ConfigError(f"Unexpected arguments: {' '.join(positional[2:])}")
    if positional:
        config.user = positional[0]
        config.password = positional[1] if len(positional) > 1 else DEFAULT_CREDENTIAL

    return config.validate()


HELP_TEXT = """
pywrdelay - measures write-then-read delay against a Cassandra/ScyllaDB cluster.

Every task writes one row into each of the test tables with a single LOGGED
batch, then reads back one row per table. Tasks are split evenly over a fixed
number of threads; a remainder that doesn't divide evenly is not executed.

USAGE:
    pywrdelay <ip> [<username> <password>]
    pywrdelay [key=value ...] [flags]

POSITIONAL ARGUMENTS (key=value):
    n=<number>              Number of tasks (default: 100000)
                            Supports suffixes: K (thousands), M (millions), B (billions)
    tables=<number>         Number of test tables, 1..10 (default: 5)
    cl=<consistency>        Consistency level for writes and reads (default: LOCAL_QUORUM)
    seed=<number>           Base seed for payload generation (default: 123)
    payload=<bytes>         Random payload size per row (default: 1000)

FLAGS:
    -rate threads=<number>  Number of worker threads (default: 20)
    -node <nodes>           Comma-separated list of node IPs
    -schema <options>       replication(strategy=? replication_factor=?)
                            keyspace=? (default: test1)
                            keep   don't drop an existing keyspace
    -log interval=<time>    Progress poll interval (default: 100ms)
    -mode <options>         user=<username> password=<password>
                            requestTimeout=<ms>
                            failfast   a failed task ends its thread
    -nowait                 Exit without waiting for ENTER
    -h, --help              Show this help message

EXAMPLES:
    pywrdelay 10.0.0.1 cassandra cassandra
    pywrdelay n=1M cl=QUORUM -rate threads=50 -node 10.0.0.1,10.0.0.2 -nowait
"""
