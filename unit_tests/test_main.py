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
import re
from datetime import timedelta

import pytest
from cassandra.cluster import NoHostAvailable

from pywrdelay import main as main_module
from pywrdelay import scheduler
from pywrdelay.config import parse_cli_args
from pywrdelay.main import TimestampFormatter, WriteReadDelay
from pywrdelay.scheduler import RunResult
from unit_tests.dummy_storage import DummyStorageAdapter


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    monkeypatch.setattr(main_module, "setup_logging", lambda *args, **kwargs: None)


def test_full_run_with_dummy_storage(caplog, capsys):
    config = parse_cli_args(["10.0.0.1", "n=103", "-rate", "threads=10", "-log", "interval=1ms", "-nowait"])
    adapters = []

    def adapter_factory(cfg):
        adapters.append(DummyStorageAdapter(cfg, missing={(7, 2)}))
        return adapters[0]

    with caplog.at_level(logging.INFO):
        result = WriteReadDelay(config, adapter_factory=adapter_factory).run()

    adapter = adapters[0]
    assert adapter.calls == ["connect", "setup_schema", "prepare_statements", "shutdown"]
    assert result.total_tasks == 103
    assert result.threads == 10
    assert result.completed == 100
    assert result.failures == 0
    assert result.read_misses == 1
    assert len(adapter.batches) == 100

    messages = [r.getMessage() for r in caplog.records]
    assert any(re.fullmatch(r"103 tasks executed in \d+:\d\d:\d\d(\.\d+)? using 10 threads", m) for m in messages)
    assert "Select failed for index 7 on table test2" in messages
    assert "Running test: 10 threads x 10 tasks, CL=LOCAL_QUORUM, tables=5" in messages
    assert "Task rate" in capsys.readouterr().out


def test_interrupted_run_still_prints_partial_summary(monkeypatch, caplog, capsys):
    real_wait = scheduler.wait
    calls = []

    def interrupted_wait(futures):
        calls.append(futures)
        if len(calls) == 1:
            raise KeyboardInterrupt
        return real_wait(futures)

    monkeypatch.setattr(scheduler, "wait", interrupted_wait)
    config = parse_cli_args(["10.0.0.1", "n=100000", "-rate", "threads=4", "-nowait"])
    adapter = DummyStorageAdapter(config)
    app = WriteReadDelay(config, adapter_factory=lambda cfg: adapter)

    with caplog.at_level(logging.INFO):
        result = app.run()

    assert app.stop_event.is_set()
    assert result.completed < 100_000
    assert result.completed == len(adapter.batches)
    assert adapter.calls[-1] == "shutdown"
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("100000 tasks executed in ") for m in messages)
    assert f"Completed: {result.completed}, failed: 0, read misses: 0" in messages
    assert "Task rate" in capsys.readouterr().out


def test_setup_failure_aborts_before_running(caplog):
    config = parse_cli_args(["10.0.0.1", "-nowait"])
    adapter = DummyStorageAdapter(config)

    def failing_connect():
        raise NoHostAvailable("Unable to connect to any servers", {"10.0.0.1": OSError("refused")})

    adapter.connect = failing_connect

    with caplog.at_level(logging.ERROR):
        result = WriteReadDelay(config, adapter_factory=lambda cfg: adapter).run()

    assert result is None
    assert adapter.calls == ["shutdown"]
    assert not adapter.batches
    assert any("Setup failed; aborting run" in r.getMessage() for r in caplog.records)


def test_failed_tasks_are_reported_in_result():
    config = parse_cli_args(["10.0.0.1", "n=20", "-rate", "threads=2", "-nowait"])
    adapter = DummyStorageAdapter(config, fail_on={3, 15})

    result = WriteReadDelay(config, adapter_factory=lambda cfg: adapter).run()

    assert result.completed == 18
    assert result.failures == 2


def test_main_without_arguments_prints_usage(capsys):
    assert main_module.main([]) == 1
    assert "Usage:" in capsys.readouterr().out


def test_main_help(capsys):
    assert main_module.main(["--help"]) == 0
    assert "USAGE:" in capsys.readouterr().out


def test_main_bad_config():
    assert main_module.main(["10.0.0.1", "tables=99"]) == 1


@pytest.mark.parametrize("run_result, expected_code", [(None, 1), ("ok", 0)])
def test_main_exit_codes(monkeypatch, run_result, expected_code):
    if run_result == "ok":
        run_result = RunResult(timedelta(seconds=1), 10, 2, 10, 0, 0)
    monkeypatch.setattr(WriteReadDelay, "run", lambda self: run_result)

    assert main_module.main(["10.0.0.1", "-nowait"]) == expected_code


def test_main_waits_for_enter(monkeypatch):
    prompts = []
    monkeypatch.setattr(WriteReadDelay, "run", lambda self: RunResult(timedelta(seconds=1), 10, 2, 10, 0, 0))
    monkeypatch.setattr("builtins.input", lambda *args: prompts.append(args) or "")

    assert main_module.main(["10.0.0.1"]) == 0
    assert prompts == [()]


def test_timestamp_formatter():
    formatter = TimestampFormatter("%(asctime)s - %(message)s")
    record = logging.makeLogRecord({"msg": "Connected", "created": 0.5})

    assert re.fullmatch(r"\d{4}-\d\d-\d\d \d\d:\d\d:\d\d\.\d{6} - Connected", formatter.format(record))
