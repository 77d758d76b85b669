from __future__ import annotations

import logging
from pathlib import Path

import pytest

from relay_provisioner.logging_utils import configure_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    for attr in ("_relay_configured", "_relay_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
    yield root
    for h in root.handlers:
        if h not in saved_handlers:
            h.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)
    for attr in ("_relay_configured", "_relay_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)


def test_file_logging(tmp_path, root_logger):
    path = tmp_path / "log" / "relay.log"
    assert configure_logging(str(path), also_console=False) == str(path)
    logging.getLogger("relay_provisioner.test").info("hello")
    for h in root_logger.handlers:
        h.flush()
    assert "hello" in path.read_text(encoding="utf-8")


def test_console_only(root_logger):
    before = len(root_logger.handlers)
    assert configure_logging(None) is None
    assert len(root_logger.handlers) == before + 1


def test_second_call_adds_no_handlers(tmp_path, root_logger):
    configure_logging(str(tmp_path / "a.log"))
    count = len(root_logger.handlers)
    assert configure_logging(str(tmp_path / "b.log")) == str(tmp_path / "a.log")
    assert len(root_logger.handlers) == count


def test_unwritable_path_falls_back_to_cwd(tmp_path, monkeypatch, root_logger):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    used = configure_logging(str(blocker / "relay.log"), also_console=False)

    assert used == str(Path.cwd() / "relay-provisioner.log")
