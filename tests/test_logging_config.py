"""Tests for logging configuration helpers."""

import logging

import pytest

from backup_agent.logging_config import TRACE_LEVEL_NUM, _file_handlers, resolve_level


class TestResolveLevel:
    """Test level name resolution."""

    @pytest.mark.parametrize(
        "name,debug,expected",
        [
            ("INFO", False, logging.INFO),
            ("warning", False, logging.WARNING),
            ("", True, logging.DEBUG),
            ("", False, logging.INFO),
            ("ERROR", True, logging.ERROR),
            ("trace", False, TRACE_LEVEL_NUM),
        ],
    )
    def test_levels(self, name, debug, expected):
        assert resolve_level(name, debug=debug) == expected

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="LOUD"):
            resolve_level("LOUD")


def test_file_handlers_layout(tmp_path):
    handlers = _file_handlers(tmp_path, "backup-agent.log", logging.INFO, 1024, 2)
    try:
        names = sorted(h.baseFilename.rsplit("/", 1)[-1] for h in handlers)
        assert names == [
            "backup-agent.day.error.log",
            "backup-agent.day.log",
            "backup-agent.error.log",
            "backup-agent.log",
        ]
        assert sorted(h.level for h in handlers) == [logging.INFO, logging.INFO, logging.ERROR, logging.ERROR]
    finally:
        for handler in handlers:
            handler.close()
