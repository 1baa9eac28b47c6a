"""
Unit tests for the structured log formatter and command context.
"""

import json
import logging
import sys

import pytest

from turfwar.core.logging.logger import ContextFilter, JSONFormatter, LogContext


def _record(**extra):
    record = logging.makeLogRecord(
        {"name": "turfwar.modules.gang.combat_service", "msg": "Raid resolved", "levelname": "INFO", **extra}
    )
    ContextFilter().filter(record)
    return record


@pytest.mark.unit
class TestLogContext:
    def test_binds_fields_inside_block_only(self):
        with LogContext(user_id=1, gang_id=7, command="raid"):
            inside = _record()
        outside = _record()

        assert (inside.user_id, inside.gang_id, inside.command) == (1, 7, "raid")
        assert outside.user_id == "-"
        assert outside.command == "-"

    def test_nested_blocks_restore_outer(self):
        with LogContext(command="raid", correlation_id="outer"):
            with LogContext(command="kidnap"):
                assert _record().command == "kidnap"
            assert _record().correlation_id == "outer"

    def test_component_defaults_to_module_name(self):
        assert _record().component == "combat_service"

    def test_explicit_operation_is_kept(self):
        with LogContext(operation="gang.raid"):
            assert _record(operation="gang.rob").operation == "gang.rob"


@pytest.mark.unit
class TestJSONFormatter:
    def test_context_and_extra_fields(self):
        with LogContext(user_id=1, command="raid", correlation_id="abc"):
            record = _record(damage=30, stolen=500)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Raid resolved"
        assert payload["user_id"] == 1
        assert payload["correlation_id"] == "abc"
        assert "gang_id" not in payload
        assert payload["extra"] == {"damage": 30, "stolen": 500}

    def test_exception_is_rendered(self):
        try:
            raise ValueError("vault over capacity")
        except ValueError:
            record = _record(exc_info=sys.exc_info())

        payload = json.loads(JSONFormatter().format(record))

        assert "ValueError: vault over capacity" in payload["exception"]
