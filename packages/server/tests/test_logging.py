"""
Tests for structlog configuration.
"""

import json

import pytest
import structlog

from app.core.logging import configure_logging


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    configure_logging("info", "console")


class TestConfigureLogging:
    def test_level_filters_events(self, capsys):
        configure_logging("warning", "json")
        log = structlog.get_logger()

        log.info("membership.resolved", shop_id="org_1")
        log.warning("provider.request_failed", error="timeout")

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        event = json.loads(lines[0])
        assert event["event"] == "provider.request_failed"
        assert event["level"] == "warning"

    def test_unknown_level_falls_back_to_info(self, capsys):
        configure_logging("chatty", "json")
        log = structlog.get_logger()

        log.debug("membership_cache.invalidated")
        log.info("membership.resolved")

        lines = capsys.readouterr().out.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["membership.resolved"]

    def test_app_imports_with_configured_logging(self):
        from app.main import create_app

        assert create_app().title == "TCG Shop Manager"
