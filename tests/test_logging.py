"""
Tests for the structlog setup
=============================
"""

import json

import pytest
import structlog


@pytest.fixture
def restore_structlog():
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output_with_node(self, capsys, restore_structlog):
        """Events should render as JSON carrying the bound node id."""
        from pki_auth.logging_config import configure_logging

        configure_logging(level="INFO", json_output=True, node_id="node-a")
        structlog.get_logger("pki_auth.test").info("pki_key_cached", node_id="node-b")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)

        assert record["event"] == "pki_key_cached"
        assert record["node"] == "node-a"
        assert record["node_id"] == "node-b"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filtering(self, capsys, restore_structlog):
        """Events below the configured level should be dropped."""
        from pki_auth.logging_config import configure_logging

        configure_logging(level="WARNING")
        logger = structlog.get_logger("pki_auth.test")
        logger.debug("pki_assertion_decoded")
        logger.info("pki_key_cached")

        assert capsys.readouterr().out == ""
