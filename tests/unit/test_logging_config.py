"""Tests for structured logging setup."""

import json

import structlog

from agentflow.utils.logging_config import configure_logging


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_lines_on_stderr(self, capsys):
        """Test events are rendered as JSON on stderr."""
        configure_logging("INFO", json_output=True)

        structlog.get_logger("agentflow.test").info("routing_config_loaded", rules=2)

        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err.strip())
        assert event["event"] == "routing_config_loaded"
        assert event["rules"] == 2
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filtering(self, capsys):
        """Test events below the level are dropped."""
        configure_logging("warning")

        log = structlog.get_logger()
        log.info("quiet")
        log.warning("loud")

        lines = capsys.readouterr().err.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["loud"]

    def test_unknown_level_falls_back_to_info(self, capsys):
        """Test an unrecognised level name logs at INFO."""
        configure_logging("chatty")

        log = structlog.get_logger()
        log.debug("hidden")
        log.info("shown")

        lines = capsys.readouterr().err.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["shown"]

    def test_logger_created_before_configure(self, capsys):
        """Test a module-level logger picks up a later level change."""
        log = structlog.get_logger("agentflow.early")
        configure_logging("ERROR")

        log.warning("dropped")
        log.error("kept")

        lines = capsys.readouterr().err.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["kept"]

    def test_console_renderer(self, capsys):
        """Test console output is not JSON."""
        configure_logging("DEBUG", json_output=False)

        structlog.get_logger().debug("state_machine_loaded")

        assert "state_machine_loaded" in capsys.readouterr().err
