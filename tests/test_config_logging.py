"""
Tests for configuration and structured logging
"""

import json
import logging

import pytest

from currency_bank import config as config_module
from currency_bank import rules, wallet
from currency_bank.config import BankConfig
from currency_bank.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestBankConfig:
    """Test environment-driven configuration"""

    def test_defaults(self, monkeypatch):
        """Test default values"""
        monkeypatch.delenv("BANK_API_PORT", raising=False)
        cfg = BankConfig(_env_file=None)
        assert cfg.api_port == 8090
        assert cfg.interest_period_hours == 24
        assert cfg.interest_fallback_delay_seconds == 60
        assert cfg.interest_recurring_cron is False
        assert cfg.wallet_url == ""

    def test_environment_overrides(self, monkeypatch):
        """Test BANK_ prefixed variables"""
        monkeypatch.setenv("BANK_API_PORT", "9000")
        monkeypatch.setenv("BANK_INTEREST_CONFIG_DIR", "/srv/bank/interest")
        monkeypatch.setenv("bank_use_sqlite", "false")

        cfg = BankConfig(_env_file=None)
        assert cfg.api_port == 9000
        assert cfg.interest_config_dir == "/srv/bank/interest"
        assert cfg.use_sqlite is False

    def test_reload_config(self, monkeypatch):
        """Test reload picks up new environment values"""
        original = config_module.get_config()
        monkeypatch.setenv("BANK_LOG_LEVEL", "DEBUG")
        try:
            assert config_module.reload_config().log_level == "DEBUG"
            assert config_module.get_config().log_level == "DEBUG"
        finally:
            config_module.config = original


class ListHandler(logging.Handler):
    """Collects formatted records"""

    def __init__(self):
        super().__init__()
        self.lines = []

    def emit(self, record):
        self.lines.append(self.format(record))


class TestStructuredLogging:
    """Test JSON log output"""

    def setup_method(self):
        self.logger = logging.getLogger("currency_bank.tests.logging")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.handler = ListHandler()
        self.handler.setFormatter(JSONFormatter())
        self.logger.addHandler(self.handler)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)

    def test_plain_message(self):
        """Test required fields and dropped empty ones"""
        self.logger.warning("Failed to parse interest file: bad.yml")

        entry = json.loads(self.handler.lines[0])
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "currency_bank.tests.logging"
        assert entry["message"] == "Failed to parse interest file: bad.yml"
        assert "user_id" not in entry

    def test_log_action_fields(self):
        """Test structured action fields"""
        log_action(
            self.logger, "info", "Bank deposit: 10 coin",
            user_id="alice", action="deposit", resource="bank:alice:coin",
            extra={"amount": "10"}
        )

        entry = json.loads(self.handler.lines[0])
        assert entry["user_id"] == "alice"
        assert entry["action"] == "deposit"
        assert entry["resource"] == "bank:alice:coin"
        assert entry["extra"] == {"amount": "10"}

    def test_log_action_respects_level(self):
        """Test records below the logger level are dropped"""
        log_action(self.logger, "debug", "noise")
        assert self.handler.lines == []

    def test_exception_included(self):
        """Test tracebacks are serialised"""
        try:
            raise RuntimeError("wallet offline")
        except RuntimeError:
            self.logger.exception("Wallet call failed")

        entry = json.loads(self.handler.lines[0])
        assert "RuntimeError: wallet offline" in entry["exception"]


class TestSetupLogging:
    """Test logger setup"""

    def test_text_format_to_file(self, tmp_path):
        """Test text output written to a log file"""
        log_file = tmp_path / "bank.log"
        logger = setup_logging("INFO", logger_name="currency_bank.tests.setup",
                               log_format="text", log_file=str(log_file))
        try:
            get_logger("currency_bank.tests.setup").info("Interest scheduler started")
            logger.handlers[0].flush()
            assert "| INFO     | currency_bank.tests.setup | Interest scheduler started" in log_file.read_text()
        finally:
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)

    def test_replaces_handlers(self):
        """Test repeated setup does not duplicate handlers"""
        setup_logging("WARNING", logger_name="currency_bank.tests.repeat")
        logger = setup_logging("ERROR", logger_name="currency_bank.tests.repeat")
        try:
            assert len(logger.handlers) == 1
            assert logger.level == logging.ERROR
            assert logger.propagate is False
        finally:
            logger.removeHandler(logger.handlers[0])


class TestModuleLoggers:
    """Test every module logs under the package logger"""

    @pytest.mark.parametrize("module", [rules, wallet])
    def test_module_logger_from_get_logger(self, module):
        """Test module-level loggers come from get_logger"""
        package_logger = get_logger("currency_bank")
        assert module.logger is get_logger(module.__name__)
        assert module.logger.parent is package_logger

    def test_rules_logs_through_package_handler(self, tmp_path):
        """Test rule loading output reaches a handler on the package logger"""
        package_logger = get_logger("currency_bank")
        level = package_logger.level
        handler = ListHandler()
        handler.setFormatter(JSONFormatter())
        package_logger.addHandler(handler)
        package_logger.setLevel(logging.INFO)
        try:
            rules.discover_rule_files(tmp_path / "interest")

            entry = json.loads(handler.lines[0])
            assert entry["logger"] == "currency_bank.rules"
            assert entry["message"].startswith("Created config directory for interest configs")
        finally:
            package_logger.removeHandler(handler)
            package_logger.setLevel(level)
