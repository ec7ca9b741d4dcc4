"""
Unit tests for structured logging configuration.
"""

import json
import logging
from pathlib import Path

import pytest

from airdrop.logging_config import (
    clear_correlation_id,
    correlation_context,
    get_correlation_id,
    get_logger,
    log_claim_attempt,
    log_merkle_root_computation,
    log_pool_operation,
    set_correlation_id,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_correlation_id():
    yield
    clear_correlation_id()


def read_events(log_file: Path):
    return [json.loads(line) for line in log_file.read_text().splitlines() if line.strip()]


class TestLoggingConfiguration:
    """Test structured logging configuration functionality."""

    def test_setup_logging_default(self):
        """Test setup_logging with default parameters."""
        setup_logging()

        logger = get_logger("test")
        assert hasattr(logger, 'info') and hasattr(logger, 'warning') and hasattr(logger, 'error')

    def test_setup_logging_with_level(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_with_file(self, temp_dir: Path):
        """Test setup_logging with log file."""
        log_file = temp_dir / "logs" / "test.log"
        setup_logging(level="INFO", log_file=log_file, json_format=False)

        get_logger("file_test").info("test_message", key="value")

        assert "test_message" in log_file.read_text()

    def test_json_format(self, temp_dir: Path):
        log_file = temp_dir / "test.log"
        setup_logging(level="INFO", log_file=log_file, json_format=True)

        get_logger("json_test").info("json_message", phase=3)

        event = read_events(log_file)[-1]
        assert event["event"] == "json_message"
        assert event["phase"] == 3
        assert event["level"] == "info"
        assert event["logger"] == "airdrop.json_test"

    def test_level_filters_messages(self, temp_dir: Path):
        log_file = temp_dir / "test.log"
        setup_logging(level="WARNING", log_file=log_file)

        logger = get_logger("filter_test")
        logger.info("hidden")
        logger.warning("shown")

        content = log_file.read_text()
        assert "hidden" not in content
        assert "shown" in content


class TestCorrelationId:
    """Test correlation ID propagation."""

    def test_generated_when_not_given(self):
        correlation_id = set_correlation_id()
        assert correlation_id
        assert get_correlation_id() == correlation_id

    def test_explicit_and_cleared(self):
        set_correlation_id("claim-1")
        assert get_correlation_id() == "claim-1"
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_added_to_events(self, temp_dir: Path):
        log_file = temp_dir / "test.log"
        setup_logging(level="INFO", log_file=log_file)
        set_correlation_id("claim-42")

        get_logger("correlation_test").info("with_id")

        assert read_events(log_file)[-1]["correlation_id"] == "claim-42"

    def test_context_binds_and_restores(self):
        with correlation_context() as correlation_id:
            assert correlation_id
            assert get_correlation_id() == correlation_id
        assert get_correlation_id() is None

    def test_context_keeps_outer_id(self):
        """Test that nested operations share the id bound by the caller."""
        set_correlation_id("cli-run")

        with correlation_context() as inner:
            assert inner == "cli-run"

        assert get_correlation_id() == "cli-run"

    def test_context_with_explicit_id(self):
        set_correlation_id("outer")

        with correlation_context("pool-1") as correlation_id:
            assert correlation_id == "pool-1"
            assert get_correlation_id() == "pool-1"

        assert get_correlation_id() == "outer"


class TestLoggingHelpers:
    """Test the event helpers."""

    @pytest.fixture
    def log_file(self, temp_dir: Path) -> Path:
        path = temp_dir / "events.log"
        setup_logging(level="INFO", log_file=path)
        return path

    def test_merkle_root_computation(self, log_file):
        log_merkle_root_computation(get_logger("helpers"), 1, 3, "ab" * 32, 1.5)

        event = read_events(log_file)[-1]
        assert event["event_type"] == "merkle_root_computation"
        assert event["leaf_count"] == 3

    def test_claim_attempt_success_and_failure(self, log_file):
        logger = get_logger("helpers")
        log_claim_attempt(logger, 1, "alice", 10, success=True, signature="sig")
        log_claim_attempt(logger, 2, "alice", 10, success=False, error_kind="ProofInvalid")

        committed, rejected = read_events(log_file)[-2:]
        assert committed["event"] == "claim_committed"
        assert committed["signature"] == "sig"
        assert "error_kind" not in committed
        assert rejected["event"] == "claim_rejected"
        assert rejected["level"] == "warning"
        assert rejected["error_kind"] == "ProofInvalid"

    def test_pool_operation(self, log_file):
        log_pool_operation(get_logger("helpers"), "deposit", 2, "mint", amount="5")

        event = read_events(log_file)[-1]
        assert event["operation"] == "deposit"
        assert event["token_mint"] == "mint"
        assert event["amount"] == "5"
