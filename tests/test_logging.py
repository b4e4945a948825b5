"""Tests for newsletter_ingest.logging."""

from __future__ import annotations

import logging

import structlog

from newsletter_ingest.logging import setup_logging


class TestSetupLogging:
    def test_json_mode(self):
        setup_logging(json=True, level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_console_mode(self):
        setup_logging(json=False, level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG

    def test_level_case_insensitive(self):
        setup_logging(level="warning")
        assert logging.getLogger().level == logging.WARNING

    def test_replaces_existing_handlers(self):
        root = logging.getLogger()
        root.addHandler(logging.StreamHandler())
        root.addHandler(logging.StreamHandler())
        setup_logging()
        assert len(root.handlers) == 1

    def test_client_libraries_quieted(self):
        setup_logging(level="INFO")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_client_libraries_verbose_in_debug(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_structlog_produces_output(self, capsys):
        setup_logging(json=True, level="DEBUG")
        logger = structlog.get_logger("test_logger")
        logger.info("newsletter_resolved", newsletter_id=1, name="뉴닉")
        assert '"name": "뉴닉"' in capsys.readouterr().out
