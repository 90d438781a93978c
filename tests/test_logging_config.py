import logging

import pytest

from bandcrawl.logging_config import SecretMaskingFilter, setup_logging, setup_logging_from_settings


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg, *args):
    return logging.LogRecord("bandcrawl.test", logging.INFO, __file__, 1, msg, args, None)


class TestSecretMaskingFilter:

    def test_masks_password_pairs(self):
        record = make_record("login failed for %s password=%s", "naver_user", "hunter2")

        assert SecretMaskingFilter().filter(record)
        assert record.getMessage() == "login failed for naver_user password=***"

    def test_masks_literal_secrets(self):
        record = make_record("calling provider with sk-test-123")
        SecretMaskingFilter(["sk-test-123"]).filter(record)
        assert "sk-test-123" not in record.getMessage()

    def test_leaves_plain_messages(self):
        record = make_record("Scraped %d comments", 3)
        SecretMaskingFilter().filter(record)
        assert record.args == (3,)
        assert record.getMessage() == "Scraped 3 comments"


class TestSetupLogging:

    def test_level_and_file(self, tmp_path, restore_root_logging):
        log_file = tmp_path / "logs" / "crawl.log"

        setup_logging(level="debug", log_file=str(log_file), secrets=["sk-secret"])
        logging.getLogger("bandcrawl.test").debug("token=abc using sk-secret")
        for handler in restore_root_logging.handlers:
            handler.flush()

        assert restore_root_logging.level == logging.DEBUG
        assert logging.getLogger("openai").level == logging.WARNING
        written = log_file.read_text(encoding="utf-8")
        assert "token=***" in written
        assert "sk-secret" not in written

    def test_unknown_level_falls_back_to_info(self, restore_root_logging):
        setup_logging(level="chatty")
        assert restore_root_logging.level == logging.INFO

    def test_from_settings(self, tmp_path, restore_root_logging):
        class FakeSettings:
            LOG_LEVEL = "WARNING"
            LOG_FILE = str(tmp_path / "band.log")
            LLM_API_KEY = None

        setup_logging_from_settings(FakeSettings())

        assert restore_root_logging.level == logging.WARNING
        assert (tmp_path / "band.log").exists()
