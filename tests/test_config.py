"""Tests for configuration loading."""

import json
from unittest.mock import patch

from bandcrawl.config import CrawlThresholds


class TestCrawlThresholds:
    """Test cases for CrawlThresholds."""

    def test_defaults(self):
        """Test the default timings."""
        thresholds = CrawlThresholds()
        assert thresholds.session_ttl_hours == 24
        assert thresholds.captcha_poll_interval_seconds == 30.0
        assert thresholds.captcha_max_wait_seconds == 300.0
        assert thresholds.scrape_max_retries == 2
        assert thresholds.task_timeout_seconds == 600.0
        assert thresholds.fast_mode is False

    def test_from_env(self):
        """Test typed overrides from prefixed environment variables."""
        env = {
            "BANDCRAWL_THRESHOLD_TASK_TIMEOUT_SECONDS": "900",
            "BANDCRAWL_THRESHOLD_SCRAPE_MAX_RETRIES": "3",
            "BANDCRAWL_THRESHOLD_FAST_MODE": "true",
        }
        with patch.dict("os.environ", env):
            thresholds = CrawlThresholds.from_env()

        assert thresholds.task_timeout_seconds == 900.0
        assert thresholds.scrape_max_retries == 3
        assert thresholds.fast_mode is True

    def test_from_env_ignores_bad_values(self):
        """Test unparseable values keep the default."""
        with patch.dict("os.environ", {"BANDCRAWL_THRESHOLD_MAX_POSTS": "lots"}):
            thresholds = CrawlThresholds.from_env()
        assert thresholds.max_posts == 100

    def test_from_file(self, tmp_path):
        """Test loading a nested thresholds section from JSON."""
        path = tmp_path / "thresholds.json"
        path.write_text(json.dumps({"thresholds": {"max_posts": 20, "unknown_key": 1}}))

        thresholds = CrawlThresholds.from_file(str(path))

        assert thresholds.max_posts == 20
        assert not hasattr(thresholds, "unknown_key")

    def test_from_file_flat(self, tmp_path):
        """Test loading a flat JSON object."""
        path = tmp_path / "thresholds.json"
        path.write_text(json.dumps({"captcha_max_wait_seconds": 60}))

        assert CrawlThresholds.from_file(str(path)).captcha_max_wait_seconds == 60

    def test_from_missing_file(self, tmp_path):
        """Test a missing file gives defaults."""
        assert CrawlThresholds.from_file(str(tmp_path / "nope.json")) == CrawlThresholds()

    def test_to_dict(self):
        """Test every field is serialized."""
        data = CrawlThresholds(max_posts=5).to_dict()
        assert data["max_posts"] == 5
        assert set(data) == set(CrawlThresholds.__dataclass_fields__)

