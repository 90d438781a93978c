from dotenv import load_dotenv
from dataclasses import dataclass
from pathlib import Path
import json
import os

load_dotenv()  # Loads variables from .env file


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///band_data.db")  # Default to SQLite
    DB_BACKEND = os.getenv("DB_BACKEND", "local")

    # Cookie cache for logged-in Band accounts
    SESSION_DIR = os.getenv("SESSION_DIR", str(Path.home() / ".bandcrawl" / "sessions"))

    # LLM settings
    LLM_API_KEY = os.getenv("LLM_API_KEY")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
    LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")

    HEADLESS = _env_flag("HEADLESS", "true")
    LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "Asia/Seoul")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")


settings = Settings()


@dataclass
class CrawlThresholds:
    """Timing, retry and pacing limits for a crawl run."""

    # Session cache
    session_ttl_hours: int = 24

    # Manual CAPTCHA completion
    captcha_poll_interval_seconds: float = 30.0
    captcha_max_wait_seconds: float = 300.0

    # Scrape retries (DriverError only, structural errors are never retried)
    scrape_max_retries: int = 2
    retry_backoff_min_seconds: float = 2.0
    retry_backoff_max_seconds: float = 4.0

    # Pacing between navigation actions
    step_delay_min_seconds: float = 2.0
    step_delay_max_seconds: float = 4.0

    # Page waits
    navigation_timeout_ms: int = 30000
    comment_container_timeout_ms: int = 8000

    # Whole-task wall clock, includes the CAPTCHA wait
    task_timeout_seconds: float = 600.0

    # Post list scrolling
    max_posts: int = 100
    max_scroll_attempts: int = 50
    scroll_idle_limit: int = 5  # Consecutive scrolls without new posts

    # Comment expansion
    previous_comments_max_clicks: int = 30

    # Human-like typing
    typing_min_char_delay_ms: int = 50
    typing_max_char_delay_ms: int = 150
    fast_mode: bool = False  # Skip all pacing when True

    @classmethod
    def from_env(cls) -> "CrawlThresholds":
        """Load thresholds from environment variables.

        Environment variables should be prefixed with BANDCRAWL_THRESHOLD_
        e.g., BANDCRAWL_THRESHOLD_TASK_TIMEOUT_SECONDS=900

        Returns:
            CrawlThresholds with values from environment
        """
        thresholds = cls()
        prefix = "BANDCRAWL_THRESHOLD_"

        for field_name in thresholds.__dataclass_fields__:
            env_key = f"{prefix}{field_name.upper()}"
            env_value = os.getenv(env_key)

            if env_value is not None:
                field_type = thresholds.__dataclass_fields__[field_name].type
                try:
                    if field_type in (bool, "bool"):
                        setattr(thresholds, field_name, env_value.strip().lower() in ("1", "true", "yes", "on"))
                    elif field_type in (int, "int"):
                        setattr(thresholds, field_name, int(env_value))
                    elif field_type in (float, "float"):
                        setattr(thresholds, field_name, float(env_value))
                except ValueError:
                    pass  # Keep default if conversion fails

        return thresholds

    @classmethod
    def from_file(cls, path: str) -> "CrawlThresholds":
        """Load thresholds from a JSON configuration file.

        Args:
            path: Path to JSON configuration file

        Returns:
            CrawlThresholds with values from file
        """
        thresholds = cls()
        file_path = Path(path)

        if not file_path.exists():
            return thresholds

        with open(file_path, 'r') as f:
            config = json.load(f)

        threshold_config = config.get('thresholds', config)

        for field_name in thresholds.__dataclass_fields__:
            if field_name in threshold_config:
                setattr(thresholds, field_name, threshold_config[field_name])

        return thresholds

    def to_dict(self) -> dict:
        """Convert thresholds to dictionary."""
        return {
            field_name: getattr(self, field_name)
            for field_name in self.__dataclass_fields__
        }


# Global default thresholds instance
default_thresholds = CrawlThresholds()
