"""
Browser configuration for the Playwright Band driver.

A validated Pydantic model for the browser launch and context settings.
"""
import random
from typing import Dict, List, Literal

from pydantic import BaseModel, Field

from bandcrawl.config import settings


USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
]

DESKTOP_VIEWPORTS = [
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
]


def get_random_user_agent() -> str:
    """Get a random user agent from the pool."""
    return random.choice(USER_AGENTS)


class BrowserConfig(BaseModel):
    """
    Configuration for PlaywrightBandDriver.

    All fields are validated by Pydantic to ensure type safety and valid values.
    """

    headless: bool = Field(
        default_factory=lambda: settings.HEADLESS,
        description="Run browser in headless mode (no visible UI)"
    )

    browser_type: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to drive"
    )

    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = Field(
        default="domcontentloaded",
        description="When to consider navigation complete"
    )

    user_agent: str = Field(
        default_factory=get_random_user_agent,
        description="User agent for the browser context"
    )

    viewport: Dict[str, int] = Field(
        default_factory=lambda: random.choice(DESKTOP_VIEWPORTS),
        description="Viewport size for the browser context"
    )

    locale: str = Field(default="ko-KR")

    timezone_id: str = Field(default_factory=lambda: settings.LOCAL_TIMEZONE)

    launch_args: List[str] = Field(
        default_factory=lambda: ["--disable-blink-features=AutomationControlled"],
        description="Extra command-line arguments for the browser"
    )
