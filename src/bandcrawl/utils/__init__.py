"""
Utilities Package.

Session cookie persistence, CAPTCHA detection and human-like interaction
helpers used by the browser driver.
"""

from .challenge_handler import (
    detect_captcha,
    is_captcha_page,
    wait_for_login_markers,
)

from .human_simulator import (
    HumanSimulator,
    HumanSimulatorConfig,
    create_human_simulator_from_thresholds,
)

from .session_store import (
    SessionStore,
    SessionData,
    filter_cookies,
)

__all__ = [
    # CAPTCHA
    "detect_captcha",
    "is_captcha_page",
    "wait_for_login_markers",
    # Human simulation
    "HumanSimulator",
    "HumanSimulatorConfig",
    "create_human_simulator_from_thresholds",
    # Session persistence
    "SessionStore",
    "SessionData",
    "filter_cookies",
]
