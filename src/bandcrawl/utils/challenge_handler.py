"""
CAPTCHA detection and manual-login wait loop.

Naver occasionally interrupts the login with a CAPTCHA or a security check.
The crawler does not solve these: it detects them, reports a CaptchaRequired
outcome, and polls until an operator finishes the login in the (headed)
browser or the wait budget runs out.

Usage:
    indicator = await detect_captcha(page)
    if indicator:
        ok = await wait_for_login_markers(page, 30, 300, driver.is_logged_in)
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from bandcrawl.constants import CAPTCHA_SELECTORS, CAPTCHA_TEXT_MARKERS

logger = logging.getLogger(__name__)


# =============================================================================
# CAPTCHA Detection
# =============================================================================

async def detect_captcha(page) -> Optional[str]:
    """
    Detect a CAPTCHA or security check on the current page.

    Args:
        page: Async Playwright Page instance

    Returns:
        Name of the matched indicator ("recaptcha_iframe", "text:보안문자", ...),
        or None if no challenge was found
    """
    for name, selector in CAPTCHA_SELECTORS.items():
        try:
            if await page.locator(selector).count() > 0:
                return name
        except Exception as e:
            logger.debug(f"CAPTCHA selector {name} not checkable: {e}")
            continue

    try:
        body_text = await page.inner_text("body")
    except Exception as e:
        logger.debug(f"Could not read page body for CAPTCHA markers: {e}")
        return None

    lowered = body_text.lower()
    for marker in CAPTCHA_TEXT_MARKERS:
        if marker.lower() in lowered:
            return f"text:{marker}"
    return None


async def is_captcha_page(page) -> bool:
    """Check if the current page shows any CAPTCHA."""
    return await detect_captcha(page) is not None


# =============================================================================
# Manual Completion Wait
# =============================================================================

async def wait_for_login_markers(
    page,
    poll_interval: float,
    max_wait: float,
    is_logged_in: Callable[[object], Awaitable[bool]],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """
    Poll until the logged-in marker appears or the wait budget is spent.

    Args:
        page: Async Playwright Page instance
        poll_interval: Seconds between checks
        max_wait: Total seconds to wait
        is_logged_in: Async predicate evaluated against the page
        sleep: Sleep coroutine (replaceable in tests)

    Returns:
        True once logged in, False on timeout
    """
    logger.info(f"Waiting up to {max_wait:.0f}s for manual login completion...")

    elapsed = 0.0
    while elapsed < max_wait:
        await sleep(poll_interval)
        elapsed += poll_interval

        if await is_logged_in(page):
            logger.info(f"Manual login completed after {elapsed:.0f}s")
            return True
        logger.debug(f"Still waiting for manual login ({elapsed:.0f}s/{max_wait:.0f}s)")

    logger.warning(f"Manual login not completed after {max_wait:.0f}s")
    return False
