"""
Input pacing for the Naver login form and the Band feed.

Naver's login page flags form fills and instant submits, so credentials are
entered as individual keystrokes and every navigation is followed by a
randomized pause. Fast mode removes all waits for tests and local runs.
"""

import asyncio
import random
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class HumanSimulatorConfig:
    """Delay ranges for keystrokes, navigation steps and clicks."""

    min_char_delay_ms: int = 50
    max_char_delay_ms: int = 150

    min_step_delay_seconds: float = 2.0
    max_step_delay_seconds: float = 4.0

    # Lazy-loaded content (feed scroll, previous comments) waits base * factor
    settle_jitter: Tuple[float, float] = (0.8, 1.3)

    pre_click_delay_ms: int = 100
    max_click_offset_px: int = 3

    fast_mode: bool = False


class HumanSimulator:
    """
    Keystroke typing, offset clicks and step pacing for one browser session.

    Usage:
        simulator = HumanSimulator()
        await simulator.type_text(page, "#id", "naver_user")
        await simulator.click_element(page, "button.btn_login")
        await simulator.step_pause("after login")
    """

    def __init__(self, config: Optional[HumanSimulatorConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or HumanSimulatorConfig()
        self._rng = rng or random.Random()

    def keystroke_delay(self) -> float:
        low, high = self.config.min_char_delay_ms, self.config.max_char_delay_ms
        return self._rng.uniform(low, high) / 1000.0

    def settle_ms(self, base_ms: int) -> int:
        """Wait in milliseconds after triggering lazy content, 0 in fast mode."""
        if self.config.fast_mode:
            return 0
        low, high = self.config.settle_jitter
        return int(base_ms * self._rng.uniform(low, high))

    async def type_text(self, page, selector: str, text: str, clear_first: bool = True) -> bool:
        """
        Focus an input and send ``text`` as separate key events.

        The value itself is never logged since this types passwords.

        Returns:
            False if the input is missing, True once the text was sent
        """
        field = page.locator(selector).first
        if await field.count() == 0:
            logger.warning(f"Input not found: {selector}")
            return False

        await field.click()
        if clear_first:
            await field.fill("")

        if self.config.fast_mode:
            await field.press_sequentially(text)
        else:
            for key in text:
                await field.press_sequentially(key)
                await asyncio.sleep(self.keystroke_delay())

        logger.debug(f"Typed {len(text)} keys into {selector}")
        return True

    async def step_pause(self, reason: str = "step") -> float:
        """Sleep between navigation steps; returns the seconds slept."""
        if self.config.fast_mode:
            return 0.0

        seconds = self._rng.uniform(self.config.min_step_delay_seconds, self.config.max_step_delay_seconds)
        logger.debug(f"Pausing {seconds:.2f}s after {reason}")
        await asyncio.sleep(seconds)
        return seconds

    async def click_element(self, page, selector: str) -> bool:
        """
        Move to a point near the element center and click there.

        Falls back to a plain element click when the element has no layout
        box (hidden or detached) or in fast mode.

        Returns:
            False when the selector matches nothing
        """
        target = await page.query_selector(selector)
        if target is None:
            logger.warning(f"Click target not found: {selector}")
            return False

        box = None if self.config.fast_mode else await target.bounding_box()
        if not box:
            await target.click()
            return True

        spread = self.config.max_click_offset_px
        x = box["x"] + box["width"] / 2 + self._rng.uniform(-spread, spread)
        y = box["y"] + box["height"] / 2 + self._rng.uniform(-spread, spread)

        await page.mouse.move(x, y)
        await asyncio.sleep(self.config.pre_click_delay_ms / 1000.0)
        await page.mouse.click(x, y)
        logger.debug(f"Clicked {selector} at ({x:.0f}, {y:.0f})")
        return True


def create_human_simulator_from_thresholds(thresholds) -> HumanSimulator:
    """Build a simulator from the typing and step-delay fields of CrawlThresholds."""
    return HumanSimulator(HumanSimulatorConfig(
        min_char_delay_ms=thresholds.typing_min_char_delay_ms,
        max_char_delay_ms=thresholds.typing_max_char_delay_ms,
        min_step_delay_seconds=thresholds.step_delay_min_seconds,
        max_step_delay_seconds=thresholds.step_delay_max_seconds,
        fast_mode=thresholds.fast_mode,
    ))
