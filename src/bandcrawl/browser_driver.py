"""
Browser automation for Band.

One driver instance owns one browser context for the lifetime of one
crawl task. It is used as an async context manager:

    async with PlaywrightBandDriver(thresholds=thresholds) as driver:
        await driver.apply_session(session)
        check = await driver.verify_access(target)
        comments = await driver.scrape_comments(target.post_ref)

Every Playwright fault (navigation, page reads, cookie access) surfaces as
DriverError carrying the step name. A missing page structure raises
ScrapeStructureError so the caller can tell a layout change apart from a
flaky network.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from bandcrawl.browser_config import BrowserConfig
from bandcrawl.config import CrawlThresholds, default_thresholds
from bandcrawl.constants import (
    BAND_HOME_URL,
    BAND_LOGIN_URL,
    COMMENT_CONTAINER,
    LOGGED_IN_MARKER,
    LOGIN_HOSTS,
    NAVER_ID_INPUT,
    NAVER_LOGIN_BUTTON,
    NAVER_LOGIN_ERROR,
    NAVER_LOGIN_URL,
    NAVER_PW_INPUT,
    NAVER_SUBMIT_BUTTON,
    POST_CARD_FALLBACK,
    POST_DETAIL_CONTAINER,
    POST_LIST_CONTAINER,
    PREVIOUS_COMMENTS_BUTTON,
)
from bandcrawl.models import (
    AccessCheck,
    CaptchaRequired,
    Credentials,
    InvalidCredentials,
    LoginOutcome,
    LoginSuccess,
    LoginUnknown,
    PostRef,
    ScrapedComment,
    ScrapedPost,
    TargetRef,
)
from bandcrawl.parsers import (
    detect_access_state,
    has_post_body,
    is_blocked_post,
    parse_comments,
    parse_post_detail,
    parse_post_list,
)
from bandcrawl.utils.challenge_handler import detect_captcha, wait_for_login_markers
from bandcrawl.utils.human_simulator import HumanSimulator, create_human_simulator_from_thresholds
from bandcrawl.utils.session_store import SessionData

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Polls of the page after submitting the login form
LOGIN_RESULT_POLLS = 15
LOGIN_RESULT_POLL_MS = 1000
SCROLL_SETTLE_MS = 1500
PREVIOUS_COMMENTS_SETTLE_MS = 800


class DriverError(Exception):
    """Raised when a navigation or network step fails."""
    def __init__(self, step: str, message: str = ""):
        self.step = step
        self.message = message
        super().__init__(f"{step}: {message}" if message else step)


class ScrapeStructureError(DriverError):
    """Raised when a required page element is absent. Not worth retrying."""
    def __init__(self, step: str, selector: str, message: str = ""):
        self.selector = selector
        super().__init__(step, message or f"required element not found: {selector}")


class AbstractBandDriver(ABC):
    """Interface of one browser session against Band."""

    async def __aenter__(self) -> "AbstractBandDriver":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    @abstractmethod
    async def apply_session(self, session: SessionData) -> None:
        """Inject cached cookies into the browser context."""
        pass

    @abstractmethod
    async def verify_access(self, target: TargetRef) -> AccessCheck:
        """Check login state, then permission on the target."""
        pass

    @abstractmethod
    async def login(self, credentials: Credentials) -> LoginOutcome:
        """Log in through Naver with keystroke-level input."""
        pass

    @abstractmethod
    async def await_manual_completion(self, poll_interval: float, max_wait: float) -> bool:
        """Poll until an operator has finished an interrupted login."""
        pass

    @abstractmethod
    async def scrape_post_list(self, target: TargetRef) -> List[ScrapedPost]:
        pass

    @abstractmethod
    async def scrape_post(self, post_ref: PostRef) -> ScrapedPost:
        """Read one post from its permalink."""
        pass

    @abstractmethod
    async def scrape_comments(self, post_ref: PostRef) -> List[ScrapedComment]:
        """All comments of a post; empty if the comment container never appears."""
        pass

    @abstractmethod
    async def current_cookies(self) -> List[Dict[str, Any]]:
        pass


class PlaywrightBandDriver(AbstractBandDriver):
    """
    Band driver on top of Playwright's async API.

    Each instance launches its own browser and a single isolated context,
    which is closed on exit even when the crawl fails.
    """

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        thresholds: Optional[CrawlThresholds] = None,
        simulator: Optional[HumanSimulator] = None,
    ):
        """
        Args:
            config: Browser launch/context settings
            thresholds: Timing knobs (default: default_thresholds)
            simulator: Human-like input helper (default: built from thresholds)
        """
        self._config = config or BrowserConfig()
        self._thresholds = thresholds or default_thresholds
        self._simulator = simulator or create_human_simulator_from_thresholds(self._thresholds)
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None

    async def __aenter__(self) -> "PlaywrightBandDriver":
        """Launch the browser and open one context and page.

        Whatever was started is shut down again if a later step fails.
        """
        logger.info(f"Launching {self._config.browser_type} browser (headless={self._config.headless})")

        try:
            self._playwright = await async_playwright().start()
            browser_launcher = getattr(self._playwright, self._config.browser_type)
            self._browser = await browser_launcher.launch(
                headless=self._config.headless,
                args=self._config.launch_args,
            )
            self._context = await self._browser.new_context(
                viewport=self._config.viewport,
                user_agent=self._config.user_agent,
                locale=self._config.locale,
                timezone_id=self._config.timezone_id,
            )
            self.page = await self._context.new_page()
            self.page.set_default_timeout(self._thresholds.navigation_timeout_ms)
        except BaseException as e:
            await self.__aexit__(type(e), e, e.__traceback__)
            if isinstance(e, PlaywrightError):
                raise DriverError("launch", f"browser start failed: {e}") from e
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close context, browser and Playwright, in that order."""
        if self._context:
            await self._context.close()
            self._context = None
            self.page = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

        logger.info("Browser closed")

    # -- helpers --------------------------------------------------------------

    async def _guard(self, step: str, pending: Awaitable[T]) -> T:
        """Await a Playwright call, re-raising its faults as DriverError."""
        try:
            return await pending
        except PlaywrightError as e:
            raise DriverError(step, str(e)) from e

    async def _goto(self, url: str, step: str) -> None:
        try:
            await self.page.goto(
                url,
                wait_until=self._config.wait_until,
                timeout=self._thresholds.navigation_timeout_ms,
            )
        except PlaywrightError as e:
            raise DriverError(step, f"navigation to {url} failed: {e}") from e
        await self._simulator.step_pause(step)

    async def _wait_for(self, selector: str, timeout_ms: int, step: str) -> bool:
        """True once the selector is attached, False when it never shows up."""
        try:
            await self.page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            raise DriverError(step, f"waiting for {selector} failed: {e}") from e

    async def _html(self, step: str) -> str:
        return await self._guard(step, self.page.content())

    def _on_login_host(self) -> bool:
        host = urlparse(self.page.url or "").hostname or ""
        return host in LOGIN_HOSTS

    async def is_logged_in(self, page=None) -> bool:
        """Off the login hosts and showing the profile marker."""
        page = page or self.page
        host = urlparse(page.url or "").hostname or ""
        if host in LOGIN_HOSTS:
            return False
        return await self._guard("session_check", page.query_selector(LOGGED_IN_MARKER)) is not None

    # -- session --------------------------------------------------------------

    async def apply_session(self, session: SessionData) -> None:
        await self._guard("apply_session", self._context.add_cookies(session.cookies))
        logger.debug(f"Applied {len(session.cookies)} cached cookies for {session.account_id}")

    async def current_cookies(self) -> List[Dict[str, Any]]:
        return list(await self._guard("cookies", self._context.cookies()))

    async def verify_access(self, target: TargetRef) -> AccessCheck:
        await self._goto(BAND_HOME_URL, "verify_home")
        home = detect_access_state(await self._html("verify_home"))
        if self._on_login_host() or home.login_page or not home.logged_in_marker:
            logger.info("Not logged in on Band home")
            return AccessCheck(logged_in=False, has_access=False)

        await self._goto(target.url, "verify_target")
        html = await self._html("verify_target")
        state = detect_access_state(html)
        if self._on_login_host() or state.login_page:
            return AccessCheck(logged_in=False, has_access=False)

        body_text = await self._guard("verify_target", self.page.inner_text("body"))
        has_access = (
            not state.access_denied
            and not is_blocked_post(body_text)
            and (state.band_content or has_post_body(html))
        )
        if not has_access:
            logger.warning(f"No access to {target.url}")
        return AccessCheck(logged_in=True, has_access=has_access)

    # -- login ----------------------------------------------------------------

    async def login(self, credentials: Credentials) -> LoginOutcome:
        """
        Log in through the Naver login form.

        Returns:
            LoginSuccess with the context cookies, CaptchaRequired when a
            verification page shows up, InvalidCredentials when Naver shows
            an error message, or LoginUnknown with a diagnostic.
        """
        await self._goto(BAND_LOGIN_URL, "login")

        if not await self._guard("login", self._simulator.click_element(self.page, NAVER_LOGIN_BUTTON)):
            logger.debug("Naver login button not found, opening Naver login directly")
            await self._goto(NAVER_LOGIN_URL, "login")

        if not await self._wait_for(NAVER_ID_INPUT, self._thresholds.navigation_timeout_ms, "login"):
            return LoginUnknown(f"login form not found at {self.page.url}")

        captcha = await detect_captcha(self.page)
        if captcha:
            return CaptchaRequired(url=self.page.url, indicator=captcha)

        for selector, value in ((NAVER_ID_INPUT, credentials.account_id), (NAVER_PW_INPUT, credentials.password)):
            if not await self._guard("login", self._simulator.type_text(self.page, selector, value)):
                return LoginUnknown(f"login input {selector} disappeared at {self.page.url}")

        if not await self._guard("login", self._simulator.click_element(self.page, NAVER_SUBMIT_BUTTON)):
            await self._guard("login", self.page.press(NAVER_PW_INPUT, "Enter"))

        return await self._await_login_result()

    async def _await_login_result(self) -> LoginOutcome:
        for _ in range(LOGIN_RESULT_POLLS):
            await self._guard("login", self.page.wait_for_timeout(LOGIN_RESULT_POLL_MS))

            captcha = await detect_captcha(self.page)
            if captcha:
                logger.warning(f"CAPTCHA shown during login ({captcha})")
                return CaptchaRequired(url=self.page.url, indicator=captcha)

            error = await self._guard("login", self.page.query_selector(NAVER_LOGIN_ERROR))
            if error is not None:
                message = (await self._guard("login", error.inner_text())).strip()
                if message:
                    logger.warning(f"Naver rejected the login: {message}")
                    return InvalidCredentials(message)

            if not self._on_login_host():
                logger.info(f"Login navigated to {self.page.url}")
                return LoginSuccess(cookies=tuple(await self.current_cookies()))

        return LoginUnknown(f"still on login page after submit: {self.page.url}")

    async def await_manual_completion(self, poll_interval: float, max_wait: float) -> bool:
        return await wait_for_login_markers(self.page, poll_interval, max_wait, self._poll_logged_in)

    async def _poll_logged_in(self, page) -> bool:
        try:
            return await self.is_logged_in(page)
        except DriverError as e:
            # The operator is mid-navigation; the next poll looks again
            logger.debug(f"Login state not readable yet: {e}")
            return False

    # -- scraping -------------------------------------------------------------

    async def scrape_post_list(self, target: TargetRef) -> List[ScrapedPost]:
        """
        Scroll a band page and read its posts.

        A target with a post id reads that single post instead.
        """
        if target.post_ref is not None:
            return [await self.scrape_post(target.post_ref)]

        await self._goto(target.url, "post_list")
        if not await self._wait_for(POST_LIST_CONTAINER, self._thresholds.navigation_timeout_ms, "post_list"):
            raise ScrapeStructureError("post_list", POST_LIST_CONTAINER)

        await self._scroll_until_loaded()
        posts = parse_post_list(await self._html("post_list"), target.band_id)
        logger.info(f"Scraped {len(posts)} posts from band {target.band_id}")
        return posts[:self._thresholds.max_posts]

    async def _scroll_until_loaded(self) -> None:
        thresholds = self._thresholds
        count = await self._guard("post_list", self.page.locator(POST_CARD_FALLBACK).count())
        idle = 0

        for attempt in range(thresholds.max_scroll_attempts):
            if count >= thresholds.max_posts:
                break
            try:
                await self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
                await self.page.wait_for_timeout(self._simulator.settle_ms(SCROLL_SETTLE_MS))
                new_count = await self.page.locator(POST_CARD_FALLBACK).count()
            except PlaywrightError as e:
                raise DriverError("post_list", f"scroll failed: {e}") from e

            if new_count == count:
                idle += 1
                if idle >= thresholds.scroll_idle_limit:
                    logger.debug(f"No new posts after {idle} scrolls, stopping at {count}")
                    break
            else:
                idle = 0
                count = new_count
            logger.debug(f"Scroll {attempt + 1}: {count} posts loaded")

    async def scrape_post(self, post_ref: PostRef) -> ScrapedPost:
        await self._goto(post_ref.url, "post_detail")
        if not await self._wait_for(POST_DETAIL_CONTAINER, self._thresholds.navigation_timeout_ms, "post_detail"):
            raise ScrapeStructureError("post_detail", POST_DETAIL_CONTAINER)

        post = parse_post_detail(await self._html("post_detail"), post_ref.band_id, post_ref.post_id)
        if post is None:
            raise ScrapeStructureError("post_detail", POST_DETAIL_CONTAINER)
        return post

    async def scrape_comments(self, post_ref: PostRef) -> List[ScrapedComment]:
        await self._goto(post_ref.url, "comments")
        if not await self._wait_for(POST_DETAIL_CONTAINER, self._thresholds.navigation_timeout_ms, "comments"):
            raise ScrapeStructureError("comments", POST_DETAIL_CONTAINER)

        if not await self._wait_for(COMMENT_CONTAINER, self._thresholds.comment_container_timeout_ms, "comments"):
            logger.info(f"No comment container on {post_ref}, treating as no comments")
            return []

        await self._expand_previous_comments()
        comments = parse_comments(await self._html("comments"), post_ref)
        logger.info(f"Scraped {len(comments)} comments from {post_ref}")
        return comments

    async def _expand_previous_comments(self) -> None:
        for clicks in range(self._thresholds.previous_comments_max_clicks):
            try:
                button = await self.page.query_selector(PREVIOUS_COMMENTS_BUTTON)
                if button is None:
                    return
                await button.click()
                await self.page.wait_for_timeout(self._simulator.settle_ms(PREVIOUS_COMMENTS_SETTLE_MS))
            except PlaywrightError as e:
                raise DriverError("comments", f"loading previous comments failed: {e}") from e
            logger.debug(f"Loaded previous comments ({clicks + 1})")
