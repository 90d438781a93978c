"""
Crawl orchestration.

One CrawlOrchestrator.run() call drives one task through

    Pending -> SessionCheck -> [LoggingIn -> [CaptchaWait]] -> AccessVerify
            -> Scraping -> Persisting -> Completed | Failed

reporting every step to the TaskRegistry. Every run ends in a terminal
state: failures become a Failed task with a short reason in `error`, and
the whole run is bounded by a wall-clock ceiling.

Usage:
    orchestrator = CrawlOrchestrator(registry, session_store, store, PlaywrightBandDriver)
    task_id = registry.create(TaskKind.COMMENT_CRAWL, "Queued")
    await orchestrator.run(task_id, TaskKind.COMMENT_CRAWL, credentials, target)
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from bandcrawl.browser_driver import AbstractBandDriver, DriverError, ScrapeStructureError
from bandcrawl.config import CrawlThresholds, default_thresholds
from bandcrawl.database import AbstractStore, PersistenceError
from bandcrawl.extraction.orders import collect_post_orders, is_sale_closed
from bandcrawl.extraction.pricing import content_has_price_indicator
from bandcrawl.models import (
    CaptchaRequired,
    Credentials,
    InvalidCredentials,
    LoginSuccess,
    LoginUnknown,
    ScrapedComment,
    ScrapedPost,
    TargetRef,
    TaskKind,
    TaskStatus,
)
from bandcrawl.task_registry import TaskRegistry
from bandcrawl.utils.session_store import SessionStore

logger = logging.getLogger(__name__)


class CrawlState(Enum):
    """Orchestrator states, reported in task.extra["state"]."""
    PENDING = "Pending"
    SESSION_CHECK = "SessionCheck"
    LOGGING_IN = "LoggingIn"
    CAPTCHA_WAIT = "CaptchaWait"
    ACCESS_VERIFY = "AccessVerify"
    SCRAPING = "Scraping"
    PERSISTING = "Persisting"
    COMPLETED = "Completed"
    FAILED = "Failed"


class TaskFailed(Exception):
    """Ends a run in Failed with a machine-usable reason."""
    def __init__(self, reason: str, message: str, diagnostic: Optional[str] = None):
        self.reason = reason
        self.message = message
        self.diagnostic = diagnostic
        super().__init__(f"{reason}: {message}")


def driver_failure_reason(error: DriverError) -> str:
    if isinstance(error, ScrapeStructureError):
        return f"structure_changed:{error.step}"
    return f"network_error:{error.step}"


@dataclass
class CrawlRun:
    """Per-run state owned by exactly one orchestration run."""
    task_id: str
    kind: TaskKind
    credentials: Credentials
    target: TargetRef
    relogin_used: bool = False
    used_cached_session: bool = False
    orders: int = 0
    retries: List[Dict[str, Any]] = field(default_factory=list)


ScrapedBatch = List[Tuple[ScrapedPost, List[ScrapedComment]]]


class CrawlOrchestrator:
    """Runs crawl tasks against injected collaborators."""

    def __init__(
        self,
        registry: TaskRegistry,
        session_store: SessionStore,
        store: AbstractStore,
        driver_factory: Callable[[], AbstractBandDriver],
        engine=None,
        thresholds: Optional[CrawlThresholds] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            registry: Task registry receiving state and progress
            session_store: Cached cookies per account
            store: Persistence adapter
            driver_factory: Returns a fresh driver (one browser context) per run
            engine: Optional ExtractionEngine; PostCrawl extracts products when set
            thresholds: Timing and retry knobs (default: default_thresholds)
            sleep: Coroutine used for retry backoff
            rng: Random source for backoff jitter
        """
        self.registry = registry
        self.session_store = session_store
        self.store = store
        self.driver_factory = driver_factory
        self.engine = engine
        self.thresholds = thresholds or default_thresholds
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def run(
        self,
        task_id: str,
        kind: TaskKind,
        credentials: Credentials,
        target: TargetRef,
    ) -> None:
        """Drive one task to a terminal state. Never raises."""
        crawl = CrawlRun(task_id=task_id, kind=kind, credentials=credentials, target=target)
        try:
            await asyncio.wait_for(self._run(crawl), timeout=self.thresholds.task_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Task {task_id} exceeded {self.thresholds.task_timeout_seconds:.0f}s")
            self._fail(crawl, "timeout", "Crawl timed out")
        except TaskFailed as e:
            logger.warning(f"Task {task_id} failed: {e}")
            self._fail(crawl, e.reason, e.message, e.diagnostic)
        except DriverError as e:
            logger.warning(f"Task {task_id} browser failure: {e}")
            self._fail(crawl, driver_failure_reason(e), f"Browser step failed: {e}")
        except Exception as e:
            logger.exception(f"Task {task_id} crashed: {e}")
            self._fail(crawl, "internal_error", f"Unexpected error: {e}")

    async def _run(self, crawl: CrawlRun) -> None:
        async with self.driver_factory() as driver:
            await self._check_session(crawl, driver)
            await self._verify_access(crawl, driver)
            batch = await self._scrape(crawl, driver)

        persisted, failed, saved = await self._persist(crawl, batch)
        if crawl.kind is TaskKind.POST_CRAWL and self.engine is not None:
            failed += await self._extract_products(crawl, saved)
        elif crawl.kind is TaskKind.COMMENT_CRAWL:
            failed += await self._refresh_orders(crawl, saved)

        self.registry.update(
            crawl.task_id,
            status=TaskStatus.COMPLETED,
            message=f"Crawl completed: {persisted} saved, {failed} failed",
            progress=100,
            extra={
                "state": CrawlState.COMPLETED.value,
                "persisted_items": persisted,
                "failed_items": failed,
            },
        )
        logger.info(f"Task {crawl.task_id} completed ({persisted} saved, {failed} failed)")

    # -- bookkeeping ----------------------------------------------------------

    def _enter(
        self,
        crawl: CrawlRun,
        state: CrawlState,
        message: str,
        progress: Optional[int] = None,
        **extra: Any,
    ) -> None:
        logger.info(f"Task {crawl.task_id}: {state.value} - {message}")
        self.registry.update(
            crawl.task_id,
            status=TaskStatus.PROCESSING,
            message=message,
            progress=progress,
            extra={"state": state.value, **extra},
        )

    def _fail(
        self,
        crawl: CrawlRun,
        reason: str,
        message: str,
        diagnostic: Optional[str] = None,
    ) -> None:
        extra: Dict[str, Any] = {"state": CrawlState.FAILED.value}
        if diagnostic:
            extra["diagnostic"] = diagnostic
        self.registry.update(
            crawl.task_id,
            status=TaskStatus.FAILED,
            message=message,
            error=reason,
            extra=extra,
        )

    # -- authentication -------------------------------------------------------

    async def _check_session(self, crawl: CrawlRun, driver: AbstractBandDriver) -> None:
        self._enter(crawl, CrawlState.SESSION_CHECK, "Checking cached session", progress=10)

        account_id = crawl.credentials.account_id
        session = self.session_store.load(account_id)
        if session is not None and session.is_usable(self.thresholds.session_ttl_hours):
            await driver.apply_session(session)
            crawl.used_cached_session = True
            logger.info(f"Task {crawl.task_id}: reusing session captured {session.captured_at}")
        else:
            await self._login(crawl, driver)

        self.registry.update(crawl.task_id, extra={"used_cached_session": crawl.used_cached_session})

    async def _login(self, crawl: CrawlRun, driver: AbstractBandDriver) -> None:
        self._enter(crawl, CrawlState.LOGGING_IN, "Logging in")
        account_id = crawl.credentials.account_id

        try:
            outcome = await driver.login(crawl.credentials)
        except DriverError as e:
            raise TaskFailed(driver_failure_reason(e), f"Login failed: {e}") from e

        if isinstance(outcome, LoginSuccess):
            self.session_store.save(account_id, outcome.cookies)
            return

        if isinstance(outcome, CaptchaRequired):
            self._enter(
                crawl,
                CrawlState.CAPTCHA_WAIT,
                "Waiting for manual login completion (CAPTCHA)",
            )
            completed = await driver.await_manual_completion(
                self.thresholds.captcha_poll_interval_seconds,
                self.thresholds.captcha_max_wait_seconds,
            )
            if not completed:
                raise TaskFailed("manual_login_timeout", "Manual login was not completed in time")
            self.session_store.save(account_id, await driver.current_cookies())
            return

        if isinstance(outcome, InvalidCredentials):
            raise TaskFailed("invalid_credentials", f"Login rejected: {outcome.message}")

        if isinstance(outcome, LoginUnknown):
            raise TaskFailed("login_unknown", "Login ended in an unknown state", outcome.diagnostic)

        raise TaskFailed("login_unknown", "Login returned no outcome", repr(outcome))

    async def _verify_access(self, crawl: CrawlRun, driver: AbstractBandDriver) -> None:
        while True:
            self._enter(crawl, CrawlState.ACCESS_VERIFY, f"Verifying access to {crawl.target.url}", progress=30)
            try:
                check = await driver.verify_access(crawl.target)
            except DriverError as e:
                raise TaskFailed(driver_failure_reason(e), f"Access check failed: {e}") from e

            if not check.logged_in:
                if crawl.relogin_used:
                    raise TaskFailed("not_logged_in", "Still not logged in after a fresh login")
                crawl.relogin_used = True
                logger.warning(f"Task {crawl.task_id}: session rejected, logging in again")
                self.session_store.invalidate(crawl.credentials.account_id)
                await self._login(crawl, driver)
                continue

            if not check.has_access:
                raise TaskFailed("access_denied", f"No permission on {crawl.target.url}")
            return

    # -- scraping -------------------------------------------------------------

    async def _with_retries(self, crawl: CrawlRun, call: Callable[[], Awaitable[Any]]) -> Any:
        """Run a driver call, retrying transient failures with jittered backoff."""
        attempt = 0
        while True:
            try:
                return await call()
            except ScrapeStructureError as e:
                raise TaskFailed(
                    driver_failure_reason(e), f"Page structure changed at {e.step}: {e.selector}"
                ) from e
            except DriverError as e:
                if attempt >= self.thresholds.scrape_max_retries:
                    raise TaskFailed(
                        driver_failure_reason(e), f"{e.step} failed after {attempt + 1} attempts: {e}"
                    ) from e
                attempt += 1
                crawl.retries.append({"step": e.step, "attempt": attempt, "error": str(e)})
                self.registry.update(crawl.task_id, extra={"retries": list(crawl.retries)})

                delay = self._rng.uniform(
                    self.thresholds.retry_backoff_min_seconds,
                    self.thresholds.retry_backoff_max_seconds,
                )
                logger.warning(f"Task {crawl.task_id}: {e.step} failed ({e}), retry {attempt} in {delay:.1f}s")
                await self._sleep(delay)

    async def _scrape(self, crawl: CrawlRun, driver: AbstractBandDriver) -> ScrapedBatch:
        self._enter(crawl, CrawlState.SCRAPING, "Scraping", progress=50)

        if crawl.kind is TaskKind.COMMENT_CRAWL:
            post_ref = crawl.target.post_ref
            if post_ref is None:
                raise TaskFailed("invalid_target", "Comment crawl needs a post id")
            post = await self._with_retries(crawl, lambda: driver.scrape_post(post_ref))
            comments = await self._with_retries(crawl, lambda: driver.scrape_comments(post_ref))
            self.registry.update(crawl.task_id, message=f"Scraped {len(comments)} comments", progress=70)
            return [(post, comments)]

        posts = await self._with_retries(crawl, lambda: driver.scrape_post_list(crawl.target))
        self.registry.update(crawl.task_id, message=f"Found {len(posts)} posts", progress=60)

        batch: ScrapedBatch = []
        for index, post in enumerate(posts, start=1):
            comments: List[ScrapedComment] = []
            if post.comment_count > 0 and not post.has_placeholder_id:
                comments = await self._with_retries(
                    crawl, lambda ref=post.ref: driver.scrape_comments(ref)
                )
            batch.append((post, comments))
            self.registry.update(
                crawl.task_id,
                message=f"Scraped {index}/{len(posts)} posts",
                progress=60 + (10 * index) // max(len(posts), 1),
            )
        return batch

    # -- persistence ----------------------------------------------------------

    async def _persist(self, crawl: CrawlRun, batch: ScrapedBatch) -> Tuple[int, int, ScrapedBatch]:
        """Write the batch item by item. Returns (persisted, failed, saved items)."""
        self._enter(crawl, CrawlState.PERSISTING, f"Saving {len(batch)} item(s)", progress=70)

        saved: ScrapedBatch = []
        failed = 0
        for index, (post, comments) in enumerate(batch, start=1):
            if post.has_placeholder_id:
                logger.warning(f"Saving post with placeholder id {post.ref}")
            try:
                await asyncio.to_thread(self.store.save_post_with_comments, post, comments)
            except PersistenceError as e:
                failed += 1
                logger.warning(f"Task {crawl.task_id}: could not save {post.ref}: {e}")
                continue

            saved.append((post, comments))
            self.registry.update(
                crawl.task_id,
                progress=70 + (20 * index) // len(batch),
                result_refs=[str(post.ref)],
                extra={"persisted_items": len(saved), "failed_items": failed},
            )

        if batch and not saved:
            raise TaskFailed("persistence_failed", f"None of {len(batch)} item(s) could be saved")
        self.registry.update(crawl.task_id, progress=90)
        return len(saved), failed, saved

    async def _extract_products(self, crawl: CrawlRun, batch: ScrapedBatch) -> int:
        """Extract and save products for priced posts, then their orders. Returns the failure count."""
        failed = 0
        extracted = 0
        for post, comments in batch:
            if post.has_placeholder_id or not content_has_price_indicator(post.content):
                continue

            outcome = await asyncio.to_thread(
                self.engine.extract, post.content, post.posted_at_text, post.band_id, post.post_id
            )
            for product in outcome.products:
                try:
                    await asyncio.to_thread(self.store.upsert_product, product, post.ref)
                    extracted += 1
                except PersistenceError as e:
                    failed += 1
                    logger.warning(f"Task {crawl.task_id}: could not save product {e.natural_key}: {e}")

            if outcome.products:
                failed += await self._record_orders(crawl, post, comments, len(outcome.products))

        self.registry.update(crawl.task_id, extra={"extracted_products": extracted})
        return failed

    async def _record_orders(
        self,
        crawl: CrawlRun,
        post: ScrapedPost,
        comments: List[ScrapedComment],
        item_count: int,
    ) -> int:
        """Replace the post's orders from its comments. Returns 1 on a failed write."""
        orders = collect_post_orders(post.ref, comments, item_count)
        closed = is_sale_closed(comments)
        try:
            saved = await asyncio.to_thread(self.store.save_orders, post.ref, orders, closed)
        except PersistenceError as e:
            logger.warning(f"Task {crawl.task_id}: could not save orders for {post.ref}: {e}")
            return 1

        crawl.orders += saved
        self.registry.update(crawl.task_id, extra={"orders": crawl.orders})
        if closed:
            logger.info(f"Task {crawl.task_id}: sale closed on {post.ref}")
        return 0

    async def _refresh_orders(self, crawl: CrawlRun, batch: ScrapedBatch) -> int:
        """Re-derive orders for a re-crawled post whose products are already known."""
        failed = 0
        for post, comments in batch:
            products = await asyncio.to_thread(self.store.get_products, post.ref)
            if len(products) > 0:
                failed += await self._record_orders(crawl, post, comments, len(products))
        return failed
