"""
Entry points for the API layer.

CrawlService wires the registry, session cache, store, driver factory and
extraction engine together and exposes task submission, task polling and
stand-alone extraction.

Usage:
    service = CrawlService.from_settings()
    task_id = service.start_crawl(TaskKind.COMMENT_CRAWL, creds, TargetRef("82443310", "26123"))
    task = service.get_task_status(task_id)
"""
import asyncio
import logging
from typing import Callable, Optional, Set, Union

from bandcrawl.browser_driver import AbstractBandDriver, PlaywrightBandDriver
from bandcrawl.config import CrawlThresholds, default_thresholds, settings
from bandcrawl.database import AbstractStore, get_store
from bandcrawl.extraction.pickup_dates import DateInput
from bandcrawl.logging_config import setup_logging_from_settings
from bandcrawl.models import Credentials, ExtractionOutcome, TargetRef, Task, TaskKind
from bandcrawl.orchestrator import CrawlOrchestrator
from bandcrawl.task_registry import TaskRegistry
from bandcrawl.utils.session_store import SessionStore

logger = logging.getLogger(__name__)


class CrawlService:
    """Task submission, polling and extraction behind one object."""

    def __init__(
        self,
        registry: TaskRegistry,
        session_store: SessionStore,
        store: AbstractStore,
        driver_factory: Callable[[], AbstractBandDriver],
        engine=None,
        thresholds: Optional[CrawlThresholds] = None,
    ):
        self.registry = registry
        self.engine = engine
        self.orchestrator = CrawlOrchestrator(
            registry=registry,
            session_store=session_store,
            store=store,
            driver_factory=driver_factory,
            engine=engine,
            thresholds=thresholds or default_thresholds,
        )
        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        thresholds: Optional[CrawlThresholds] = None,
        configure_logging: bool = True,
    ) -> "CrawlService":
        """Build a service from environment settings with the Playwright driver."""
        from bandcrawl.extraction.engine import ExtractionEngine

        if configure_logging:
            setup_logging_from_settings(settings)

        thresholds = thresholds or CrawlThresholds.from_env()
        engine = ExtractionEngine() if settings.LLM_API_KEY else None
        if engine is None:
            logger.warning("LLM_API_KEY not set, product extraction disabled")

        return cls(
            registry=TaskRegistry(),
            session_store=SessionStore(settings.SESSION_DIR),
            store=get_store(),
            driver_factory=lambda: PlaywrightBandDriver(thresholds=thresholds),
            engine=engine,
            thresholds=thresholds,
        )

    def start_crawl(
        self,
        kind: Union[TaskKind, str],
        credentials: Credentials,
        target: Union[TargetRef, dict],
    ) -> str:
        """
        Create a task and schedule its run on the running event loop.

        Args:
            kind: TaskKind or its value ("PostCrawl", "CommentCrawl")
            credentials: Naver login
            target: TargetRef or a {bandId, postId} mapping

        Returns:
            The new task id

        Raises:
            ValueError: On an unknown kind or a comment crawl without a post id
            RuntimeError: If called outside a running event loop
        """
        kind = TaskKind(kind)
        if isinstance(target, dict):
            target = TargetRef.from_dict(target)
        if kind is TaskKind.COMMENT_CRAWL and target.post_id is None:
            raise ValueError("CommentCrawl requires a post id")

        loop = asyncio.get_running_loop()
        task_id = self.registry.create(kind, f"Queued {kind.value} for {target.url}")

        background = loop.create_task(self.orchestrator.run(task_id, kind, credentials, target))
        self._background.add(background)
        background.add_done_callback(self._background.discard)

        logger.info(f"Scheduled task {task_id} ({kind.value}) for {target.url}")
        return task_id

    def get_task_status(self, task_id: str) -> Optional[Task]:
        return self.registry.get(task_id)

    async def extract(
        self,
        content: Optional[str],
        posted_at_hint: DateInput = None,
        band_id: Optional[str] = None,
        post_id: Optional[str] = None,
    ) -> ExtractionOutcome:
        """Run product extraction outside the crawl pipeline."""
        if self.engine is None:
            raise RuntimeError("No extraction engine configured")
        return await asyncio.to_thread(self.engine.extract, content, posted_at_hint, band_id, post_id)

    async def wait_all(self) -> None:
        """Wait for every scheduled task run to finish."""
        if self._background:
            await asyncio.gather(*list(self._background))
