# tests/test_e2e.py
"""End-to-end tests for the crawl service pipeline."""

import json
from unittest.mock import MagicMock, Mock
from zoneinfo import ZoneInfo

import pytest

from bandcrawl.browser_driver import AbstractBandDriver
from bandcrawl.config import CrawlThresholds
from bandcrawl.database import LocalSqliteStore
from bandcrawl.extraction.engine import ExtractionEngine
from bandcrawl.models import (
    AccessCheck,
    Credentials,
    PostRef,
    ScrapedComment,
    ScrapedPost,
    SingleProduct,
    TargetRef,
    TaskKind,
    TaskStatus,
)
from bandcrawl.service import CrawlService
from bandcrawl.task_registry import TaskRegistry
from bandcrawl.utils.session_store import SessionStore

BAND_ID = "82443310"
POST_ID = "26123"
CREDS = Credentials("naver_user", "secret")


class FakeBandDriver(AbstractBandDriver):
    """In-memory Band with one post and its comments."""

    def __init__(self, posts=(), comments=()):
        self.posts = list(posts)
        self.comments = list(comments)
        self.logins = 0

    async def apply_session(self, session):
        pass

    async def verify_access(self, target):
        return AccessCheck(logged_in=True, has_access=True)

    async def login(self, credentials):
        self.logins += 1
        raise AssertionError("cached session should have been reused")

    async def await_manual_completion(self, poll_interval, max_wait):
        return False

    async def scrape_post_list(self, target):
        return self.posts

    async def scrape_post(self, post_ref):
        for post in self.posts:
            if post.ref == post_ref:
                return post
        return ScrapedPost(band_id=post_ref.band_id, post_id=post_ref.post_id)

    async def scrape_comments(self, post_ref):
        return [c for c in self.comments if c.post_ref == post_ref]

    async def current_cookies(self):
        return []


@pytest.fixture
def session_store(tmp_path):
    """Session cache holding a fresh Band session for the test account."""
    store = SessionStore(storage_dir=tmp_path / "sessions")
    store.save(CREDS.account_id, [{"name": "band_session", "value": "cached", "domain": ".band.us"}])
    return store


@pytest.fixture
def thresholds():
    return CrawlThresholds(fast_mode=True, task_timeout_seconds=10)


@pytest.mark.asyncio
async def test_comment_crawl_with_cached_session(tmp_path, session_store, thresholds):
    """CommentCrawl runs through to Completed and stores the post with its comments."""
    ref = PostRef(BAND_ID, POST_ID)
    driver = FakeBandDriver(
        posts=[ScrapedPost(band_id=BAND_ID, post_id=POST_ID, content="사과 1박스 20,000원", comment_count=3)],
        comments=[
            ScrapedComment(post_ref=ref, index=1, author_name="홍길동", content="1번 2개요"),
            ScrapedComment(post_ref=ref, index=2, author_name="김철수", content="3개 주세요"),
            ScrapedComment(post_ref=ref, index=3, author_name="이영희", content="감사합니다"),
        ],
    )
    store = LocalSqliteStore(db_url=f"sqlite:///{tmp_path / 'band.db'}")
    registry = TaskRegistry()
    progress = []
    registry.add_listener(lambda task: progress.append((task.status, task.progress)))

    try:
        service = CrawlService(registry, session_store, store, lambda: driver, thresholds=thresholds)
        task_id = service.start_crawl("CommentCrawl", CREDS, {"bandId": BAND_ID, "postId": POST_ID})
        await service.wait_all()

        task = service.get_task_status(task_id)
        assert task.status is TaskStatus.COMPLETED
        assert task.progress == 100
        assert task.extra["used_cached_session"] is True
        assert driver.logins == 0

        assert any(status is TaskStatus.PROCESSING and 0 < value < 100 for status, value in progress)

        post = store.get_post(BAND_ID, POST_ID)
        assert post["content"] == "사과 1박스 20,000원"
        assert post["comment_count"] == 3
        assert [c["author_name"] for c in store.get_comments(ref)] == ["홍길동", "김철수", "이영희"]
        # No products known for the post yet, so no orders are derived
        assert store.get_orders(ref) == []
    finally:
        store.close()


@pytest.mark.asyncio
async def test_post_crawl_extracts_products_into_sqlite(tmp_path, session_store, thresholds):
    """PostCrawl saves posts and comments, then extracted products, in SQLite."""
    ref = PostRef(BAND_ID, POST_ID)
    driver = FakeBandDriver(
        posts=[ScrapedPost(
            band_id=BAND_ID,
            post_id=POST_ID,
            content="사과 특가! 정상가 20,000원 → 할인가 15,000원. 내일 오후 2시 도착",
            posted_at_text="2024-06-18T09:00:00Z",
            comment_count=1,
        )],
        comments=[ScrapedComment(post_ref=ref, index=1, content="1번 1개")],
    )
    llm = Mock()
    llm.complete_json.return_value = json.dumps({
        "title": "사과",
        "priceOptions": [
            {"quantity": 1, "price": 20000, "description": "정상가"},
            {"quantity": 1, "price": 15000, "description": "할인가"},
        ],
        "pickupInfo": "내일 오후 2시 도착",
    }, ensure_ascii=False)
    engine = ExtractionEngine(llm_client=llm, tz=ZoneInfo("Asia/Seoul"))
    store = LocalSqliteStore(db_url=f"sqlite:///{tmp_path / 'band.db'}")

    try:
        service = CrawlService(TaskRegistry(), session_store, store, lambda: driver, engine=engine, thresholds=thresholds)
        task_id = service.start_crawl(TaskKind.POST_CRAWL, CREDS, TargetRef(BAND_ID))
        await service.wait_all()

        task = service.get_task_status(task_id)
        assert task.status is TaskStatus.COMPLETED
        assert task.extra["extracted_products"] == 1

        assert store.get_post(BAND_ID, POST_ID)["comment_count"] == 1
        assert [c["content"] for c in store.get_comments(ref)] == ["1번 1개"]

        [product] = store.get_products(ref)
        assert product["title"] == "[6월19일] 사과"
        assert product["base_price"] == 15000
        assert product["pickup_date"] == "2024-06-19T14:00:00+09:00"
        assert product["pickup_type"] == "도착"

        [order] = store.get_orders(ref)
        assert order["order_id"] == f"order_{BAND_ID}_{POST_ID}_1_item1"
        assert order["quantity"] == 1
        assert task.extra["orders"] == 1
    finally:
        store.close()


class TestCrawlService:
    """Submission and extraction entry points."""

    @pytest.mark.asyncio
    async def test_comment_crawl_requires_post_id(self, session_store):
        service = CrawlService(TaskRegistry(), session_store, MagicMock(), FakeBandDriver)
        with pytest.raises(ValueError, match="post id"):
            service.start_crawl(TaskKind.COMMENT_CRAWL, CREDS, TargetRef(BAND_ID))

    @pytest.mark.asyncio
    async def test_unknown_kind(self, session_store):
        service = CrawlService(TaskRegistry(), session_store, MagicMock(), FakeBandDriver)
        with pytest.raises(ValueError):
            service.start_crawl("BandCrawl", CREDS, TargetRef(BAND_ID))

    def test_start_requires_running_loop(self, session_store):
        service = CrawlService(TaskRegistry(), session_store, MagicMock(), FakeBandDriver)
        with pytest.raises(RuntimeError):
            service.start_crawl(TaskKind.POST_CRAWL, CREDS, TargetRef(BAND_ID))
        assert len(service.registry) == 0

    def test_unknown_task_status(self, session_store):
        service = CrawlService(TaskRegistry(), session_store, MagicMock(), FakeBandDriver)
        assert service.get_task_status("missing") is None

    @pytest.mark.asyncio
    async def test_extract_without_engine(self, session_store):
        service = CrawlService(TaskRegistry(), session_store, MagicMock(), FakeBandDriver)
        with pytest.raises(RuntimeError, match="No extraction engine"):
            await service.extract("사과 1,000원")

    @pytest.mark.asyncio
    async def test_extract_delegates_to_engine(self, session_store):
        llm = Mock()
        llm.complete_json.return_value = '{"title": "감자", "priceOptions": [{"quantity": 1, "price": 3000}]}'
        engine = ExtractionEngine(llm_client=llm, tz="Asia/Seoul")
        service = CrawlService(TaskRegistry(), session_store, MagicMock(), FakeBandDriver, engine=engine)

        outcome = await service.extract("감자 3,000원", "2024-06-18T09:00:00Z")

        assert isinstance(outcome, SingleProduct)
        assert outcome.product.base_price == 3000
