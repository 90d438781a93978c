"""Band crawl orchestration and LLM product extraction."""

__version__ = "0.1.0"

from bandcrawl.config import settings, CrawlThresholds
from bandcrawl.models import (
    Task,
    TaskKind,
    TaskStatus,
    TargetRef,
    PostRef,
    Credentials,
    ScrapedPost,
    ScrapedComment,
    ExtractedProduct,
    PriceOption,
    SingleProduct,
    MultipleProducts,
)
from bandcrawl.task_registry import TaskRegistry
from bandcrawl.database import get_store, PersistenceError
from bandcrawl.browser_driver import DriverError, ScrapeStructureError, PlaywrightBandDriver
from bandcrawl.orchestrator import CrawlOrchestrator
from bandcrawl.service import CrawlService
from bandcrawl.extraction import ExtractionEngine, extract_pickup_date, detect_and_merge_quantity_based_products
from bandcrawl.llm import LLMClient

__all__ = [
    "settings",
    "CrawlThresholds",
    "Task",
    "TaskKind",
    "TaskStatus",
    "TargetRef",
    "PostRef",
    "Credentials",
    "ScrapedPost",
    "ScrapedComment",
    "ExtractedProduct",
    "PriceOption",
    "SingleProduct",
    "MultipleProducts",
    "TaskRegistry",
    "get_store",
    "PersistenceError",
    "DriverError",
    "ScrapeStructureError",
    "PlaywrightBandDriver",
    "CrawlOrchestrator",
    "CrawlService",
    "ExtractionEngine",
    "extract_pickup_date",
    "detect_and_merge_quantity_based_products",
    "LLMClient",
]
