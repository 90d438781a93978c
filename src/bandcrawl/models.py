"""Data models for Band crawling and product extraction."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from bandcrawl.constants import BAND_PAGE_URL, BAND_POST_URL


# =============================================================================
# Tasks
# =============================================================================

class TaskKind(Enum):
    """Kinds of crawl work a task can run."""
    POST_CRAWL = "PostCrawl"
    COMMENT_CRAWL = "CommentCrawl"


class TaskStatus(Enum):
    """Externally visible task status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @property
    def rank(self) -> int:
        """Position in the one-way Pending -> Processing -> terminal order."""
        if self is TaskStatus.PENDING:
            return 0
        if self is TaskStatus.PROCESSING:
            return 1
        return 2


@dataclass
class Task:
    """A tracked unit of asynchronous crawl work."""

    task_id: str
    kind: TaskKind
    status: TaskStatus = TaskStatus.PENDING
    message: str = ""
    progress: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    result_refs: list[str] = field(default_factory=list)
    error: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()
        if self.updated_at is None:
            self.updated_at = self.created_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for polling clients."""
        return {
            "task_id": self.task_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "message": self.message,
            "progress": self.progress,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "result_refs": list(self.result_refs),
            "error": self.error,
            "extra": dict(self.extra),
        }


# =============================================================================
# Crawl targets and credentials
# =============================================================================

@dataclass(frozen=True)
class PostRef:
    """Natural key of one Band post."""
    band_id: str
    post_id: str

    @property
    def url(self) -> str:
        return BAND_POST_URL.format(band_id=self.band_id, post_id=self.post_id)

    def __str__(self) -> str:
        return f"{self.band_id}/{self.post_id}"


@dataclass(frozen=True)
class TargetRef:
    """A band, optionally narrowed to a single post."""
    band_id: str
    post_id: Optional[str] = None

    @property
    def url(self) -> str:
        if self.post_id:
            return BAND_POST_URL.format(band_id=self.band_id, post_id=self.post_id)
        return BAND_PAGE_URL.format(band_id=self.band_id)

    @property
    def post_ref(self) -> Optional[PostRef]:
        if self.post_id is None:
            return None
        return PostRef(self.band_id, self.post_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetRef":
        """Build from a `{bandId, postId}` or `{band_id, post_id}` mapping."""
        band_id = data.get("band_id") or data.get("bandId")
        if not band_id:
            raise ValueError("Target reference requires a band id")
        post_id = data.get("post_id") or data.get("postId")
        return cls(band_id=str(band_id), post_id=str(post_id) if post_id else None)


@dataclass(frozen=True)
class Credentials:
    """Naver login used to reach Band."""
    account_id: str
    password: str = field(repr=False)


# =============================================================================
# Driver results
# =============================================================================

@dataclass(frozen=True)
class AccessCheck:
    """Outcome of verifying login state and permission on a target."""
    logged_in: bool
    has_access: bool


@dataclass(frozen=True)
class LoginSuccess:
    cookies: tuple[dict[str, Any], ...]


@dataclass(frozen=True)
class CaptchaRequired:
    """Login stopped on an interactive verification page."""
    url: Optional[str] = None
    indicator: Optional[str] = None


@dataclass(frozen=True)
class InvalidCredentials:
    message: str = "invalid credentials"


@dataclass(frozen=True)
class LoginUnknown:
    diagnostic: str


LoginOutcome = Union[LoginSuccess, CaptchaRequired, InvalidCredentials, LoginUnknown]


# =============================================================================
# Scraped content
# =============================================================================

@dataclass
class ScrapedPost:
    """One post as read from the Band DOM."""

    band_id: str
    post_id: str
    content: str = ""
    author_name: Optional[str] = None
    posted_at_text: Optional[str] = None
    url: Optional[str] = None
    comment_count: int = 0
    view_count: int = 0
    scraped_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.url is None:
            self.url = self.ref.url

    @property
    def ref(self) -> PostRef:
        return PostRef(self.band_id, self.post_id)

    @property
    def has_placeholder_id(self) -> bool:
        return self.post_id.startswith("unknown_")

    def to_dict(self) -> dict[str, Any]:
        return {
            "band_id": self.band_id,
            "post_id": self.post_id,
            "content": self.content,
            "author_name": self.author_name,
            "posted_at_text": self.posted_at_text,
            "url": self.url,
            "comment_count": self.comment_count,
            "view_count": self.view_count,
            "scraped_at": self.scraped_at.isoformat(),
        }


@dataclass
class ScrapedComment:
    """One comment, positioned by its 1-based index within the post."""

    post_ref: PostRef
    index: int
    author_name: Optional[str] = None
    author_nickname: Optional[str] = None
    profile_image_url: Optional[str] = None
    content: str = ""
    timestamp_text: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "band_id": self.post_ref.band_id,
            "post_id": self.post_ref.post_id,
            "index": self.index,
            "author_name": self.author_name,
            "author_nickname": self.author_nickname,
            "profile_image_url": self.profile_image_url,
            "content": self.content,
            "timestamp_text": self.timestamp_text,
        }


# =============================================================================
# Extraction results
# =============================================================================

class ProductStatus(Enum):
    ON_SALE = "판매중"
    SOLD_OUT = "품절"
    RESERVED = "예약중"
    CLOSED = "마감"

    @classmethod
    def from_text(cls, text: Optional[str]) -> "ProductStatus":
        """Map free status text to a status, defaulting to on-sale."""
        if not text:
            return cls.ON_SALE
        if "품절" in text or "완판" in text:
            return cls.SOLD_OUT
        if "예약" in text:
            return cls.RESERVED
        if "마감" in text or "종료" in text:
            return cls.CLOSED
        return cls.ON_SALE


class PickupType(Enum):
    # Declaration order is the keyword match priority
    ARRIVAL = "도착"
    DELIVERY = "배송"
    RECEIVE = "수령"
    PICKUP_COUNTER = "픽업"
    HAND_OFF = "전달"

    @classmethod
    def from_text(cls, text: Optional[str]) -> Optional["PickupType"]:
        """Return the first pickup type whose keyword appears in text."""
        if not text:
            return None
        for pickup_type in cls:
            if pickup_type.value in text:
                return pickup_type
        return None


@dataclass(frozen=True)
class PriceOption:
    """One purchasable bundle."""
    quantity: int
    price: int
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"quantity": self.quantity, "price": self.price, "description": self.description}


@dataclass(frozen=True)
class ExtractedProduct:
    """Normalized product info derived from one post."""

    title: str
    base_price: int = 0
    price_options: tuple[PriceOption, ...] = ()
    quantity_text: Optional[str] = None
    category: str = "기타"
    status: ProductStatus = ProductStatus.ON_SALE
    tags: frozenset[str] = frozenset()
    features: tuple[str, ...] = ()
    pickup_info: Optional[str] = None
    pickup_date: Optional[datetime] = None
    pickup_type: Optional[PickupType] = None
    stock_quantity: Optional[int] = None
    item_number: int = 1

    def with_item_number(self, item_number: int) -> "ExtractedProduct":
        return replace(self, item_number=item_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "base_price": self.base_price,
            "price_options": [option.to_dict() for option in self.price_options],
            "quantity_text": self.quantity_text,
            "category": self.category,
            "status": self.status.value,
            "tags": sorted(self.tags),
            "features": list(self.features),
            "pickup_info": self.pickup_info,
            "pickup_date": self.pickup_date.isoformat() if self.pickup_date else None,
            "pickup_type": self.pickup_type.value if self.pickup_type else None,
            "stock_quantity": self.stock_quantity,
            "item_number": self.item_number,
        }


@dataclass(frozen=True)
class SingleProduct:
    product: ExtractedProduct

    @property
    def products(self) -> tuple[ExtractedProduct, ...]:
        return (self.product,)


@dataclass(frozen=True)
class MultipleProducts:
    products: tuple[ExtractedProduct, ...]


ExtractionOutcome = Union[SingleProduct, MultipleProducts]


@dataclass(frozen=True)
class PickupResolution:
    """A resolved pickup time and the keyword that named its type."""
    date: datetime
    keyword: str
    original: Optional[str] = None

    @property
    def pickup_type(self) -> PickupType:
        return PickupType(self.keyword)
