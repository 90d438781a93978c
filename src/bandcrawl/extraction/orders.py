"""
Order parsing for customer comments.

Customers order by replying to a product post, e.g. "1번 2개요" (item 1,
two units) or just "3" (three of the only item). Replies that cancel or
close an order never produce one.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from bandcrawl.constants import CLOSING_KEYWORDS, ORDER_CANCEL_KEYWORDS
from bandcrawl.extraction.identifiers import order_id, product_id
from bandcrawl.models import PostRef, ScrapedComment

logger = logging.getLogger(__name__)

EXPLICIT_ORDER_RE = re.compile(r"(\d+)\s*번(?:[^\d\n]*?)(\d+)")
NUMBER_RE = re.compile(r"\d+")
WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class CommentOrder:
    item_number: int
    quantity: int
    ambiguous: bool = False


def extract_orders_from_comment(text: Optional[str]) -> List[CommentOrder]:
    """Extract (item number, quantity) pairs from a comment.

    Explicit "N번 ... M" pairs win. Without any, every bare number is read
    as a quantity of item 1 and flagged ambiguous.
    """
    if not text:
        return []

    lowered = text.lower()
    if any(keyword in lowered for keyword in ORDER_CANCEL_KEYWORDS):
        logger.debug(f"Skipping cancel/closing comment: {text!r}")
        return []

    normalized = WHITESPACE_RE.sub(" ", text).strip()

    orders = []
    for match in EXPLICIT_ORDER_RE.finditer(normalized):
        item_number, quantity = int(match.group(1)), int(match.group(2))
        if item_number > 0 and quantity > 0:
            orders.append(CommentOrder(item_number=item_number, quantity=quantity))

    if not orders:
        for match in NUMBER_RE.finditer(normalized):
            quantity = int(match.group(0))
            if quantity > 0:
                orders.append(CommentOrder(item_number=1, quantity=quantity, ambiguous=True))

    if orders:
        logger.debug(f"Orders from {text!r}: {orders}")
    return orders


def has_closing_keywords(text: Optional[str]) -> bool:
    """True if the text announces that sales are closed or sold out."""
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in CLOSING_KEYWORDS)


@dataclass(frozen=True)
class PostOrder:
    """One order line placed in a comment of a product post."""
    order_id: str
    post_ref: PostRef
    comment_index: int
    item_number: int
    quantity: int
    ambiguous: bool = False
    author_name: Optional[str] = None

    @property
    def product_id(self) -> str:
        return product_id(self.post_ref.band_id, self.post_ref.post_id, self.item_number)


def collect_post_orders(
    post_ref: PostRef,
    comments: Iterable[ScrapedComment],
    item_count: int,
) -> List[PostOrder]:
    """Orders placed in the comments of a post with ``item_count`` products.

    Quantities for the same item within one comment are summed, and item
    numbers the post does not have are dropped.
    """
    orders = []
    for comment in comments:
        totals: Dict[int, int] = {}
        ambiguous: Dict[int, bool] = {}
        for order in extract_orders_from_comment(comment.content):
            if not 1 <= order.item_number <= item_count:
                logger.debug(f"Comment {comment.index} of {post_ref} orders unknown item {order.item_number}")
                continue
            totals[order.item_number] = totals.get(order.item_number, 0) + order.quantity
            ambiguous[order.item_number] = ambiguous.get(order.item_number, False) or order.ambiguous

        for item_number, quantity in sorted(totals.items()):
            orders.append(PostOrder(
                order_id=order_id(post_ref.band_id, post_ref.post_id, comment.index, item_number),
                post_ref=post_ref,
                comment_index=comment.index,
                item_number=item_number,
                quantity=quantity,
                ambiguous=ambiguous[item_number],
                author_name=comment.author_name,
            ))
    return orders


def is_sale_closed(comments: Sequence[ScrapedComment]) -> bool:
    """True when the latest comment announces the sale is closed."""
    return bool(comments) and has_closing_keywords(comments[-1].content)
