"""
Extraction Package.

Turns free-text Korean product posts and order comments into structured
records: LLM product extraction, price sanitation, quantity-tier merging,
pickup date resolution and comment order parsing.
"""

from .engine import (
    ExtractionEngine,
    default_product,
    REASON_EMPTY,
    REASON_NOT_PRODUCT,
    REASON_PARSE_FAILED,
    REASON_API_ERROR,
)
from .merging import detect_and_merge_quantity_based_products
from .pickup_dates import extract_pickup_date
from .pricing import content_has_price_indicator, sanitize_price_options
from .korean_time import parse_korean_datetime
from .orders import (
    CommentOrder,
    PostOrder,
    collect_post_orders,
    extract_orders_from_comment,
    has_closing_keywords,
    is_sale_closed,
)
from .identifiers import comment_key, generate_barcode, order_id, product_id

__all__ = [
    # Engine
    "ExtractionEngine",
    "default_product",
    "REASON_EMPTY",
    "REASON_NOT_PRODUCT",
    "REASON_PARSE_FAILED",
    "REASON_API_ERROR",
    # Normalization helpers
    "detect_and_merge_quantity_based_products",
    "extract_pickup_date",
    "content_has_price_indicator",
    "sanitize_price_options",
    "parse_korean_datetime",
    # Comments
    "CommentOrder",
    "PostOrder",
    "collect_post_orders",
    "extract_orders_from_comment",
    "has_closing_keywords",
    "is_sale_closed",
    # Identifiers
    "comment_key",
    "generate_barcode",
    "order_id",
    "product_id",
]
