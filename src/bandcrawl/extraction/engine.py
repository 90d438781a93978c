"""
Product extraction from free-text Band posts.

The engine sends the post to the LLM, validates the JSON answer and
normalizes it into immutable ExtractedProduct values. It never raises for
a bad post: empty content, an LLM failure or an unreadable answer all
produce a placeholder product whose title names the reason, so the post
is still recorded and can be reviewed by a human.

Usage:
    engine = ExtractionEngine(LLMClient(api_key="..."))
    outcome = engine.extract(post.content, post.posted_at_text, post.band_id, post.post_id)
    for product in outcome.products:
        ...
"""
import json
import logging
import re
from datetime import datetime, tzinfo
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from bandcrawl.extraction.merging import detect_and_merge_quantity_based_products
from bandcrawl.extraction.pickup_dates import (
    DateInput,
    extract_pickup_date,
    resolve_reference,
)
from bandcrawl.extraction.korean_time import local_timezone, parse_iso_datetime
from bandcrawl.extraction.pricing import (
    PLACEHOLDER_OPTION,
    base_price_of,
    content_has_price_indicator,
    sanitize_price_options,
)
from bandcrawl.extraction.prompts import SYSTEM_PROMPT, build_user_prompt
from bandcrawl.extraction.schema import ExtractionResponse, ProductSchema
from bandcrawl.models import (
    ExtractedProduct,
    ExtractionOutcome,
    MultipleProducts,
    PickupType,
    PriceOption,
    ProductStatus,
    SingleProduct,
)

logger = logging.getLogger(__name__)

# Placeholder titles, visible in the stored record
REASON_EMPTY = "내용 없음"
REASON_NOT_PRODUCT = "상품 정보 없음"
REASON_PARSE_FAILED = "JSON 파싱 실패"
REASON_API_ERROR = "API 오류"

DATE_PREFIX_RE = re.compile(r"^\[\d{1,2}월\s*\d{1,2}일\]")
ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")
CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def default_product(reason: str) -> ExtractedProduct:
    """Placeholder product carrying the failure reason as its title."""
    return ExtractedProduct(
        title=reason,
        base_price=0,
        price_options=(PLACEHOLDER_OPTION,),
    )


def with_date_prefix(title: str, pickup_date: Optional[datetime]) -> str:
    """Prefix "[M월D일]" from the pickup date unless the title already has one."""
    if pickup_date is None or DATE_PREFIX_RE.match(title):
        return title
    return f"[{pickup_date.month}월{pickup_date.day}일] {title}"


def load_json_object(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the model output, tolerating code fences and chatter around the object."""
    if not raw or not raw.strip():
        return None
    text = CODE_FENCE_RE.sub("", raw.strip())
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        logger.warning(f"LLM response is not valid JSON: {e}")
        return None
    return data if isinstance(data, dict) else None


class ExtractionEngine:
    """Turns post text into an ExtractionOutcome."""

    def __init__(self, llm_client=None, tz: Union[str, tzinfo, None] = None):
        """
        Args:
            llm_client: Object with complete_json(system, user) -> str
                (default: LLMClient built from settings)
            tz: Local timezone for pickup dates (default: settings.LOCAL_TIMEZONE)
        """
        if llm_client is None:
            from bandcrawl.llm import create_llm_client
            llm_client = create_llm_client()
        self.llm = llm_client
        self.tz = local_timezone(tz)

    def extract(
        self,
        content: Optional[str],
        posted_at_hint: DateInput = None,
        band_id: Optional[str] = None,
        post_id: Optional[str] = None,
    ) -> ExtractionOutcome:
        """
        Extract products from one post.

        Args:
            content: Post text
            posted_at_hint: Post time (datetime, ISO string or Band time text)
            band_id: External band id, for logging
            post_id: External post id, for logging

        Returns:
            SingleProduct or MultipleProducts; never raises for bad input
        """
        label = f"{band_id}/{post_id}" if band_id or post_id else "ad-hoc content"

        if not content or not content.strip():
            logger.warning(f"Empty content for {label}")
            return SingleProduct(default_product(REASON_EMPTY))

        if not content_has_price_indicator(content):
            logger.info(f"No price indicator in {label}, skipping LLM")
            return SingleProduct(default_product(REASON_NOT_PRODUCT))

        reference = resolve_reference(posted_at_hint, self.tz)

        try:
            raw = self.llm.complete_json(SYSTEM_PROMPT, build_user_prompt(content, reference))
        except Exception as e:
            logger.error(f"LLM extraction failed for {label}: {e}")
            return SingleProduct(default_product(REASON_API_ERROR))

        outcome = self.parse_response(raw, reference)
        logger.info(f"Extracted {len(outcome.products)} product(s) from {label}")
        return outcome

    def parse_response(self, raw: Optional[str], reference: datetime) -> ExtractionOutcome:
        """Validate a raw model answer and normalize it."""
        data = load_json_object(raw)
        if data is None:
            return SingleProduct(default_product(REASON_PARSE_FAILED))

        try:
            response = ExtractionResponse.model_validate(data)
        except ValidationError as e:
            logger.warning(f"LLM response failed schema validation: {e}")
            return SingleProduct(default_product(REASON_PARSE_FAILED))

        if response.multiple_products and response.products:
            products = [
                self._normalize(item, reference, response).with_item_number(index)
                for index, item in enumerate(response.products, start=1)
            ]
            if len(products) == 1:
                return SingleProduct(products[0])

            merged = detect_and_merge_quantity_based_products(products)
            if merged is not None:
                return SingleProduct(merged)
            return MultipleProducts(tuple(products))

        return SingleProduct(self._normalize(response, reference, response))

    def _normalize(
        self,
        item: ProductSchema,
        reference: datetime,
        envelope: ExtractionResponse,
    ) -> ExtractedProduct:
        options = [
            PriceOption(quantity=option.quantity, price=option.price, description=option.description)
            for option in item.price_options
        ]
        if not options and item.base_price > 0:
            options = [PriceOption(quantity=1, price=item.base_price, description="기본가")]
        price_options = sanitize_price_options(options)

        pickup_info = item.pickup_info or envelope.common_pickup_info
        pickup_date, pickup_type = self._resolve_pickup(
            item.pickup_date or envelope.common_pickup_date,
            pickup_info,
            item.pickup_type or envelope.common_pickup_type,
            reference,
        )

        return ExtractedProduct(
            title=with_date_prefix(item.title, pickup_date),
            base_price=base_price_of(price_options),
            price_options=price_options,
            quantity_text=item.quantity_text,
            category=item.category,
            status=ProductStatus.from_text(item.status),
            tags=frozenset(item.tags),
            features=tuple(item.features),
            pickup_info=pickup_info,
            pickup_date=pickup_date,
            pickup_type=pickup_type,
            stock_quantity=item.stock_quantity,
            item_number=1,
        )

    def _resolve_pickup(
        self,
        pickup_date: Optional[str],
        pickup_info: Optional[str],
        pickup_type: Optional[str],
        reference: datetime,
    ) -> Tuple[Optional[datetime], Optional[PickupType]]:
        stated_type = PickupType.from_text(pickup_type)

        if pickup_date and ISO_DATETIME_RE.match(pickup_date):
            parsed = parse_iso_datetime(pickup_date, self.tz)
            if parsed is not None:
                return parsed, stated_type or PickupType.from_text(pickup_info) or PickupType.RECEIVE

        # A YYYY-MM-DD in the combined text wins; otherwise the prose is resolved
        text = " ".join(part for part in (pickup_date, pickup_info) if part)
        resolution = extract_pickup_date(text, reference, self.tz)
        if resolution is None:
            return None, stated_type
        return resolution.date, stated_type or resolution.pickup_type
