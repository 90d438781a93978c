"""
Re-merging of quantity tiers that the LLM split into separate products.

A post offering "사과 1개 1,000원 / 사과 2개 1,800원" describes one product
with two price tiers, but the model sometimes returns two products titled
"사과 1개" and "사과 2개". When every title reduces to the same base name
and the units only count pieces, the products are folded back into one
product with tiered price options.
"""
import logging
import re
from dataclasses import replace
from typing import Optional, Sequence, Tuple

from bandcrawl.constants import QUANTITY_UNIT_SYNONYMS
from bandcrawl.models import ExtractedProduct, PriceOption

logger = logging.getLogger(__name__)

TITLE_QUANTITY_RE = re.compile(r"^(.*?)(?:\s+(\d+)\s*([가-힣]+))?$")


def split_title_quantity(title: str) -> Tuple[str, Optional[int], Optional[str]]:
    """Split "사과 2개" into ("사과", 2, "개"); titles without a suffix keep quantity None."""
    match = TITLE_QUANTITY_RE.match(title.strip())
    if not match or match.group(2) is None:
        return title.strip(), None, None
    return match.group(1).strip(), int(match.group(2)), match.group(3)


def _normalize_name(name: str) -> str:
    return re.sub(r"\s+", "", name).lower()


def detect_and_merge_quantity_based_products(
    products: Sequence[ExtractedProduct],
) -> Optional[ExtractedProduct]:
    """
    Fold quantity-tiered "products" back into a single product.

    Args:
        products: Products extracted from one post

    Returns:
        The merged product, or None when fewer than two products are given,
        base names differ, a unit is not a piece count, or two tiers share
        a quantity
    """
    if len(products) < 2:
        return None

    parsed = [split_title_quantity(product.title) for product in products]

    base_names = {_normalize_name(name) for name, _, _ in parsed}
    if len(base_names) != 1 or not next(iter(base_names)):
        return None

    units = [unit for _, _, unit in parsed if unit]
    if any(unit not in QUANTITY_UNIT_SYNONYMS for unit in units):
        logger.debug(f"Not merging: incompatible units {units}")
        return None

    quantities = [quantity or 1 for _, quantity, _ in parsed]
    if len(set(quantities)) != len(quantities):
        logger.debug(f"Not merging: repeated quantities {quantities}")
        return None

    default_unit = units[0] if units else "개"
    options = sorted(
        (
            PriceOption(
                quantity=quantity,
                price=product.base_price,
                description=f"{quantity}{unit or default_unit}",
            )
            for product, quantity, (_, _, unit) in zip(products, quantities, parsed)
        ),
        key=lambda option: option.quantity,
    )

    first = products[0]
    merged = replace(
        first,
        title=parsed[0][0],
        base_price=min(option.price for option in options),
        price_options=tuple(options),
        item_number=1,
    )
    logger.info(f"Merged {len(products)} quantity tiers into one product: {merged.title}")
    return merged
