"""Sale-price sanitation for extracted price options."""

import re
from typing import Iterable, Tuple

from bandcrawl.constants import PRICE_KEYWORDS, REFERENCE_PRICE_LABELS, SALE_PRICE_LABELS
from bandcrawl.models import PriceOption

PLACEHOLDER_OPTION = PriceOption(quantity=1, price=0, description="기본가")

NUMBER_RE = re.compile(r"\d[\d,]*")


def is_reference_price(description: str) -> bool:
    """True for options labelled as a comparison price (정가, 마트가, ...)."""
    if not description:
        return False
    if any(label in description for label in SALE_PRICE_LABELS):
        return False
    return any(label in description for label in REFERENCE_PRICE_LABELS)


def sanitize_price_options(options: Iterable[PriceOption]) -> Tuple[PriceOption, ...]:
    """
    Keep only genuine sale prices.

    Reference-labelled and non-positive prices are dropped, and when a
    quantity is listed at several prices only the lowest survives (a later
    discounted price supersedes the original). The result is sorted by
    quantity and is never empty: with nothing left it is the zero-price
    placeholder.
    """
    lowest: dict[int, PriceOption] = {}
    for option in options:
        if option.price <= 0 or option.quantity <= 0:
            continue
        if is_reference_price(option.description):
            continue
        current = lowest.get(option.quantity)
        if current is None or option.price <= current.price:
            lowest[option.quantity] = option

    if not lowest:
        return (PLACEHOLDER_OPTION,)
    return tuple(lowest[quantity] for quantity in sorted(lowest))


def base_price_of(options: Iterable[PriceOption]) -> int:
    prices = [option.price for option in options]
    return min(prices) if prices else 0


def content_has_price_indicator(content: str) -> bool:
    """Cheap pre-check: a price keyword plus a number of at least 100."""
    if not content:
        return False
    if not any(keyword in content for keyword in PRICE_KEYWORDS):
        return False
    for token in NUMBER_RE.findall(content):
        digits = token.replace(",", "")
        if digits and int(digits) >= 100:
            return True
    return False
