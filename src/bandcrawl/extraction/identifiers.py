"""Stable identifiers for records derived from Band posts."""

import hashlib


def product_id(band_id: str, post_id: str, item_number: int = 1) -> str:
    return f"prod_{band_id}_{post_id}_item{item_number}"


def order_id(band_id: str, post_id: str, comment_index: int, item_number: int = 1) -> str:
    return f"order_{band_id}_{post_id}_{comment_index}_item{item_number}"


def comment_key(band_id: str, post_id: str, index: int) -> str:
    return f"{band_id}-{post_id}-{index}"


def ean13_check_digit(body: str) -> int:
    """Check digit for a 12-digit EAN body (weights 1,3,1,3...)."""
    if len(body) != 12 or not body.isdigit():
        raise ValueError(f"EAN-13 body must be 12 digits, got {body!r}")
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(body))
    return (10 - total % 10) % 10


def generate_barcode(product_id: str) -> str:
    """Derive a deterministic EAN-13 barcode from a product id.

    The first 48 bits of the SHA-256 digest are folded into 12 digits and
    completed with the EAN-13 check digit.
    """
    digest = hashlib.sha256(product_id.encode("utf-8")).digest()
    number = int.from_bytes(digest[:6], "big") % 10**12
    body = f"{number:012d}"
    return body + str(ean13_check_digit(body))
