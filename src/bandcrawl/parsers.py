"""
HTML parsing for Band pages.

The browser driver hands rendered HTML (page.content()) to these functions,
so DOM extraction can be tested against static fixtures without a browser.

Usage:
    posts = parse_post_list(await page.content(), band_id)
    comments = parse_comments(await page.content(), post_ref)
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup

from bandcrawl.constants import (
    ACCESS_DENIED_MARKERS,
    BAND_CONTENT_MARKERS,
    BLOCKED_POST_PHRASES,
    COMMENT_AUTHOR,
    COMMENT_CONTENT,
    COMMENT_ITEM,
    COMMENT_ITEM_FALLBACK,
    COMMENT_NICKNAME,
    COMMENT_PROFILE_IMAGE,
    COMMENT_SECRET,
    COMMENT_TIME,
    LOGGED_IN_MARKER,
    LOGIN_PAGE_MARKERS,
    POST_CARD,
    POST_CARD_ANY_LINK,
    POST_CARD_AUTHOR,
    POST_CARD_COMMENT_COUNT,
    POST_CARD_CONTENT,
    POST_CARD_FALLBACK,
    POST_CARD_LINK,
    POST_CARD_TIME,
    POST_DETAIL_AUTHOR,
    POST_DETAIL_BODY,
    POST_DETAIL_CONTAINER,
    POST_DETAIL_READ_COUNT,
    POST_DETAIL_TIME,
    SECRET_COMMENT_TEXT,
)
from bandcrawl.models import PostRef, ScrapedComment, ScrapedPost

logger = logging.getLogger(__name__)

POST_ID_RE = re.compile(r"/post/(\d+)")
NUMBER_RE = re.compile(r"\d[\d,]*")
READ_COUNT_PATTERNS = (
    re.compile(r"읽음\s*(\d[\d,]*)"),
    re.compile(r"(\d[\d,]*)\s*명\s*읽음"),
    re.compile(r"^\s*(\d[\d,]*)\s*$"),
)


@dataclass(frozen=True)
class AccessState:
    """Which state markers are present on a rendered page."""
    logged_in_marker: bool
    login_page: bool
    access_denied: bool
    band_content: bool


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _text(node, selector: str) -> Optional[str]:
    """Stripped text of the first match, or None."""
    found = node.select_one(selector)
    if found is None:
        return None
    text = found.get_text("\n", strip=True)
    return text or None


def _to_int(text: Optional[str]) -> int:
    if not text:
        return 0
    match = NUMBER_RE.search(text)
    return int(match.group(0).replace(",", "")) if match else 0


def _post_id_from_card(card) -> Optional[str]:
    for selector in (POST_CARD_LINK, POST_CARD_ANY_LINK):
        for link in card.select(selector):
            match = POST_ID_RE.search(link.get("href", ""))
            if match:
                return match.group(1)
    return None


def parse_post_list(html: str, band_id: str) -> List[ScrapedPost]:
    """
    Parse the post cards of a band page.

    Args:
        html: Rendered band page HTML
        band_id: External band id the page belongs to

    Returns:
        Posts in page order. Cards without a derivable post id get a
        placeholder id of the form unknown_<epoch-ms>_<index>.
    """
    soup = _soup(html)
    cards = soup.select(POST_CARD) or soup.select(POST_CARD_FALLBACK)

    posts = []
    for index, card in enumerate(cards):
        post_id = _post_id_from_card(card)
        if post_id is None:
            post_id = f"unknown_{int(time.time() * 1000)}_{index}"
            logger.warning(f"No post id found on card {index} of band {band_id}, using {post_id}")

        time_tag = card.select_one(POST_CARD_TIME)
        posted_at = None
        if time_tag is not None:
            posted_at = time_tag.get("title") or time_tag.get_text(strip=True) or None

        posts.append(ScrapedPost(
            band_id=band_id,
            post_id=post_id,
            content=_text(card, POST_CARD_CONTENT) or "",
            author_name=_text(card, POST_CARD_AUTHOR),
            posted_at_text=posted_at,
            comment_count=_to_int(_text(card, POST_CARD_COMMENT_COUNT)),
        ))

    logger.debug(f"Parsed {len(posts)} post cards for band {band_id}")
    return posts


def parse_read_count(text: Optional[str]) -> int:
    """Read "읽음 N", "N명 읽음" or a bare number."""
    if not text:
        return 0
    for pattern in READ_COUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1).replace(",", ""))
    return 0


def parse_post_detail(html: str, band_id: str, post_id: str) -> Optional[ScrapedPost]:
    """Parse a post detail page; None if the post body container is missing."""
    soup = _soup(html)
    if soup.select_one(POST_DETAIL_CONTAINER) is None:
        return None

    return ScrapedPost(
        band_id=band_id,
        post_id=post_id,
        content=_text(soup, POST_DETAIL_BODY) or "",
        author_name=_text(soup, POST_DETAIL_AUTHOR),
        posted_at_text=_text(soup, POST_DETAIL_TIME),
        view_count=parse_read_count(_text(soup, POST_DETAIL_READ_COUNT)),
    )


def has_post_body(html: str) -> bool:
    return _soup(html).select_one(POST_DETAIL_CONTAINER) is not None


def parse_comments(html: str, post_ref: PostRef) -> List[ScrapedComment]:
    """
    Parse all loaded comments of a post page.

    Args:
        html: Rendered post page HTML
        post_ref: The post the comments belong to

    Returns:
        Comments with 1-based indexes in document order
    """
    soup = _soup(html)
    comments = []
    for index, item in enumerate(soup.select(COMMENT_ITEM) or soup.select(COMMENT_ITEM_FALLBACK), start=1):
        if item.select_one(COMMENT_SECRET) is not None:
            content = SECRET_COMMENT_TEXT
        else:
            content = _text(item, COMMENT_CONTENT) or ""

        image = item.select_one(COMMENT_PROFILE_IMAGE)
        comments.append(ScrapedComment(
            post_ref=post_ref,
            index=index,
            author_name=_text(item, COMMENT_AUTHOR),
            author_nickname=_text(item, COMMENT_NICKNAME),
            profile_image_url=image.get("src") if image is not None else None,
            content=content,
            timestamp_text=_text(item, COMMENT_TIME),
        ))
    return comments


def is_blocked_post(text: Optional[str]) -> bool:
    """True if the text says the post was deleted or is not viewable."""
    if not text:
        return False
    return any(phrase in text for phrase in BLOCKED_POST_PHRASES)


def detect_access_state(html: str) -> AccessState:
    soup = _soup(html)
    return AccessState(
        logged_in_marker=soup.select_one(LOGGED_IN_MARKER) is not None,
        login_page=soup.select_one(LOGIN_PAGE_MARKERS) is not None,
        access_denied=soup.select_one(ACCESS_DENIED_MARKERS) is not None,
        band_content=soup.select_one(BAND_CONTENT_MARKERS) is not None,
    )
