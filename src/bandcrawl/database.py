# src/bandcrawl/database.py
"""Persistence layer for scraped posts, comments and extracted products.

Every record is written by its natural key (external Band ids), so a
re-crawl updates rows in place instead of duplicating them. Comments are
replaced wholesale per post inside the same transaction as the post.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from bandcrawl.config import settings
from bandcrawl.extraction.identifiers import comment_key, generate_barcode, product_id
from bandcrawl.extraction.orders import PostOrder
from bandcrawl.models import ExtractedProduct, PostRef, ScrapedComment, ScrapedPost

logger = logging.getLogger(__name__)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id TEXT NOT NULL,
    post_id TEXT NOT NULL,
    content TEXT,
    author_name TEXT,
    posted_at_text TEXT,
    url TEXT,
    comment_count INTEGER DEFAULT 0,
    view_count INTEGER DEFAULT 0,
    is_closed INTEGER NOT NULL DEFAULT 0,
    scraped_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,

    UNIQUE(band_id, post_id)
);

CREATE TABLE IF NOT EXISTS comments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id TEXT NOT NULL,
    post_id TEXT NOT NULL,
    idx INTEGER NOT NULL,
    comment_key TEXT NOT NULL,
    author_name TEXT,
    author_nickname TEXT,
    profile_image_url TEXT,
    content TEXT,
    timestamp_text TEXT,
    created_at TIMESTAMP NOT NULL,

    UNIQUE(band_id, post_id, idx)
);

CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id TEXT NOT NULL,
    band_id TEXT NOT NULL,
    post_id TEXT NOT NULL,
    item_number INTEGER NOT NULL,
    title TEXT NOT NULL,
    base_price INTEGER NOT NULL DEFAULT 0,
    price_options TEXT NOT NULL,
    quantity_text TEXT,
    category TEXT,
    status TEXT,
    tags TEXT,
    features TEXT,
    pickup_info TEXT,
    pickup_date TIMESTAMP,
    pickup_type TEXT,
    stock_quantity INTEGER,
    barcode TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,

    UNIQUE(band_id, post_id, item_number)
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id TEXT NOT NULL,
    band_id TEXT NOT NULL,
    post_id TEXT NOT NULL,
    comment_idx INTEGER NOT NULL,
    item_number INTEGER NOT NULL,
    product_id TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    ambiguous INTEGER NOT NULL DEFAULT 0,
    author_name TEXT,
    created_at TIMESTAMP NOT NULL,

    UNIQUE(band_id, post_id, comment_idx, item_number)
);
"""

UPSERT_POST_SQL = """
INSERT INTO posts (
    band_id, post_id, content, author_name, posted_at_text, url,
    comment_count, view_count, scraped_at, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(band_id, post_id) DO UPDATE SET
    content = excluded.content,
    author_name = excluded.author_name,
    posted_at_text = excluded.posted_at_text,
    url = excluded.url,
    comment_count = excluded.comment_count,
    view_count = excluded.view_count,
    scraped_at = excluded.scraped_at,
    updated_at = excluded.updated_at
"""

INSERT_ORDER_SQL = """
INSERT INTO orders (
    order_id, band_id, post_id, comment_idx, item_number, product_id,
    quantity, ambiguous, author_name, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

INSERT_COMMENT_SQL = """
INSERT INTO comments (
    band_id, post_id, idx, comment_key, author_name, author_nickname,
    profile_image_url, content, timestamp_text, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPSERT_PRODUCT_SQL = """
INSERT INTO products (
    product_id, band_id, post_id, item_number, title, base_price, price_options,
    quantity_text, category, status, tags, features, pickup_info, pickup_date,
    pickup_type, stock_quantity, barcode, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(band_id, post_id, item_number) DO UPDATE SET
    product_id = excluded.product_id,
    title = excluded.title,
    base_price = excluded.base_price,
    price_options = excluded.price_options,
    quantity_text = excluded.quantity_text,
    category = excluded.category,
    status = excluded.status,
    tags = excluded.tags,
    features = excluded.features,
    pickup_info = excluded.pickup_info,
    pickup_date = excluded.pickup_date,
    pickup_type = excluded.pickup_type,
    stock_quantity = excluded.stock_quantity,
    barcode = excluded.barcode,
    updated_at = excluded.updated_at
"""


class PersistenceError(Exception):
    """Raised when a record could not be stored; carries its natural key."""
    def __init__(self, natural_key: Tuple[Any, ...], message: str):
        self.natural_key = natural_key
        self.message = message
        super().__init__(f"{message} (key={natural_key})")


class AbstractStore(ABC):
    """Abstract base class defining the persistence interface."""

    @abstractmethod
    def connect(self) -> None:
        """Establish database connection."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    def create_schema(self) -> None:
        """Create the necessary database tables."""
        pass

    @abstractmethod
    def upsert_post(self, post: ScrapedPost) -> Dict[str, Any]:
        """Create or update a post by (band_id, post_id).

        Returns:
            The stored row, including store-assigned fields.

        Raises:
            PersistenceError: If the write failed.
        """
        pass

    @abstractmethod
    def upsert_comments(
        self, post_ref: PostRef, comments: Iterable[ScrapedComment]
    ) -> List[Dict[str, Any]]:
        """Replace all comments of a post with the given ones."""
        pass

    @abstractmethod
    def save_post_with_comments(
        self, post: ScrapedPost, comments: Iterable[ScrapedComment]
    ) -> Dict[str, Any]:
        """Upsert a post and replace its comments in one transaction."""
        pass

    @abstractmethod
    def upsert_product(self, product: ExtractedProduct, post_ref: PostRef) -> Dict[str, Any]:
        """Create or update a product by (band_id, post_id, item_number)."""
        pass

    @abstractmethod
    def save_orders(self, post_ref: PostRef, orders: Iterable[PostOrder], closed: bool = False) -> int:
        """Replace the orders of a post and record whether its sale is closed.

        Returns:
            Number of orders stored.
        """
        pass

    @abstractmethod
    def get_post(self, band_id: str, post_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_comments(self, post_ref: PostRef) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_products(self, post_ref: PostRef) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_orders(self, post_ref: PostRef) -> List[Dict[str, Any]]:
        pass


class LocalSqliteStore(AbstractStore):
    """SQLite implementation for local storage."""

    def __init__(self, db_url: Optional[str] = None):
        """Initialize local SQLite store.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db). Defaults to settings.DATABASE_URL.
        """
        self.db_url = db_url or settings.DATABASE_URL
        self.db_path = self.db_url.replace("sqlite:///", "")
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        """Establish SQLite connection."""
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to local SQLite database: {self.db_path}")

    def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed local SQLite connection")

    def create_schema(self) -> None:
        """Create the tables if they don't exist."""
        with self.conn:
            self.conn.executescript(CREATE_TABLES_SQL)
        logger.debug("Schema verified/created for local SQLite")

    # -- writes ---------------------------------------------------------------

    def upsert_post(self, post: ScrapedPost) -> Dict[str, Any]:
        key = (post.band_id, post.post_id)
        self._require_key(key)
        try:
            with self._lock, self.conn:
                self._write_post(post)
            return self.get_post(post.band_id, post.post_id)
        except sqlite3.Error as e:
            logger.warning(f"Failed to upsert post {key}: {e}")
            raise PersistenceError(key, f"post upsert failed: {e}") from e

    def upsert_comments(
        self, post_ref: PostRef, comments: Iterable[ScrapedComment]
    ) -> List[Dict[str, Any]]:
        key = (post_ref.band_id, post_ref.post_id)
        self._require_key(key)
        comments = list(comments)
        try:
            with self._lock, self.conn:
                self._replace_comments(post_ref, comments)
        except (sqlite3.Error, ValueError) as e:
            logger.warning(f"Failed to replace comments of {key}: {e}")
            raise PersistenceError(key, f"comment replace failed: {e}") from e

        logger.debug(f"Stored {len(comments)} comments for {post_ref}")
        return self.get_comments(post_ref)

    def save_post_with_comments(
        self, post: ScrapedPost, comments: Iterable[ScrapedComment]
    ) -> Dict[str, Any]:
        key = (post.band_id, post.post_id)
        self._require_key(key)
        comments = list(comments)
        try:
            with self._lock, self.conn:
                self._write_post(post)
                self._replace_comments(post.ref, comments)
        except (sqlite3.Error, ValueError) as e:
            logger.warning(f"Failed to save post {key} with comments: {e}")
            raise PersistenceError(key, f"post save failed: {e}") from e

        return self.get_post(post.band_id, post.post_id)

    def upsert_product(self, product: ExtractedProduct, post_ref: PostRef) -> Dict[str, Any]:
        key = (post_ref.band_id, post_ref.post_id, product.item_number)
        self._require_key(key)
        pid = product_id(post_ref.band_id, post_ref.post_id, product.item_number)
        now = datetime.now().isoformat()
        values = (
            pid,
            post_ref.band_id,
            post_ref.post_id,
            product.item_number,
            product.title,
            product.base_price,
            json.dumps([option.to_dict() for option in product.price_options], ensure_ascii=False),
            product.quantity_text,
            product.category,
            product.status.value,
            json.dumps(sorted(product.tags), ensure_ascii=False),
            json.dumps(list(product.features), ensure_ascii=False),
            product.pickup_info,
            product.pickup_date.isoformat() if product.pickup_date else None,
            product.pickup_type.value if product.pickup_type else None,
            product.stock_quantity,
            generate_barcode(pid),
            now,
            now,
        )
        try:
            with self._lock, self.conn:
                self.conn.execute(UPSERT_PRODUCT_SQL, values)
        except sqlite3.Error as e:
            logger.warning(f"Failed to upsert product {key}: {e}")
            raise PersistenceError(key, f"product upsert failed: {e}") from e

        return self._get_product(post_ref, product.item_number)

    def save_orders(self, post_ref: PostRef, orders: Iterable[PostOrder], closed: bool = False) -> int:
        key = (post_ref.band_id, post_ref.post_id)
        self._require_key(key)
        orders = list(orders)
        now = datetime.now().isoformat()
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    "DELETE FROM orders WHERE band_id = ? AND post_id = ?",
                    (post_ref.band_id, post_ref.post_id),
                )
                self.conn.executemany(
                    INSERT_ORDER_SQL,
                    [
                        (
                            order.order_id,
                            post_ref.band_id,
                            post_ref.post_id,
                            order.comment_index,
                            order.item_number,
                            order.product_id,
                            order.quantity,
                            int(order.ambiguous),
                            order.author_name,
                            now,
                        )
                        for order in orders
                    ],
                )
                self.conn.execute(
                    "UPDATE posts SET is_closed = ?, updated_at = ? WHERE band_id = ? AND post_id = ?",
                    (int(closed), now, post_ref.band_id, post_ref.post_id),
                )
        except sqlite3.Error as e:
            logger.warning(f"Failed to save orders of {key}: {e}")
            raise PersistenceError(key, f"order save failed: {e}") from e

        logger.debug(f"Stored {len(orders)} orders for {post_ref} (closed={closed})")
        return len(orders)

    # -- reads ----------------------------------------------------------------

    def get_orders(self, post_ref: PostRef) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM orders WHERE band_id = ? AND post_id = ? ORDER BY comment_idx ASC, item_number ASC",
            (post_ref.band_id, post_ref.post_id),
        )
        return [dict(row) for row in cursor.fetchall()]

    def get_post(self, band_id: str, post_id: str) -> Optional[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM posts WHERE band_id = ? AND post_id = ?", (band_id, post_id)
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_comments(self, post_ref: PostRef) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM comments WHERE band_id = ? AND post_id = ? ORDER BY idx ASC",
            (post_ref.band_id, post_ref.post_id),
        )
        return [dict(row) for row in cursor.fetchall()]

    def get_products(self, post_ref: PostRef) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM products WHERE band_id = ? AND post_id = ? ORDER BY item_number ASC",
            (post_ref.band_id, post_ref.post_id),
        )
        return [self._decode_product(row) for row in cursor.fetchall()]

    def _get_product(self, post_ref: PostRef, item_number: int) -> Optional[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM products WHERE band_id = ? AND post_id = ? AND item_number = ?",
            (post_ref.band_id, post_ref.post_id, item_number),
        )
        row = cursor.fetchone()
        return self._decode_product(row) if row else None

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _require_key(key: Tuple[Any, ...]) -> None:
        if any(part in (None, "") for part in key):
            raise PersistenceError(key, "incomplete natural key")

    def _write_post(self, post: ScrapedPost) -> None:
        now = datetime.now().isoformat()
        self.conn.execute(
            UPSERT_POST_SQL,
            (
                post.band_id,
                post.post_id,
                post.content,
                post.author_name,
                post.posted_at_text,
                post.url,
                post.comment_count,
                post.view_count,
                post.scraped_at.isoformat(),
                now,
                now,
            ),
        )

    def _replace_comments(self, post_ref: PostRef, comments: List[ScrapedComment]) -> None:
        indexes = [comment.index for comment in comments]
        if len(set(indexes)) != len(indexes):
            raise ValueError(f"duplicate comment index in {indexes}")

        self.conn.execute(
            "DELETE FROM comments WHERE band_id = ? AND post_id = ?",
            (post_ref.band_id, post_ref.post_id),
        )
        now = datetime.now().isoformat()
        self.conn.executemany(
            INSERT_COMMENT_SQL,
            [
                (
                    post_ref.band_id,
                    post_ref.post_id,
                    comment.index,
                    comment_key(post_ref.band_id, post_ref.post_id, comment.index),
                    comment.author_name,
                    comment.author_nickname,
                    comment.profile_image_url,
                    comment.content,
                    comment.timestamp_text,
                    now,
                )
                for comment in comments
            ],
        )

    @staticmethod
    def _decode_product(row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        for column in ("price_options", "tags", "features"):
            if data.get(column):
                data[column] = json.loads(data[column])
        return data


def get_store(
    backend: Optional[str] = None,
    **kwargs,
) -> AbstractStore:
    """Factory function to create the configured store.

    Args:
        backend: Storage backend ('local'). Defaults to settings.DB_BACKEND.
        **kwargs: Additional arguments passed to the store constructor.

    Returns:
        An AbstractStore instance.

    Raises:
        ValueError: If an unknown backend is specified.
    """
    backend = backend or settings.DB_BACKEND

    if backend == "local":
        logger.info("Using local SQLite storage backend")
        return LocalSqliteStore(**kwargs)
    raise ValueError(
        f"Unknown storage backend: '{backend}'. "
        "Supported backends: 'local'"
    )
