"""
Cookie cache for logged-in Band accounts.

Each account's cookies are kept in one JSON file together with the time
they were captured. The store is a plain key-value layer: it returns
whatever was last written and leaves the TTL decision to the caller.

Usage:
    from bandcrawl.utils.session_store import SessionStore

    store = SessionStore(storage_dir="~/.bandcrawl/sessions")
    store.save("naver_id", await context.cookies())

    session = store.load("naver_id")
    if session and session.is_usable(ttl_hours=24):
        await context.add_cookies(session.cookies)
"""
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from bandcrawl.constants import REQUIRED_SESSION_COOKIE, SESSION_COOKIE_DOMAINS

logger = logging.getLogger(__name__)


@dataclass
class SessionData:
    """Cached cookies for one account."""

    account_id: str
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    captured_at: Optional[datetime] = None
    invalidated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.captured_at is None:
            self.captured_at = datetime.now()

    def is_expired(self, ttl_hours: int = 24) -> bool:
        """Check if the session is older than the TTL."""
        if self.captured_at is None:
            return True
        return datetime.now() > self.captured_at + timedelta(hours=ttl_hours)

    @property
    def is_invalidated(self) -> bool:
        return self.invalidated_at is not None

    def has_cookie(self, name: str) -> bool:
        return any(cookie.get("name") == name for cookie in self.cookies)

    def is_usable(self, ttl_hours: int = 24) -> bool:
        """Fresh, not invalidated, and still holding the Band session cookie."""
        return (
            not self.is_expired(ttl_hours)
            and not self.is_invalidated
            and self.has_cookie(REQUIRED_SESSION_COOKIE)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "account_id": self.account_id,
            "cookies": self.cookies,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "invalidated_at": self.invalidated_at.isoformat() if self.invalidated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionData":
        """Deserialize from dictionary."""
        captured_at = None
        invalidated_at = None
        if data.get("captured_at"):
            captured_at = datetime.fromisoformat(data["captured_at"])
        if data.get("invalidated_at"):
            invalidated_at = datetime.fromisoformat(data["invalidated_at"])

        return cls(
            account_id=data["account_id"],
            cookies=data.get("cookies", []),
            captured_at=captured_at,
            invalidated_at=invalidated_at,
        )


def filter_cookies(
    cookies: Iterable[Dict[str, Any]],
    domains: Iterable[str] = SESSION_COOKIE_DOMAINS,
) -> List[Dict[str, Any]]:
    """Keep only cookies whose domain belongs to one of `domains`."""
    domains = tuple(domains)
    kept = []
    for cookie in cookies:
        cookie_domain = (cookie.get("domain") or "").lstrip(".").lower()
        if any(cookie_domain == d or cookie_domain.endswith(f".{d}") for d in domains):
            kept.append(dict(cookie))
    return kept


class SessionStore:
    """
    File-backed session cache keyed by account id.

    Writes for one account are serialized by a per-account lock and land
    atomically (temp file + rename), so a reader never sees half a file.
    """

    def __init__(
        self,
        storage_dir: Optional[Path] = None,
        cookie_domains: Iterable[str] = SESSION_COOKIE_DOMAINS,
    ):
        """
        Initialize the session store.

        Args:
            storage_dir: Directory to store sessions (default: ~/.bandcrawl/sessions)
            cookie_domains: Cookie domains worth keeping for the scrape target
        """
        self.storage_dir = Path(storage_dir or Path.home() / ".bandcrawl" / "sessions").expanduser()
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.cookie_domains = tuple(cookie_domains)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        logger.info(f"SessionStore initialized with storage at {self.storage_dir}")

    def _get_session_path(self, account_id: str) -> Path:
        """Get file path for an account's session."""
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in account_id)
        return self.storage_dir / f"{safe_id}.json"

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._locks_guard:
            if account_id not in self._locks:
                self._locks[account_id] = threading.Lock()
            return self._locks[account_id]

    def _read(self, account_id: str) -> Optional[SessionData]:
        session_path = self._get_session_path(account_id)
        if not session_path.exists():
            return None
        try:
            with open(session_path, encoding="utf-8") as f:
                return SessionData.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to load session for {account_id}: {e}")
            return None

    def _write(self, session: SessionData) -> None:
        session_path = self._get_session_path(session.account_id)
        tmp_path = session_path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(session.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, session_path)

    def load(self, account_id: str) -> Optional[SessionData]:
        """
        Return the last saved session for an account.

        Expiry is not checked here; callers apply their own TTL policy.

        Returns:
            SessionData, or None if nothing usable is on disk
        """
        with self._lock_for(account_id):
            session = self._read(account_id)

        if session is None:
            logger.debug(f"No saved session found for {account_id}")
        return session

    def save(self, account_id: str, cookies: Iterable[Dict[str, Any]]) -> SessionData:
        """
        Overwrite the session for an account with a fresh cookie set.

        Args:
            account_id: External account identifier
            cookies: Browser cookies (name/value/domain/expires mappings)

        Returns:
            SessionData that was saved
        """
        cookies = list(cookies)
        kept = filter_cookies(cookies, self.cookie_domains)
        session = SessionData(account_id=account_id, cookies=kept)

        with self._lock_for(account_id):
            self._write(session)

        logger.info(
            f"Session saved for {account_id}: {len(kept)} of {len(cookies)} cookies kept"
        )
        return session

    def invalidate(self, account_id: str) -> bool:
        """
        Mark a session as not reusable without deleting it.

        Returns:
            True if a session existed and was marked
        """
        with self._lock_for(account_id):
            session = self._read(account_id)
            if session is None:
                return False
            session.invalidated_at = datetime.now()
            self._write(session)

        logger.info(f"Session invalidated for {account_id}")
        return True

    def list_sessions(self, ttl_hours: int = 24) -> List[Dict[str, Any]]:
        """List all saved sessions with their status."""
        sessions = []
        for path in self.storage_dir.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    session = SessionData.from_dict(json.load(f))
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Failed to read session {path}: {e}")
                continue
            sessions.append({
                "account_id": session.account_id,
                "captured_at": session.captured_at.isoformat() if session.captured_at else None,
                "expired": session.is_expired(ttl_hours),
                "invalidated": session.is_invalidated,
                "cookie_count": len(session.cookies),
            })
        return sessions
