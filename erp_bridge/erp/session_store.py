# erp_bridge/erp/session_store.py
# =============================
# ERP session persistence
# - One opaque token per deployment, kept in a small JSON file
# - Atomic writes (temp file + rename) with a short retry loop
# - SessionManager owns the in-memory copy and the re-login lock
# =============================

import asyncio
import errno
import json
import logging
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from json import JSONDecodeError
from pathlib import Path
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
SESSION_KEY = "erp"
SAVE_RETRIES = 5
SAVE_RETRY_DELAY_SECS = 0.15
BACKUP_SUFFIX = ".corrupt.bak"


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _atomic_write(path: Path, payload: dict):
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=str(directory))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
            json.dump(payload, tmp_file, indent=2, ensure_ascii=False)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


class SessionStore:
    """
    Durable key -> token store.

    File layout:
      {"schema_version": 1, "sessions": {"erp": {"token": "...", "updated_at": "..."}}}
    """

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {"schema_version": SCHEMA_VERSION, "sessions": {}}
        text = self.path.read_text(encoding="utf-8", errors="replace")
        try:
            data = json.loads(text)
        except JSONDecodeError:
            # A half-written token file is worthless; keep a copy and start over.
            logger.warning("Session store %s is corrupt, ignoring it", self.path)
            try:
                shutil.copy2(self.path, str(self.path) + BACKUP_SUFFIX)
            except OSError as e:
                logger.warning("Could not back up %s: %s", self.path, e)
            return {"schema_version": SCHEMA_VERSION, "sessions": {}}
        if not isinstance(data, dict) or not isinstance(data.get("sessions"), dict):
            return {"schema_version": SCHEMA_VERSION, "sessions": {}}
        return data

    def load(self, key: str = SESSION_KEY) -> Optional[str]:
        row = self._read()["sessions"].get(key) or {}
        return row.get("token") or None

    def updated_at(self, key: str = SESSION_KEY) -> Optional[str]:
        row = self._read()["sessions"].get(key) or {}
        return row.get("updated_at")

    def save(self, token: str, key: str = SESSION_KEY):
        data = self._read()
        data["schema_version"] = SCHEMA_VERSION
        data["sessions"][key] = {"token": token, "updated_at": now_iso()}

        # simple retry loop for NFS / concurrent access
        for _ in range(SAVE_RETRIES):
            try:
                _atomic_write(self.path, data)
                return
            except OSError as e:
                if e.errno in (errno.EAGAIN, errno.EBUSY):
                    time.sleep(SAVE_RETRY_DELAY_SECS)
                    continue
                raise
        raise RuntimeError("Failed to save session token after retries")


class SessionManager:
    """
    Owns the current ERP session token.

    `login_fn` performs the actual authentication call and returns a fresh
    token; the manager persists it and hands it out until it is invalidated.
    """

    def __init__(
        self,
        store: SessionStore,
        login_fn: Callable[[], Awaitable[str]],
        key: str = SESSION_KEY,
    ):
        self.store = store
        self.key = key
        self._login_fn = login_fn
        self._token: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[str]:
        return self._token

    async def get_or_refresh(self) -> str:
        if self._token:
            return self._token
        stored = self.store.load(self.key)
        if stored:
            self._token = stored
            return stored
        return await self.refresh()

    def invalidate(self):
        self._token = None

    async def refresh(self, stale: Optional[str] = None) -> str:
        """
        Log in again and persist the new token.

        When `stale` is given and another caller already swapped it out while
        we waited for the lock, the newer token is returned as-is.
        """
        async with self._lock:
            if stale is not None and self._token and self._token != stale:
                return self._token
            token = await self._login_fn()
            self._token = token
            self.store.save(token, self.key)
            return token
