"""Session-scoped store of archive state."""

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from layerctx.context.types import ArchiveRecord, SessionContext
from layerctx.utils.helpers import ensure_dir, safe_filename


def build_session_key(platform: str, chat_id: str | None, scope: str | None = None) -> str:
    """Build a routing key like ``telegram:934517574`` or ``web:default:topic``."""
    key = f"{platform}:{chat_id or 'default'}"
    if scope:
        key = f"{key}:{scope}"
    return key


class SessionStore:
    """
    Holds one SessionContext per session key.

    Contexts are created lazily and cached in memory. When ``persist_dir``
    is given each context is also stored as a JSON document::

        {persist_dir}/
        └── {platform}_{chat_id}.json

    A corrupt or unreadable file is logged and treated as missing.
    """

    def __init__(self, persist_dir: Path | None = None):
        self.persist_dir = ensure_dir(persist_dir) if persist_dir else None
        self._cache: dict[str, SessionContext] = {}

    # ── public API ──────────────────────────────────────────────

    def get(self, session_key: str) -> SessionContext | None:
        """Return the context for a key without creating one."""
        if session_key in self._cache:
            return self._cache[session_key]
        ctx = self._load(session_key)
        if ctx:
            self._cache[session_key] = ctx
        return ctx

    def get_or_create(
        self, session_key: str, platform: str = "", chat_id: str = ""
    ) -> SessionContext:
        """Return the context for a key, creating an empty one if needed."""
        ctx = self.get(session_key)
        if ctx is None:
            ctx = SessionContext(session_key=session_key, platform=platform, chat_id=chat_id)
            self._cache[session_key] = ctx
            logger.debug(f"Created context for session {session_key}")
        return ctx

    def save(self, ctx: SessionContext) -> None:
        """Cache the context and write it to disk when persistence is on."""
        self._cache[ctx.session_key] = ctx
        if not self.persist_dir:
            return
        path = self._get_path(ctx.session_key)
        with open(path, "w") as f:
            f.write(ctx.model_dump_json(indent=2))

    def reset(self, session_key: str) -> SessionContext:
        """Replace the context for a key with an empty one."""
        old = self.get(session_key)
        ctx = SessionContext(
            session_key=session_key,
            platform=old.platform if old else "",
            chat_id=old.chat_id if old else "",
        )
        self._cache[session_key] = ctx
        return ctx

    def prune(self, session_key: str, max_archives: int) -> list[ArchiveRecord]:
        """Evict oldest archives beyond ``max_archives``; return the evicted.

        ``archived_until`` is left untouched so evicted ranges are never
        re-archived.
        """
        ctx = self.get(session_key)
        if ctx is None or len(ctx.archives) <= max_archives:
            return []
        overflow = len(ctx.archives) - max_archives
        evicted = ctx.archives[:overflow]
        ctx.archives = ctx.archives[overflow:]
        ctx.touch()
        logger.debug(f"Evicted {len(evicted)} archive(s) from {session_key}")
        return evicted

    def clear(self, session_key: str) -> bool:
        """
        Drop a session's context from memory and disk.

        Returns:
            True if anything was removed.
        """
        removed = self._cache.pop(session_key, None) is not None
        if self.persist_dir:
            path = self._get_path(session_key)
            if path.exists():
                path.unlink()
                removed = True
        return removed

    def list_keys(self) -> list[str]:
        """Session keys known in memory or on disk."""
        keys = set(self._cache)
        if self.persist_dir:
            for path in self.persist_dir.glob("*.json"):
                ctx = self._read(path)
                if ctx:
                    keys.add(ctx.session_key)
        return sorted(keys)

    def close(self) -> None:
        """Flush cached contexts to disk and release them."""
        if self.persist_dir:
            for ctx in list(self._cache.values()):
                self.save(ctx)
        self._cache.clear()

    # ── internal helpers ────────────────────────────────────────

    def _get_path(self, session_key: str) -> Path:
        return self.persist_dir / f"{safe_filename(session_key.replace(':', '_'))}.json"

    def _load(self, session_key: str) -> SessionContext | None:
        if not self.persist_dir:
            return None
        path = self._get_path(session_key)
        if not path.exists():
            return None
        ctx = self._read(path)
        if ctx and ctx.session_key != session_key:
            logger.warning(f"Session file {path.name} belongs to {ctx.session_key}, ignoring")
            return None
        return ctx

    def _read(self, path: Path) -> SessionContext | None:
        try:
            return SessionContext.model_validate(json.loads(path.read_text()))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to load session context {path.name}: {e}")
            return None
