"""Session archive storage."""

from layerctx.session.store import SessionStore, build_session_key

__all__ = ["SessionStore", "build_session_key"]
