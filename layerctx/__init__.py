"""layerctx - layered context compaction for LLM agents."""

__version__ = "0.1.0"
__logo__ = "🗂"
