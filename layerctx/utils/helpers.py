"""Utility functions for layerctx."""

import re
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the layerctx data directory (~/.layerctx)."""
    return ensure_dir(Path.home() / ".layerctx")


def safe_filename(name: str) -> str:
    """Convert a string to a safe filename."""
    return re.sub(r'[<>:"/\\|?*\s]', "_", name).strip("._") or "_"
