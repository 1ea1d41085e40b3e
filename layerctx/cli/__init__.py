"""CLI module for layerctx."""
