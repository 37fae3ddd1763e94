"""Core spunnel functionality."""

from __future__ import annotations

from spunnel.core.config import ConfigLoader, PluginConfig

__all__ = ["ConfigLoader", "PluginConfig"]
