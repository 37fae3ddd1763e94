"""Logging helpers for spunnel."""

from spunnel.logging.filters import StreamRoutingFilter
from spunnel.logging.formatters import StreamFormatter

__all__ = ["StreamFormatter", "StreamRoutingFilter"]
