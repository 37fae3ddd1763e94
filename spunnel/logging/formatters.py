"""Logging formatters for hook output."""

import logging


class StreamFormatter(logging.Formatter):
    """Formatter tagging hook messages for the job's terminal.

    Warnings and errors are prefixed with the plugin tag so users can tell
    them apart from their job's own output. Records routed explicitly with
    ``extra={"stream": ...}`` also carry the stream name.

    Parameters
    ----------
    fmt : str | None
        Base format string
    tag : str
        Plugin tag for warnings and errors
    """

    def __init__(self, fmt: str | None = None, tag: str = "spunnel") -> None:
        super().__init__(fmt)
        self.tag = tag

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)

        if record.levelno >= logging.WARNING and self.tag:
            msg = f"{self.tag}: {msg}"

        stream = getattr(record, "stream", None)
        if stream in ("stdout", "stderr"):
            return f"[{stream}] {msg}"

        return msg
