"""Logging filters routing records to stdout or stderr."""

import logging


class StreamRoutingFilter(logging.Filter):
    """Pass only records destined for one output stream.

    Records may name their stream with ``extra={"stream": ...}``. Untagged
    records at WARNING and above go to stderr, the rest to stdout.

    Parameters
    ----------
    stream_name : str
        ``"stdout"`` or ``"stderr"``
    """

    def __init__(self, stream_name: str) -> None:
        super().__init__()
        self.stream_name = stream_name

    def filter(self, record: logging.LogRecord) -> bool:
        stream = getattr(record, "stream", None)

        if stream is None:
            stream = "stderr" if record.levelno >= logging.WARNING else "stdout"

        return stream == self.stream_name
