"""Logging setup. Call configure_logging() once at startup, before the bot starts.

Docker and PaaS containers often default stdout to ASCII; vendor names and
currency symbols here are Cyrillic, so the handler writes UTF-8 and never
raises on an encoding problem.
"""
import io
import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

NOISY_LOGGERS = ("httpx", "httpcore", "telegram", "telegram.ext")


class SafeStreamHandler(logging.StreamHandler):
    """A StreamHandler that replaces unencodable characters instead of failing."""

    def emit(self, record):
        try:
            msg = self.format(record)
            encoding = getattr(self.stream, "encoding", None) or "utf-8"
            safe_msg = msg.encode(encoding, errors="replace").decode(encoding)
            self.stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def _utf8_stream(stream):
    if hasattr(stream, "reconfigure"):
        try:
            stream.reconfigure(encoding="utf-8", errors="replace")
            return stream
        except (ValueError, io.UnsupportedOperation):
            return stream
    if hasattr(stream, "buffer"):
        return io.TextIOWrapper(stream.buffer, encoding="utf-8", errors="replace", line_buffering=True)
    return stream


def configure_logging(level: int | str = logging.INFO, stream=None) -> logging.Handler:
    """Install a single UTF-8-safe handler on the root logger."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if isinstance(handler, logging.StreamHandler):
            root.removeHandler(handler)

    handler = SafeStreamHandler(stream if stream is not None else _utf8_stream(sys.stdout))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)

    # Suppress request-level chatter from the HTTP and Telegram libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
