"""Centralized logging configuration with optional Supabase shipping.

This module provides:
- PlainFormatter for stderr (always on)
- JSONFormatter for structured records
- SupabaseHandler that batches records into a ``logs`` table
"""

import atexit
import logging
import re
import sys
import threading
from queue import Queue, Empty
from typing import Optional

SERVICE_NAME = "spotify-now-playing"


class JSONFormatter(logging.Formatter):
    """Structured log entry; a leading ``[TAG]`` in the message becomes its own field."""

    def __init__(self, service_name: str = None):
        super().__init__()
        self.service_name = service_name or SERVICE_NAME

    def format(self, record: logging.LogRecord) -> dict:
        tag = None
        message = record.getMessage()
        tag_match = re.match(r'\[([A-Z_]+)\]\s*(.*)', message)
        if tag_match:
            tag = tag_match.group(1)
            message = tag_match.group(2)

        log_entry = {
            "service": self.service_name,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "module": record.module,
            "extra": {
                "function": record.funcName,
                "line": record.lineno,
            }
        }

        if record.exc_info:
            log_entry["extra"]["exception"] = self.formatException(record.exc_info)

        return log_entry


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class SupabaseHandler(logging.Handler):
    """Logging handler that batches records and inserts them into Supabase.

    Flush occurs every flush_interval seconds or when batch_size is reached.
    """

    def __init__(
        self,
        supabase_client,
        service_name: str = SERVICE_NAME,
        table: str = "logs",
        batch_size: int = 20,
        flush_interval: float = 10.0,
    ):
        super().__init__()
        self.supabase = supabase_client
        self.service_name = service_name
        self.table = table
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self._queue: Queue = Queue()
        self._shutdown = threading.Event()
        self._flush_thread = threading.Thread(target=self._flush_worker, daemon=True)
        self._flush_thread.start()

        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        """Queue a log record for batched sending."""
        try:
            if isinstance(self.formatter, JSONFormatter):
                log_entry = self.formatter.format(record)
            else:
                log_entry = {
                    "service": self.service_name,
                    "level": record.levelname,
                    "tag": None,
                    "message": record.getMessage(),
                    "module": record.module,
                    "extra": {}
                }

            self._queue.put(log_entry)

            if self._queue.qsize() >= self.batch_size:
                self._flush()

        except Exception:
            self.handleError(record)

    def _flush_worker(self):
        """Background thread that flushes logs periodically."""
        while not self._shutdown.wait(self.flush_interval):
            if not self._queue.empty():
                self._flush()

    def _flush(self):
        """Send queued logs to Supabase."""
        logs = []
        try:
            while len(logs) < self.batch_size * 2:
                try:
                    logs.append(self._queue.get_nowait())
                except Empty:
                    break

            if logs and self.supabase:
                self.supabase.table(self.table).insert(logs).execute()

        except Exception as e:
            # Not through logging, that would recurse into this handler
            print(f"[WARNING] Failed to send logs to Supabase: {e}", file=sys.stderr)

    def close(self):
        """Flush remaining logs and stop the background thread."""
        if not self._shutdown.is_set():
            self._shutdown.set()
            self._flush()
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(
    service_name: str = None,
    level: str = "INFO",
    supabase_client = None,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        service_name: Name stamped on structured records.
        level: Root log level name.
        supabase_client: When given, records are also shipped to Supabase.

    Returns:
        Configured root logger.
    """
    global _supabase_handler

    service_name = service_name or SERVICE_NAME

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    supabase_enabled = False
    if supabase_client:
        try:
            _supabase_handler = SupabaseHandler(
                supabase_client=supabase_client,
                service_name=service_name,
            )
            _supabase_handler.setLevel(logging.INFO)
            _supabase_handler.setFormatter(JSONFormatter(service_name))
            root_logger.addHandler(_supabase_handler)
            supabase_enabled = True
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if supabase_enabled:
        logger.info(f"[STARTUP] Supabase logging enabled for service: {service_name}")
    else:
        logger.debug("[STARTUP] Supabase logging disabled")

    return root_logger


def flush_logs():
    """Manually flush any pending logs to Supabase."""
    if _supabase_handler:
        _supabase_handler._flush()
