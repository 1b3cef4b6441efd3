"""Timestamped event log with retention pruning and live subscribers.

Every decision the agent makes ends up here as one line of the form
``[YYYY-mm-dd HH:MM:SS] message``. The file only keeps a few hours of
history; listeners (a tray icon, a console window) can subscribe to receive
each line as it is written.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from autoprint.exceptions import EventLogError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
RETENTION_PERIOD = timedelta(hours=2)
PRUNE_INTERVAL = timedelta(minutes=5)

Subscriber = Callable[[str], None]


def extract_timestamp(line: str) -> datetime | None:
    """Parse the ``[...]`` timestamp at the start of a log line.

    Args:
        line: Log line.

    Returns:
        datetime | None: Timestamp, or None if the line has none.
    """
    start = line.find("[")
    end = line.find("]")
    if start < 0 or end <= start:
        return None
    try:
        return datetime.strptime(line[start + 1 : end], TIMESTAMP_FORMAT)
    except ValueError:
        return None


class EventLog:
    """Thread-safe append-only event log backed by a text file."""

    def __init__(
        self,
        path: str | Path,
        retention: timedelta = RETENTION_PERIOD,
        prune_interval: timedelta = PRUNE_INTERVAL,
    ):
        """Initialize the event log and prune stale lines.

        Args:
            path: Backing file.
            retention: How long lines are kept.
            prune_interval: Minimum time between two prunes.

        Raises:
            EventLogError: If the log folder cannot be created.
        """
        self.path = Path(path)
        self.retention = retention
        self.prune_interval = prune_interval
        # Reentrant: errors logged while holding it may route back into write()
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self._last_prune: datetime | None = None

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise EventLogError(f"Could not create log folder {self.path.parent}: {e}") from e

        with self._lock:
            self._prune_locked()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a listener for new lines.

        Args:
            callback: Called with each formatted line after it is written.

        Returns:
            Callable[[], None]: Function that removes the listener again.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def write(self, message: str) -> str:
        """Append a timestamped line and notify subscribers.

        Args:
            message: Event text.

        Returns:
            str: The formatted line.
        """
        line = f"[{datetime.now().strftime(TIMESTAMP_FORMAT)}] {message}"

        with self._lock:
            if self._prune_due():
                self._prune_locked()
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.error(f"Event log write failed: {e}")
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(line)
            except Exception as e:
                logger.warning(f"Event log subscriber {callback!r} failed: {e}")

        return line

    def prune(self) -> int:
        """Drop lines older than the retention period.

        Returns:
            int: Number of lines removed.
        """
        with self._lock:
            return self._prune_locked()

    def _prune_due(self) -> bool:
        if self._last_prune is None:
            return True
        return datetime.now() - self._last_prune > self.prune_interval

    def _prune_locked(self) -> int:
        """Rewrite the file with recent lines only. Caller holds the lock."""
        self._last_prune = datetime.now()
        cutoff = self._last_prune - self.retention

        try:
            with open(self.path, encoding="utf-8") as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            return 0
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Event log cleanup error: {e}")
            return 0

        kept = []
        keeping = False
        for line in lines:
            if not line.strip():
                continue
            timestamp = extract_timestamp(line)
            if timestamp is not None:
                keeping = timestamp >= cutoff
            # Untimestamped lines belong to the entry above them
            if keeping:
                kept.append(line)

        removed = len(lines) - len(kept)
        if removed:
            try:
                with open(self.path, "w", encoding="utf-8") as f:
                    f.writelines(line + "\n" for line in kept)
            except OSError as e:
                logger.error(f"Event log cleanup error: {e}")
                return 0
        return removed

    def read_all(self) -> list[str]:
        """Return every line still in the log.

        Returns:
            list[str]: Lines, oldest first.
        """
        with self._lock:
            if self._prune_due():
                self._prune_locked()
            try:
                with open(self.path, encoding="utf-8") as f:
                    return f.read().splitlines()
            except FileNotFoundError:
                return []
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Event log read error: {e}")
                return []

    def read_recent(self, count: int = 100) -> list[str]:
        """Return the last ``count`` lines.

        Args:
            count: Number of lines.

        Returns:
            list[str]: Lines, oldest first.
        """
        if count <= 0:
            return []
        return self.read_all()[-count:]

    def close(self) -> None:
        """Detach all subscribers and prune one last time."""
        with self._lock:
            self._subscribers.clear()
            self._prune_locked()


class EventLogHandler(logging.Handler):
    """Forward log records into an ``EventLog``."""

    def __init__(self, event_log: EventLog, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.event_log = event_log
        self.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
        self._local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        # The event log reports its own failures through logging
        if getattr(self._local, "emitting", False):
            return
        self._local.emitting = True
        try:
            self.event_log.write(self.format(record))
        except Exception:  # noqa: BLE001 - standard logging pattern
            self.handleError(record)
        finally:
            self._local.emitting = False
