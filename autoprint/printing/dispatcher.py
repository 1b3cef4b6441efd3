"""Send documents to a printer with fallback and temp-file cleanup.

Operating system print invocation is best-effort: the shell verb returns as
soon as a handler has been launched and the spooler reads the staged file
later. The dispatcher therefore stages each document in its own temp file,
tries the platform's strategies in order, and deletes the file only after a
delay. A periodic sweep removes anything a crash or a failed delete left
behind.
"""

import logging
import tempfile
import threading
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from autoprint.models import DocumentFormat
from autoprint.printing.base import PrinterError, PrintStrategy

logger = logging.getLogger(__name__)

TEMP_PREFIX = "autoprint_"
STAGED_EXTENSIONS = frozenset(fmt.extension for fmt in DocumentFormat)

CLEANUP_DELAY_SECONDS = 30
DELETE_ATTEMPTS = 3
DELETE_RETRY_PAUSE_SECONDS = 1.0
SWEEP_INTERVAL_SECONDS = 30 * 60
SWEEP_INITIAL_DELAY_SECONDS = 5 * 60
STALE_AFTER_SECONDS = 60 * 60


class PrintDispatcher:
    """Stages documents as temp files and hands them to a printer."""

    def __init__(
        self,
        strategies: Iterable[PrintStrategy] | None = None,
        temp_dir: str | Path | None = None,
        cleanup_delay: float = CLEANUP_DELAY_SECONDS,
        delete_attempts: int = DELETE_ATTEMPTS,
        retry_pause: float = DELETE_RETRY_PAUSE_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        sweep_initial_delay: float = SWEEP_INITIAL_DELAY_SECONDS,
        stale_after: float = STALE_AFTER_SECONDS,
    ):
        """Initialize the dispatcher.

        Args:
            strategies: Print strategies in order of preference (default: platform pair).
            temp_dir: Staging directory (default: system temp dir).
            cleanup_delay: Seconds to keep a staged file before deleting it.
            delete_attempts: Delete attempts before giving up on a locked file.
            retry_pause: Seconds between delete attempts.
            sweep_interval: Seconds between stale-file sweeps.
            sweep_initial_delay: Seconds before the first sweep.
            stale_after: Age in seconds after which a staged file is swept.
        """
        if strategies is None:
            from autoprint.printing import get_strategies

            strategies = get_strategies()

        self.strategies = list(strategies)
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.cleanup_delay = cleanup_delay
        self.delete_attempts = max(delete_attempts, 1)
        self.retry_pause = retry_pause
        self.sweep_interval = sweep_interval
        self.sweep_initial_delay = sweep_initial_delay
        self.stale_after = stale_after

        self._lock = threading.Lock()
        self._timers: dict[Path, threading.Timer] = {}
        self._tracked: set[Path] = set()
        self._sweeper: threading.Thread | None = None
        self._stop_sweeper = threading.Event()
        self._closed = False

    @property
    def pending_cleanups(self) -> int:
        """Number of staged files waiting for their scheduled delete."""
        with self._lock:
            return len(self._timers)

    def _staging_path(self, fmt: DocumentFormat) -> Path:
        """Reserve a unique temp file name and track it for cleanup.

        Args:
            fmt: Detected format, used for the extension.

        Returns:
            Path: Path to stage the document at.
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S%f")[:-2]
        path = self.temp_dir / f"{TEMP_PREFIX}{timestamp}_{uuid.uuid4().hex}.{fmt.extension}"

        with self._lock:
            self._tracked.add(path)
        return path

    def _send(self, path: Path, printer_name: str) -> bool:
        """Try each available strategy until one starts the job."""
        for strategy in self.strategies:
            if not strategy.is_available:
                logger.debug(f"Skipping {strategy.name}: not available")
                continue
            try:
                if strategy.send(path, printer_name):
                    return True
                logger.warning(f"{strategy.name} did not start the print job")
            except PrinterError as e:
                logger.warning(f"{strategy.name} failed: {e}")
        return False

    def dispatch(
        self,
        content: bytes,
        printer_name: str,
        detected_format: DocumentFormat = DocumentFormat.PDF,
    ) -> bool:
        """Print a document.

        Never raises; a failure is logged and reported as False so the
        caller can carry on with the next document.

        Args:
            content: Document bytes.
            printer_name: Target printer name.
            detected_format: Format of ``content``.

        Returns:
            bool: True if one of the strategies started the print job.
        """
        if not printer_name or not printer_name.strip():
            logger.warning("No printer selected.")
            return False

        if detected_format.is_raster:
            logger.info(f"File is {detected_format.value.upper()}, will print as-is.")

        path = self._staging_path(detected_format)
        try:
            path.write_bytes(content)
        except OSError as e:
            logger.error(f"Error staging print file: {e}")
            self.delete_temp_file(path)
            return False

        try:
            success = self._send(path, printer_name)
        except Exception as e:
            logger.exception(f"Error while printing: {e}")
            success = False

        if not success:
            logger.error(f"Failed to initiate print job for {printer_name}")

        self.schedule_cleanup(path)
        return success

    def schedule_cleanup(self, path: Path) -> None:
        """Delete a staged file once the spooler has had time to read it.

        Args:
            path: Staged file.
        """
        with self._lock:
            if not self._closed:
                timer = threading.Timer(self.cleanup_delay, self._run_scheduled_cleanup, (path,))
                timer.daemon = True
                self._timers[path] = timer
                timer.start()
                return

        # Shutting down: nothing will run the timer, so delete now
        self.delete_temp_file(path)

    def _run_scheduled_cleanup(self, path: Path) -> None:
        with self._lock:
            self._timers.pop(path, None)
        self.delete_temp_file(path)

    def delete_temp_file(self, path: Path) -> bool:
        """Delete a staged file, retrying while the OS still holds it.

        Args:
            path: File to delete.

        Returns:
            bool: True if the file is gone.
        """
        for attempt in range(self.delete_attempts):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                if attempt < self.delete_attempts - 1:
                    time.sleep(self.retry_pause)
                    continue
                logger.debug(f"Could not delete {path.name}, leaving it for the sweep: {e}")
                return False

            with self._lock:
                self._tracked.discard(path)
            return True
        return False

    def sweep(self) -> int:
        """Delete stale staged files left behind in the temp directory.

        Returns:
            int: Number of files deleted.
        """
        cutoff = time.time() - self.stale_after
        deleted = 0

        try:
            candidates = list(self.temp_dir.glob(f"{TEMP_PREFIX}*"))
        except OSError as e:
            logger.error(f"Error during temp file cleanup: {e}")
            return 0

        for path in candidates:
            if path.suffix.lstrip(".") not in STAGED_EXTENSIONS:
                continue
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
            except OSError:
                continue
            if self.delete_temp_file(path):
                deleted += 1

        with self._lock:
            self._tracked = {p for p in self._tracked if p.exists()}

        if deleted:
            logger.info(f"Removed {deleted} stale print file(s) from {self.temp_dir}")
        return deleted

    def start_sweeper(self) -> None:
        """Start the periodic stale-file sweep in a background thread."""
        if self._sweeper and self._sweeper.is_alive():
            return

        self._stop_sweeper.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, daemon=True, name="autoprint-sweeper"
        )
        self._sweeper.start()

    def _sweep_loop(self) -> None:
        if self._stop_sweeper.wait(self.sweep_initial_delay):
            return
        while True:
            try:
                self.sweep()
            except Exception as e:
                logger.exception(f"Error during temp file cleanup: {e}")
            if self._stop_sweeper.wait(self.sweep_interval):
                return

    def shutdown(self) -> None:
        """Cancel scheduled cleanups, stop the sweeper and delete staged files."""
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
            tracked = list(self._tracked)

        for timer in timers:
            timer.cancel()

        self._stop_sweeper.set()
        if self._sweeper:
            self._sweeper.join(timeout=5)
            self._sweeper = None

        for path in tracked:
            self.delete_temp_file(path)

        logger.debug(f"Print dispatcher shut down ({len(timers)} pending cleanups cancelled)")
