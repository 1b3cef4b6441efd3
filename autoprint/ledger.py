"""Append-only ledger of label names that have already been processed."""

import logging
import threading
from pathlib import Path

from autoprint.exceptions import LedgerError

logger = logging.getLogger(__name__)


class Ledger:
    """Persistent set of processed label names.

    The backing file holds one name per line and is only ever appended to,
    except by ``clear``. The whole file is held in memory after ``load``.
    """

    def __init__(self, path: Path):
        """Initialize the ledger.

        Args:
            path: Backing file (created on first ``record``).
        """
        self.path = Path(path)
        self._names: set[str] = set()
        self._lock = threading.Lock()

    def load(self) -> int:
        """Read every non-blank line of the backing file into memory.

        Returns:
            int: Number of names loaded.

        Raises:
            LedgerError: If the file exists but cannot be read.
        """
        with self._lock:
            self._names.clear()
            try:
                with open(self.path, encoding="utf-8") as f:
                    for line in f:
                        name = line.strip()
                        if name:
                            self._names.add(name)
            except FileNotFoundError:
                logger.debug(f"No ledger at {self.path}, starting empty")
                return 0
            except (OSError, UnicodeDecodeError) as e:
                raise LedgerError(f"Could not read ledger {self.path}: {e}") from e

            count = len(self._names)

        logger.info(f"Loaded {count} previously processed files")
        return count

    def contains(self, name: str) -> bool:
        """Check whether a name has already been processed.

        Args:
            name: Canonical label name.

        Returns:
            bool: True if the name is in the ledger.
        """
        with self._lock:
            return name in self._names

    def __contains__(self, name: str) -> bool:
        return self.contains(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def record(self, name: str) -> None:
        """Append a name to the ledger.

        Args:
            name: Canonical label name.

        Raises:
            LedgerError: If the backing file cannot be written.
        """
        with self._lock:
            if name in self._names:
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(name + "\n")
            except OSError as e:
                raise LedgerError(f"Could not append to ledger {self.path}: {e}") from e
            self._names.add(name)

    def clear(self) -> None:
        """Forget every processed name and delete the backing file.

        Only meant for an explicit operator action.
        """
        with self._lock:
            self._names.clear()
            self.path.unlink(missing_ok=True)
        logger.info("Cleared processed files history")
