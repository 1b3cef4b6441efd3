"""Collision-safe persistence of finished documents to a folder."""

import logging
from datetime import datetime
from pathlib import Path

from autoprint.exceptions import StoreError
from autoprint.models import DecodedDocument

logger = logging.getLogger(__name__)


class DocumentStore:
    """Saves documents into a destination folder.

    A file that already exists with the same name and size is taken to be the
    same document and is left alone. A same-named file of a different size is
    never overwritten; the new document gets a timestamped name instead.
    """

    def __init__(self, folder: str | Path):
        """Initialize the store.

        Args:
            folder: Destination folder (created on first save).
        """
        self.folder = Path(folder)

    def _target_path(self, file_name: str, size: int) -> Path | None:
        """Pick the path to write to.

        Args:
            file_name: Canonical document name.
            size: Number of bytes about to be written.

        Returns:
            Path | None: Target path, or None if an identical file is already there.
        """
        stem = Path(file_name).stem
        path = self.folder / f"{stem}.pdf"

        if not path.exists():
            return path

        if path.stat().st_size == size:
            logger.info(f"File already exists with same size, skipping: {path.name}")
            return None

        # Millisecond suffix: two collisions in one second still get distinct names
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        path = self.folder / f"{stem}_{timestamp}.pdf"
        logger.info(f"File exists with different size, will save as: {path.name}")
        return path

    def save(self, document: DecodedDocument) -> Path | None:
        """Write a document to the destination folder.

        Args:
            document: Document to save.

        Returns:
            Path | None: Path written, or None if an identical file already existed.

        Raises:
            StoreError: If the document is empty, the write fails, or the
                written size does not match.
        """
        if not document.content:
            raise StoreError(f"Empty file data for {document.canonical_name}")
        if not document.canonical_name.strip():
            raise StoreError("No filename provided")

        size = len(document.content)

        try:
            if not self.folder.exists():
                self.folder.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created directory: {self.folder}")

            path = self._target_path(document.canonical_name, size)
            if path is None:
                return None

            path.write_bytes(document.content)
            written = path.stat().st_size
        except OSError as e:
            raise StoreError(f"Error saving {document.canonical_name}: {e}") from e

        if written != size:
            raise StoreError(
                f"File verification failed for {path.name}: wrote {written} of {size} bytes"
            )

        logger.info(
            f"File saved: {path.name} ({written:,} bytes) "
            f"[Original type: {document.detected_format.value}]"
        )
        return path
