"""CUPS print strategies for Linux and macOS."""

import logging
import shutil
import subprocess
from pathlib import Path

from autoprint.printing.base import PrinterError

logger = logging.getLogger(__name__)

# Try to import cups, but make it optional
try:
    import cups

    CUPS_AVAILABLE = True
except ImportError:
    CUPS_AVAILABLE = False
    logger.debug("pycups not available - using lp command only")

LP_WAIT_SECONDS = 5


class CupsPrinter:
    """Submit print jobs through the CUPS API (pycups)."""

    name = "cups"

    def __init__(self, title: str = "AutoPrint Label"):
        """Initialize CUPS printer connection.

        Args:
            title: Job title shown in the print queue.
        """
        self.title = title
        self._connection = None

        if CUPS_AVAILABLE:
            try:
                self._connection = cups.Connection()
            except RuntimeError as e:
                logger.error(f"Could not connect to CUPS: {e}")

    @property
    def is_available(self) -> bool:
        """Check if CUPS is available and connected.

        Returns:
            bool: True if a CUPS connection is open.
        """
        return self._connection is not None

    def send(self, file_path: Path, printer_name: str) -> bool:
        """Submit a file to a CUPS queue.

        Args:
            file_path: File to print.
            printer_name: CUPS queue name.

        Returns:
            bool: True if CUPS accepted the job.

        Raises:
            PrinterError: If there is no connection or CUPS rejects the job.
        """
        if self._connection is None:
            raise PrinterError("CUPS is not available")

        try:
            job_id = self._connection.printFile(printer_name, str(file_path), self.title, {})
        except cups.IPPError as e:
            raise PrinterError(f"CUPS rejected print job: {e}") from e
        except RuntimeError as e:
            raise PrinterError(f"CUPS print failed: {e}") from e

        logger.info(f"Print job {job_id} submitted to {printer_name}")
        return True


class LpCommandPrinter:
    """Submit print jobs with the ``lp`` command."""

    name = "lp command"

    def __init__(self, timeout: float = LP_WAIT_SECONDS, title: str = "AutoPrint Label"):
        """Initialize the strategy.

        Args:
            timeout: Seconds to wait for ``lp`` to exit.
            title: Job title shown in the print queue.
        """
        self.timeout = timeout
        self.title = title

    @property
    def is_available(self) -> bool:
        """Check if lp command is available.

        Returns:
            bool: True if lp is on the PATH.
        """
        return shutil.which("lp") is not None

    def send(self, file_path: Path, printer_name: str) -> bool:
        """Run ``lp -d <printer> <file>``.

        Args:
            file_path: File to print.
            printer_name: CUPS queue name.

        Returns:
            bool: True if lp exited with code 0.

        Raises:
            PrinterError: If lp is missing or times out.
        """
        cmd = ["lp", "-t", self.title, "-d", printer_name, str(file_path)]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as err:
            raise PrinterError("Print command timed out") from err
        except FileNotFoundError as err:
            raise PrinterError("lp command not found - is CUPS installed?") from err

        if result.returncode != 0:
            logger.warning(f"lp command failed: {result.stderr.strip()}")
            return False

        logger.info(f"Print job submitted via lp: {result.stdout.strip()}")
        return True
