"""Windows print strategies: shell ``printto`` verb and the ``print`` command."""

import logging
import subprocess
from pathlib import Path

from autoprint.printing.base import PrinterError

logger = logging.getLogger(__name__)

# Try to import win32 modules
try:
    import win32con
    import win32event
    from win32com.shell import shell, shellcon

    WIN32_AVAILABLE = True
except ImportError:
    WIN32_AVAILABLE = False
    logger.debug("pywin32 not available - shell verb printing disabled")

# Seconds to wait for the handler process to get going (not for the print to finish)
VERB_WAIT_SECONDS = 10
COMMAND_WAIT_SECONDS = 5


class ShellVerbPrinter:
    """Print through the application registered for the file's ``printto`` verb."""

    name = "printto verb"

    def __init__(self, wait_seconds: float = VERB_WAIT_SECONDS):
        """Initialize the strategy.

        Args:
            wait_seconds: How long to wait on the handler process.
        """
        self.wait_seconds = wait_seconds

    @property
    def is_available(self) -> bool:
        """Check if Windows shell printing is available.

        Returns:
            bool: True if pywin32 is importable.
        """
        return WIN32_AVAILABLE

    def send(self, file_path: Path, printer_name: str) -> bool:
        """Invoke the ``printto`` verb for a file without showing any UI.

        The spooler works asynchronously, so this only waits for the handler
        process to start and settle, never for the physical print.

        Args:
            file_path: File to print.
            printer_name: Target printer name.

        Returns:
            bool: True if the handler process was started.

        Raises:
            PrinterError: If pywin32 is missing or the verb cannot be invoked.
        """
        if not WIN32_AVAILABLE:
            raise PrinterError("pywin32 is not installed")

        try:
            info = shell.ShellExecuteEx(
                fMask=shellcon.SEE_MASK_NOCLOSEPROCESS | shellcon.SEE_MASK_FLAG_NO_UI,
                lpVerb="printto",
                lpFile=str(file_path),
                lpParameters=f'"{printer_name}"',
                lpDirectory=str(file_path.parent),
                nShow=win32con.SW_HIDE,
            )
        except Exception as e:
            raise PrinterError(f"Verb print method failed: {e}") from e

        process = info.get("hProcess")
        if process:
            result = win32event.WaitForSingleObject(process, int(self.wait_seconds * 1000))
            if result == win32event.WAIT_TIMEOUT:
                logger.info("Print process is taking longer than expected, continuing...")

        logger.info(f"Print job handed to {printer_name} via printto verb")
        return True


class PrintCommandPrinter:
    """Print with the Windows ``print`` command as a subprocess."""

    name = "print command"

    def __init__(self, timeout: float = COMMAND_WAIT_SECONDS):
        """Initialize the strategy.

        Args:
            timeout: Seconds to wait for the command to exit.
        """
        self.timeout = timeout

    @property
    def is_available(self) -> bool:
        """The print command ships with every Windows install.

        Returns:
            bool: Always True.
        """
        return True

    def send(self, file_path: Path, printer_name: str) -> bool:
        """Run ``print /D:<printer> <file>``.

        Args:
            file_path: File to print.
            printer_name: Target printer name.

        Returns:
            bool: True if the command exited with code 0.

        Raises:
            PrinterError: If the command cannot be run or times out.
        """
        cmd = f'cmd.exe /c print /D:"{printer_name}" "{file_path}"'
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except subprocess.TimeoutExpired as err:
            raise PrinterError("Print command timed out") from err
        except OSError as err:
            raise PrinterError(f"Command line print method failed: {err}") from err

        if result.returncode != 0:
            logger.warning(f"print command failed: {result.stderr.strip() or result.stdout.strip()}")
            return False

        logger.info(f"Print job submitted via print command: {result.stdout.strip()}")
        return True
