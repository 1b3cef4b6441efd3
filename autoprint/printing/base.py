"""Abstract print strategy interface."""

from pathlib import Path
from typing import Protocol, runtime_checkable


class PrinterError(Exception):
    """Error during printing operation."""

    pass


@runtime_checkable
class PrintStrategy(Protocol):
    """Protocol defining one way of sending a file to a printer.

    The dispatcher tries strategies in order; each platform provides a
    primary strategy and a command-line fallback.
    """

    name: str

    @property
    def is_available(self) -> bool:
        """Check if this strategy can be used on this machine.

        Returns:
            bool: True if the strategy's dependencies are present.
        """
        ...

    def send(self, file_path: Path, printer_name: str) -> bool:
        """Hand a staged file to the printer.

        Args:
            file_path: File to print.
            printer_name: Target printer name.

        Returns:
            bool: True if the print job was started.

        Raises:
            PrinterError: If the job could not be started.
        """
        ...
