"""Cross-platform printing.

Provides the print strategies for Linux/macOS (CUPS, then ``lp``) and Windows
(shell ``printto`` verb, then the ``print`` command), and the dispatcher that
tries them in order. Use get_strategies() to get the pair for the current
platform.
"""

import logging
import platform

from autoprint.printing.base import PrinterError, PrintStrategy
from autoprint.printing.dispatcher import PrintDispatcher

logger = logging.getLogger(__name__)


def get_strategies() -> list[PrintStrategy]:
    """Factory function that returns the print strategies for this platform.

    Returns:
        list[PrintStrategy]: Primary strategy followed by its fallback.
    """
    system = platform.system()

    if system == "Windows":
        from autoprint.printing.win32_printer import PrintCommandPrinter, ShellVerbPrinter

        return [ShellVerbPrinter(), PrintCommandPrinter()]
    else:
        # Linux and macOS both use CUPS
        from autoprint.printing.cups_printer import CupsPrinter, LpCommandPrinter

        return [CupsPrinter(), LpCommandPrinter()]


__all__ = [
    "PrintDispatcher",
    "PrintStrategy",
    "PrinterError",
    "get_strategies",
]
