"""Exceptions raised by the AutoPrint pipeline."""


class AutoPrintError(Exception):
    """Base class for AutoPrint errors."""

    pass


class PayloadDecodeError(AutoPrintError):
    """A label payload could not be turned into bytes."""

    def __init__(self, message: str, file_name: str | None = None):
        """Initialize the error.

        Args:
            message: What went wrong.
            file_name: Name of the offending label, if known.
        """
        self.file_name = file_name
        if file_name:
            message = f"{file_name}: {message}"
        super().__init__(message)


class ConversionError(AutoPrintError):
    """An image payload could not be converted to PDF."""

    pass


class StoreError(AutoPrintError):
    """A document could not be saved or failed verification."""

    pass


class LedgerError(AutoPrintError):
    """The processed-files ledger could not be read or written."""

    pass


class EventLogError(AutoPrintError):
    """The event log backing file could not be initialized."""

    pass
