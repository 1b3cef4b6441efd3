"""Configuration management for the AutoPrint agent."""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "autoprint"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"
DEFAULT_LEDGER_FILE = DEFAULT_CONFIG_DIR / "processed_files.log"
DEFAULT_EVENT_LOG_FILE = DEFAULT_CONFIG_DIR / "events.log"

# Default label endpoint
DEFAULT_ENDPOINT_URL = "https://beta.channeldispatch.co.uk/api/v1/download_file"


class AutoPrintConfig(BaseModel):
    """Settings snapshot consumed by each polling cycle.

    Instances are immutable; use ``with_updates`` to derive a new snapshot
    and hand it to the agent with ``AutoPrintAgent.apply_config``.

    Attributes:
        endpoint_url: Label endpoint queried with GET.
        caller_id: Value sent as the ``user_id`` query parameter.
        poll_interval: Seconds between polling cycles.
        save_enabled: Save each new document to ``save_path``.
        save_path: Destination folder for saved documents.
        print_enabled: Send each new document to ``device_name``.
        device_name: Printer name as known to the operating system.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    endpoint_url: str = Field(DEFAULT_ENDPOINT_URL, description="Label endpoint URL")
    caller_id: str = Field("", description="Caller identifier (user PIN)")
    poll_interval: int = Field(30, ge=1, le=3600, description="Poll interval in seconds")
    save_enabled: bool = Field(False, description="Save documents to a folder")
    save_path: str = Field("", description="Destination folder")
    print_enabled: bool = Field(True, description="Print documents directly")
    device_name: str = Field("", description="Printer name")
    log_level: str = Field("INFO", description="Log level")

    def is_configured(self) -> bool:
        """Check if the agent has enough settings to poll.

        Returns:
            bool: True if endpoint_url and caller_id are set.
        """
        return bool(self.endpoint_url.strip() and self.caller_id.strip())

    def with_updates(self, **changes) -> "AutoPrintConfig":
        """Return a new validated snapshot with some fields replaced.

        Args:
            **changes: Field values to replace.

        Returns:
            AutoPrintConfig: New configuration.

        Raises:
            pydantic.ValidationError: If a value is out of range.
        """
        return AutoPrintConfig.model_validate({**self.model_dump(), **changes})

    def save(self, config_path: Path | None = None) -> None:
        """Save config to file.

        Args:
            config_path: Path to config file (default: ~/.config/autoprint/config.json).
        """
        path = config_path or DEFAULT_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

        # Secure the config file (contains the caller id)
        os.chmod(path, 0o600)

    @classmethod
    def load(cls, config_path: Path | None = None) -> "AutoPrintConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file.

        Returns:
            AutoPrintConfig: Loaded configuration or default.
        """
        path = config_path or DEFAULT_CONFIG_FILE

        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning(f"Error loading config from {path}: {e}")
            return cls()


def get_config(config_path: Path | None = None) -> AutoPrintConfig:
    """Get the current configuration.

    Args:
        config_path: Optional custom config path.

    Returns:
        AutoPrintConfig: Current configuration.
    """
    return AutoPrintConfig.load(config_path)
