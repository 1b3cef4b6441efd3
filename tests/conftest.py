"""Pytest configuration and fixtures."""

import io
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

from autoprint.config import AutoPrintConfig
from autoprint.ledger import Ledger
from autoprint.printing import PrintDispatcher


@pytest.fixture(autouse=True)
def isolated_defaults(tmp_path: Path):
    """Keep every default file out of the real home directory."""
    home = tmp_path / "home"
    config_file = home / "config.json"
    ledger_file = home / "processed_files.log"
    events_file = home / "events.log"
    with patch("autoprint.config.DEFAULT_CONFIG_DIR", home), patch(
        "autoprint.config.DEFAULT_CONFIG_FILE", config_file
    ), patch("autoprint.config.DEFAULT_LEDGER_FILE", ledger_file), patch(
        "autoprint.config.DEFAULT_EVENT_LOG_FILE", events_file
    ), patch("autoprint.agent.DEFAULT_LEDGER_FILE", ledger_file), patch(
        "autoprint.cli.DEFAULT_CONFIG_FILE", config_file
    ), patch("autoprint.cli.DEFAULT_LEDGER_FILE", ledger_file), patch(
        "autoprint.cli.DEFAULT_EVENT_LOG_FILE", events_file
    ):
        yield {"config": config_file, "ledger": ledger_file, "events": events_file}


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory for in-memory raster images."""

    def _make(width: int = 120, height: int = 80, fmt: str = "PNG", mode: str = "RGB") -> bytes:
        color = "red" if mode in ("RGB", "RGBA") else 128
        img = Image.new(mode, (width, height), color)
        buffer = io.BytesIO()
        img.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def pdf_bytes() -> bytes:
    """A small valid one-page PDF."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(200, 100))
    c.drawString(10, 50, "INV001")
    c.showPage()
    c.save()
    return buffer.getvalue()


@pytest.fixture
def save_dir(tmp_path: Path) -> Path:
    """Destination folder for saved labels."""
    return tmp_path / "labels"


@pytest.fixture
def config(save_dir: Path) -> AutoPrintConfig:
    """Fully configured agent settings."""
    return AutoPrintConfig(
        endpoint_url="https://labels.example.com/api/v1/download_file",
        caller_id="1234",
        poll_interval=3600,
        save_enabled=True,
        save_path=str(save_dir),
        print_enabled=True,
        device_name="Label Printer",
    )


@pytest.fixture
def ledger(tmp_path: Path) -> Ledger:
    """Empty ledger in a temp folder."""
    return Ledger(tmp_path / "state" / "processed_files.log")


@pytest.fixture
def mock_dispatcher() -> MagicMock:
    """Print dispatcher that accepts every job."""
    dispatcher = MagicMock(spec=PrintDispatcher)
    dispatcher.dispatch.return_value = True
    dispatcher.strategies = []
    return dispatcher


@pytest.fixture
def mock_strategy() -> Callable[..., MagicMock]:
    """Factory for print strategies with a fixed outcome."""

    def _make(name: str = "primary", result=True, available: bool = True) -> MagicMock:
        strategy = MagicMock()
        strategy.name = name
        strategy.is_available = available
        if isinstance(result, Exception):
            strategy.send.side_effect = result
        else:
            strategy.send.return_value = result
        return strategy

    return _make
