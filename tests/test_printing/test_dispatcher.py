"""Tests for the print dispatcher."""

import os
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from autoprint.models import DocumentFormat
from autoprint.printing import PrintDispatcher, PrinterError
from autoprint.printing.dispatcher import TEMP_PREFIX


@pytest.fixture
def staging_dir(tmp_path):
    """Private temp directory for staged print files."""
    path = tmp_path / "spool"
    path.mkdir()
    return path


def make_dispatcher(staging_dir, strategies, **kwargs):
    kwargs.setdefault("cleanup_delay", 3600)
    kwargs.setdefault("retry_pause", 0)
    return PrintDispatcher(strategies, temp_dir=staging_dir, **kwargs)


def staged_files(staging_dir: Path) -> list[Path]:
    return sorted(staging_dir.glob(f"{TEMP_PREFIX}*"))


class TestDispatch:
    """Tests for PrintDispatcher.dispatch."""

    def test_blank_printer_is_rejected(self, staging_dir, mock_strategy):
        """Should not stage anything without a printer name."""
        strategy = mock_strategy()
        dispatcher = make_dispatcher(staging_dir, [strategy])

        assert dispatcher.dispatch(b"%PDF-1.4", "  ") is False
        strategy.send.assert_not_called()
        assert staged_files(staging_dir) == []

    def test_primary_strategy_success(self, staging_dir, mock_strategy):
        """Should stop at the first strategy that starts the job."""
        primary = mock_strategy("primary", True)
        fallback = mock_strategy("fallback", True)
        dispatcher = make_dispatcher(staging_dir, [primary, fallback])

        assert dispatcher.dispatch(b"%PDF-1.4 data", "Label Printer") is True

        primary.send.assert_called_once()
        fallback.send.assert_not_called()
        path, printer = primary.send.call_args.args
        assert printer == "Label Printer"
        assert path.parent == staging_dir
        assert path.name.startswith(TEMP_PREFIX)
        assert path.suffix == ".pdf"
        assert path.read_bytes() == b"%PDF-1.4 data"
        dispatcher.shutdown()

    def test_falls_back_after_printer_error(self, staging_dir, mock_strategy):
        """Should try the fallback when the primary raises."""
        primary = mock_strategy("primary", PrinterError("no handler"))
        fallback = mock_strategy("fallback", True)
        dispatcher = make_dispatcher(staging_dir, [primary, fallback])

        assert dispatcher.dispatch(b"%PDF-1.4", "Label Printer") is True
        fallback.send.assert_called_once()
        dispatcher.shutdown()

    def test_falls_back_after_false(self, staging_dir, mock_strategy):
        """Should try the fallback when the primary reports failure."""
        primary = mock_strategy("primary", False)
        fallback = mock_strategy("fallback", True)
        dispatcher = make_dispatcher(staging_dir, [primary, fallback])

        assert dispatcher.dispatch(b"%PDF-1.4", "Label Printer") is True
        dispatcher.shutdown()

    def test_skips_unavailable_strategy(self, staging_dir, mock_strategy):
        """Should not call a strategy that is unavailable."""
        primary = mock_strategy("primary", True, available=False)
        fallback = mock_strategy("fallback", True)
        dispatcher = make_dispatcher(staging_dir, [primary, fallback])

        assert dispatcher.dispatch(b"%PDF-1.4", "Label Printer") is True
        primary.send.assert_not_called()
        dispatcher.shutdown()

    def test_all_strategies_fail(self, staging_dir, mock_strategy):
        """Should report False without raising."""
        primary = mock_strategy("primary", PrinterError("no handler"))
        fallback = mock_strategy("fallback", False)
        dispatcher = make_dispatcher(staging_dir, [primary, fallback])

        assert dispatcher.dispatch(b"%PDF-1.4", "Label Printer") is False
        fallback.send.assert_called_once()
        dispatcher.shutdown()

    def test_unexpected_error_is_failure(self, staging_dir, mock_strategy):
        """Should turn an unexpected strategy exception into False."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy(result=RuntimeError("boom"))])

        assert dispatcher.dispatch(b"%PDF-1.4", "Label Printer") is False
        dispatcher.shutdown()

    def test_extension_follows_format(self, staging_dir, mock_strategy):
        """Should stage raster documents with their own extension."""
        strategy = mock_strategy()
        dispatcher = make_dispatcher(staging_dir, [strategy])

        dispatcher.dispatch(b"\x89PNG....", "Label Printer", DocumentFormat.PNG)

        path = strategy.send.call_args.args[0]
        assert path.suffix == ".png"
        dispatcher.shutdown()

    def test_staged_names_are_unique(self, staging_dir, mock_strategy):
        """Should never reuse a staged file name."""
        strategy = mock_strategy()
        dispatcher = make_dispatcher(staging_dir, [strategy])

        for _ in range(5):
            dispatcher.dispatch(b"%PDF-1.4", "Label Printer")

        paths = {call.args[0] for call in strategy.send.call_args_list}
        assert len(paths) == 5
        dispatcher.shutdown()


class TestCleanup:
    """Tests for staged file cleanup."""

    def test_cleanup_scheduled_after_dispatch(self, staging_dir, mock_strategy):
        """Should keep the file until the cleanup delay passes."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy()])

        dispatcher.dispatch(b"%PDF-1.4", "Label Printer")

        assert dispatcher.pending_cleanups == 1
        assert len(staged_files(staging_dir)) == 1
        dispatcher.shutdown()

    def test_file_deleted_after_delay(self, staging_dir, mock_strategy):
        """Should delete the staged file once the timer fires."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy()], cleanup_delay=0.05)

        dispatcher.dispatch(b"%PDF-1.4", "Label Printer")

        deadline = time.monotonic() + 5
        while staged_files(staging_dir) and time.monotonic() < deadline:
            time.sleep(0.02)
        assert staged_files(staging_dir) == []
        dispatcher.shutdown()

    def test_failed_job_is_cleaned_up_too(self, staging_dir, mock_strategy):
        """Should schedule cleanup even when printing failed."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy(result=False)])

        dispatcher.dispatch(b"%PDF-1.4", "Label Printer")

        assert dispatcher.pending_cleanups == 1
        dispatcher.shutdown()

    def test_shutdown_cancels_timers_and_deletes_files(self, staging_dir, mock_strategy):
        """Should delete everything still staged on shutdown."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy()])
        dispatcher.dispatch(b"%PDF-1.4", "Label Printer")
        dispatcher.dispatch(b"%PDF-1.4", "Label Printer")

        dispatcher.shutdown()

        assert dispatcher.pending_cleanups == 0
        assert staged_files(staging_dir) == []

    def test_dispatch_after_shutdown_deletes_immediately(self, staging_dir, mock_strategy):
        """Should not leave files behind once shut down."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy()])
        dispatcher.shutdown()

        dispatcher.dispatch(b"%PDF-1.4", "Label Printer")

        assert dispatcher.pending_cleanups == 0
        assert staged_files(staging_dir) == []

    def test_delete_retries_locked_file(self, staging_dir, mock_strategy):
        """Should retry a delete that fails transiently."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy()])
        path = staging_dir / f"{TEMP_PREFIX}locked.pdf"

        with patch.object(Path, "unlink", side_effect=[PermissionError("in use"), None]) as unlink:
            assert dispatcher.delete_temp_file(path) is True
        assert unlink.call_count == 2

    def test_delete_gives_up_after_attempts(self, staging_dir, mock_strategy):
        """Should stop after the configured number of attempts."""
        dispatcher = make_dispatcher(staging_dir, [mock_strategy()], delete_attempts=3)
        path = staging_dir / f"{TEMP_PREFIX}locked.pdf"

        with patch.object(Path, "unlink", side_effect=PermissionError("in use")) as unlink:
            assert dispatcher.delete_temp_file(path) is False
        assert unlink.call_count == 3


class TestSweep:
    """Tests for the stale file sweep."""

    def test_removes_only_stale_staged_files(self, staging_dir, mock_strategy):
        """Should delete old staged files and leave everything else."""
        old = time.time() - 2 * 3600
        stale = staging_dir / f"{TEMP_PREFIX}20240101_000000_abc.pdf"
        fresh = staging_dir / f"{TEMP_PREFIX}20240101_000001_def.pdf"
        foreign = staging_dir / "report.pdf"
        other_ext = staging_dir / f"{TEMP_PREFIX}notes.txt"
        for path in (stale, fresh, foreign, other_ext):
            path.write_bytes(b"x")
        for path in (stale, foreign, other_ext):
            os.utime(path, (old, old))

        dispatcher = make_dispatcher(staging_dir, [mock_strategy()])

        assert dispatcher.sweep() == 1
        assert not stale.exists()
        assert fresh.exists()
        assert foreign.exists()
        assert other_ext.exists()

    def test_sweeper_thread_runs_sweep(self, staging_dir, mock_strategy):
        """Should sweep in the background after the initial delay."""
        dispatcher = make_dispatcher(
            staging_dir, [mock_strategy()], sweep_initial_delay=0, sweep_interval=3600
        )

        with patch.object(dispatcher, "sweep", return_value=0) as sweep:
            dispatcher.start_sweeper()
            deadline = time.monotonic() + 5
            while not sweep.called and time.monotonic() < deadline:
                time.sleep(0.02)
            dispatcher.shutdown()

        sweep.assert_called()
