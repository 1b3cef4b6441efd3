"""AutoPrint agent - polls the label endpoint and saves/prints new labels."""

import json
import logging
import signal
import threading
import time

import requests

from autoprint.codec import canonical_name, decode_item, normalize_document
from autoprint.config import (
    DEFAULT_LEDGER_FILE,
    AutoPrintConfig,
    get_config,
)
from autoprint.event_log import EventLog
from autoprint.exceptions import LedgerError, PayloadDecodeError, StoreError
from autoprint.ledger import Ledger
from autoprint.models import CycleStatus, CycleSummary, ParsedResponse, RawItem
from autoprint.printing import PrintDispatcher
from autoprint.store import DocumentStore

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30
ERROR_BODY_EXCERPT = 500


class MalformedResponseError(ValueError):
    """The server answered with something other than the expected JSON shape."""

    pass


def coerce_text(value) -> str | None:
    """Turn a JSON scalar from the response into text.

    Args:
        value: Decoded JSON value.

    Returns:
        str | None: Text, or None for null.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    return json.dumps(value, separators=(",", ":"))


def parse_response(data) -> ParsedResponse:
    """Normalize a decoded response body into raw items.

    Args:
        data: Decoded JSON body.

    Returns:
        ParsedResponse: Valid items, the number of rejected entries and the
            server message if there were no files.

    Raises:
        MalformedResponseError: If the body is not an object, ``files`` is
            not an array, or neither ``files`` nor ``message`` is present.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")

    if "files" not in data:
        if "message" in data:
            return ParsedResponse(message=coerce_text(data["message"]) or "")
        keys = ", ".join(sorted(data)) or "(none)"
        raise MalformedResponseError(f"No 'files' property in response. Available properties: {keys}")

    files = data["files"]
    if not isinstance(files, list):
        raise MalformedResponseError(f"'files' is not an array (type: {type(files).__name__})")

    result = ParsedResponse()
    total = len(files)
    for index, entry in enumerate(files, start=1):
        if not isinstance(entry, list):
            logger.error(f"Entry {index}/{total} is not an array (type: {type(entry).__name__})")
            result.errors += 1
            continue
        if len(entry) < 2:
            logger.error(
                f"Entry {index}/{total} has insufficient elements (expected >= 2, got {len(entry)})"
            )
            result.errors += 1
            continue

        payload = coerce_text(entry[0])
        name = coerce_text(entry[1])
        item_id = coerce_text(entry[2]) if len(entry) >= 3 else None

        if payload is None or not payload.strip():
            logger.error(f"Base64 data is empty for entry {index}/{total}")
            result.errors += 1
            continue
        if name is None or not name.strip():
            logger.error(f"Filename is empty for entry {index}/{total}")
            result.errors += 1
            continue

        logger.debug(
            f"Entry {index}/{total}: name={name!r}, base64 length={len(payload)}, id={item_id or 'none'}"
        )
        result.items.append(RawItem(payload=payload, name=name, id=item_id))

    return result


class AutoPrintAgent:
    """Print agent that polls the label endpoint and saves/prints new labels.

    Each cycle the agent:
    1. Fetches pending labels from the endpoint
    2. Skips labels whose name is already in the ledger
    3. Decodes the payload and converts images to PDF
    4. Records the name, then saves and/or prints the document

    Cycles run on a background thread started with ``start``; only one cycle
    runs at a time.
    """

    def __init__(
        self,
        config: AutoPrintConfig | None = None,
        ledger: Ledger | None = None,
        dispatcher: PrintDispatcher | None = None,
        event_log: EventLog | None = None,
    ):
        """Initialize the agent.

        Args:
            config: Configuration (loads from file if not provided).
            ledger: Processed-files ledger (default file if not provided).
            dispatcher: Print dispatcher (platform default if not provided).
            event_log: Event log to close on stop, if the agent owns one.

        Raises:
            LedgerError: If the ledger file cannot be read.
        """
        self.config = config if config is not None else get_config()
        self.ledger = ledger if ledger is not None else Ledger(DEFAULT_LEDGER_FILE)
        self.ledger.load()
        self.dispatcher = dispatcher if dispatcher is not None else PrintDispatcher()
        self.event_log = event_log

        self.running = False
        self.paused = False
        self.last_poll = None
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None

    def _handle_shutdown(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received")
        self.running = False
        self._stop_event.set()
        self._wake_event.set()

    # ------------------------------------------------------------------
    # Remote source
    # ------------------------------------------------------------------

    def fetch_response(self, config: AutoPrintConfig):
        """Fetch the pending labels from the endpoint.

        Args:
            config: Settings snapshot for this cycle.

        Returns:
            Decoded JSON body.

        Raises:
            requests.RequestException: On network failure or a non-2xx status.
            MalformedResponseError: If the body is not JSON.
        """
        logger.info(f"Fetching from URL: {config.endpoint_url}")
        response = requests.get(
            config.endpoint_url,
            params={"user_id": config.caller_id},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        logger.debug(f"API Response Status: {response.status_code}")

        if not 200 <= response.status_code < 300:
            excerpt = response.text[:ERROR_BODY_EXCERPT]
            logger.warning(f"API Error Response ({response.status_code}): {excerpt}")
            raise requests.HTTPError(
                f"Server returned {response.status_code} {response.reason or ''}".strip(),
                response=response,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Invalid JSON: {e}") from e

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleSummary:
        """Run a single polling cycle.

        Returns:
            CycleSummary: What happened during the cycle.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Previous poll still running, skipping this tick")
            return CycleSummary(status=CycleStatus.BUSY)

        try:
            return self._run_cycle(self.config)
        except Exception as e:
            logger.exception(f"API cycle error: {e}")
            return CycleSummary(status=CycleStatus.MALFORMED, message=str(e))
        finally:
            self._cycle_lock.release()

    def _run_cycle(self, config: AutoPrintConfig) -> CycleSummary:
        if not config.is_configured():
            logger.warning("API settings missing. Skipping request.")
            return CycleSummary(status=CycleStatus.NOT_CONFIGURED)

        try:
            data = self.fetch_response(config)
        except requests.Timeout:
            logger.error("REQUEST TIMEOUT: The request took too long to complete")
            return CycleSummary(status=CycleStatus.TRANSPORT_ERROR)
        except requests.ConnectionError as e:
            logger.error(f"NETWORK ERROR: {e}")
            return CycleSummary(status=CycleStatus.TRANSPORT_ERROR)
        except requests.HTTPError as e:
            logger.error(f"HTTP ERROR: {e}")
            return CycleSummary(status=CycleStatus.TRANSPORT_ERROR)
        except requests.RequestException as e:
            logger.error(f"REQUEST FAILED: {type(e).__name__}: {e}")
            return CycleSummary(status=CycleStatus.TRANSPORT_ERROR)
        except MalformedResponseError as e:
            logger.error(f"JSON PARSE ERROR: {e}")
            return CycleSummary(status=CycleStatus.MALFORMED)
        finally:
            self.last_poll = time.time()

        try:
            parsed = parse_response(data)
        except MalformedResponseError as e:
            logger.error(f"Malformed response: {e}")
            return CycleSummary(status=CycleStatus.MALFORMED)

        if parsed.message is not None:
            logger.info(f"API Message: {parsed.message}")
            return CycleSummary(status=CycleStatus.MESSAGE, message=parsed.message)

        summary = CycleSummary(received=len(parsed.items) + parsed.errors, errors=parsed.errors)
        if summary.received == 0:
            logger.info("Files array is empty - no new labels")
            summary.status = CycleStatus.EMPTY
            return summary

        logger.info(f"Processing {summary.received} label(s)")
        for item in parsed.items:
            self.process_item(item, config, summary)

        logger.info(
            f"Processing complete - New: {summary.accepted}, Skipped: {summary.skipped}, "
            f"Errors: {summary.errors}, Saved: {summary.saved}, Printed: {summary.printed}"
        )
        if summary.accepted == 0 and summary.skipped > 0 and summary.errors == 0:
            logger.info("No new labels (all previously processed)")
        return summary

    def process_item(self, item: RawItem, config: AutoPrintConfig, summary: CycleSummary) -> None:
        """Process a single label; never raises.

        Args:
            item: Raw entry from the response.
            config: Settings snapshot for this cycle.
            summary: Cycle counters to update.
        """
        try:
            self._process_item(item, config, summary)
        except Exception as e:
            logger.exception(f"ERROR processing {item.name!r}: {e}")
            summary.errors += 1

    def _process_item(self, item: RawItem, config: AutoPrintConfig, summary: CycleSummary) -> None:
        try:
            name = canonical_name(item.name)
        except PayloadDecodeError as e:
            logger.error(f"ERROR: {e}")
            summary.errors += 1
            return

        if self.ledger.contains(name):
            logger.info(f"Skipping: {name} (already processed)")
            summary.skipped += 1
            return

        try:
            document = decode_item(item)
        except PayloadDecodeError as e:
            logger.error(f"ERROR: Invalid base64 for {e}")
            summary.errors += 1
            return

        document = normalize_document(document)

        try:
            self.ledger.record(document.canonical_name)
        except LedgerError as e:
            # Without a ledger entry the label would be printed again next cycle
            logger.error(f"ERROR: {e}; not processing {document.canonical_name}")
            summary.errors += 1
            return
        summary.accepted += 1

        if config.save_enabled and config.save_path.strip():
            try:
                if DocumentStore(config.save_path).save(document) is not None:
                    logger.info(f"Saved: {document.canonical_name}")
                    summary.saved += 1
            except StoreError as e:
                logger.error(f"Save failed: {document.canonical_name} - {e}")
                summary.save_failed += 1

        if config.print_enabled:
            if self.dispatcher.dispatch(
                document.content, config.device_name, document.detected_format
            ):
                logger.info(f"Printed: {document.canonical_name} -> {config.device_name}")
                summary.printed += 1
            else:
                logger.error(f"Print failed: {document.canonical_name}")
                summary.print_failed += 1

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start polling on a background thread."""
        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._wake_event.clear()
        self.running = True
        self.paused = False
        self.dispatcher.start_sweeper()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="autoprint-poller")
        self._thread.start()
        logger.info(f"API polling started - Interval: {self.config.poll_interval}s")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            woken = self._wake_event.wait(self.config.poll_interval)
            self._wake_event.clear()
            # Woken early by apply_config/resume/stop: restart the wait
            if woken:
                continue
            if self._stop_event.is_set() or self.paused:
                continue
            self.run_cycle()

    def pause(self) -> None:
        """Stop starting new cycles; a cycle in flight still completes."""
        self.paused = True
        logger.warning("Polling paused")

    def resume(self) -> None:
        """Resume polling after ``pause``."""
        self.paused = False
        self._wake_event.set()
        logger.info("Polling resumed")

    def poll_now(self) -> CycleSummary:
        """Run a cycle immediately on the calling thread.

        Returns:
            CycleSummary: Result of the cycle (status BUSY if one is in flight).
        """
        return self.run_cycle()

    def apply_config(self, config: AutoPrintConfig) -> None:
        """Replace the settings snapshot and restart the poll timer.

        Args:
            config: New settings.
        """
        self.config = config
        self._wake_event.set()
        if self.paused:
            logger.info(f"Timer updated - Interval: {config.poll_interval}s (paused)")
        else:
            logger.info(f"Polling restarted - Interval: {config.poll_interval}s")

    def stop(self, timeout: float = REQUEST_TIMEOUT_SECONDS) -> None:
        """Stop polling and release background resources.

        Args:
            timeout: Seconds to wait for an in-flight cycle to finish.
        """
        self.running = False
        self._stop_event.set()
        self._wake_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

        self.dispatcher.shutdown()
        logger.info("Agent stopped")
        if self.event_log:
            self.event_log.close()

    def run(self) -> None:
        """Run the agent until interrupted.

        Blocks the calling thread; SIGINT and SIGTERM stop the agent.
        """
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

        logger.info("Starting AutoPrint agent")
        logger.info(f"Endpoint: {self.config.endpoint_url}")
        logger.info(f"Save to folder: {self.config.save_path if self.config.save_enabled else 'off'}")
        logger.info(f"Printer: {self.config.device_name if self.config.print_enabled else 'off'}")

        self.start()
        while self.running:
            self._stop_event.wait(1)
        self.stop()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def test_connection(self) -> dict:
        """Test connection to the endpoint and printer setup.

        Returns:
            dict: Test results with 'server', 'printer', 'success' keys.
        """
        results = {
            "server": {"status": "unknown", "message": ""},
            "printer": {"status": "unknown", "message": ""},
            "success": False,
        }

        # Test server connection
        if not self.config.is_configured():
            results["server"] = {"status": "error", "message": "Endpoint or caller id not set"}
        else:
            try:
                response = requests.get(
                    self.config.endpoint_url,
                    params={"user_id": self.config.caller_id},
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
                if 200 <= response.status_code < 300:
                    results["server"] = {
                        "status": "ok",
                        "message": f"Connected ({len(response.text)} chars received)",
                    }
                else:
                    results["server"] = {
                        "status": "error",
                        "message": f"Server returned {response.status_code}",
                    }
            except requests.RequestException as e:
                results["server"] = {"status": "error", "message": str(e)}

        # Test printer
        available = [s.name for s in self.dispatcher.strategies if s.is_available]
        if not self.config.print_enabled:
            results["printer"] = {"status": "ok", "message": "Direct printing disabled"}
        elif not self.config.device_name:
            results["printer"] = {"status": "warning", "message": "No printer selected"}
        elif available:
            results["printer"] = {
                "status": "ok",
                "message": f"Printer: {self.config.device_name}",
                "strategies": available,
            }
        else:
            results["printer"] = {"status": "error", "message": "No print method available"}

        results["success"] = results["server"]["status"] == "ok" and results["printer"][
            "status"
        ] in ("ok", "warning")

        return results


def get_agent(config: AutoPrintConfig | None = None, event_log: EventLog | None = None) -> AutoPrintAgent:
    """Factory function for AutoPrintAgent.

    Args:
        config: Optional configuration.
        event_log: Optional event log owned by the agent.

    Returns:
        AutoPrintAgent: Agent instance.
    """
    return AutoPrintAgent(config, event_log=event_log)
