"""Command-line interface for the AutoPrint agent."""

import logging
import sys
from pathlib import Path

import click

from autoprint import __version__
from autoprint.agent import get_agent
from autoprint.config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_EVENT_LOG_FILE,
    DEFAULT_LEDGER_FILE,
    get_config,
)
from autoprint.event_log import EventLog, EventLogHandler
from autoprint.exceptions import EventLogError, LedgerError
from autoprint.ledger import Ledger
from autoprint.models import CycleStatus


def setup_logging(level: str, event_log: EventLog | None = None) -> None:
    """Set up logging configuration.

    Args:
        level: Log level string.
        event_log: Event log that should also receive the agent's records.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    if event_log is not None:
        handler = EventLogHandler(event_log, level=numeric_level)
        logging.getLogger("autoprint").addHandler(handler)


def _require_config():
    config = get_config()
    if not config.is_configured():
        click.echo("Error: Agent not configured. Run 'autoprint configure' first.")
        sys.exit(1)
    return config


def _open_event_log() -> EventLog:
    try:
        return EventLog(DEFAULT_EVENT_LOG_FILE)
    except EventLogError as e:
        click.echo(f"Error: {e}")
        sys.exit(1)


def _build_agent(config, event_log: EventLog | None = None):
    try:
        return get_agent(config, event_log=event_log)
    except LedgerError as e:
        click.echo(f"Error: {e}")
        click.echo("Fix or remove the ledger file, or run 'autoprint clear-history'.")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main():
    """AutoPrint - unattended label downloader and printer.

    AutoPrint polls your label endpoint, saves each new label as a PDF
    and sends it to a local printer. Labels are never printed twice.
    """
    pass


@main.command()
@click.option("--url", "-u", help="Label endpoint URL")
@click.option("--caller", "-c", help="Caller id sent as the user_id parameter")
@click.option("--printer", "-p", help="Printer to send labels to")
@click.option("--save-path", type=click.Path(file_okay=False), help="Folder to save labels in")
@click.option("--interval", "-i", type=click.IntRange(1, 3600), help="Poll interval in seconds")
@click.option("--save/--no-save", default=None, help="Save labels to the folder")
@click.option("--print/--no-print", "print_", default=None, help="Print labels directly")
def configure(url, caller, printer, save_path, interval, save, print_):
    """Configure the AutoPrint agent.

    Only the options given are changed; run without options to be
    prompted for the endpoint and caller id.
    """
    config = get_config()
    changes = {
        "endpoint_url": url,
        "caller_id": caller,
        "device_name": printer,
        "save_path": save_path,
        "poll_interval": interval,
        "save_enabled": save,
        "print_enabled": print_,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    if not changes:
        changes["endpoint_url"] = click.prompt("Endpoint URL", default=config.endpoint_url)
        changes["caller_id"] = click.prompt("Caller id", default=config.caller_id or None)

    if save_path and save is None:
        changes["save_enabled"] = True

    config = config.with_updates(**changes)
    config.save()
    click.echo(f"\nConfiguration saved to {DEFAULT_CONFIG_FILE}")
    click.echo("\nRun 'autoprint test' to verify the connection.")
    click.echo("Run 'autoprint start' to start the agent.")


@main.command()
def status():
    """Show current configuration and status."""
    config = get_config()

    click.echo("\n=== AutoPrint Status ===\n")

    if not config.is_configured():
        click.echo("Status: NOT CONFIGURED")
        click.echo("\nRun 'autoprint configure' to set up the agent.")
        return

    click.echo(f"Endpoint URL: {config.endpoint_url}")
    caller = config.caller_id
    click.echo(f"Caller id: {'*' * 4}{caller[-2:] if len(caller) > 2 else '**'}")
    click.echo(f"Poll Interval: {config.poll_interval}s")
    click.echo(f"Save to folder: {config.save_path if config.save_enabled else 'off'}")
    click.echo(f"Printer: {config.device_name or '(none)'} ({'on' if config.print_enabled else 'off'})")

    ledger = Ledger(DEFAULT_LEDGER_FILE)
    try:
        count = ledger.load()
    except LedgerError as e:
        click.echo(f"\nLedger: unreadable ({e})")
        return
    click.echo(f"\nProcessed labels: {count} ({DEFAULT_LEDGER_FILE})")


@main.command()
def test():
    """Test connection to the endpoint and printer."""
    config = _require_config()

    setup_logging("INFO")

    click.echo("\n=== Testing AutoPrint Connection ===\n")

    agent = _build_agent(config)
    try:
        results = agent.test_connection()
    finally:
        agent.stop()

    icons = {"ok": "+", "warning": "!"}
    for label, key in (("Server", "server"), ("Printer", "printer")):
        check = results[key]
        click.echo(f"{icons.get(check['status'], 'x')} {label}: {check['message']}")

    methods = results["printer"].get("strategies")
    if methods:
        click.echo(f"  Print methods: {', '.join(methods)}")

    if not results["success"]:
        click.echo("\nConnection test failed. Check the endpoint, caller id and printer.")
        sys.exit(1)
    click.echo("\nReady. Run 'autoprint start' to begin polling.")


@main.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def start(verbose: bool):
    """Start the AutoPrint agent.

    The agent will poll the endpoint for new labels and save/print them
    automatically. Press Ctrl+C to stop.
    """
    config = _require_config()

    event_log = _open_event_log()
    level = "DEBUG" if verbose else config.log_level
    setup_logging(level, event_log)

    click.echo("Starting AutoPrint agent... (Ctrl+C to stop)")

    agent = _build_agent(config, event_log)
    agent.run()


@main.command()
def poll():
    """Run a single polling cycle and exit."""
    config = _require_config()

    event_log = _open_event_log()
    setup_logging(config.log_level, event_log)

    agent = _build_agent(config, event_log)
    try:
        summary = agent.poll_now()
    finally:
        agent.stop()

    click.echo(
        f"\n{summary.status.value}: new {summary.accepted}, skipped {summary.skipped}, "
        f"errors {summary.errors}, saved {summary.saved}, printed {summary.printed}"
    )
    if summary.message:
        click.echo(f"Message: {summary.message}")

    if summary.status in (CycleStatus.TRANSPORT_ERROR, CycleStatus.MALFORMED):
        sys.exit(1)


@main.command()
@click.option("--lines", "-n", default=100, show_default=True, help="Number of lines to show")
def logs(lines: int):
    """Show the most recent event log lines."""
    event_log = _open_event_log()
    recent = event_log.read_recent(lines)
    if not recent:
        click.echo("No log entries.")
        return
    for line in recent:
        click.echo(line)


@main.command("clear-history")
@click.confirmation_option(prompt="Forget all processed labels? They may be printed again.")
def clear_history():
    """Forget every processed label so it can be fetched again."""
    ledger = Ledger(DEFAULT_LEDGER_FILE)
    try:
        ledger.clear()
    except LedgerError as e:
        click.echo(f"Error: {e}")
        sys.exit(1)
    click.echo("Processed label history cleared.")


SERVICE_NAME = "autoprint"


def render_service_unit(user: bool) -> str:
    """Build the systemd unit that runs ``autoprint start``.

    Args:
        user: Target the user service manager instead of the system one.

    Returns:
        str: Unit file contents.
    """
    target = "default.target" if user else "multi-user.target"
    return "\n".join(
        [
            "[Unit]",
            "Description=AutoPrint Label Agent",
            "Wants=network-online.target",
            "After=network-online.target",
            "",
            "[Service]",
            "Type=simple",
            f"ExecStart={sys.executable} -m autoprint start",
            "Restart=on-failure",
            "RestartSec=10",
            f"Environment=HOME={Path.home()}",
            "",
            "[Install]",
            f"WantedBy={target}",
            "",
        ]
    )


@main.command("install-service")
@click.option("--user", is_flag=True, help="Install as user service (no sudo required)")
def install_service(user: bool):
    """Install a systemd service for auto-start.

    With --user the unit is written to ~/.config/systemd/user; otherwise
    the unit is printed together with the commands to install it as root.
    """
    _require_config()
    unit = render_service_unit(user)

    if not user:
        service_path = Path("/etc/systemd/system") / f"{SERVICE_NAME}.service"
        click.echo(f"Save the following as {service_path} (requires sudo):\n")
        click.echo(unit)
        click.echo("Then run:")
        click.echo("  sudo systemctl daemon-reload")
        click.echo(f"  sudo systemctl enable --now {SERVICE_NAME}")
        return

    service_path = Path.home() / ".config" / "systemd" / "user" / f"{SERVICE_NAME}.service"
    service_path.parent.mkdir(parents=True, exist_ok=True)
    service_path.write_text(unit)

    click.echo(f"Service installed to {service_path}\n")
    click.echo("Enable it with:")
    click.echo("  systemctl --user daemon-reload")
    click.echo(f"  systemctl --user enable --now {SERVICE_NAME}")
    click.echo(f"Follow its output with: journalctl --user -u {SERVICE_NAME} -f")


if __name__ == "__main__":
    main()
