"""Command line entry points: the lock daemon, a hardware test loop and key listing."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Optional

import typer

from physlock.services.errors import LockError
from physlock.services.keys import CredentialStore
from physlock.services.lock import ExternalToggle, LockDaemon, LockStatus, make_hardware
from physlock.services.logging import setup_logging
from physlock.services.rpc import Runtime
from physlock.services.security import Principal
from physlock.services.settings import LockdSettings, ensure_config_dir, load_settings

app = typer.Typer(help="Physical lock daemon and tools.", no_args_is_help=True)

_log = logging.getLogger("physlock.cli")

PRINCIPAL_DIR_NAME = "principal"
LOGS_DIR_NAME = "logs"
LISTKEYS_FORMAT = "{:<30}   {} (Expires: {})"


def _settings_for(config_dir: Optional[Path]) -> LockdSettings:
    if config_dir is None:
        settings = LockdSettings()
        settings.ensure_defaults()
        return settings
    return load_settings(ensure_config_dir(config_dir))


@app.command("lockd")
def cmd_lockd(
    config_dir: Path = typer.Option(
        ...,
        "--config-dir",
        help="Directory where the lock configuration files are stored; created if missing.",
    ),
):
    """Run the lock server: unclaimed until someone claims it, then the lock itself.

    Servers are mounted in an in-process namespace only, so the lock can be
    claimed and operated by callers in this same process, not from another
    process or host.
    """

    try:
        config_dir = ensure_config_dir(config_dir)
    except OSError as exc:
        raise typer.BadParameter(f"--config-dir={config_dir}: {exc}") from exc
    settings = load_settings(config_dir)
    setup_logging(config_dir / LOGS_DIR_NAME, settings.log_level)

    hardware = make_hardware(settings)
    principal = Principal.load_or_create(config_dir / PRINCIPAL_DIR_NAME, settings.identity)
    daemon = LockDaemon(Runtime(), principal, config_dir, hardware)

    stop = threading.Event()

    def _shutdown(signum, _frame):
        _log.info("received %s, shutting down", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    if isinstance(hardware, ExternalToggle) and hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda _signum, _frame: hardware.external_toggle())
        typer.echo("Send SIGUSR1 to simulate a manual lock toggle")

    daemon.start()
    try:
        while not stop.wait(0.5):
            pass
    finally:
        daemon.stop()
    typer.echo("lockd stopped")


@app.command("hwtest")
def cmd_hwtest(
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Read hardware settings from this directory."),
):
    """Drive the configured hardware interactively."""

    hardware = make_hardware(_settings_for(config_dir))
    typer.echo("Commands are 'status', 'lock', 'unlock' or 'quit'")
    while True:
        try:
            line = typer.prompt("", prompt_suffix="> ", default="", show_default=False)
        except typer.Abort:
            return
        cmd = line.strip().lower()
        try:
            if cmd.startswith("s"):
                typer.echo(hardware.status())
            elif cmd.startswith("l"):
                hardware.set_status(LockStatus.LOCKED)
            elif cmd.startswith("u"):
                hardware.set_status(LockStatus.UNLOCKED)
            elif cmd.startswith(("q", "x")):
                return
            else:
                typer.echo(f"ERROR: unrecognized command {cmd!r}")
        except LockError as exc:
            typer.echo(f"ERROR: {exc}")


@app.command("listkeys")
def cmd_listkeys(
    principal_dir: Path = typer.Option(..., "--principal-dir", help="Directory holding the user's identity."),
):
    """List the usable keys and the locks they open."""

    if not (principal_dir / "private_key.pem").exists():
        raise typer.BadParameter(f"no identity found in {principal_dir}")
    store = CredentialStore(Principal.load(principal_dir))
    typer.echo(LISTKEYS_FORMAT.format("Lock", "Key", "<expiry time>"))
    for entry in store.list():
        typer.echo(LISTKEYS_FORMAT.format(entry.lock_name, str(entry.credential), entry.expires))


def main() -> None:  # pragma: no cover - console entry point
    app()
