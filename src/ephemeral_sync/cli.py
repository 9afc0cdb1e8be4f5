import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.text import Text

from . import daemon, ops
from .config import SyncConfig, write_default_config
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    LOG_FILE,
    MIRROR_DIR,
    PID_FILE,
    VCS_DIR_NAME,
)
from .errors import SyncError
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)
console = Console()


def _load_config() -> SyncConfig | None:
    """Loads the config file, printing the error instead of raising."""
    try:
        return SyncConfig.load(CONFIG_FILE)
    except SyncError as e:
        console.print(f"[bold red]Config Error:[/bold red] {e}")
        return None


def start_daemon(replace: bool = False) -> int:
    """Starts the background daemon after the single-instance check.

    Args:
        replace (bool): Stop a running instance without asking.

    Returns:
        int: The exit code.
    """
    if not CONFIG_FILE.exists():
        write_default_config(CONFIG_FILE)
        console.print(
            f"Default config file created at [cyan]{CONFIG_FILE}[/cyan]. "
            "Please edit it and run the command again."
        )
        return 0

    if _load_config() is None:
        return 1

    if (pid := daemon.check_instance(PID_FILE)) is not None:
        console.print(
            f"[yellow]Another instance is already running with PID {pid}.[/yellow]"
        )
        if not replace and not Confirm.ask("Stop it and start a new one?"):
            console.print("Operation cancelled.")
            return 1
        daemon.stop_daemon(PID_FILE)

    pid = daemon.spawn_daemon(LOG_FILE)
    console.print(
        f"[bold green]✔ Daemon started[/bold green] (PID {pid}). "
        f"Check [cyan]{LOG_FILE}[/cyan] for details."
    )
    return 0


def stop() -> int:
    """Stops the background daemon, if one is running."""
    stale = PID_FILE.exists()
    pid = daemon.stop_daemon(PID_FILE)
    if pid is not None:
        console.print(f"[bold green]✔ Daemon (PID: {pid}) stopped.[/bold green]")
    elif stale:
        console.print("Stale PID file found and removed.", style="yellow")
    else:
        console.print("Daemon is not running.", style="yellow")
    return 0


def show_status() -> int:
    """Displays the daemon state and the mirror's history."""
    had_pid_file = PID_FILE.exists()
    pid = daemon.check_instance(PID_FILE)

    daemon_content = Text()
    daemon_content.append("Daemon: ", style="bold")
    if pid is not None:
        daemon_content.append(f"Running (PID {pid})", style="bold green")
    elif had_pid_file:
        daemon_content.append("Stopped (stale PID file removed)", style="bold yellow")
    else:
        daemon_content.append("Stopped", style="bold red")
    console.print(Panel(daemon_content, title="System Status", expand=False))

    if not (MIRROR_DIR / VCS_DIR_NAME).exists():
        console.print(f"[dim]No mirror yet at {MIRROR_DIR}.[/dim]")
        return 0

    config = (_load_config() if CONFIG_FILE.exists() else None) or SyncConfig()
    repo = GitRepo(MIRROR_DIR)

    mirror_content = Text()
    try:
        revisions = repo.revision_count()
        last = repo.get_last_commit_time() if revisions else "Never"
    except RuntimeError as e:
        logger.debug(f"Failed to read mirror history: {e}")
        revisions, last = 0, "Unknown"

    mirror_content.append(f"Revisions:   {revisions}\n")
    mirror_content.append(f"Last Commit: {last}\n")
    mirror_content.append(f"Watching:    {len(config.watch)} patterns\n")

    remote = repo.remote_url(config.remote_name)
    if remote:
        mirror_content.append(f"Remote:      {remote}\n", style="dim")
        try:
            pending = repo.unpushed_count(config.remote_name, config.branch)
        except RuntimeError:
            pending = 0
        style = "yellow" if pending else "green"
        mirror_content.append(f"Unpushed:    {pending} revisions", style=style)
    else:
        mirror_content.append("Remote:      not configured", style="yellow")

    console.print(Panel(mirror_content, title="Mirror Status", expand=False))
    return 0


def restore() -> int:
    """Restores the home directory from the configured restore_url."""
    config = _load_config()
    if config is None:
        return 1
    if not config.restore_url:
        console.print("[yellow]No restore_url specified. Skipping restore.[/yellow]")
        return 0

    try:
        with console.status(f"Restoring from {config.restore_url}...", spinner="dots"):
            count = ops.restore_files(config, Path.home(), MIRROR_DIR)
    except SyncError as e:
        console.print(f"[bold red]RESTORE ERROR:[/bold red] {e}")
        return 1
    console.print(f"[bold green]✔ Restore complete.[/bold green] {count} files.")
    return 0


def deploy(url: str) -> int:
    """Bootstraps this machine from `url` and starts the daemon."""
    try:
        ops.deploy(url, Path.home(), MIRROR_DIR, CONFIG_FILE, PID_FILE)
    except SyncError as e:
        console.print(f"[bold red]DEPLOY ERROR:[/bold red] {e}")
        return 1
    console.print("Deployment complete. Run 'ephemeral-sync status' to check.")
    return 0


def run_now() -> int:
    """Runs one sync cycle in the foreground."""
    config = _load_config()
    if config is None:
        return 1

    daemon.setup_logging(interactive=True)
    try:
        result = ops.run_once(config, Path.home(), MIRROR_DIR)
    except SyncError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1

    if result is None:
        console.print("[bold red]Sync cycle failed.[/bold red] See the log above.")
        return 1
    if result.push_error:
        console.print(f"[yellow]Committed locally; push failed: {result.push_error}")
    return 0


def tail_log() -> int:
    """Follows the daemon log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return 0

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")
    return 0


def open_config() -> int:
    """Opens the configuration file in $EDITOR, creating the default first."""
    if not CONFIG_FILE.exists():
        write_default_config(CONFIG_FILE)

    editor = os.environ.get("EDITOR") or "nano"
    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")
    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")
        return 1
    return 0


def main_menu() -> int:
    """Interactive menu shown when no command is given."""
    options = {
        "1": ("Start Daemon", start_daemon),
        "2": ("Stop Daemon", stop),
        "3": ("Status Check", show_status),
        "4": ("Restore Files", restore),
        "5": ("Deploy (First Run)", None),
        "6": ("Exit", None),
    }
    for key, (label, _) in options.items():
        console.print(f"  [bold]{key})[/bold] {label}")

    choice = Prompt.ask("Select an action", choices=list(options), default="3")
    if choice == "5":
        url = Prompt.ask("Enter the remote Git URL (e.g. git@github.com:user/repo.git)")
        return deploy(url.strip())
    if choice == "6":
        console.print("Exiting.")
        return 0

    _, action = options[choice]
    return action()


class SyncHelpFormatter(argparse.HelpFormatter):
    """Groups subcommands under headers in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Daemon": ["start", "stop", "status", "log"],
                "Snapshot": ["now", "restore", "deploy"],
                "General": ["config", "help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")
                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Mirror selected home-directory files into a git snapshot.",
        formatter_class=SyncHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser("start", help="Start the background daemon")
    start_parser.add_argument(
        "--replace",
        action="store_true",
        help="Stop a running instance without asking",
    )
    subparsers.add_parser("stop", help="Stop the background daemon")
    subparsers.add_parser("status", help="Show daemon and mirror status")
    subparsers.add_parser("log", help="Tail the activity log")

    subparsers.add_parser("now", help="Run one sync cycle in the foreground")
    subparsers.add_parser("restore", help="Restore files from restore_url")
    deploy_parser = subparsers.add_parser(
        "deploy", help="Restore from a git remote and start syncing"
    )
    deploy_parser.add_argument("url", help="Git URL of the snapshot repository")

    subparsers.add_parser("config", help="Open the config file in $EDITOR")
    subparsers.add_parser("help", help="Show this help message")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the ephemeral-sync CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        return main_menu()
    if args.command == "help":
        parser.print_help()
        return 0
    if args.command == "start":
        return start_daemon(replace=args.replace)
    if args.command == "stop":
        return stop()
    if args.command == "status":
        return show_status()
    if args.command == "log":
        return tail_log()
    if args.command == "now":
        return run_now()
    if args.command == "restore":
        return restore()
    if args.command == "deploy":
        return deploy(args.url)
    if args.command == "config":
        return open_config()

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
