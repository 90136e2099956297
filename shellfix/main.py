"""
shellfix main entry point.

This module provides the CLI interface: setting up the assistant file,
inspecting settings and the command classifier, a one-shot analysis of
a failed command, and the interactive shell host.
"""

import sys
import os
import argparse
import asyncio
from typing import Optional

from rich.console import Console
from rich.table import Table


def main(argv: Optional[list] = None):
    """Main entry point for shellfix."""
    parser = argparse.ArgumentParser(
        prog="shellfix",
        description="shellfix - fix suggestions for failed shell commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shellfix init                              Create the assistant settings file
  shellfix settings                          Show the settings in effect
  shellfix classify "rm -rf build"           Check how a command would be offered
  shellfix analyze --exit-code 127 gti status
  shellfix shell                             Start the interactive shell
        """
    )

    parser.add_argument(
        "--version", "-v",
        action="store_true",
        help="Show version information"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Write the debug log (assistant-debug.log in the state directory)"
    )

    subparsers = parser.add_subparsers(dest="subcommand")

    subparsers.add_parser("init", help="Create or repair the settings file")
    subparsers.add_parser("settings", help="Show resolved settings")

    classify_parser = subparsers.add_parser("classify", help="Classify a command")
    classify_parser.add_argument("command", nargs=argparse.REMAINDER, help="Command line to classify")

    analyze_parser = subparsers.add_parser("analyze", help="Suggest a fix for a failed command")
    analyze_parser.add_argument(
        "--exit-code", "-e",
        type=int,
        default=1,
        help="Exit code the command failed with (default: 1)"
    )
    analyze_parser.add_argument("command", nargs=argparse.REMAINDER, help="The command line that failed")

    subparsers.add_parser("shell", help="Start the interactive shell")

    args = parser.parse_args(argv)
    if args.subcommand in ("classify", "analyze") and not args.command:
        parser.error(f"{args.subcommand}: a command line is required")

    # Handle version
    if args.version:
        from . import __version__
        print(f"shellfix version {__version__}")
        return 0

    # Set debug mode
    if args.debug:
        os.environ["SHELLFIX_DEBUG"] = "1"
        from .logs import setup_logging
        setup_logging(debug=True)

    if args.subcommand == "init":
        return run_init()
    if args.subcommand == "settings":
        return show_settings()
    if args.subcommand == "classify":
        return run_classify(" ".join(args.command))
    if args.subcommand == "analyze":
        return run_analyze(" ".join(args.command), args.exit_code)
    if args.subcommand == "shell":
        return run_shell()

    parser.print_help()
    return 0


def run_init() -> int:
    """Create the settings file, or add the keys it is missing."""
    from .config import ensure_settings_file

    console = Console()
    try:
        path = ensure_settings_file()
    except OSError as e:
        console.print(f"[red]✗[/red] Failed to write settings: {e}")
        return 1

    console.print(f"[green]✓[/green] Settings file ready: [cyan]{path}[/cyan]")
    console.print("[dim]Set api_key there (or SHELLFIX_API_KEY) to enable suggestions.[/dim]")
    return 0


def show_settings() -> int:
    """Print the settings in effect, with the API key masked."""
    from .config import get_settings_path, get_state_dir, load_settings
    from .prompts import chat_endpoint

    console = Console()
    settings = load_settings()

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("enabled", str(settings.enabled).lower())
    table.add_row("base_url", settings.base_url)
    table.add_row("endpoint", chat_endpoint(settings.base_url))
    table.add_row("api_key", settings.masked_api_key() or "[yellow]not set[/yellow]")
    table.add_row("model", settings.model)
    table.add_row("timeout_secs", str(settings.timeout_secs))
    table.add_row("debug", str(settings.debug).lower())

    console.print(table)
    console.print(f"[dim]Settings file: {get_settings_path()}[/dim]")
    console.print(f"[dim]State directory: {get_state_dir()}[/dim]")

    if not settings.is_usable:
        console.print("[yellow]⚠ The assistant is disabled or has no API key.[/yellow]")
    return 0


def run_classify(command: str) -> int:
    """Show how a suggested command would be offered.

    Exits 0 when the command would be executed on apply, 1 otherwise.
    """
    from .safety import classify

    console = Console()
    check = classify(command)
    if check.reason:
        console.print(f"[bold]{check.risk.value}[/bold]: {check.reason}")
    else:
        console.print(f"[bold]{check.risk.value}[/bold]")
    return 0 if check.may_execute else 1


def run_analyze(command: str, exit_code: int) -> int:
    """Run one failed command through the assistant and wait for the result."""
    from .assistant import Assistant
    from .config import load_settings
    from .host import StdoutPane
    from .jobs.poller import POLL_INTERVAL_SECS
    from .session import is_ignored_exit_code

    console = Console(stderr=True)

    if is_ignored_exit_code(exit_code):
        console.print(f"[yellow]Exit code {exit_code} is not analyzed.[/yellow]")
        return 1

    if not load_settings().is_usable:
        console.print("[yellow]⚠ The assistant is disabled or has no API key.[/yellow]")
        console.print("Run [cyan]shellfix init[/cyan] and set api_key, or export SHELLFIX_API_KEY.")
        return 1

    async def _analyze() -> int:
        assistant = Assistant()
        pane = StdoutPane(pane_id="analyze")
        assistant.on_command_started(pane, command)
        job = assistant.on_command_exited(pane, exit_code)
        if job is None:
            return 1

        try:
            while assistant.poller.is_watching(job.id):
                await asyncio.sleep(POLL_INTERVAL_SECS)
        finally:
            assistant.shutdown()

        session = assistant.sessions.get(pane.pane_id)
        return 0 if session is not None and session.suggestion is not None else 1

    try:
        return asyncio.run(_analyze())
    except KeyboardInterrupt:
        return 130


def run_shell() -> int:
    """Run the interactive shell host."""
    from .shell import InteractiveShell

    shell = InteractiveShell()
    return shell.run()


if __name__ == "__main__":
    sys.exit(main())
