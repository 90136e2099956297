"""
Interactive shell host.

A small prompt_toolkit line shell that runs each line through the
system shell and reports it to the Assistant, so the assistant can be
used without a terminal emulator integration:

    ~/src $ gti status
    ╭─ Shellfix Assistant  gti is not a valid command.
    ╰─ git status    Ctrl+G

Ctrl-G applies the current suggestion.
"""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

from prompt_toolkit import PromptSession, print_formatted_text
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text import ANSI, FormattedText
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout

from .assistant import Assistant
from .config import get_state_dir
from .host import CLEAR_LINE, TOAST_ANALYZING, Pane

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "shell_history"
EXIT_COMMANDS = ("exit", "quit")


class PromptPane(Pane):
    """The prompt_toolkit session seen as a pane."""

    def __init__(self, session: PromptSession, pane_id: str = "shell"):
        self._session = session
        self._pane_id = pane_id
        self.cwd = os.getcwd()

    @property
    def pane_id(self) -> str:
        return self._pane_id

    def inject_output(self, text: str) -> None:
        print_formatted_text(ANSI(text.replace("\r\n", "\n")), end="")

    def send_text(self, text: str) -> None:
        """Type `text` into the prompt buffer; a trailing newline accepts it."""
        buffer = self._session.default_buffer
        if text.startswith(CLEAR_LINE):
            buffer.reset()
            text = text[len(CLEAR_LINE):]

        execute = text.endswith("\n")
        command = text.rstrip("\n")
        if command:
            buffer.document = Document(command)
            if execute:
                buffer.validate_and_handle()
            return

        # Nothing to type: just make sure the prompt is redrawn
        app = self._session.app
        if app.is_running:
            app.invalidate()

    def emit_toast(self, name: str) -> None:
        if name == TOAST_ANALYZING:
            print_formatted_text(FormattedText([("fg:ansibrightblack", "Analyzing the failed command...")]))

    def current_working_dir(self) -> str:
        return self.cwd


class InteractiveShell:
    """Read-run loop that feeds command results to an Assistant."""

    def __init__(
        self,
        assistant: Optional[Assistant] = None,
        history_path: Optional[Path] = None,
        input=None,
        output=None,
    ):
        self.assistant = assistant or Assistant()

        history_path = history_path or get_state_dir() / HISTORY_FILENAME
        history_path.parent.mkdir(parents=True, exist_ok=True)

        kb = KeyBindings()

        @kb.add('c-g')
        def _apply_suggestion(event):
            self.assistant.apply(self.pane)

        self._session = PromptSession(
            history=FileHistory(str(history_path)),
            auto_suggest=AutoSuggestFromHistory(),
            key_bindings=kb,
            input=input,
            output=output,
        )
        self.pane = PromptPane(self._session)

    def _prompt_text(self) -> str:
        home = str(Path.home())
        cwd = self.pane.cwd
        if cwd == home or cwd.startswith(home + os.sep):
            cwd = "~" + cwd[len(home):]
        return f"{cwd} $ "

    def _change_directory(self, line: str) -> int:
        parts = line.split(maxsplit=1)
        target = parts[1] if len(parts) > 1 else str(Path.home())
        path = Path(os.path.expandvars(os.path.expanduser(target)))
        if not path.is_absolute():
            path = Path(self.pane.cwd) / path
        try:
            os.chdir(path)
        except OSError as e:
            print(f"cd: {target}: {e.strerror}")
            return 1
        self.pane.cwd = os.getcwd()
        return 0

    async def execute(self, line: str) -> int:
        """Run one line through the system shell and return its exit code."""
        if line == "cd" or line.startswith("cd "):
            return self._change_directory(line)

        try:
            process = await asyncio.create_subprocess_shell(line, cwd=self.pane.cwd)
        except OSError as e:
            print(f"shellfix: {e}")
            return 127

        # Ctrl-C belongs to the child while it runs
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, lambda: None)
            sigint_ignored = True
        except (NotImplementedError, RuntimeError, ValueError):
            sigint_ignored = False
        try:
            returncode = await process.wait()
        finally:
            if sigint_ignored:
                loop.remove_signal_handler(signal.SIGINT)

        if returncode < 0:
            # Killed by a signal: report it the way a POSIX shell does
            return 128 - returncode
        return returncode

    async def run_async(self) -> int:
        with patch_stdout():
            while True:
                try:
                    line = await self._session.prompt_async(self._prompt_text())
                except KeyboardInterrupt:
                    continue
                except EOFError:
                    break

                line = line.strip()
                if not line:
                    continue
                if line in EXIT_COMMANDS:
                    break

                self.assistant.on_command_started(self.pane, line)
                exit_code = await self.execute(line)
                self.assistant.on_command_exited(self.pane, exit_code)

        self.assistant.close_pane(self.pane.pane_id)
        self.assistant.shutdown()
        return 0

    def run(self) -> int:
        """
        Run the shell until EOF or `exit`.

        Returns:
            Exit code (0 for success)
        """
        try:
            return asyncio.run(self.run_async())
        except KeyboardInterrupt:
            return 130
