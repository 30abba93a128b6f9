"""Azure CLI command visibility.

Every ``az`` call azdisk makes is echoed (sanitized) before it runs, and a
spinner is shown while it runs when stdout is an interactive terminal.

Security:
- Commands are sanitized before display, so the admin password passed to
  ``az vm create`` never reaches the terminal or the log

Usage:
    >>> executor = AzureCLIExecutor(show_progress=False)
    >>> result = executor.execute(["az", "group", "show", "--name", "rg"])
    Executing: az group show --name rg
"""

import logging
import os
import subprocess
import sys
import time
from typing import Any

from rich.console import Console
from rich.text import Text

from azdisk.security import sanitize_azure_command

logger = logging.getLogger(__name__)


class TTYDetector:
    """Detect TTY vs non-TTY environments (CI runs, pipes, redirection)."""

    CI_ENV_VARS = ("CI", "GITHUB_ACTIONS", "TF_BUILD", "GITLAB_CI")

    @classmethod
    def is_tty(cls) -> bool:
        """Check if stdout is an interactive terminal."""
        if any(os.getenv(var) for var in cls.CI_ENV_VARS):
            return False
        try:
            return sys.stdout.isatty()
        except AttributeError:
            return False

    @classmethod
    def supports_color(cls) -> bool:
        if os.getenv("NO_COLOR"):
            return False
        return cls.is_tty()

    @classmethod
    def supports_interactive_features(cls) -> bool:
        if os.getenv("TERM") == "dumb":
            return False
        return cls.is_tty()


class CommandDisplayFormatter:
    """Format commands for display in the terminal."""

    def __init__(self, use_color: bool | None = None):
        self.use_color = use_color if use_color is not None else TTYDetector.supports_color()

    def format(self, command: list[str]) -> Text | str:
        """Format a sanitized command for display.

        Examples:
            >>> CommandDisplayFormatter(use_color=False).format(["az", "vm", "list"])
            'Executing: az vm list'
        """
        cmd_str = sanitize_azure_command(command)
        if self.use_color:
            text = Text("Executing: ", style="bold blue")
            text.append(cmd_str, style="cyan")
            return text
        return f"Executing: {cmd_str}"


class AzureCLIExecutor:
    """Execute Azure CLI commands with visibility.

    Examples:
        >>> executor = AzureCLIExecutor(show_progress=False, timeout=30)
        >>> result = executor.execute(["az", "account", "show"])
        >>> result["success"]
        True
    """

    def __init__(
        self,
        show_progress: bool = True,
        timeout: int | None = None,
        echo_commands: bool = True,
    ):
        """Initialize Azure CLI executor.

        Args:
            show_progress: Show a spinner while the command runs (TTY only)
            timeout: Command timeout in seconds (None = no timeout)
            echo_commands: Print the sanitized command before running it

        Raises:
            ValueError: If timeout is negative
        """
        if timeout is not None and timeout < 0:
            raise ValueError("Timeout must be non-negative")

        self.show_progress = show_progress
        self.timeout = timeout
        self.echo_commands = echo_commands
        self.formatter = CommandDisplayFormatter()
        self.console = Console()

    def execute(self, command: list[str]) -> dict[str, Any]:
        """Execute an Azure CLI command.

        Args:
            command: Command as list (e.g., ["az", "vm", "list"])

        Returns:
            Dictionary with execution results:
                - returncode: Exit code (0 = success)
                - stdout: Standard output
                - stderr: Standard error
                - success: Boolean success flag
                - command: Sanitized command string
                - error: Error message (if failed)
                - elapsed: Seconds spent running the command

        Raises:
            TypeError: If command is empty
            KeyboardInterrupt: If user cancels with Ctrl+C
        """
        if not command:
            raise TypeError("Command cannot be None or empty")

        display_command = sanitize_azure_command(command)
        if self.echo_commands:
            formatted = self.formatter.format(command)
            if isinstance(formatted, Text):
                self.console.print(formatted)
            else:
                print(formatted, flush=True)
        logger.debug(f"Running: {display_command}")

        start = time.time()
        try:
            if self.show_progress and TTYDetector.supports_interactive_features():
                with self.console.status("Waiting for Azure..."):
                    result = self._run(command)
            else:
                result = self._run(command)
        except subprocess.TimeoutExpired:
            return self._failure(display_command, f"Command timeout after {self.timeout} seconds", start)
        except FileNotFoundError as e:
            return self._failure(display_command, f"Command not found: {e}", start)
        except PermissionError as e:
            return self._failure(display_command, f"Permission denied: {e}", start)

        elapsed = time.time() - start
        logger.debug(f"Command finished with exit code {result.returncode} ({elapsed:.1f}s)")

        return {
            "returncode": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "success": result.returncode == 0,
            "command": display_command,
            "error": result.stderr if result.returncode != 0 else None,
            "elapsed": elapsed,
        }

    def _run(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )

    @staticmethod
    def _failure(display_command: str, message: str, start: float) -> dict[str, Any]:
        return {
            "returncode": -1,
            "stdout": "",
            "stderr": message,
            "success": False,
            "command": display_command,
            "error": message,
            "elapsed": time.time() - start,
        }


__all__ = [
    "AzureCLIExecutor",
    "CommandDisplayFormatter",
    "TTYDetector",
]
