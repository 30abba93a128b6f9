"""
Prerequisites Checker Module

Verifies the Azure CLI is installed and signed in before any provider call.

Security Requirements:
- No credential storage
- Read-only system checks
- No shell=True in subprocess calls
"""

import logging
import platform
import shutil
import subprocess
from dataclasses import dataclass
from typing import ClassVar

logger = logging.getLogger(__name__)

_INSTALL_HINTS = {
    "macos": "  brew install azure-cli",
    "linux": "  curl -sL https://aka.ms/InstallAzureCLIDeb | sudo bash",
    "wsl": "  curl -sL https://aka.ms/InstallAzureCLIDeb | sudo bash",
    "windows": "  Download from: https://aka.ms/installazurecliwindows",
}
_GENERIC_HINT = "  See: https://learn.microsoft.com/cli/azure/install-azure-cli"


@dataclass
class PrerequisiteResult:
    """Result of prerequisite checks."""

    all_available: bool
    missing: list[str]
    available: list[str]
    platform_name: str
    logged_in: bool = False


class PrerequisiteError(Exception):
    """Raised when prerequisites are missing."""

    pass


class PrerequisiteChecker:
    """
    Check required external tooling.

    Required tools:
    - az (Azure CLI), signed in to a subscription
    """

    REQUIRED_TOOLS: ClassVar[list[str]] = ["az"]

    @classmethod
    def check_tool(cls, tool_name: str) -> bool:
        """
        Check if a single tool is available in PATH.

        Security: Uses shutil.which (safe, no subprocess)
        """
        result = shutil.which(tool_name)
        if result:
            logger.debug(f"Found {tool_name} at {result}")
            return True
        logger.debug(f"Tool not found: {tool_name}")
        return False

    @classmethod
    def check_login(cls) -> bool:
        """Check that the Azure CLI has an active account."""
        try:
            result = subprocess.run(
                ["az", "account", "show", "--output", "none"],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            logger.debug(f"Azure CLI login check failed: {e}")
            return False
        return result.returncode == 0

    @classmethod
    def check_all(cls) -> PrerequisiteResult:
        """
        Check all prerequisites and return comprehensive result.

        Returns:
            PrerequisiteResult: Detailed check results
        """
        missing: list[str] = []
        available: list[str] = []

        for tool in cls.REQUIRED_TOOLS:
            if cls.check_tool(tool):
                available.append(tool)
            else:
                missing.append(tool)

        logged_in = "az" in available and cls.check_login()

        result = PrerequisiteResult(
            all_available=not missing and logged_in,
            missing=missing,
            available=available,
            platform_name=cls.detect_platform(),
            logged_in=logged_in,
        )

        if result.all_available:
            logger.debug(f"All prerequisites available ({result.platform_name})")
        elif missing:
            logger.error(f"Missing prerequisites: {', '.join(missing)}")
        else:
            logger.error("Azure CLI is not logged in")

        return result

    @classmethod
    def detect_platform(cls) -> str:
        """
        Detect the operating system platform.

        Returns:
            str: Platform name (macos, linux, wsl, windows, unknown)
        """
        system = platform.system().lower()

        if system == "darwin":
            return "macos"
        if system == "linux":
            return "wsl" if cls._is_wsl() else "linux"
        if system == "windows":
            return "windows"
        return "unknown"

    @classmethod
    def _is_wsl(cls) -> bool:
        try:
            with open("/proc/version") as f:
                version = f.read().lower()
                return "microsoft" in version or "wsl" in version
        except (FileNotFoundError, PermissionError) as e:
            logger.debug(f"Failed to check for WSL: {e}")
            return False

    @classmethod
    def format_missing_message(cls, result: PrerequisiteResult) -> str:
        """
        Format user-friendly instructions for a failed check.

        Example:
            >>> msg = PrerequisiteChecker.format_missing_message(result)
            >>> print(msg)
        """
        if result.all_available:
            return "All prerequisites are installed."

        if result.missing:
            lines = ["Missing required tools:", ""]
            lines.extend(f"  - {tool}" for tool in result.missing)
            lines.extend(["", f"Platform: {result.platform_name}", "", "Install Azure CLI:"])
            lines.append(_INSTALL_HINTS.get(result.platform_name, _GENERIC_HINT))
        else:
            lines = ["Azure CLI is not logged in.", "", "Sign in with:", "  az login"]

        lines.extend(["", "After that, run 'azdisk' again."])
        return "\n".join(lines)
