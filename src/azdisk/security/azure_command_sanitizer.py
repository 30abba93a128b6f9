"""Azure CLI command sanitization for secure display.

Commands issued by azdisk carry the VM administrator password on creation and
Key Vault references on certificate deployment. Everything shown on the
terminal or written to a log goes through this module first.

Security Controls:
- Parameter-based redaction (--admin-password, --secrets, ...)
- Terminal escape stripping

Usage:
    >>> from azdisk.security import sanitize_azure_command
    >>> sanitize_azure_command(["az", "vm", "create", "--admin-password", "Secret123"])
    'az vm create --admin-password [REDACTED]'
"""

import re
from re import Pattern
from typing import ClassVar


class AzureCommandSanitizer:
    """Sanitize Azure CLI argument lists for safe display and logging.

    All methods are stateless classmethods and safe to call from anywhere.

    Examples:
        >>> AzureCommandSanitizer.sanitize_args(["az", "vm", "create", "--admin-password", "x"])
        ['az', 'vm', 'create', '--admin-password', '[REDACTED]']
    """

    REDACTED = "[REDACTED]"

    # Matched case-insensitively (lowercase only in set)
    SENSITIVE_PARAMS: ClassVar[set[str]] = {
        "--password",
        "--admin-password",
        "--client-secret",
        "--secrets",
        "--secret",
        "--value",
        "--account-key",
        "--connection-string",
        "--sas-token",
        "--certificate-password",
        "--custom-data",
        "--user-data",
        "--token",
        "--access-token",
    }

    # Fallback keywords for parameters not listed explicitly
    SENSITIVE_KEYWORDS: ClassVar[tuple[str, ...]] = (
        "password",
        "secret",
        "token",
        "credential",
        "private",
        "pfx",
    )

    _ANSI_ESCAPE: ClassVar[Pattern] = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")

    @classmethod
    def is_sensitive_param(cls, param: str) -> bool:
        """Check if a parameter name carries secret material."""
        param_lower = param.lower()
        if param_lower in cls.SENSITIVE_PARAMS:
            return True
        if not param_lower.startswith("--"):
            return False
        return any(keyword in param_lower for keyword in cls.SENSITIVE_KEYWORDS)

    @classmethod
    def sanitize_args(cls, command: list[str]) -> list[str]:
        """Sanitize a command given as an argument list.

        The value following a sensitive flag is replaced outright, so values
        containing spaces or quotes are handled the same as simple ones.
        """
        result: list[str] = []
        redact_next = False

        for arg in command:
            if redact_next:
                result.append(cls.REDACTED)
                redact_next = False
                continue

            if arg.startswith("--") and "=" in arg:
                param, _value = arg.split("=", 1)
                if cls.is_sensitive_param(param):
                    result.append(f"{param}={cls.REDACTED}")
                    continue

            if cls.is_sensitive_param(arg):
                redact_next = True

            result.append(cls._strip_terminal_escapes(arg))

        return result

    @classmethod
    def _strip_terminal_escapes(cls, text: str) -> str:
        """Remove ANSI escape sequences and control characters."""
        text = cls._ANSI_ESCAPE.sub("", text)
        return "".join(char for char in text if char in "\n\t" or ord(char) >= 32)


def sanitize_azure_command(command: list[str]) -> str:
    """Sanitize an argument list and return it as one display string."""
    return " ".join(AzureCommandSanitizer.sanitize_args(command))
