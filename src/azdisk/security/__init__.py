"""Security module for azdisk.

- AzureCommandSanitizer: Sanitize Azure CLI commands before display/logging

Example:
    >>> from azdisk.security import sanitize_azure_command
    >>> print(sanitize_azure_command(["az", "vm", "create", "--admin-password", "Secret"]))
    az vm create --admin-password [REDACTED]
"""

from azdisk.security.azure_command_sanitizer import (
    AzureCommandSanitizer,
    sanitize_azure_command,
)

__all__ = [
    "AzureCommandSanitizer",
    "sanitize_azure_command",
]
