"""VM administrator credential suppliers.

A credential supplier is any zero-argument callable returning
AdminCredentials. The orchestrator only calls it when a new VM is created, so
extending an existing VM never prompts.

Security:
- The password is excluded from repr()
- Nothing here writes credentials to disk
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field

import click

logger = logging.getLogger(__name__)

USERNAME_ENV_VAR = "AZDISK_ADMIN_USERNAME"
PASSWORD_ENV_VAR = "AZDISK_ADMIN_PASSWORD"  # noqa: S105 - env var name, not a secret


@dataclass(frozen=True)
class AdminCredentials:
    """Administrator username and password for a new VM."""

    username: str
    password: str = field(repr=False)


CredentialSupplier = Callable[[], AdminCredentials]


def static_credentials(username: str, password: str) -> CredentialSupplier:
    """Supplier returning fixed values (automation and tests)."""
    credentials = AdminCredentials(username=username, password=password)
    return lambda: credentials


def prompt_credentials(default_username: str | None = None) -> CredentialSupplier:
    """Supplier that reads the environment, then falls back to an interactive prompt.

    Args:
        default_username: Username offered as the prompt default

    Returns:
        Callable that collects credentials when invoked
    """

    def supply() -> AdminCredentials:
        username = os.getenv(USERNAME_ENV_VAR) or default_username
        password = os.getenv(PASSWORD_ENV_VAR)

        if username and password:
            logger.debug(f"Using administrator credentials from environment for '{username}'")
            return AdminCredentials(username=username, password=password)

        click.echo("Administrator credentials for the new VM:")
        if not username:
            username = click.prompt("Username", type=str)
        if not password:
            password = click.prompt("Password", hide_input=True, confirmation_prompt=True)

        return AdminCredentials(username=username, password=password)

    return supply
