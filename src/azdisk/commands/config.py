"""Configuration commands for azdisk CLI.

- config show: Print the effective configuration
- config set: Change one persistent default
"""

from __future__ import annotations

import logging
import sys
from dataclasses import fields

import click

from azdisk.config_manager import AzdiskConfig, ConfigError, ConfigManager

logger = logging.getLogger(__name__)

_CONFIG_KEYS = sorted(f.name for f in fields(AzdiskConfig))


@click.group(name="config")
def config_group():
    """View and change persistent defaults."""
    pass


@config_group.command(name="show")
@click.option("--config", help="Config file path", type=click.Path())
def show_config(config: str | None) -> None:
    """Print the effective configuration."""
    try:
        azdisk_config = ConfigManager.load_config(config)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    values = azdisk_config.to_dict()
    for key in _CONFIG_KEYS:
        click.echo(f"{key} = {values.get(key, '(not set)')}")


@config_group.command(name="set")
@click.argument("key", type=click.Choice(_CONFIG_KEYS))
@click.argument("value", type=str)
@click.option("--config", help="Config file path", type=click.Path())
def set_config(key: str, value: str, config: str | None) -> None:
    """Set KEY to VALUE in the config file.

    \b
    EXAMPLES:
    \b
    $ azdisk config set default_location westus2
    $ azdisk config set storage_account mystorageacct
    """
    try:
        ConfigManager.update_config(config, **{key: value})
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Set {key} = {value}")
