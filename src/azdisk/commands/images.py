"""Image catalog commands for azdisk CLI.

- images latest: Show the image a new VM would be created from
"""

from __future__ import annotations

import logging
import sys

import click

from azdisk.azure_provider import AzureCLIProvider, ProvisioningError
from azdisk.config_manager import ConfigError, ConfigManager
from azdisk.image_resolver import resolve_latest_image

logger = logging.getLogger(__name__)


@click.group(name="images")
def images_group():
    """Inspect the VM image catalog."""
    pass


@images_group.command(name="latest")
@click.option("--filter", "family_filter", help="Image family glob (default from config)")
@click.option("--any-publisher", is_flag=True, help="Do not require the official publisher")
@click.option("--location", help="Azure region to list images in")
@click.option("--config", help="Config file path", type=click.Path())
def latest_image(
    family_filter: str | None,
    any_publisher: bool,
    location: str | None,
    config: str | None,
) -> None:
    """Show the latest image matching a family glob.

    \b
    EXAMPLES:
    \b
    # Image used for new VMs
    $ azdisk images latest
    \b
    # Latest 2022 Datacenter image
    $ azdisk images latest --filter "*2022-datacenter"
    """
    try:
        azdisk_config = ConfigManager.load_config(config)
        pattern = family_filter or azdisk_config.image_family_filter

        provider = AzureCLIProvider(
            image_publisher=azdisk_config.image_publisher,
            image_offer=azdisk_config.image_offer,
        )
        catalog = provider.list_images(ConfigManager.get_location(location, azdisk_config))
        image = resolve_latest_image(
            catalog,
            pattern,
            official_only=not any_publisher,
            official_publisher=azdisk_config.official_publisher_pattern,
        )

        if image is None:
            click.echo(f"Error: No image found matching '{pattern}'.", err=True)
            sys.exit(1)

        click.echo(f"Family:    {image.family}")
        click.echo(f"Publisher: {image.publisher}")
        click.echo(f"Published: {image.published_date.date().isoformat()}")
        click.echo(f"URN:       {image.image_id}")

    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except ProvisioningError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
