"""Command groups for azdisk CLI."""

from azdisk.commands.config import config_group
from azdisk.commands.images import images_group

__all__ = ["config_group", "images_group"]
