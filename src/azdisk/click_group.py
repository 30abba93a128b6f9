"""Custom Click group that shows contextual help on usage errors."""

from typing import Any

import click


class AzdiskGroup(click.Group):
    """Click group that prints the failing command's help after a usage error."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except (
            click.exceptions.UsageError,
            click.exceptions.BadParameter,
            click.exceptions.MissingParameter,
        ) as e:
            click.echo(f"Error: {e.format_message()}", err=True)

            error_ctx = e.ctx if e.ctx else ctx
            click.echo("")
            click.echo(error_ctx.get_help())
            error_ctx.exit(e.exit_code)
            return None


# Subgroups created with @main.group() also use AzdiskGroup
AzdiskGroup.group_class = AzdiskGroup
