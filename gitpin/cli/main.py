"""gitpin CLI"""

import click

from gitpin import __version__
from gitpin.cli.cache import cache
from gitpin.cli.install import install, update

from .debug import add_logging_options


@click.group()
@click.version_option(__version__, prog_name="gitpin")
@click.pass_context
def cli(ctx):
    """
    Pin packages to git revisions and keep them cached.
    """
    ctx.ensure_object(dict)


cli.add_command(install)
cli.add_command(update)
cli.add_command(cache)

add_logging_options(cli)


if __name__ == "__main__":
    cli()
