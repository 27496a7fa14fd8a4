import click

from .utils.logging import configure_logging


def _verbosity_options():
    return [
        click.Option(
            ["--debug/--no-debug"],
            is_eager=True,
            expose_value=False,
            callback=lambda ctx, param, value: _set_verbosity(ctx, "DEBUG", value),
            help="Show git commands and other details.",
        ),
        click.Option(
            ["--quiet", "-q"],
            is_flag=True,
            is_eager=True,
            expose_value=False,
            callback=lambda ctx, param, value: _set_verbosity(ctx, "QUIET", value),
            help="Only print warnings and errors.",
        ),
    ]


def add_logging_options(cmd: click.Command) -> click.Command:
    """Add --debug and --quiet to a command, and to every subcommand of a group"""
    if not any(param.name == "debug" for param in cmd.params):
        cmd.params[:0] = _verbosity_options()
    if isinstance(cmd, click.Group):
        for subcommand in cmd.commands.values():
            add_logging_options(subcommand)
    return cmd


def _set_verbosity(ctx, key: str, value: bool):
    """Record a verbosity flag on the root context and reconfigure logging"""
    root_ctx = ctx.find_root()
    root_ctx.ensure_object(dict)
    root_ctx.obj.setdefault("DEBUG", False)
    root_ctx.obj.setdefault("QUIET", False)

    # A flag given on the group stays set for its subcommands
    if value:
        root_ctx.obj[key] = True

    configure_logging(root_ctx.obj["DEBUG"], root_ctx.obj["QUIET"])
    return root_ctx.obj[key]
