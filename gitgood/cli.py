"""Click-based CLI entrypoint for gitgood.

All commands are implemented as Click subcommands with lazy loading so
``gitgood --help`` does not import paramiko.
"""

from __future__ import annotations

import importlib
import sys

import click

from gitgood import __version__

# ---------------------------------------------------------------------------
# Custom Click Group
# ---------------------------------------------------------------------------


_LAZY_COMMANDS: dict[str, tuple[str, str]] = {
    "check": ("gitgood.commands.check", "check"),
    "create": ("gitgood.commands.create", "create"),
    "keygen": ("gitgood.commands.keygen", "keygen"),
    "serve": ("gitgood.commands.serve", "serve"),
}


class LazyGroup(click.Group):
    """Click group whose command modules are imported on first access."""

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Return all available command names (eager + lazy)."""
        eager = set(self.commands or {})
        return sorted(eager | _LAZY_COMMANDS.keys())

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Look up a command, importing lazily if needed."""
        cmd = self.commands.get(cmd_name)
        if cmd is not None:
            return cmd

        entry = _LAZY_COMMANDS.get(cmd_name)
        if entry is None:
            return None

        module_path, attr_name = entry
        mod = importlib.import_module(module_path)
        loaded_cmd: click.Command = getattr(mod, attr_name)
        # Cache so subsequent lookups skip the import
        self.add_command(loaded_cmd, cmd_name)
        return loaded_cmd

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        """Resolve a command name, failing with a hint for unknown ones."""
        if not args:
            return super().resolve_command(ctx, args)

        cmd_name = args[0]
        cmd_obj = self.get_command(ctx, cmd_name)
        if cmd_obj is not None:
            return cmd_name, cmd_obj, list(args[1:])

        ctx.fail(
            f"Unknown command '{cmd_name}'. Run 'gitgood --help' for available commands."
        )


# ---------------------------------------------------------------------------
# Main CLI Group
# ---------------------------------------------------------------------------


@click.group(cls=LazyGroup, invoke_without_command=True)
@click.version_option(__version__, prog_name="gitgood")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Git Good - git repositories over SSH and SFTP."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def main() -> None:
    """Entry point for the CLI.

    Usage errors (bad flags, missing required args) are normalised to
    exit code 1. Click's default for ``UsageError`` is exit code 2.
    """
    try:
        result = cli(standalone_mode=False)
    except click.UsageError as exc:
        click.echo(f"Error: {exc.format_message()}", err=True)
        sys.exit(1)
    except click.Abort:
        sys.exit(130)
    if isinstance(result, int):
        sys.exit(result)


if __name__ == "__main__":
    main()
