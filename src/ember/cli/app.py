"""Main CLI application."""

import typer

from ember.cli.commands import config, memory

app = typer.Typer(
    name="ember",
    help="Ember - long-term memory for conversational agents",
    no_args_is_help=True,
)

config.register(app)
memory.register(app)


if __name__ == "__main__":
    app()
