"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer
from pydantic import SecretStr
from rich.table import Table

from ember.cli.console import console, create_table, error, success
from ember.config import EmberConfig
from ember.config.paths import get_all_paths


def _mask(secret: SecretStr | None) -> str:
    if secret is None:
        return "[dim]not set[/dim]"
    value = secret.get_secret_value()
    return f"{value[:3]}...{value[-4:]}" if len(value) > 10 else "****"


def summary_table(config: EmberConfig) -> Table:
    """Resolved settings with API keys masked."""
    table = create_table(
        "Configuration Summary", [("Setting", "cyan"), ("Value", "green")]
    )

    for alias in config.list_models():
        model = config.get_model(alias)
        table.add_row(f"Model '{alias}'", f"{model.provider}/{model.model}")
    table.add_row("API key (default)", _mask(config.resolve_api_key()))
    table.add_row(
        "Embeddings",
        f"{config.embeddings.provider}/{config.embeddings.model} "
        f"({config.embeddings.dimensions} dims)",
    )
    table.add_row("API key (embeddings)", _mask(config.resolve_embeddings_api_key()))

    memory = config.memory
    table.add_row("Memory", "enabled" if memory.enabled else "[dim]disabled[/dim]")
    table.add_row("Extraction", "enabled" if memory.extraction_enabled else "disabled")
    table.add_row("Similarity threshold", str(memory.similarity_threshold))
    table.add_row("Retrieval limit", str(memory.retrieval_limit))
    table.add_row("Decider", memory.decider)
    table.add_row("Collection", config.vector_store.collection)
    table.add_row("Vector store", str(config.vector_store.database_path))
    table.add_row("History", str(config.history.database_path))
    table.add_row(
        "Embedding cache",
        f"{config.performance.cache_ttl}s"
        if config.performance.cache_ttl
        else "[dim]disabled[/dim]",
    )
    return table


def paths_table() -> Table:
    """Default file locations and whether each exists yet."""
    table = create_table(
        "Paths", [("Role", "cyan"), ("Path", "green"), ("Exists", {})]
    )
    for role, location in get_all_paths().items():
        exists = "yes" if location.exists() else "[dim]no[/dim]"
        table.add_row(role, str(location), exists)
    return table


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate, paths"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: search config.toml locations)",
            ),
        ] = None,
    ) -> None:
        """Show or validate configuration, or list where ember stores its files."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from pydantic import ValidationError

        from ember.config import load_config

        expanded_path = path.expanduser() if path else None

        if action == "paths":
            console.print(paths_table())
            return

        if action not in ("show", "validate"):
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate, paths")
            raise typer.Exit(1)

        try:
            config_obj = load_config(expanded_path)
        except FileNotFoundError as e:
            error(str(e))
            raise typer.Exit(1) from None
        except ValidationError as e:
            error("Configuration validation failed:")
            console.print()
            for err in e.errors():
                loc = ".".join(str(x) for x in err["loc"])
                console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
            raise typer.Exit(1) from None
        except Exception as e:
            error(f"Error loading config: {e}")
            raise typer.Exit(1) from None

        if action == "validate":
            success("Configuration is valid!")
            console.print()
        console.print(summary_table(config_obj))
