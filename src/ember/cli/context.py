"""Config loading shared by CLI commands."""

from pathlib import Path

import typer
from pydantic import ValidationError

from ember.cli.console import error
from ember.config import EmberConfig, load_config


def get_config(config_path: Path | None = None) -> EmberConfig:
    """Load config or exit with a readable error."""
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except ValidationError as e:
        error("Configuration validation failed:")
        for err in e.errors():
            loc = ".".join(str(x) for x in err["loc"])
            error(f"  {loc}: {err['msg']}")
        raise typer.Exit(1) from None
