"""Memory management commands."""

import asyncio
import os
from pathlib import Path
from typing import Annotated

import click
import openai
import typer
from rich.markup import escape

from ember.cli.console import (
    cell,
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    format_time,
    styled_event,
    success,
    warning,
)
from ember.cli.context import get_config
from ember.config import EmberConfig
from ember.llm import Role, with_retry
from ember.logging import configure_logging
from ember.memory import (
    ChatMessage,
    MemoryService,
    MemoryServiceError,
    create_memory_service,
    create_registry_from_config,
)
from ember.memory.runtime import retry_config_from_settings

ACTIONS = ("list", "search", "add", "history", "forget")


def register(app: typer.Typer) -> None:
    """Register the memory command."""

    @app.command()
    def memory(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: list, search, add, history, forget"),
        ] = None,
        target: Annotated[
            str | None,
            typer.Argument(help="Memory ID (history, forget) or search query"),
        ] = None,
        query: Annotated[
            str | None,
            typer.Option(
                "--query",
                "-q",
                help="Search query or message to learn from",
            ),
        ] = None,
        user_id: Annotated[
            str | None,
            typer.Option(
                "--user",
                "-u",
                help="Owner user ID",
            ),
        ] = None,
        limit: Annotated[
            int,
            typer.Option(
                "--limit",
                "-n",
                help="Maximum entries to show",
            ),
        ] = 20,
        config_path: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        force: Annotated[
            bool,
            typer.Option(
                "--force",
                "-f",
                help="Forget without confirmation",
            ),
        ] = False,
        verbose: Annotated[
            bool,
            typer.Option(
                "--verbose",
                "-v",
                help="Show debug logs",
            ),
        ] = False,
    ) -> None:
        """Manage long-term memories.

        Examples:
            ember memory add -u alice -q "I moved to Seattle last month"
            ember memory search -u alice "where do I live"
            ember memory list -u alice
            ember memory history <id>
            ember memory forget <id> --force
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action not in ACTIONS:
            error(f"Unknown action: {action}")
            console.print(f"Valid actions: {', '.join(ACTIONS)}")
            raise typer.Exit(1)

        configure_logging(
            level="DEBUG" if verbose else os.environ.get("EMBER_LOG_LEVEL", "WARNING")
        )
        config = get_config(config_path)

        try:
            asyncio.run(
                _run_memory_action(
                    config,
                    action=action,
                    target=target,
                    query=query,
                    user_id=user_id,
                    limit=limit,
                    force=force,
                )
            )
        except KeyboardInterrupt:
            console.print("\n[dim]Cancelled[/dim]")


async def _run_memory_action(
    config: EmberConfig,
    *,
    action: str,
    target: str | None,
    query: str | None,
    user_id: str | None,
    limit: int,
    force: bool,
) -> None:
    """Run memory action asynchronously."""
    if action in ("list", "search", "add") and not user_id:
        error(f"--user/-u is required for '{action}'")
        raise typer.Exit(1)
    if action in ("history", "forget") and not target:
        error(f"Usage: ember memory {action} <id>")
        raise typer.Exit(1)
    if action == "search" and not (query or target):
        error("Usage: ember memory search <query> or ember memory search -q <query>")
        raise typer.Exit(1)
    if action == "add" and not query:
        error("--query/-q is required to specify the message to learn from")
        raise typer.Exit(1)

    try:
        service = await create_memory_service(
            config, registry=create_registry_from_config(config)
        )
    except openai.OpenAIError as e:
        error(f"Could not set up providers: {e}")
        raise typer.Exit(1) from None

    try:
        if action == "list" and user_id:
            await memory_list(service, user_id, limit)
        elif action == "search" and user_id:
            await memory_search(service, user_id, query or target or "", limit)
        elif action == "add" and user_id and query:
            await memory_add(service, user_id, query)
        elif action == "history" and target:
            await memory_history(service, target)
        elif action == "forget" and target:
            await memory_forget(service, target, user_id, force)
    except MemoryServiceError as e:
        error(f"{type(e).__name__}: {e}")
        raise typer.Exit(1) from None
    finally:
        await service.close()


async def memory_list(service: MemoryService, user_id: str, limit: int) -> None:
    memories = await service.get_all(user_id, limit=limit)
    if not memories:
        warning(f"No memories found for '{user_id}'")
        return

    table = create_table(
        f"Memories: {user_id}",
        [
            ("ID", {"style": "dim", "max_width": 8}),
            ("Created", "blue"),
            ("Updated", "blue"),
            ("Content", {"style": "white", "max_width": 60}),
        ],
    )
    for memory in memories:
        table.add_row(
            memory.id[:8],
            format_time(memory.created_at),
            format_time(memory.updated_at),
            cell(memory.text),
        )
    console.print(table)
    dim(f"\nShowing {len(memories)} memories")


async def memory_search(
    service: MemoryService, user_id: str, query: str, limit: int
) -> None:
    """Search memories using semantic similarity."""
    memories = await service.search(query, user_id, limit=limit)
    if not memories:
        warning(f"No memories found matching '{query}'")
        return

    table = create_table(
        f"Memory Search: '{query}'",
        [
            ("ID", {"style": "dim", "max_width": 8}),
            ("Score", {"style": "yellow", "max_width": 6}),
            ("Content", {"style": "white", "max_width": 60}),
        ],
    )
    for memory in memories:
        table.add_row(memory.id[:8], f"{memory.score or 0.0:.2f}", cell(memory.text))
    console.print(table)
    dim(f"\nShowing {len(memories)} results")


async def memory_add(service: MemoryService, user_id: str, text: str) -> None:
    """Run the full pipeline over a single user message."""
    if not service.config.memory.enabled:
        warning("Memory is disabled. Set MEMORY_ENABLED=true or memory.enabled = true")
        return

    result = await with_retry(
        lambda: service.add([ChatMessage(role=Role.USER, content=text)], user_id),
        retry_config_from_settings(service.config),
        operation_name="memory add",
    )
    if not result.facts:
        dim("No facts extracted")
        return

    table = create_table(
        "Memory Actions",
        [
            ("Event", "bold"),
            ("ID", {"style": "dim", "max_width": 8}),
            ("Fact", {"style": "white", "max_width": 50}),
            ("Previous", {"style": "dim", "max_width": 40}),
        ],
    )
    for action in result.results:
        table.add_row(
            styled_event(action.event),
            action.id[:8],
            cell(action.text, 50),
            cell(action.old_memory, 40),
        )
    console.print(table)
    success(f"Processed {len(result.facts)} fact(s)")


async def memory_history(service: MemoryService, memory_id: str) -> None:
    entries = await service.history(memory_id)
    if not entries:
        warning(f"No history for memory '{memory_id}'")
        return

    table = create_table(
        f"History: {memory_id}",
        [
            ("Time", "blue"),
            ("Event", "bold"),
            ("Previous", {"style": "dim", "max_width": 40}),
            ("New", {"style": "white", "max_width": 40}),
        ],
    )
    for entry in entries:
        table.add_row(
            format_time(entry.timestamp, seconds=True),
            styled_event(entry.event),
            cell(entry.prev_value, 40),
            cell(entry.new_value, 40),
        )
    console.print(table)


async def memory_forget(
    service: MemoryService, memory_id: str, user_id: str | None, force: bool
) -> None:
    memory = await service.get(memory_id)
    if memory is None or (user_id and memory.owner_id != user_id):
        error(f"Memory not found: {memory_id}")
        raise typer.Exit(1)

    console.print(f"[bold]{escape(memory.text)}[/bold]")
    if not confirm_or_cancel("Forget this memory?", force):
        return

    if await service.delete(memory_id, owner_id=user_id):
        success(f"Forgot memory {memory_id[:8]}")
    else:
        warning(f"Memory {memory_id[:8]} was already gone")
