"""Command implementations for CLI."""

import asyncio
from typing import Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from rhagent.agent.main import ResourceHostAgent
from rhagent.models.container import CloneRequest


console = Console()


def clone_container(
    agent: ResourceHostAgent,
    parent: str,
    name: str,
    environment: Optional[str] = None,
    network: Optional[str] = None,
    token: Optional[str] = None,
    cdn_token: Optional[str] = None,
    quiet: bool = False,
):
    """Clone `parent` into `name` and print the result line."""
    request = CloneRequest(
        parent=parent,
        name=name,
        environment=environment,
        network=network,
        token=token,
        cdn_token=cdn_token,
    )

    if quiet:
        result = asyncio.run(agent.clone(request))
    else:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Cloning {parent} to {name}...", total=None)
            result = asyncio.run(agent.clone(request))

    console.print(f"[green]✓[/green] {result.message}")
    return result


def show_id(agent: ResourceHostAgent):
    """Print the resource host key fingerprint."""
    fingerprint = asyncio.run(agent.host_fingerprint())
    console.print(fingerprint)
    return fingerprint
