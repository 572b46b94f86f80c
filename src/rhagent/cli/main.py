"""Main CLI implementation using Typer."""

from typing import Any, Callable, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from rhagent.agent.main import create_agent
from rhagent.cli.commands import clone_container, show_id
from rhagent.errors import AgentError


app = typer.Typer(
    name="rhagent",
    help="Resource host agent - container cloning and key registration",
    add_completion=False,
)

console = Console()


def _run_cli_command(handler: Callable[..., Any], config: Optional[str], **kwargs: Any):
    """Helper to run a CLI command with an agent and error handling."""
    try:
        agent = create_agent(config)
        handler(agent, **kwargs)
    except (AgentError, ValidationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command("clone")
def clone_command(
    parent: str = typer.Argument(..., help="Parent template name or id:<template id>"),
    child: str = typer.Argument(..., help="New container name"),
    environment: Optional[str] = typer.Option(
        None, "--env", "-e", help="Environment ID to record for the container"
    ),
    ipaddr: Optional[str] = typer.Option(
        None, "--ipaddr", "-i", help="'<cidr> <vlan>' for static networking"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", "-t", help="Management registration token"
    ),
    cdn_token: Optional[str] = typer.Option(
        None, "--kurjun-token", "-k", help="CDN token for template import"
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Agent configuration file"
    ),
):
    """Create a new container from a template."""
    _run_cli_command(
        clone_container,
        config=config,
        parent=parent,
        name=child,
        environment=environment,
        network=ipaddr,
        token=token,
        cdn_token=cdn_token,
    )


# Info subcommands
info_app = typer.Typer(help="Host information commands")
app.add_typer(info_app, name="info")


@info_app.command("id")
def info_id_command(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Agent configuration file"
    ),
):
    """Show the resource host key fingerprint."""
    _run_cli_command(show_id, config=config)


def main():
    """Main entry point for CLI."""
    app()
