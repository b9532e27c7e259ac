"""
SEVEN T CLI

Command-line interface for WhatsApp and billing administration.

Commands:
- bind-tool: Register a tenant's Evolution instance (or stub) as a tool
- list-tools: List tools, optionally checking the live connection state
- send-test: Send a test message through a tool
- list-conversations: List conversations for a tenant
- run-campaign: Send one campaign now
- run-scheduler-once: Run the scheduled campaigns job once
- reset-credits: Reset every tenant's monthly credits
- stream-info: Show inbound stream state
"""

import asyncio
from typing import Optional
from uuid import UUID

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="seven-cli",
    help="SEVEN T administration CLI",
)

console = Console()


def get_db():
    """Get database session."""
    from sevencore.db import get_db as _get_db
    return next(_get_db())


def get_redis():
    """Get Redis client."""
    from sevencore.redis import get_redis_client
    return get_redis_client()


def parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        rprint(f"[red]Invalid {label}: {value}[/red]")
        raise typer.Exit(1)


@app.command()
def bind_tool(
    user_id: str = typer.Argument(..., help="Tenant (user) UUID"),
    instance_name: str = typer.Argument(..., help="Evolution instance name"),
    provider: str = typer.Option("evolution", help="Provider (evolution or stub)"),
    api_url: Optional[str] = typer.Option(None, help="Evolution API base URL (defaults to EVOLUTION_API_URL)"),
    api_key: Optional[str] = typer.Option(None, help="Evolution API key (will be encrypted)"),
    agent_id: Optional[str] = typer.Option(None, help="Agent to bind to this tool"),
    label: Optional[str] = typer.Option(None, help="Display label"),
):
    """
    Register a tenant's WhatsApp connection.

    The instance name routes incoming webhooks to the tool and its agent.
    """
    user_uuid = parse_uuid(user_id, "user ID")
    agent_uuid = parse_uuid(agent_id, "agent ID") if agent_id else None

    if provider not in ("evolution", "stub"):
        rprint(f"[red]Unknown provider: {provider}[/red]")
        raise typer.Exit(1)

    db = get_db()

    try:
        from sevencore.crypto import encrypt_secret
        from seven_whatsapp.persistence.repo import WhatsAppRepository

        repo = WhatsAppRepository(db)

        existing = repo.get_tool_by_instance_name(instance_name)
        if existing:
            rprint(f"[yellow]Tool already exists for instance_name: {instance_name}[/yellow]")
            rprint(f"  User: {existing.user_id}")
            rprint(f"  Status: {existing.status}")
            raise typer.Exit(1)

        tool = repo.create_tool(
            user_id=user_uuid,
            provider=provider,
            instance_name=instance_name,
            api_url=api_url,
            api_key_encrypted=encrypt_secret(api_key) if api_key else None,
            label=label,
        )
        db.flush()

        if agent_uuid:
            agent = repo.get_agent(agent_uuid)
            if not agent or agent.user_id != user_uuid:
                rprint(f"[red]Agent {agent_id} not found for this user[/red]")
                db.rollback()
                raise typer.Exit(1)
            agent.tool_id = tool.id

        db.commit()

        rprint("[green]Successfully created tool:[/green]")
        rprint(f"  ID: {tool.id}")
        rprint(f"  User: {tool.user_id}")
        rprint(f"  Provider: {tool.provider}")
        rprint(f"  Instance Name: {tool.instance_name}")
        if agent_uuid:
            rprint(f"  Agent: {agent_uuid}")

    finally:
        db.close()


@app.command()
def list_tools(
    user_id: Optional[str] = typer.Option(None, help="Filter by tenant UUID"),
    check: bool = typer.Option(False, "--check", "-c", help="Query the live Evolution connection state"),
):
    """
    List WhatsApp tools.
    """
    user_uuid = parse_uuid(user_id, "user ID") if user_id else None
    db = get_db()

    try:
        from seven_whatsapp.persistence.repo import WhatsAppRepository
        from seven_whatsapp.providers.base import ProviderError
        from seven_whatsapp.providers.evolution import EvolutionWhatsAppProvider
        from seven_whatsapp.routing.tool_resolver import ToolResolver

        tools = WhatsAppRepository(db).list_tools(user_uuid)
        if not tools:
            rprint("[yellow]No tools found[/yellow]")
            raise typer.Exit(0)

        resolver = ToolResolver(db)

        async def live_state(tool) -> str:
            provider = resolver.build_provider(tool)
            try:
                if isinstance(provider, EvolutionWhatsAppProvider):
                    return await provider.get_connection_state()
                return "-"
            except ProviderError as e:
                return f"error: {e.message}"
            finally:
                await provider.close()

        table = Table(title="WhatsApp Tools")
        table.add_column("ID", style="dim")
        table.add_column("User", style="dim")
        table.add_column("Provider")
        table.add_column("Instance")
        table.add_column("Status")
        if check:
            table.add_column("Live")

        for tool in tools:
            row = [
                str(tool.id)[:8] + "...",
                str(tool.user_id)[:8] + "...",
                tool.provider,
                tool.instance_name or "-",
                tool.status,
            ]
            if check:
                row.append(asyncio.run(live_state(tool)))
            table.add_row(*row)

        console.print(table)

    finally:
        db.close()


@app.command()
def send_test(
    instance_name: str = typer.Argument(..., help="Tool instance name"),
    to: str = typer.Argument(..., help="Recipient phone number"),
    text: str = typer.Option("Bonjour depuis SEVEN T !", help="Message text"),
):
    """
    Send a test message.

    This sends a message directly via the tool's provider for testing purposes.
    """
    db = get_db()

    try:
        from seven_whatsapp.routing.tool_resolver import ToolResolver

        resolver = ToolResolver(db)
        tool = resolver.resolve_from_instance_name(instance_name)
        if not tool:
            rprint(f"[red]No tool found for instance_name: {instance_name}[/red]")
            raise typer.Exit(1)

        async def send():
            provider = resolver.build_provider(tool)
            try:
                return await provider.send_text(to, text)
            finally:
                await provider.close()

        response = asyncio.run(send())

        if response.success:
            rprint("[green]Message sent successfully![/green]")
            rprint(f"  Message ID: {response.message_id}")
        else:
            rprint("[red]Failed to send message[/red]")
            rprint(f"  Error: {response.error_message}")
            rprint(f"  Code: {response.error_code}")
            raise typer.Exit(1)

    finally:
        db.close()


@app.command()
def list_conversations(
    user_id: str = typer.Argument(..., help="Tenant (user) UUID"),
    status: Optional[str] = typer.Option(None, help="Filter by status (active, human_takeover, closed)"),
    limit: int = typer.Option(20, help="Maximum number of conversations to show"),
):
    """
    List conversations for a tenant.
    """
    user_uuid = parse_uuid(user_id, "user ID")
    db = get_db()

    try:
        from seven_whatsapp.persistence.models import ConversationStatus
        from seven_whatsapp.persistence.repo import WhatsAppRepository

        status_filter = None
        if status:
            try:
                status_filter = ConversationStatus(status)
            except ValueError:
                rprint(f"[yellow]Unknown status: {status}[/yellow]")

        conversations = WhatsAppRepository(db).list_conversations(
            user_id=user_uuid,
            status=status_filter,
            limit=limit,
        )

        if not conversations:
            rprint("[yellow]No conversations found[/yellow]")
            raise typer.Exit(0)

        table = Table(title=f"Conversations for user {user_id[:8]}...")
        table.add_column("ID", style="dim")
        table.add_column("Phone")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Messages")
        table.add_column("Last Message")

        for conv in conversations:
            table.add_row(
                str(conv.id)[:8] + "...",
                conv.contact_number or "-",
                conv.contact_name or "-",
                conv.status,
                str(conv.message_count),
                conv.last_message_at.strftime("%Y-%m-%d %H:%M") if conv.last_message_at else "-",
            )

        console.print(table)

    finally:
        db.close()


@app.command()
def run_campaign(
    campaign_id: str = typer.Argument(..., help="Campaign UUID"),
):
    """
    Send a campaign now.
    """
    campaign_uuid = parse_uuid(campaign_id, "campaign ID")
    db = get_db()

    try:
        from sevencore.errors import SevenError
        from seven_whatsapp.campaigns import CampaignSender

        try:
            result = asyncio.run(CampaignSender(db).send_campaign(campaign_uuid))
        except SevenError as e:
            rprint(f"[red]{e.message}[/red]")
            raise typer.Exit(1)

        if result.get("already_sent") or "count" in result:
            rprint(f"[yellow]{result['message']}[/yellow]")
        else:
            rprint(f"[green]Campaign finished: {result['sent']} sent, {result['failed']} failed[/green]")

    finally:
        db.close()


@app.command()
def run_scheduler_once():
    """
    Run the scheduled campaigns job once.
    """
    db = get_db()

    try:
        from seven_whatsapp.campaigns import run_campaign_scheduler_job

        results = asyncio.run(run_campaign_scheduler_job(db))
        if not results:
            rprint("[yellow]No campaign due[/yellow]")
            raise typer.Exit(0)

        for result in results:
            color = "green" if result["status"] == "ok" else "red"
            rprint(f"[{color}]{result['campaign_id']}: {result['status']}[/{color}]")

    finally:
        db.close()


@app.command()
def reset_credits(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """
    Reset every active tenant's credits to their plan's monthly allowance.
    """
    if not force and not typer.confirm("Reset monthly credits for all users?"):
        rprint("[yellow]Cancelled[/yellow]")
        raise typer.Exit(0)

    db = get_db()

    try:
        from seven_commerce.services.credits import CreditService

        count = CreditService(db).reset_monthly_credits()
        rprint(f"[green]Reset credits for {count} users[/green]")

    finally:
        db.close()


@app.command()
def stream_info():
    """
    Show length, consumer groups and pending entries of each WhatsApp stream.
    """
    from seven_whatsapp.streams.groups import describe_streams

    table = Table(title="WhatsApp Streams")
    table.add_column("Stream")
    table.add_column("Length", justify="right")
    table.add_column("Groups")
    table.add_column("Pending", justify="right")
    table.add_column("Last entry")

    for info in describe_streams(get_redis()):
        if not info["exists"]:
            table.add_row(info["stream"], "-", "[dim]missing[/dim]", "-", "-")
            continue
        table.add_row(
            info["stream"],
            str(info["length"]),
            ", ".join(info["groups"]) or "-",
            str(info["pending"]),
            info["last_entry_id"] or "-",
        )

    console.print(table)


if __name__ == "__main__":
    app()
