"""
Kitchen Feed CLI.

Developer console for running the pipeline against a live backend.
"""

import asyncio
import sys

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from kitchen_feed import __version__
from shared.config.constants import OrderStatus
from shared.config.logging import setup_logging
from shared.config.settings import settings
from shared.utils.exceptions import OrderApiError

app = typer.Typer(
    name="kitchen-feed",
    help="Kitchen real-time order feed console",
    add_completion=False,
)
console = Console()

SEVERITY_STYLES = {
    "normal": "green",
    "warning": "yellow",
    "critical": "bold red",
}

CONNECTION_STYLES = {
    "CONNECTED": "green",
    "CONNECTING": "yellow",
    "DISCONNECTED": "red",
}


def _restaurant(restaurant_id: str | None) -> str:
    restaurant_id = restaurant_id or settings.restaurant_id
    if not restaurant_id:
        console.print("[red]No restaurant id. Pass --restaurant or set KITCHEN_RESTAURANT_ID[/red]")
        raise typer.Exit(1)
    return restaurant_id


# =============================================================================
# Rendering
# =============================================================================

def _orders_table(orders, readings=None, title="Kitchen Queue") -> Table:
    from kitchen_feed.components.sla.timer import SlaReading

    table = Table(title=title)
    table.add_column("#", style="cyan")
    table.add_column("Table")
    table.add_column("Status")
    table.add_column("Items", justify="right")
    table.add_column("Elapsed", justify="right")
    table.add_column("Notes", style="dim")

    for order in orders:
        reading = (readings or {}).get(order.id) or SlaReading.compute(order.id, order.created_at)
        style = SEVERITY_STYLES[reading.severity.value]
        table.add_row(
            str(order.order_number),
            order.table_number or "-",
            order.status.value,
            str(sum(item.quantity for item in order.items)),
            f"[{style}]{reading.display}[/{style}]",
            order.special_instructions or "",
        )
    return table


def _render(pipeline):
    state = pipeline.connection_state.value
    style = CONNECTION_STYLES[state]
    counts = pipeline.counts()
    header = (
        f"[{style}]{state}[/{style}]  "
        f"ALL {counts['ALL']}  PENDING {counts['PENDING']}  PREPARING {counts['PREPARING']}"
    )
    if pipeline.last_error is not None and state != "CONNECTED":
        header += f"\n[red]{pipeline.last_error}[/red]"

    parts = [Panel(header, title=f"Restaurant {pipeline.restaurant_id}")]
    parts.append(_orders_table(pipeline.orders(), pipeline.sla_readings()))

    notifications = pipeline.active_notifications()
    if notifications:
        lines = [f"[bold]{n.title}[/bold] {n.message}" for n in notifications[-5:]]
        parts.append(Panel("\n".join(lines), title="Notifications"))
    return Group(*parts)


# =============================================================================
# Order Commands
# =============================================================================

@app.command()
def orders(
    restaurant: str = typer.Option(None, "--restaurant", "-r", help="Restaurant id"),
    status: str = typer.Option("ALL", "--status", "-s", help="ALL, PENDING or PREPARING"),
):
    """Fetch and print the active order queue once."""
    from kitchen_feed.components.orders.queue import OrderQueue, StatusFilter

    restaurant_id = _restaurant(restaurant)
    try:
        status_filter = StatusFilter(status.upper())
    except ValueError:
        console.print(f"[red]Unknown status filter: {status}[/red]")
        raise typer.Exit(1)

    async def _orders():
        from kitchen_feed.components.orders.client import OrderApiClient

        client = OrderApiClient()
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                progress.add_task("Fetching orders...", total=None)
                fetched = await client.list_orders(restaurant_id)
        finally:
            await client.close()

        queue = OrderQueue(restaurant_id)
        queue.load(fetched)
        console.print(_orders_table(queue.snapshot(status_filter)))
        counts = queue.counts()
        console.print(
            f"[blue]ALL {counts['ALL']} | PENDING {counts['PENDING']} | "
            f"PREPARING {counts['PREPARING']}[/blue]"
        )

    try:
        asyncio.run(_orders())
    except OrderApiError as e:
        console.print(f"[red]✗ {e.code}: {e.detail}[/red]")
        raise typer.Exit(1)


@app.command()
def set_status(
    order_id: str = typer.Argument(..., help="Order id"),
    status: str = typer.Argument(..., help="New status, e.g. PREPARING or READY"),
    restaurant: str = typer.Option(None, "--restaurant", "-r", help="Restaurant id"),
    timeout: float = typer.Option(10.0, help="Seconds to wait for the connection"),
):
    """Send an updateOrderStatus command over the event channel."""
    restaurant_id = _restaurant(restaurant)
    try:
        new_status = OrderStatus(status.upper())
    except ValueError:
        console.print(f"[red]Unknown status: {status}[/red]")
        raise typer.Exit(1)

    async def _send() -> bool:
        from kitchen_feed.components.connection.manager import ConnectionManager
        from kitchen_feed.components.events.dispatcher import EventDispatcher

        manager = ConnectionManager()
        dispatcher = EventDispatcher(restaurant_id, sender=manager.send)
        await manager.connect(restaurant_id)
        try:
            if not await manager.wait_until_connected(timeout):
                console.print(f"[red]✗ Could not connect: {manager.last_error}[/red]")
                return False
            return await dispatcher.update_order_status(order_id, new_status)
        finally:
            await manager.disconnect()

    if not asyncio.run(_send()):
        raise typer.Exit(1)
    console.print(f"[green]✓ Requested {order_id} -> {new_status.value}[/green]")


# =============================================================================
# Live Commands
# =============================================================================

@app.command()
def watch(
    restaurant: str = typer.Option(None, "--restaurant", "-r", help="Restaurant id"),
    mute: bool = typer.Option(False, "--mute", help="Disable sound alerts"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
):
    """Run the pipeline and render the live queue until Ctrl+C."""
    restaurant_id = _restaurant(restaurant)
    setup_logging(debug or settings.debug)

    async def _watch():
        from kitchen_feed.components.notifications.center import NotificationCenter
        from kitchen_feed.pipeline import KitchenPipeline

        notifications = NotificationCenter(sound_enabled=settings.sound_enabled and not mute)
        async with KitchenPipeline(restaurant_id, notifications=notifications) as pipeline:
            with Live(_render(pipeline), console=console, refresh_per_second=2) as live:
                while True:
                    await asyncio.sleep(pipeline.sla.interval)
                    live.update(_render(pipeline))

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


@app.command()
def notify(
    message: str = typer.Argument(..., help="Text shown on every kitchen screen"),
    level: str = typer.Option("info", help="info, success, urgent or error"),
    restaurant: str = typer.Option(None, "--restaurant", "-r", help="Restaurant id"),
    timeout: float = typer.Option(10.0, help="Seconds to wait for the connection"),
):
    """Broadcast a kitchen notification."""
    restaurant_id = _restaurant(restaurant)

    async def _notify() -> bool:
        from kitchen_feed.components.connection.manager import ConnectionManager
        from kitchen_feed.components.events.dispatcher import EventDispatcher

        manager = ConnectionManager()
        dispatcher = EventDispatcher(restaurant_id, sender=manager.send)
        await manager.connect(restaurant_id)
        try:
            if not await manager.wait_until_connected(timeout):
                console.print(f"[red]✗ Could not connect: {manager.last_error}[/red]")
                return False
            return await dispatcher.send_kitchen_notification(message, level)
        finally:
            await manager.disconnect()

    if not asyncio.run(_notify()):
        raise typer.Exit(1)
    console.print("[green]✓ Notification sent[/green]")


# =============================================================================
# Config Commands
# =============================================================================

@app.command()
def config():
    """Show effective settings and production checks."""
    table = Table(title="Kitchen Feed Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.model_dump().items():
        if name == "api_token" and value:
            value = "***"
        table.add_row(name, str(value))
    console.print(table)

    errors = settings.validate_production()
    for error in errors:
        console.print(f"[red]✗ {error}[/red]")
    if errors:
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    table = Table(title="Kitchen Feed Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("kitchen-feed", __version__)
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
