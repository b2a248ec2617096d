"""CLI commands for classping."""

import asyncio
import json
import signal
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from classping import __logo__, __version__
from classping.errors import CatalogError, ConfigError

app = typer.Typer(
    name="classping",
    help=f"{__logo__} classping - class reminders for group chats",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} classping v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """classping - class reminders for group chats."""
    pass


def _load_config_or_exit(config_path: Path | None = None):
    from classping.config.loader import load_config

    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _setup_logging(config, verbose: bool) -> None:
    level = "DEBUG" if verbose else config.logging.level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    if config.logging.file:
        logger.add(
            Path(config.logging.file).expanduser(),
            level=level,
            rotation=config.logging.rotation,
            encoding="utf-8",
        )


def _build_engine(config, notifier):
    """Wire clock, catalog, ledger, matcher, dispatcher and ticker from config."""
    from classping.schedule import (
        ClockSource,
        DedupLedger,
        Dispatcher,
        EventCatalog,
        MatchEngine,
        TickScheduler,
    )

    clock = ClockSource(config.schedule.timezone)
    engine = MatchEngine(clock, config.schedule.lead_minutes)
    catalog = EventCatalog(config.catalog_path)
    ledger = DedupLedger(config.ledger_path)
    dispatcher = Dispatcher(
        notifier,
        config.recipients.targets,
        send_delay_s=config.schedule.send_delay_s,
        template=config.schedule.message_template,
        link=config.schedule.class_link,
    )
    ticker = TickScheduler(
        engine,
        catalog,
        ledger,
        dispatcher,
        clock,
        status_interval_minutes=config.schedule.status_interval_minutes,
    )
    return ticker


SAMPLE_SCHEDULE = [
    {"date": "2026-01-15", "start": "08:00", "subject": "Matemáticas", "teacher": "Ana Pérez"},
    {"date": "2026-01-15", "start": "10:30", "subject": "Historia", "teacher": "Luis Gómez"},
]


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize classping configuration, workspace and a sample schedule."""
    from classping.config.loader import get_config_path, save_config
    from classping.config.schema import Config
    from classping.utils.helpers import get_workspace_path

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    if "workspace" not in config.model_fields_set:
        config.workspace = str(get_workspace_path())
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    workspace = get_workspace_path(config.workspace)
    console.print(f"[green]✓[/green] Created workspace at {workspace}")

    schedule_file = config.catalog_path
    if not schedule_file.exists():
        schedule_file.parent.mkdir(parents=True, exist_ok=True)
        schedule_file.write_text(
            json.dumps(SAMPLE_SCHEDULE, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        console.print(f"  [dim]Created {schedule_file.name}[/dim]")

    console.print(f"\n{__logo__} classping is ready!")
    console.print("\nNext steps:")
    console.print("  1. Start your WhatsApp bridge and run [cyan]classping targets[/cyan] to find group ids")
    console.print(f"  2. Put them under [cyan]recipients.targets[/cyan] in {config_path}")
    console.print("  3. Try [cyan]classping send-test[/cyan], then [cyan]classping run[/cyan]")


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Connect the notifier and send reminders every minute until stopped."""
    from classping.channels.manager import build_notifier

    config = _load_config_or_exit(config_file)
    _setup_logging(config, verbose)

    try:
        notifier = build_notifier(config)
        ticker = _build_engine(config, notifier)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    targets = ticker.dispatcher.recipients
    console.print(f"{__logo__} Starting classping ({config.channel.kind})")
    console.print(
        f"[green]✓[/green] TZ={config.schedule.timezone} | "
        f"lead={config.schedule.lead_minutes}m | groups={len(targets)}"
    )
    if not targets:
        console.print("[yellow]Warning: No recipient targets configured; nothing will be sent[/yellow]")

    async def validate_targets():
        if not await notifier.wait_ready(config.channel.ready_timeout_s):
            logger.warning(f"[Run] {notifier.name} not ready yet; ticking anyway")
            return
        for target_id in targets:
            try:
                target = await notifier.resolve_target(target_id)
                logger.info(f"[Run] OK target: {target.name!r} ({target_id})")
            except Exception as e:
                logger.warning(f"[Run] Could not validate {target_id}: {e}")

    async def main_loop():
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                pass

        await notifier.start()
        await ticker.start()
        validation = asyncio.create_task(validate_targets())
        try:
            await stop_event.wait()
        finally:
            console.print("\nShutting down...")
            validation.cancel()
            ticker.stop()
            await notifier.stop()

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        pass


# ============================================================================
# Inspection Commands
# ============================================================================


@app.command()
def check(
    at: str = typer.Option(None, "--at", help='Evaluate at "YYYY-MM-DD HH:MM" instead of now'),
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show which reminders would fire at a given moment (nothing is sent)."""
    from classping.schedule import ClockSource, DedupLedger, EventCatalog, MatchEngine

    config = _load_config_or_exit(config_file)
    clock = ClockSource(config.schedule.timezone)

    if at:
        try:
            date_str, time_str = at.split()
            now = clock.at(date_str, time_str)
        except ValueError:
            console.print(f'[red]Error: --at must look like "2024-05-01 09:00", got {at!r}[/red]')
            raise typer.Exit(1)
    else:
        now = clock.now()

    try:
        events = EventCatalog(config.catalog_path).load()
    except CatalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    ledger = DedupLedger(config.ledger_path)
    ledger.load()
    engine = MatchEngine(clock, config.schedule.lead_minutes)
    target = clock.add_minutes(now, engine.lead_minutes)
    due = engine.find_due(now, events, ledger)

    console.print(f"Now: {now.stamp} ({clock.timezone_name}) → target {target.stamp}")
    console.print(f"Catalog: {len(events)} event(s), ledger: {len(ledger)} sent")
    if not due:
        console.print("[dim]Nothing due[/dim]")
        return

    table = Table(title="Due reminders")
    table.add_column("Key", style="cyan")
    table.add_column("Subject")
    table.add_column("Teacher")
    for item in due:
        table.add_row(item.key, item.event.subject, item.event.teacher)
    console.print(table)


@app.command()
def targets(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """List chats and groups the notifier can see (to find group ids)."""
    from classping.channels.manager import build_notifier

    config = _load_config_or_exit(config_file)

    async def run_list():
        notifier = build_notifier(config)
        await notifier.start()
        try:
            with console.status(f"[bold blue]Waiting for {notifier.name} (scan the QR if asked)..."):
                ready = await notifier.wait_ready(config.channel.ready_timeout_s)
            if not ready:
                console.print(f"[red]Error: {notifier.name} did not become ready[/red]")
                return None
            return await notifier.list_targets()
        finally:
            await notifier.stop()

    found = asyncio.run(run_list())
    if found is None:
        raise typer.Exit(1)

    configured = set(config.recipients.targets)
    table = Table(title="Chats")
    table.add_column("Name")
    table.add_column("ID", style="cyan")
    table.add_column("Group")
    table.add_column("Configured")
    for t in found:
        table.add_row(
            t.name,
            t.id,
            "[green]yes[/green]" if t.is_group else "[dim]no[/dim]",
            "[green]✓[/green]" if t.id in configured else "",
        )
    console.print(table)


@app.command("send-test")
def send_test(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Send a test message to every configured target."""
    from classping.channels.manager import build_notifier
    from classping.schedule import ClockSource

    config = _load_config_or_exit(config_file)
    recipients = config.recipients.targets
    if not recipients:
        console.print("[red]Error: No recipients.targets configured[/red]")
        raise typer.Exit(1)

    stamp = ClockSource(config.schedule.timezone).now().stamp
    text = f"✅ Prueba BOT ({stamp})\nSi lees esto, el envío a múltiples grupos funciona."

    async def run_send() -> int:
        notifier = build_notifier(config)
        await notifier.start()
        failures = 0
        try:
            with console.status(f"[bold blue]Waiting for {notifier.name}..."):
                ready = await notifier.wait_ready(config.channel.ready_timeout_s)
            if not ready:
                console.print(f"[red]Error: {notifier.name} did not become ready[/red]")
                return len(recipients)
            for i, target_id in enumerate(recipients):
                if i > 0:
                    await asyncio.sleep(config.schedule.send_delay_s)
                try:
                    target = await notifier.resolve_target(target_id)
                    await notifier.send_message(target.id, text)
                    console.print(f"[green]✓[/green] Sent to {target.name!r} ({target_id})")
                except Exception as e:
                    failures += 1
                    console.print(f"[red]✗[/red] {target_id}: {e}")
        finally:
            await notifier.stop()
        return failures

    failures = asyncio.run(run_send())
    if failures:
        raise typer.Exit(1)


@app.command()
def ledger(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    limit: int = typer.Option(20, "--limit", "-n", help="Show the last N records"),
):
    """Show reminders already recorded as sent."""
    from classping.schedule import DedupLedger

    config = _load_config_or_exit(config_file)
    store = DedupLedger(config.ledger_path)
    records = list(store.load().values())

    if not records:
        console.print(f"[dim]No records in {config.ledger_path}[/dim]")
        return

    table = Table(title=f"Sent reminders ({len(records)})")
    table.add_column("Target", style="cyan")
    table.add_column("Subject")
    table.add_column("Teacher")
    table.add_column("Sent at")
    table.add_column("Delivered")
    for rec in records[-limit:]:
        delivered = f"{len(rec.delivered)}/{len(rec.delivered) + len(rec.failed)}"
        if not rec.delivered and not rec.failed:
            delivered = "[dim]-[/dim]"
        table.add_row(rec.target_at, rec.subject, rec.teacher, rec.sent_at, delivered)
    console.print(table)


@app.command()
def status(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Check classping status and configuration."""
    from classping.config.loader import get_config_path

    config_path = config_file or get_config_path()
    if not config_path.exists():
        console.print("[red]Error: classping is not initialized.[/red]")
        console.print("Run [cyan]classping onboard[/cyan] first.")
        raise typer.Exit(1)

    config = _load_config_or_exit(config_path)

    console.print(f"{__logo__} [bold]classping status[/bold]")
    console.print(f"Version: {__version__}")
    console.print(f"Config: {config_path}")
    console.print(f"Workspace: {config.workspace_path}")

    table = Table(title="Configuration Summary")
    table.add_column("Category", style="cyan")
    table.add_column("Status", style="green")

    table.add_row("Channel", config.channel.kind)
    table.add_row("Timezone", config.schedule.timezone)
    table.add_row("Lead time", f"{config.schedule.lead_minutes} min")
    recipients = len(config.recipients.targets)
    table.add_row("Recipients", str(recipients) if recipients else "[dim]none[/dim]")

    catalog_ok = config.catalog_path.exists()
    table.add_row(
        "Schedule",
        f"{config.catalog_path}" if catalog_ok else f"[red]missing[/red] {config.catalog_path}",
    )
    table.add_row("Ledger", str(config.ledger_path))

    console.print(table)


if __name__ == "__main__":
    app()
